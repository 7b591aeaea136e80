from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from rlsguard.app.domain.errors import AccessDenied, BackingStoreError, ValidationError
from rlsguard.app.domain.models import AccessLog, utcnow
from rlsguard.app.domain.policy import Operation, PolicyContext
from rlsguard.app.infra.db import build_engine, build_sessionmaker, init_db, retry_read, session_scope
from rlsguard.app.services.abac import AccessEvaluator


def make_factory():
    engine = build_engine("sqlite://")
    init_db(engine, attempts=1)
    return build_sessionmaker(engine)


def flaky(failures, result="ok"):
    calls = {"n": 0}

    def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise OperationalError("select 1", {}, Exception("database is locked"))
        return result

    return operation, calls


def test_retry_read_recovers():
    operation, calls = flaky(2)
    rollbacks = []
    assert retry_read(operation, attempts=3, backoff_seconds=0, on_retry=lambda: rollbacks.append(1)) == "ok"
    assert calls["n"] == 3
    assert len(rollbacks) == 2


def test_retry_read_gives_up():
    operation, calls = flaky(5)
    with pytest.raises(BackingStoreError):
        retry_read(operation, attempts=3, backoff_seconds=0)
    assert calls["n"] == 3


def test_retry_read_does_not_retry_domain_errors():
    calls = []

    def operation():
        calls.append(1)
        raise ValidationError("bad")

    with pytest.raises(ValidationError):
        retry_read(operation, attempts=3, backoff_seconds=0)
    assert len(calls) == 1


def test_denial_audit_survives_the_request():
    factory = make_factory()
    context = PolicyContext(subject_id="alice", role="therapist")
    with pytest.raises(AccessDenied):
        with session_scope(factory) as session:
            AccessEvaluator(session).enforce(context, Operation.READ, "patients/x", "bob")

    with factory() as session:
        rows = session.exec(select(AccessLog)).all()
    assert [(row.actor_id, row.allowed, row.reason) for row in rows] == [("alice", False, "not_owner")]


def test_other_errors_roll_back():
    factory = make_factory()
    context = PolicyContext(subject_id="alice", role="therapist")
    with pytest.raises(ValidationError):
        with session_scope(factory) as session:
            AccessEvaluator(session).authorize(context, Operation.READ, "patients/x", "alice")
            raise ValidationError("late failure")

    with factory() as session:
        assert session.exec(select(AccessLog)).all() == []


def test_database_errors_become_backing_store_errors():
    factory = make_factory()
    with pytest.raises(BackingStoreError):
        with session_scope(factory):
            raise OperationalError("insert", {}, Exception("disk I/O error"))


def test_timestamps_come_back_as_utc():
    factory = make_factory()
    stamp = utcnow()
    with session_scope(factory) as session:
        session.add(AccessLog(actor_id="alice", role="therapist", action="read", resource="patients/x", created_at=stamp))

    with factory() as session:
        row = session.exec(select(AccessLog)).one()
    assert row.created_at == stamp
    assert row.created_at.tzinfo == timezone.utc


def test_offset_timestamps_are_stored_as_utc():
    factory = make_factory()
    tokyo = timezone(timedelta(hours=9))
    with session_scope(factory) as session:
        session.add(
            AccessLog(
                actor_id="alice",
                role="therapist",
                action="read",
                resource="patients/x",
                created_at=datetime(2024, 5, 1, 9, 30, tzinfo=tokyo),
            )
        )

    with factory() as session:
        row = session.exec(select(AccessLog)).one()
    assert row.created_at == datetime(2024, 5, 1, 0, 30, tzinfo=timezone.utc)
