from datetime import timedelta

import pytest
from sqlmodel import Session

from rlsguard.app.domain.credentials import hash_secret, token_digest, verify_secret
from rlsguard.app.domain.errors import InvalidCredentials, SessionExpired
from rlsguard.app.domain.models import AuthSession, PrincipalRole
from rlsguard.app.infra.db import build_engine, init_db
from rlsguard.app.services.identity import IdentityService


def setup_session():
    engine = build_engine("sqlite://")
    init_db(engine, attempts=1)
    return Session(engine)


@pytest.fixture
def identity():
    session = setup_session()
    service = IdentityService(session, ttl_seconds=60)
    service.provision_principal("Ana@Example.com", "correct horse", display_name="Ana")
    session.commit()
    yield service
    session.close()


def test_secret_hash_round_trip():
    encoded = hash_secret("s3cret")
    assert encoded.startswith("scrypt$")
    assert "s3cret" not in encoded
    assert verify_secret("s3cret", encoded)
    assert not verify_secret("other", encoded)
    assert not verify_secret("s3cret", "garbage")


def test_authenticate_issues_token_stored_as_digest(identity):
    issued = identity.authenticate("ana@example.com", "correct horse")
    record = identity.session.get(AuthSession, token_digest(issued.token))
    assert record is not None
    assert record.token_digest != issued.token
    assert record.role == PrincipalRole.THERAPIST
    assert record.expires_at - record.issued_at == timedelta(seconds=60)


def test_identifier_is_case_insensitive(identity):
    issued = identity.authenticate("ANA@example.COM", "correct horse")
    assert identity.current_principal(issued.token).role == "therapist"


def test_unknown_and_wrong_secret_look_the_same(identity):
    with pytest.raises(InvalidCredentials) as unknown:
        identity.authenticate("nobody@example.com", "correct horse")
    with pytest.raises(InvalidCredentials) as wrong:
        identity.authenticate("ana@example.com", "wrong")
    assert unknown.value.message == wrong.value.message


def test_inactive_principal_cannot_sign_in(identity):
    principal = identity._by_identifier("ana@example.com")
    identity.set_active(principal.id, False)
    with pytest.raises(InvalidCredentials):
        identity.authenticate("ana@example.com", "correct horse")


def test_invalidate_takes_effect_immediately(identity):
    issued = identity.authenticate("ana@example.com", "correct horse")
    context = identity.current_principal(issued.token)
    identity.invalidate(issued.token)
    with pytest.raises(SessionExpired):
        identity.current_principal(issued.token)
    # idempotent
    identity.invalidate(issued.token)
    identity.invalidate("never-issued")
    identity.invalidate(None)
    assert context.subject_id == issued.record.principal_id


def test_expired_session_is_rejected(identity):
    issued = identity.authenticate("ana@example.com", "correct horse")
    issued.record.expires_at = issued.record.issued_at - timedelta(seconds=1)
    identity.session.add(issued.record)
    identity.session.flush()
    with pytest.raises(SessionExpired):
        identity.current_principal(issued.token)


def test_deactivation_ends_existing_sessions(identity):
    issued = identity.authenticate("ana@example.com", "correct horse")
    identity.set_active(issued.record.principal_id, False)
    with pytest.raises(SessionExpired):
        identity.current_principal(issued.token)


def test_missing_token_is_session_expired(identity):
    with pytest.raises(SessionExpired):
        identity.current_principal(None)
    with pytest.raises(SessionExpired):
        identity.current_principal("made-up")


def test_http_sign_in_and_out(http, credentials):
    identifier, secret = credentials["therapist1"]
    response = http.post("/sessions", json={"identifier": identifier, "secret": secret})
    assert response.status_code == 200
    token = response.json()["session_token"]
    headers = {"Authorization": f"Bearer {token}"}

    me = http.get("/sessions/current", headers=headers)
    assert me.status_code == 200
    assert me.json()["identifier"] == identifier

    assert http.delete("/sessions/current", headers=headers).status_code == 204
    assert http.get("/resources", headers=headers).status_code == 401
    # second sign-out is still fine
    assert http.delete("/sessions/current", headers=headers).status_code == 204


def test_http_bad_credentials(http):
    response = http.post("/sessions", json={"identifier": "x@example.com", "secret": "nope"})
    assert response.status_code == 401
    assert response.json()["error"] == "InvalidCredentials"
    assert response.headers["www-authenticate"] == "Bearer"


def test_http_missing_fields_is_400(http):
    assert http.post("/sessions", json={"identifier": "x@example.com"}).status_code == 400
