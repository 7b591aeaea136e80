import pytest
from fastapi.testclient import TestClient

from rlsguard.app.infra.db import init_db, session_scope
from rlsguard.app.main import create_app
from rlsguard.app.services.provisioning import demo_tenants, seed_tenants
from rlsguard.client import AccessClient
from rlsguard.config import Settings

THERAPIST1 = ("therapist1@example.com", "therapist1-password")
THERAPIST2 = ("therapist2@example.com", "therapist2-password")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        storage_root=str(tmp_path / "storage"),
        read_retry_backoff_seconds=0,
        log_level="DEBUG",
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    init_db(app.state.engine, attempts=1)
    with session_scope(app.state.sessionmaker) as session:
        seed_tenants(session, demo_tenants(THERAPIST1, THERAPIST2))
    return app


@pytest.fixture
def db(app):
    with session_scope(app.state.sessionmaker) as session:
        yield session


@pytest.fixture
def http(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def client_factory(http):
    return lambda: AccessClient(http)


@pytest.fixture
def therapist1(client_factory):
    client = client_factory()
    client.authenticate(*THERAPIST1)
    return client


@pytest.fixture
def therapist2(client_factory):
    client = client_factory()
    client.authenticate(*THERAPIST2)
    return client



@pytest.fixture
def credentials():
    return {"therapist1": THERAPIST1, "therapist2": THERAPIST2}
