import httpx
import pytest

from rlsguard.app.domain.errors import (
    AccessDenied,
    BackingStoreError,
    InvalidCredentials,
    SessionExpired,
    ValidationError,
)
from rlsguard.client import AccessClient
from rlsguard.harness import mock_c3d_content


def client_with(handler):
    return AccessClient(httpx.Client(base_url="http://rlsguard.test", transport=httpx.MockTransport(handler)))


@pytest.mark.parametrize(
    "status, body, error",
    [
        (404, {"detail": "Not found"}, AccessDenied),
        (401, {"detail": "Invalid credentials", "error": "InvalidCredentials"}, InvalidCredentials),
        (401, {"detail": "Session expired", "error": "SessionExpired"}, SessionExpired),
        (401, {}, SessionExpired),
        (400, {"detail": "Invalid blob key", "error": "ValidationError"}, ValidationError),
        (503, {"detail": "Backing store unavailable"}, BackingStoreError),
        (500, {}, BackingStoreError),
    ],
)
def test_status_codes_map_to_errors(status, body, error):
    client = client_with(lambda request: httpx.Response(status, json=body))
    with pytest.raises(error):
        client.list_resources()


def test_connection_errors_are_backing_store_errors():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BackingStoreError):
        client_with(refuse).authenticate("a@example.com", "secret")


def test_bearer_header_and_sign_out():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, request.headers.get("authorization")))
        if request.url.path == "/sessions" and request.method == "POST":
            return httpx.Response(
                200,
                json={"session_token": "tok", "token_type": "bearer", "expires_at": "2030-01-01T00:00:00"},
            )
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(200, json=[])

    client = client_with(handler)
    client.authenticate("a@example.com", "secret")
    client.list_resources({"code_ne": "P001"})
    client.sign_out()
    client.sign_out()

    assert seen == [
        ("POST", "/sessions", None),
        ("GET", "/resources", "Bearer tok"),
        ("DELETE", "/sessions/current", "Bearer tok"),
    ]
    assert client.session is None


def test_upload_file_rejects_invalid_c3d_locally(tmp_path):
    client = client_with(lambda request: pytest.fail("nothing should be sent"))
    bad = tmp_path / "broken.c3d"
    bad.write_bytes(b"\x00" * 10)
    with pytest.raises(ValidationError):
        client.upload_file("P001", bad)


def test_upload_session_file(tmp_path):
    requests = []

    def handler(request):
        requests.append((request.method, request.url.path))
        if request.method == "PUT":
            return httpx.Response(201, json={"key": "P001/run.c3d", "size_bytes": 600, "sha256": "ab"})
        return httpx.Response(201, json={"id": "ts-1", "file_path": "P001/run.c3d"})

    good = tmp_path / "run.c3d"
    good.write_bytes(mock_c3d_content("P001", "run.c3d"))
    record = client_with(handler).upload_session_file({"id": "pat-1", "code": "P001"}, good)

    assert record["id"] == "ts-1"
    assert requests == [("PUT", "/blobs/P001/run.c3d"), ("POST", "/therapy-sessions")]
