import httpx
import pytest
from sqlmodel import select

from rlsguard.app.domain.models import BlobObject
from rlsguard.app.services.blobs import BlobService
from rlsguard.client import AccessClient
from rlsguard.harness import ERROR, FAIL, PASS, IsolationHarness, PrincipalCredentials


@pytest.fixture
def principals(credentials):
    return [
        PrincipalCredentials(*credentials["therapist1"], label="therapist1"),
        PrincipalCredentials(*credentials["therapist2"], label="therapist2"),
    ]


def test_isolation_suite_passes(client_factory, principals):
    report = IsolationHarness(client_factory, principals, denial_repeats=3).run()

    assert report.ok, [result for result in report.results if not result.passed]
    names = {result.name for result in report.results}
    assert names == {
        "self_access",
        "storage_diagnostics",
        "cross_access_denial",
        "unauthenticated_denial",
        "exclusion_filter_attack",
        "direct_path_access",
        "cross_tenant_upload",
        "role_escalation",
        "session_invalidation",
        "idempotent_denial",
    }
    for result in report.results:
        assert result.request and result.expected and result.actual


def test_leaky_listing_is_reported_as_failure(monkeypatch, client_factory, principals):
    def list_everything(self, context, prefix=""):
        stmt = select(BlobObject.key).where(BlobObject.key.startswith(prefix)).order_by(BlobObject.key)
        return list(self.session.exec(stmt).all())

    monkeypatch.setattr(BlobService, "list_keys", list_everything)
    report = IsolationHarness(client_factory, principals).run()

    assert not report.ok
    assert {result.name for result in report.failures} == {"direct_path_access"}
    assert all(result.status == FAIL for result in report.failures)
    assert any("listing returned" in result.actual for result in report.failures)


def test_unreachable_service_is_an_error_not_a_pass(principals):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.Client(base_url="http://rlsguard.test", transport=httpx.MockTransport(refuse))
    report = IsolationHarness(lambda: AccessClient(http), principals).run()

    assert not report.ok
    assert report.failures == []
    assert report.errors
    assert all(result.status == ERROR for result in report.results)
    assert PASS not in {result.status for result in report.results}


def test_needs_two_principals(client_factory, principals):
    with pytest.raises(ValueError):
        IsolationHarness(client_factory, principals[:1])
