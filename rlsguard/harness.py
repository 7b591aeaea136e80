"""Adversarial isolation harness.

Signs in as each configured principal in turn and tries to reach the
other principals' patients, therapy sessions and stored files. A scenario
fails when the attacking side succeeds; it is an ``error`` when the
infrastructure breaks and the outcome could not be observed.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import random
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from .app.domain.c3d import MIN_FILE_SIZE, PARAMETER_SECTION_MARKER
from .app.domain.errors import AccessDenied, BackingStoreError, RlsGuardError, SessionExpired
from .client import AccessClient
from .config import DEFAULT_BUCKET

logger = logging.getLogger(__name__)

PASS = "pass"
FAIL = "fail"
ERROR = "error"

DENIED = "denied (404 Not found)"


class SecurityFailure(Exception):
    """The attacking principal got something it must never get."""


@dataclass(frozen=True)
class PrincipalCredentials:
    identifier: str
    secret: str
    label: str = ""

    @property
    def name(self) -> str:
        return self.label or self.identifier


@dataclass
class ScenarioResult:
    name: str
    actor: str
    request: str
    expected: str
    actual: str
    status: str

    @property
    def passed(self) -> bool:
        return self.status == PASS


@dataclass
class HarnessReport:
    results: List[ScenarioResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.results) and all(result.passed for result in self.results)

    @property
    def failures(self) -> List[ScenarioResult]:
        return [result for result in self.results if result.status == FAIL]

    @property
    def errors(self) -> List[ScenarioResult]:
        return [result for result in self.results if result.status == ERROR]

    def summary(self) -> str:
        passed = sum(1 for result in self.results if result.passed)
        return (
            f"{passed}/{len(self.results)} passed, "
            f"{len(self.failures)} failed, {len(self.errors)} errors"
        )


@dataclass
class TenantState:
    """What one principal saw of its own data during the self-access phase."""

    principal: PrincipalCredentials
    patients: List[dict] = field(default_factory=list)
    blob_key: Optional[str] = None
    therapy_session_id: Optional[str] = None

    @property
    def codes(self) -> List[str]:
        return [patient["code"] for patient in self.patients]


def mock_c3d_content(patient_code: str, file_name: str, rows: int = 10) -> bytes:
    """Build a small file that passes the C3D structural check.

    The first block carries the parameter-section marker at byte 1; the
    readable EMG sample table follows it.
    """
    header = bytearray(MIN_FILE_SIZE)
    header[0] = 2
    header[1] = PARAMETER_SECTION_MARKER
    lines = [
        "GHOSTLY+ Mock C3D File Format",
        f"Patient Code: {patient_code}",
        f"File Name: {file_name}",
        f"Created: {datetime.now(timezone.utc):%Y-%m-%d %H:%M:%S} UTC",
        "Analog Channels: 8",
        "Sample Rate: 100Hz",
        "",
        "Frame,Time,EMG1,EMG2,EMG3,EMG4,EMG5,EMG6,EMG7,EMG8",
    ]
    for frame in range(1, rows + 1):
        samples = ",".join(str(random.randint(10, 99)) for _ in range(8))
        lines.append(f"{frame},{frame / 100:.2f},{samples}")
    return bytes(header) + ("\n".join(lines) + "\n").encode("utf-8")


def expect_denied(call: Callable[[], object], description: str) -> str:
    try:
        outcome = call()
    except AccessDenied:
        return DENIED
    raise SecurityFailure(f"{description} succeeded: {outcome!r}"[:300])


class IsolationHarness:
    def __init__(
        self,
        client_factory: Callable[[], AccessClient],
        principals: Sequence[PrincipalCredentials],
        bucket: str = DEFAULT_BUCKET,
        denial_repeats: int = 5,
    ) -> None:
        if len(principals) < 2:
            raise ValueError("The isolation harness needs at least two principals")
        self.client_factory = client_factory
        self.principals = list(principals)
        self.bucket = bucket
        self.denial_repeats = denial_repeats
        self.report = HarnessReport()
        self.tenants: Dict[str, TenantState] = {}

    # plumbing

    @contextmanager
    def signed_in(self, principal: PrincipalCredentials) -> Iterator[AccessClient]:
        client = self.client_factory()
        client.authenticate(principal.identifier, principal.secret)
        try:
            yield client
        finally:
            try:
                client.sign_out()
            except RlsGuardError as exc:
                logger.warning("sign-out failed for %s: %s", principal.name, exc)

    def record(
        self,
        name: str,
        actor: str,
        request: str,
        expected: str,
        check: Callable[[], str],
    ) -> ScenarioResult:
        try:
            actual, status = check(), PASS
        except SecurityFailure as exc:
            actual, status = str(exc), FAIL
            logger.error("scenario %s failed for %s: %s", name, actor, exc)
        except BackingStoreError as exc:
            actual, status = f"{type(exc).__name__}: {exc}", ERROR
        except RlsGuardError as exc:
            # the service answered, but not the way this scenario requires
            actual, status = f"unexpected {type(exc).__name__}: {exc}", FAIL
        result = ScenarioResult(name, actor, request, expected, actual, status)
        self.report.results.append(result)
        log = logger.info if status == PASS else logger.warning
        log("[%s] %s / %s: %s", status.upper(), name, actor, actual)
        return result

    def pairs(self) -> Iterator[tuple[TenantState, TenantState]]:
        for attacker in self.tenants.values():
            for victim in self.tenants.values():
                if attacker is not victim:
                    yield attacker, victim

    # entry point

    def run(self) -> HarnessReport:
        self.report = HarnessReport()
        self.tenants = {}
        logger.info(
            "running isolation harness for %d principals against bucket %s",
            len(self.principals),
            self.bucket,
        )
        for principal in self.principals:
            self.check_self_access(principal)
        self.check_storage_diagnostics()
        self.check_cross_access()
        self.check_unauthenticated()
        self.check_exclusion_filter()
        self.check_direct_path_access()
        self.check_cross_tenant_upload()
        self.check_role_escalation()
        self.check_session_invalidation()
        self.check_idempotent_denial()
        logger.info("isolation harness finished: %s", self.report.summary())
        return self.report

    # scenarios

    def check_self_access(self, principal: PrincipalCredentials) -> None:
        state = TenantState(principal)

        def check() -> str:
            with self.signed_in(principal) as client:
                state.patients = client.list_resources()
                if not state.patients:
                    raise SecurityFailure("no patients visible to their own therapist")
                patient = state.patients[0]
                client.get_resource(patient["id"])

                stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
                file_name = f"{patient['code']}_C3D-Test_{stamp}.c3d"
                key = f"{patient['code']}/{file_name}"
                content = mock_c3d_content(patient["code"], file_name)
                client.upload(key, content)
                if client.download(key) != content:
                    raise SecurityFailure(f"downloaded bytes for {key} differ from the upload")
                if key not in client.list_blobs(patient["code"]):
                    raise SecurityFailure(f"own key {key} missing from own listing")
                record = client.create_therapy_session(patient["id"], key, notes="isolation harness")
                client.get_therapy_session(record["id"])
                state.blob_key = key
                state.therapy_session_id = record["id"]
            return f"{len(state.patients)} patients, uploaded and read back {state.blob_key}"

        result = self.record(
            "self_access",
            principal.name,
            "GET /resources; PUT+GET /blobs/<own code>/...; POST+GET /therapy-sessions",
            "own rows and files readable and writable",
            check,
        )
        if result.passed:
            self.tenants[principal.identifier] = state

    def check_storage_diagnostics(self) -> None:
        for attacker, victim in self.pairs():
            def check(attacker=attacker, victim=victim) -> str:
                with self.signed_in(attacker.principal) as client:
                    own = client.debug_storage_access(attacker.blob_key)
                    foreign = client.debug_storage_access(victim.blob_key)
                if not own["owns_patient"]:
                    raise SecurityFailure(f"own key {attacker.blob_key} not reported as owned")
                if foreign["owns_patient"]:
                    raise SecurityFailure(f"foreign key {victim.blob_key} reported as owned")
                return f"own={own['patient_code']} owned, foreign={foreign['patient_code']} not owned"

            self.record(
                "storage_diagnostics",
                attacker.principal.name,
                f"GET /debug/storage-access?file_path={victim.blob_key}",
                "owns_patient false for the foreign key",
                check,
            )

    def check_cross_access(self) -> None:
        for attacker, victim in self.pairs():
            def check(attacker=attacker, victim=victim) -> str:
                with self.signed_in(attacker.principal) as client:
                    visible = {row["code"] for row in client.list_resources()}
                    leaked = visible & set(victim.codes)
                    if leaked:
                        raise SecurityFailure(f"unfiltered listing returned {sorted(leaked)}")
                    sessions = {row["id"] for row in client.list_therapy_sessions()}
                    if victim.therapy_session_id in sessions:
                        raise SecurityFailure("victim therapy session present in listing")
                    expect_denied(
                        lambda: client.get_resource(victim.patients[0]["id"]),
                        "GET of the victim's patient",
                    )
                    expect_denied(
                        lambda: client.get_therapy_session(victim.therapy_session_id),
                        "GET of the victim's therapy session",
                    )
                return f"listing held {len(visible)} own rows; guessed ids {DENIED}"

            self.record(
                "cross_access_denial",
                attacker.principal.name,
                f"GET /resources; GET /resources/{victim.patients[0]['id']}",
                "no victim rows; direct GETs denied",
                check,
            )

    def check_unauthenticated(self) -> None:
        def check() -> str:
            client = self.client_factory()
            try:
                rows = client.list_resources(authenticated=False)
            except SessionExpired:
                return "401 Session expired"
            if rows:
                raise SecurityFailure(f"anonymous listing returned {len(rows)} rows")
            return "empty list"

        self.record("unauthenticated_denial", "anonymous", "GET /resources", "401 or []", check)

    def check_exclusion_filter(self) -> None:
        for attacker, victim in self.pairs():
            own_code = attacker.codes[0]

            def check(attacker=attacker, victim=victim, own_code=own_code) -> str:
                with self.signed_in(attacker.principal) as client:
                    rows = client.list_resources({"code_ne": own_code})
                foreign = [row["code"] for row in rows if row["code"] not in attacker.codes]
                if foreign:
                    raise SecurityFailure(f"exclusion filter returned foreign rows {foreign}")
                return f"{len(rows)} rows, none foreign"

            self.record(
                "exclusion_filter_attack",
                attacker.principal.name,
                f"GET /resources?code_ne={own_code}",
                "zero cross-tenant rows",
                check,
            )

    def check_direct_path_access(self) -> None:
        for attacker, victim in self.pairs():
            victim_code = victim.codes[0]
            guessed = f"{victim_code}/{victim_code}_C3D-Test_20240101_000000.c3d"

            def check(attacker=attacker, victim=victim, victim_code=victim_code, guessed=guessed) -> str:
                with self.signed_in(attacker.principal) as client:
                    expect_denied(lambda: client.download(victim.blob_key), "download of a learned key")
                    expect_denied(lambda: client.download(guessed), "download of a guessed key")
                    listed = client.list_blobs(f"{victim_code}/")
                    if listed:
                        raise SecurityFailure(f"victim prefix listing returned {listed}")
                    everything = client.list_blobs("")
                    foreign = [key for key in everything if key.split("/", 1)[0] not in attacker.codes]
                    if foreign:
                        raise SecurityFailure(f"wildcard listing returned {foreign}")
                return f"downloads {DENIED}; victim prefix listing empty"

            self.record(
                "direct_path_access",
                attacker.principal.name,
                f"GET /blobs/{victim.blob_key}; GET /blobs?prefix={victim_code}/",
                "denied downloads, empty listing",
                check,
            )

    def check_cross_tenant_upload(self) -> None:
        for attacker, victim in self.pairs():
            victim_code = victim.codes[0]
            key = f"{victim_code}/planted_by_{attacker.codes[0]}_{datetime.now(timezone.utc):%H%M%S%f}.c3d"

            def check(attacker=attacker, victim=victim, key=key, victim_code=victim_code) -> str:
                with self.signed_in(attacker.principal) as client:
                    expect_denied(
                        lambda: client.upload(key, mock_c3d_content(victim_code, key)),
                        "upload into the victim prefix",
                    )
                with self.signed_in(victim.principal) as client:
                    if key in client.list_blobs(victim_code):
                        raise SecurityFailure(f"denied upload still persisted {key}")
                return f"upload {DENIED}; nothing persisted"

            self.record(
                "cross_tenant_upload",
                attacker.principal.name,
                f"PUT /blobs/{key}",
                "denied, no bytes persisted",
                check,
            )

    def check_role_escalation(self) -> None:
        attempts = [
            ("POST /admin/principals", lambda c: c.create_principal("intruder@example.com", "intruder-secret")),
            ("POST /rpc/create_therapist", lambda c: c.rpc("create_therapist", {"email": "intruder@example.com"})),
            ("POST /rpc/execute_sql", lambda c: c.rpc("execute_sql", {"sql": "DROP POLICY patients_owner"})),
        ]
        for tenant in self.tenants.values():
            for request, attempt in attempts:
                def check(tenant=tenant, request=request, attempt=attempt) -> str:
                    with self.signed_in(tenant.principal) as client:
                        return expect_denied(lambda: attempt(client), request)

                self.record("role_escalation", tenant.principal.name, request, DENIED, check)

    def check_session_invalidation(self) -> None:
        tenant = next(iter(self.tenants.values()), None)
        if tenant is None:
            return

        def check() -> str:
            client = self.client_factory()
            issued = client.authenticate(tenant.principal.identifier, tenant.principal.secret)
            client.sign_out()
            client.session = issued
            try:
                client.list_resources()
            except SessionExpired:
                client.session = None
                return "401 Session expired"
            raise SecurityFailure("revoked token still accepted")

        self.record(
            "session_invalidation",
            tenant.principal.name,
            "DELETE /sessions/current, then GET /resources with the old token",
            "401",
            check,
        )

    def check_idempotent_denial(self) -> None:
        for attacker, victim in self.pairs():
            def check(attacker=attacker, victim=victim) -> str:
                with self.signed_in(attacker.principal) as client:
                    for attempt in range(1, self.denial_repeats + 1):
                        expect_denied(
                            lambda: client.download(victim.blob_key),
                            f"attempt {attempt} of a repeated forbidden download",
                        )
                return f"{self.denial_repeats} of {self.denial_repeats} attempts {DENIED}"

            self.record(
                "idempotent_denial",
                attacker.principal.name,
                f"GET /blobs/{victim.blob_key} x{self.denial_repeats}",
                "denied every time",
                check,
            )
