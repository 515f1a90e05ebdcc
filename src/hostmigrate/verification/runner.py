"""
VerificationRunner - the shared frame around every verification layer.

A layer contributes a plan: an ordered list of named checks. The runner
owns everything else:

    1. Refuse to start without a selected project.
    2. Record a new Verification and mark it running.
    3. Open the remote database connection. If that fails, the layer fails
       with a single "<layer>_setup" check and nothing else runs.
    4. Run the planned checks one after another. A check that raises
       becomes a failed CheckResult under the check's name; its siblings
       still run.
    5. Store the results; the layer passes only if every check passed.

Checks read the remote side through their own connection and clients and
never reuse migrator code.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from hostmigrate.config import EngineConfig
from hostmigrate.exceptions import ProjectNotSelectedError
from hostmigrate.models import (
    CheckResult,
    FunctionalTestOptions,
    ItemStatus,
    Migration,
    MigrationItem,
    Verification,
    VerificationLayer,
    VerificationResults,
    VerificationStatus,
)
from hostmigrate.observability import (
    ATTR_CHECKS_FAILED,
    ATTR_CHECKS_TOTAL,
    ATTR_MIGRATION_ID,
    ATTR_VERIFICATION_LAYER,
    Tracer,
    create_tracer,
)
from hostmigrate.remote.access import RemoteAccess
from hostmigrate.remote.catalog import RemoteCatalog
from hostmigrate.remote.gateway import ProjectGateway
from hostmigrate.remote.management import ManagementClient
from hostmigrate.repositories.state import StateStore
from hostmigrate.source import LocalSource

logger = logging.getLogger(__name__)


@dataclass
class VerificationSession:
    """
    Read access to both sides for one verification run.

    Attributes:
        migration: The migration being verified.
        source: The local backend.
        catalog: Queries over the run's remote database connection.
        remote: Builds remote HTTP clients for the migration.
        options: Targets for the functional probes.
    """

    migration: Migration
    source: LocalSource
    catalog: RemoteCatalog
    remote: RemoteAccess
    options: FunctionalTestOptions = field(default_factory=FunctionalTestOptions)

    @property
    def project_ref(self) -> str:
        return self.migration.remote_project_ref or ""

    @property
    def config(self) -> EngineConfig:
        return self.remote.config

    def management_client(self) -> ManagementClient:
        return self.remote.management_client(self.migration)

    async def project_gateway(self) -> ProjectGateway:
        """A gateway with the probe timeout applied."""
        return await self.remote.project_gateway(
            self.migration, timeout=self.config.probe_timeout
        )


CheckOutcome = CheckResult | list[CheckResult]


@dataclass(frozen=True)
class PlannedCheck:
    """
    One named step of a layer's plan.

    A step may yield several results (one per sample, constraint or
    bucket). If it raises, a single failed result with this name is
    recorded instead.
    """

    name: str
    run: Callable[[VerificationSession], Awaitable[CheckOutcome]]


class Verifier(Protocol):
    """A verification layer: builds the plan for a migration's items."""

    layer: VerificationLayer

    def plan(
        self,
        completed: Sequence[MigrationItem],
        options: FunctionalTestOptions,
    ) -> list[PlannedCheck]:
        """
        Build the checks to run.

        Args:
            completed: The migration's completed items.
            options: Functional probe targets (ignored by other layers).
        """
        ...


class VerificationRunner:
    """
    Runs a verifier's plan and records the outcome.

    Args:
        store: State store for verification records.
        source: The local backend.
        remote: Builds the remote engine and HTTP clients.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable OpenTelemetry tracing (default True).
    """

    def __init__(
        self,
        store: StateStore,
        source: LocalSource,
        remote: RemoteAccess,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._source = source
        self._remote = remote
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def run(
        self,
        migration: Migration,
        verifier: Verifier,
        options: FunctionalTestOptions | None = None,
    ) -> Verification:
        """
        Run one layer against a migration.

        Returns:
            The stored Verification, passed or failed.

        Raises:
            ProjectNotSelectedError: If no project has been selected. No
                verification record is created in that case.
        """
        if not migration.has_project:
            raise ProjectNotSelectedError(migration.id)
        options = options or FunctionalTestOptions()
        layer = verifier.layer

        with self._tracer.span(
            f"hostmigrate.verification.{layer.value}",
            {ATTR_MIGRATION_ID: str(migration.id), ATTR_VERIFICATION_LAYER: layer.value},
        ) as span:
            verification = await self._store.create_verification(migration.id, layer)
            verification.status = VerificationStatus.RUNNING
            verification.started_at = datetime.now(UTC)
            await self._store.update_verification(verification)

            completed = [
                item
                for item in await self._store.get_items(migration.id)
                if item.status == ItemStatus.COMPLETED
            ]

            async with AsyncExitStack() as stack:
                try:
                    engine = await stack.enter_async_context(self._remote.database(migration))
                    conn = await stack.enter_async_context(engine.connect())
                except Exception as e:
                    logger.warning(
                        "%s verification could not connect to the remote database: %s",
                        layer.value,
                        e,
                        extra={"migration_id": str(migration.id)},
                    )
                    checks = [
                        CheckResult(
                            name=f"{layer.value}_setup",
                            passed=False,
                            message=f"Failed to connect to remote database: {e}",
                        )
                    ]
                else:
                    session = VerificationSession(
                        migration=migration,
                        source=self._source,
                        catalog=RemoteCatalog(conn),
                        remote=self._remote,
                        options=options,
                    )
                    checks = await self._run_plan(verifier.plan(completed, options), session)

            results = VerificationResults(layer=layer, checks=tuple(checks))
            verification.results = results
            verification.status = results.status
            verification.completed_at = datetime.now(UTC)
            await self._store.update_verification(verification)

            summary = results.summary
            if span is not None:
                span.set_attribute(ATTR_CHECKS_TOTAL, summary.total)
                span.set_attribute(ATTR_CHECKS_FAILED, summary.failed)

        logger.info(
            "%s verification of migration %s %s: %d/%d checks passed",
            layer.value,
            migration.id,
            verification.status.value,
            summary.passed,
            summary.total,
            extra={"migration_id": str(migration.id), "verification_id": str(verification.id)},
        )
        return verification

    async def _run_plan(
        self,
        plan: Sequence[PlannedCheck],
        session: VerificationSession,
    ) -> list[CheckResult]:
        checks: list[CheckResult] = []
        for planned in plan:
            try:
                outcome = await planned.run(session)
            except Exception as e:
                logger.debug("Check %s raised: %s", planned.name, e)
                await session.catalog.reset()
                checks.append(
                    CheckResult(name=planned.name, passed=False, message=f"Check failed: {e}")
                )
                continue
            if isinstance(outcome, CheckResult):
                checks.append(outcome)
            else:
                checks.extend(outcome)
        return checks


def presence_check(
    name: str,
    noun: str,
    expected: Sequence[str],
    actual: Sequence[str],
) -> CheckResult:
    """
    Pass when every expected name is present remotely.

    Args:
        name: Check name.
        noun: Plural noun for messages ("tables", "functions", ...).
        expected: Names that must exist remotely.
        actual: Names found remotely.
    """
    present = set(actual)
    missing = [value for value in expected if value not in present]
    found = [value for value in expected if value in present]
    if missing:
        return CheckResult(
            name=name,
            passed=False,
            message=f"Missing {len(missing)} {noun}: {', '.join(missing)}",
            details={"missing": missing, "found": found},
        )
    return CheckResult(
        name=name,
        passed=True,
        message=f"All {len(expected)} {noun} exist",
        details={noun: list(expected)},
    )


__all__ = [
    "CheckOutcome",
    "PlannedCheck",
    "VerificationRunner",
    "VerificationSession",
    "Verifier",
    "presence_check",
]
