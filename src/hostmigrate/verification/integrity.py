"""
Integrity verification: do the migrated contents match?

Runs for completed data, storage_files and users items:

    - row_count_<table>: exact row count match
    - sample_first_<table> / sample_last_<table> / sample_random_<table>:
      normalized row samples compared across both sides
    - fk_<constraint>: no remote row references a missing parent row
    - storage_count_<bucket>: exact object count match
    - user_count: exact account count match

The random sample draws rows locally, then fetches the rows with the same
keys remotely, so two identical tables never produce a mismatch.
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import partial
from typing import Any

from hostmigrate.migrators._values import coerce_value
from hostmigrate.models import (
    CheckResult,
    FunctionalTestOptions,
    ItemType,
    MigrationItem,
    VerificationLayer,
)
from hostmigrate.verification.compare import compare_rows
from hostmigrate.verification.runner import PlannedCheck, VerificationSession


def count_check(name: str, noun: str, local: int, remote: int) -> CheckResult:
    """Exact count comparison; details carry local minus remote."""
    if local != remote:
        return CheckResult(
            name=name,
            passed=False,
            message=f"{noun.capitalize()} count mismatch: local {local}, remote {remote}",
            details={
                "sblite_count": local,
                "supabase_count": remote,
                "difference": local - remote,
            },
        )
    return CheckResult(
        name=name,
        passed=True,
        message=f"{local} {noun} on both sides",
        details={"count": local},
    )


async def row_count(table: str, session: VerificationSession) -> CheckResult:
    local = await session.source.count_rows(table)
    remote = await session.catalog.count_rows(table)
    return count_check(f"row_count_{table}", "row", local, remote)


def _sample_result(
    name: str,
    local_rows: list[dict[str, Any]],
    remote_rows: list[dict[str, Any]],
) -> CheckResult:
    mismatches = compare_rows(local_rows, remote_rows)
    details = {"rows_compared": len(local_rows), "mismatches": mismatches}
    if mismatches:
        return CheckResult(
            name=name,
            passed=False,
            message=f"{len(mismatches)} of {len(local_rows)} sampled rows differ",
            details=details,
        )
    return CheckResult(
        name=name,
        passed=True,
        message=f"{len(local_rows)} sampled rows match",
        details=details,
    )


async def sample_rows(table: str, session: VerificationSession) -> list[CheckResult]:
    """First, last and random samples of one table."""
    size = session.config.sample_size
    order = await session.source.order_column(table)
    source, catalog = session.source, session.catalog

    first = _sample_result(
        f"sample_first_{table}",
        await source.sample_rows(table, order, size),
        await catalog.sample_rows(table, order, size),
    )
    last = _sample_result(
        f"sample_last_{table}",
        await source.sample_rows(table, order, size, descending=True),
        await catalog.sample_rows(table, order, size, descending=True),
    )

    local_random = await source.random_rows(table, size)
    # Bind keys in the type the data migrator wrote them with.
    key_type = (await source.column_types(table)).get(order)
    keys = [coerce_value(row.get(order), key_type) for row in local_random]
    random = _sample_result(
        f"sample_random_{table}",
        local_random,
        await catalog.rows_by_keys(table, order, keys),
    )
    return [first, last, random]


async def foreign_keys(session: VerificationSession) -> list[CheckResult]:
    """One check per remote foreign key constraint."""
    constraints = await session.catalog.foreign_keys()
    if not constraints:
        return [
            CheckResult(
                name="foreign_key_integrity",
                passed=True,
                message="No foreign key constraints found to verify",
            )
        ]

    checks = []
    for fk in constraints:
        total = await session.catalog.reference_count(fk)
        orphaned = await session.catalog.orphan_count(fk)
        samples = (
            await session.catalog.orphan_samples(fk, session.config.orphan_sample_limit)
            if orphaned
            else []
        )
        details: dict[str, Any] = {
            **fk.to_dict(),
            "total_references": total,
            "orphaned_count": orphaned,
            "orphaned_samples": [str(value) for value in samples],
        }
        target = f"{fk.to_table}.{fk.to_column}"
        if orphaned:
            message = f"{orphaned} of {total} references to {target} are orphaned"
        else:
            message = f"All {total} references to {target} resolve"
        checks.append(
            CheckResult(
                name=f"fk_{fk.constraint_name}",
                passed=orphaned == 0,
                message=message,
                details=details,
            )
        )
    return checks


async def storage_count(bucket_id: str, session: VerificationSession) -> CheckResult:
    local = await session.source.count_objects(bucket_id)
    remote = await session.catalog.count_objects(bucket_id)
    return count_check(f"storage_count_{bucket_id}", "object", local, remote)


async def user_count(session: VerificationSession) -> CheckResult:
    local = await session.source.count_users()
    remote = await session.catalog.count_users()
    return count_check("user_count", "user", local, remote)


class IntegrityVerifier:
    """Content checks for completed data, storage_files and users items."""

    layer = VerificationLayer.INTEGRITY

    def plan(
        self,
        completed: Sequence[MigrationItem],
        options: FunctionalTestOptions,
    ) -> list[PlannedCheck]:
        plan: list[PlannedCheck] = []
        tables = [item.item_name for item in completed if item.item_type == ItemType.DATA]
        for table in tables:
            plan.append(PlannedCheck(f"row_count_{table}", partial(row_count, table)))
            plan.append(PlannedCheck(f"sample_rows_{table}", partial(sample_rows, table)))
        if tables:
            plan.append(PlannedCheck("foreign_key_integrity", foreign_keys))

        for item in completed:
            if item.item_type == ItemType.STORAGE_FILES:
                bucket_id = item.item_name
                plan.append(
                    PlannedCheck(f"storage_count_{bucket_id}", partial(storage_count, bucket_id))
                )

        if any(item.item_type == ItemType.USERS for item in completed):
            plan.append(PlannedCheck("user_count", user_count))
        return plan


__all__ = ["IntegrityVerifier", "count_check"]
