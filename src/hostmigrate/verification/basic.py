"""
Basic verification: do the migrated objects exist remotely, in the right shape?

Only completed item types are checked. Shape checks are deliberately
shallow; integrity verification compares contents.
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import partial

from hostmigrate.models import (
    CheckResult,
    FunctionalTestOptions,
    ItemType,
    MigrationItem,
    VerificationLayer,
)
from hostmigrate.verification.runner import PlannedCheck, VerificationSession, presence_check

ANONYMOUS_USERS_SETTING = "EXTERNAL_ANONYMOUS_USERS_ENABLED"


async def tables_exist(session: VerificationSession) -> CheckResult:
    local = await session.source.list_tables()
    if not local:
        return CheckResult(name="tables_exist", passed=True, message="No tables to verify")
    remote = await session.catalog.list_tables()
    return presence_check("tables_exist", "tables", local, remote)


async def columns_match(table: str, session: VerificationSession) -> CheckResult:
    """Column count equality for one table."""
    local = len(await session.source.get_columns(table))
    remote = await session.catalog.column_count(table)
    details = {"sblite_columns": local, "supabase_columns": remote}
    if local != remote:
        return CheckResult(
            name=f"columns_match_{table}",
            passed=False,
            message=f"Column count mismatch: local {local}, remote {remote}",
            details=details,
        )
    return CheckResult(
        name=f"columns_match_{table}",
        passed=True,
        message=f"{local} columns match",
        details=details,
    )


async def functions_deployed(names: list[str], session: VerificationSession) -> CheckResult:
    async with session.management_client() as client:
        deployed = [function.slug for function in await client.list_functions(session.project_ref)]
    return presence_check("functions_deployed", "functions", names, deployed)


async def buckets_exist(session: VerificationSession) -> CheckResult:
    local = await session.source.list_bucket_ids()
    remote = await session.catalog.list_bucket_ids()
    return presence_check("buckets_exist", "buckets", local, remote)


async def rls_enabled(session: VerificationSession) -> CheckResult:
    """Every table with an enabled local policy has row security on remotely."""
    local = await session.source.list_rls_tables()
    remote = await session.catalog.list_rls_tables()
    return presence_check("rls_enabled", "tables", local, remote)


async def secrets_exist(session: VerificationSession) -> CheckResult:
    """Compares secret names only; values are never read back."""
    local = await session.source.list_secret_names()
    async with session.management_client() as client:
        remote = [secret.name for secret in await client.list_secrets(session.project_ref)]
    return presence_check("secrets_exist", "secrets", local, remote)


async def auth_config(session: VerificationSession) -> CheckResult:
    if await session.source.get_setting("allow_anonymous") != "true":
        return CheckResult(name="auth_config", passed=True, message="Auth configuration verified")

    async with session.management_client() as client:
        config = await client.get_auth_config(session.project_ref)
    actual = config.get(ANONYMOUS_USERS_SETTING)
    details = {"expected": True, "actual": actual}
    if actual is not True:
        return CheckResult(
            name="auth_config_anonymous_users",
            passed=False,
            message="Anonymous sign-in is enabled locally but not remotely",
            details=details,
        )
    return CheckResult(
        name="auth_config_anonymous_users",
        passed=True,
        message="Anonymous sign-in is enabled remotely",
        details=details,
    )


class BasicVerifier:
    """Existence and shape checks for each completed item type."""

    layer = VerificationLayer.BASIC

    def plan(
        self,
        completed: Sequence[MigrationItem],
        options: FunctionalTestOptions,
    ) -> list[PlannedCheck]:
        types = {item.item_type for item in completed}
        plan: list[PlannedCheck] = []

        if ItemType.SCHEMA in types:
            plan.append(PlannedCheck("tables_exist", tables_exist))
        for item in completed:
            if item.item_type == ItemType.DATA:
                table = item.item_name
                plan.append(PlannedCheck(f"columns_match_{table}", partial(columns_match, table)))

        functions = [item.item_name for item in completed if item.item_type == ItemType.FUNCTIONS]
        if functions:
            plan.append(PlannedCheck("functions_deployed", partial(functions_deployed, functions)))
        if ItemType.STORAGE_BUCKETS in types:
            plan.append(PlannedCheck("buckets_exist", buckets_exist))
        if ItemType.RLS in types:
            plan.append(PlannedCheck("rls_enabled", rls_enabled))
        if ItemType.SECRETS in types:
            plan.append(PlannedCheck("secrets_exist", secrets_exist))
        if ItemType.AUTH_CONFIG in types:
            plan.append(PlannedCheck("auth_config", auth_config))
        return plan


__all__ = ["BasicVerifier"]
