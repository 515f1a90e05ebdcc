"""
Functional verification: live probes against the remote project.

Each probe runs only when its target is given in FunctionalTestOptions.
Probes that create remote objects (a storage object, an account) remove
them again, even when a later step fails.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Sequence
from functools import partial

from hostmigrate.exceptions import HostMigrateError
from hostmigrate.identifiers import validate_identifier, validate_slug
from hostmigrate.models import (
    CheckResult,
    FunctionalTestOptions,
    MigrationItem,
    VerificationLayer,
)
from hostmigrate.verification.runner import PlannedCheck, VerificationSession

logger = logging.getLogger(__name__)

PROBE_EMAIL_DOMAIN = "example.com"
RESPONSE_PREVIEW_LIMIT = 500


def _step_failed(name: str, operation: str, error: Exception, **details: object) -> CheckResult:
    return CheckResult(
        name=name,
        passed=False,
        message=f"{operation} failed: {error}",
        details={"operation": operation, **details},
    )


async def query_test(table: str, session: VerificationSession) -> CheckResult:
    """A bounded SELECT must execute."""
    validate_identifier(table, "table")
    columns, rows = await session.catalog.probe_table(table, session.config.sample_size)
    return CheckResult(
        name=f"query_test_{table}",
        passed=True,
        message=f"Query returned {rows} rows",
        details={"table": table, "column_count": len(columns), "row_count": rows},
    )


async def storage_test(bucket_id: str, session: VerificationSession) -> CheckResult:
    """Upload, download, compare and delete a uniquely named object."""
    name = f"storage_test_{bucket_id}"
    validate_identifier(bucket_id, "bucket")
    stamp = time.time_ns()
    path = f"test-verify-{stamp}.txt"
    content = f"verification-test-{stamp}".encode()

    async with await session.project_gateway() as gateway:
        try:
            await gateway.upload_object(bucket_id, path, content, "text/plain")
        except HostMigrateError as e:
            return _step_failed(name, "upload", e, bucket=bucket_id)

        deleted = False
        try:
            try:
                downloaded = await gateway.download_object(bucket_id, path)
            except HostMigrateError as e:
                return _step_failed(name, "download", e, bucket=bucket_id)

            if downloaded != content:
                return CheckResult(
                    name=name,
                    passed=False,
                    message="Downloaded content does not match uploaded content",
                    details={
                        "operation": "compare",
                        "bucket": bucket_id,
                        "uploaded_bytes": len(content),
                        "downloaded_bytes": len(downloaded),
                    },
                )

            try:
                await gateway.delete_object(bucket_id, path)
            except HostMigrateError as e:
                return _step_failed(name, "delete", e, bucket=bucket_id)
            deleted = True
        finally:
            if not deleted:
                try:
                    await gateway.delete_object(bucket_id, path, missing_ok=True)
                except HostMigrateError as e:
                    logger.warning("Could not remove probe object %s/%s: %s", bucket_id, path, e)

    return CheckResult(
        name=name,
        passed=True,
        message="Upload, download and delete succeeded",
        details={"bucket": bucket_id, "bytes": len(content)},
    )


async def function_test(function_name: str, session: VerificationSession) -> CheckResult:
    """Any 2xx response to a minimal payload passes."""
    validate_slug(function_name, "function")
    async with await session.project_gateway() as gateway:
        response = await gateway.invoke_function(function_name, {"test": True})

    details = {
        "function": function_name,
        "status_code": response.status_code,
        "response": response.text[:RESPONSE_PREVIEW_LIMIT],
    }
    if 200 <= response.status_code < 300:
        return CheckResult(
            name=f"function_test_{function_name}",
            passed=True,
            message=f"Function responded with {response.status_code}",
            details=details,
        )
    return CheckResult(
        name=f"function_test_{function_name}",
        passed=False,
        message=f"Function responded with {response.status_code}",
        details=details,
    )


async def auth_test(session: VerificationSession) -> CheckResult:
    """Create a temporary account, sign in with it, delete it."""
    email = f"test-verify-{time.time_ns()}@{PROBE_EMAIL_DOMAIN}"
    password = secrets.token_urlsafe(24)

    async with await session.project_gateway() as gateway:
        try:
            user_id = await gateway.create_user(email, password)
        except HostMigrateError as e:
            return _step_failed("auth_test", "create_user", e)

        try:
            await gateway.sign_in(email, password)
        except HostMigrateError as e:
            try:
                await gateway.delete_user(user_id)
            except HostMigrateError as cleanup_error:
                logger.warning("Could not remove probe account %s: %s", user_id, cleanup_error)
            return _step_failed("auth_test", "sign_in", e)

        try:
            await gateway.delete_user(user_id)
        except HostMigrateError as e:
            return _step_failed("auth_test", "delete_user", e)

    return CheckResult(
        name="auth_test",
        passed=True,
        message="Create, sign-in and delete succeeded",
    )


class FunctionalVerifier:
    """Probes chosen by FunctionalTestOptions; item status is not consulted."""

    layer = VerificationLayer.FUNCTIONAL

    def plan(
        self,
        completed: Sequence[MigrationItem],
        options: FunctionalTestOptions,
    ) -> list[PlannedCheck]:
        plan: list[PlannedCheck] = []
        if options.test_table_name:
            table = options.test_table_name
            plan.append(PlannedCheck(f"query_test_{table}", partial(query_test, table)))
        if options.test_bucket_id:
            bucket_id = options.test_bucket_id
            plan.append(PlannedCheck(f"storage_test_{bucket_id}", partial(storage_test, bucket_id)))
        if options.test_function_name:
            function_name = options.test_function_name
            run = partial(function_test, function_name)
            plan.append(PlannedCheck(f"function_test_{function_name}", run))
        if options.test_auth_user:
            plan.append(PlannedCheck("auth_test", auth_test))
        return plan


__all__ = ["FunctionalVerifier"]
