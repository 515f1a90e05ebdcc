"""
Unit tests for functional verification.

Tests cover:
- Planning probes from the functional test options only
- The bounded query probe
- The storage round-trip and its cleanup
- Function invocation status handling
- The temporary account flow and its cleanup
"""

from unittest.mock import patch
from uuid import uuid4

import pytest

from hostmigrate.models import (
    FunctionalTestOptions,
    ItemType,
    Migration,
    Verification,
    VerificationStatus,
)
from hostmigrate.remote import RemoteAccess
from hostmigrate.repositories.state import SQLAlchemyStateStore
from hostmigrate.source import LocalSource
from hostmigrate.verification.functional import FunctionalVerifier
from hostmigrate.verification.runner import VerificationRunner
from tests.fixtures import FakePlatform, SQLiteRemote, make_item


@pytest.fixture
def runner(
    store: SQLAlchemyStateStore, source: LocalSource, remote_access: RemoteAccess
) -> VerificationRunner:
    return VerificationRunner(store, source, remote_access, enable_tracing=False)


def only_check(verification: Verification):
    assert verification.results is not None
    [check] = verification.results.checks
    return check


class TestPlan:
    """Tests for FunctionalVerifier.plan."""

    def test_options_select_probes(self) -> None:
        """Each given target adds its probe; item status is ignored."""
        options = FunctionalTestOptions(
            test_table_name="todos",
            test_bucket_id="avatars",
            test_function_name="hello",
            test_auth_user=True,
        )
        completed = [make_item(uuid4(), ItemType.DATA, "other")]

        plan = FunctionalVerifier().plan(completed, options)

        assert [step.name for step in plan] == [
            "query_test_todos",
            "storage_test_avatars",
            "function_test_hello",
            "auth_test",
        ]

    def test_no_options(self) -> None:
        """Without targets nothing is probed."""
        assert FunctionalVerifier().plan([], FunctionalTestOptions()) == []


class TestQueryProbe:
    """Tests for the query probe."""

    @pytest.mark.asyncio
    async def test_query(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
        remote_db: SQLiteRemote,
    ) -> None:
        """The probe reports column and row counts."""
        await remote_db.execute('CREATE TABLE public."todos" (id INTEGER, title TEXT)')
        await remote_db.execute("INSERT INTO public.todos VALUES (1, 'a'), (2, 'b')")
        options = FunctionalTestOptions(test_table_name="todos")

        verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert check.passed
        assert check.details == {"table": "todos", "column_count": 2, "row_count": 2}

    @pytest.mark.asyncio
    async def test_unsafe_table_name(
        self, runner: VerificationRunner, stored_migration: Migration
    ) -> None:
        """An unsafe table name fails the probe without querying."""
        options = FunctionalTestOptions(test_table_name="todos; DROP TABLE x")

        verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert not check.passed
        assert check.message.startswith("Check failed:")


class TestStorageProbe:
    """Tests for the storage round-trip probe."""

    @pytest.mark.asyncio
    async def test_round_trip(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
        platform: FakePlatform,
    ) -> None:
        """Upload, download and delete leave no object behind."""
        options = FunctionalTestOptions(test_bucket_id="avatars")

        verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert check.passed, check.message
        assert platform.objects == {}
        methods = [r.method for r in platform.requests if r.url.host == platform.project_host]
        assert methods == ["POST", "GET", "DELETE"]

    @pytest.mark.asyncio
    async def test_download_failure_cleans_up(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
        platform: FakePlatform,
    ) -> None:
        """A failed download still removes the probe object."""
        platform.failures[("GET", "/storage/v1/object/avatars/test-verify-123.txt")] = 500
        options = FunctionalTestOptions(test_bucket_id="avatars")

        with patch("hostmigrate.verification.functional.time") as fake_time:
            fake_time.time_ns.return_value = 123
            verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert not check.passed
        assert check.details["operation"] == "download"
        assert platform.objects == {}

    @pytest.mark.asyncio
    async def test_upload_failure(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
        platform: FakePlatform,
    ) -> None:
        """A rejected upload is reported as the failing step."""
        platform.failures[("POST", "/storage/v1/object/avatars/test-verify-7.txt")] = 403
        options = FunctionalTestOptions(test_bucket_id="avatars")

        with patch("hostmigrate.verification.functional.time") as fake_time:
            fake_time.time_ns.return_value = 7
            verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert check.message.startswith("upload failed:")
        assert check.details == {"operation": "upload", "bucket": "avatars"}


class TestFunctionProbe:
    """Tests for the function invocation probe."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("status", "passed"), [(200, True), (204, True), (500, False)])
    async def test_status(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
        platform: FakePlatform,
        status: int,
        passed: bool,
    ) -> None:
        """Any 2xx response passes."""
        platform.functions["hello"] = {"slug": "hello"}
        platform.function_status = status
        options = FunctionalTestOptions(test_function_name="hello")

        verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert check.passed is passed
        assert check.details["status_code"] == status

    @pytest.mark.asyncio
    async def test_undeployed_function(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
    ) -> None:
        """A missing function answers 404 and fails."""
        options = FunctionalTestOptions(test_function_name="ghost")

        verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert verification.status == VerificationStatus.FAILED
        assert check.details["status_code"] == 404


class TestAuthProbe:
    """Tests for the account probe."""

    @pytest.mark.asyncio
    async def test_create_sign_in_delete(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
        platform: FakePlatform,
    ) -> None:
        """The temporary account is removed after a successful sign-in."""
        options = FunctionalTestOptions(test_auth_user=True)

        verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert check.passed, check.message
        assert platform.users == {}
        [create] = platform.requests_to("POST", "/auth/v1/admin/users")
        assert b"@example.com" in create.content

    @pytest.mark.asyncio
    async def test_sign_in_failure_cleans_up(
        self,
        runner: VerificationRunner,
        stored_migration: Migration,
        platform: FakePlatform,
    ) -> None:
        """A failed sign-in still deletes the account."""
        platform.failures[("POST", "/auth/v1/token")] = 400
        options = FunctionalTestOptions(test_auth_user=True)

        verification = await runner.run(stored_migration, FunctionalVerifier(), options)

        check = only_check(verification)
        assert not check.passed
        assert check.details == {"operation": "sign_in"}
        assert platform.users == {}
