"""
Unit tests for LocalSource.

Tests cover:
- Column catalog reads and DDL generation
- Default mapping to Postgres expressions
- Row reads, counts, ordering and samples
- Auth, policy, storage, function and settings reads
- Object reads confined to the bucket directory
- Function packaging
"""

import io
import tarfile
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from hostmigrate.exceptions import InvalidIdentifierError, ItemMigrationError, ValidationError
from hostmigrate.source import DDL_HEADER, LocalSource, map_default_to_postgres
from tests.fixtures import (
    TODO_COLUMNS,
    ColumnSpec,
    add_table,
    insert_rows,
    set_setting,
    todo_rows,
)

pytestmark = pytest.mark.sqlite


class TestDefaultMapping:
    """Tests for map_default_to_postgres."""

    @pytest.mark.parametrize(
        ("default", "expected"),
        [
            (None, None),
            ("", None),
            ("gen_uuid()", "gen_random_uuid()"),
            ("now()", "now()"),
            ("true", "true"),
            ("false", "false"),
            ("42", "42"),
            ("-1.5", "-1.5"),
            ("draft", "'draft'"),
            ("it's", "'it''s'"),
        ],
    )
    def test_mapping(self, default: str | None, expected: str | None) -> None:
        """Functions and literals are kept, other text is quoted."""
        assert map_default_to_postgres(default) == expected


class TestSchema:
    """Tests for catalog reads and DDL generation."""

    @pytest.mark.asyncio
    async def test_list_tables(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """Tables registered in the column catalog are listed by name."""
        await add_table(local_engine, "todos", TODO_COLUMNS)
        await add_table(local_engine, "notes", [ColumnSpec("id", "integer", primary=True)])
        assert await source.list_tables() == ["notes", "todos"]

    @pytest.mark.asyncio
    async def test_columns_in_declaration_order(
        self, local_engine: AsyncEngine, source: LocalSource
    ) -> None:
        """Columns keep catalog order and flags."""
        await add_table(local_engine, "todos", TODO_COLUMNS)
        columns = await source.get_columns("todos")
        assert [c.column_name for c in columns] == ["id", "title", "done"]
        assert columns[0].is_primary
        assert not columns[1].is_nullable
        assert await source.column_types("todos") == {
            "id": "integer",
            "title": "text",
            "done": "boolean",
        }

    @pytest.mark.asyncio
    async def test_table_ddl(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """Primary keys first, then columns alphabetically, then the key clause."""
        await add_table(
            local_engine,
            "posts",
            [
                ColumnSpec("title", "text", nullable=False),
                ColumnSpec("id", "uuid", nullable=False, primary=True, default="gen_uuid()"),
                ColumnSpec("created_at", "timestamptz", default="now()"),
                ColumnSpec("status", "text", default="draft"),
            ],
        )
        [(table, statement)] = await source.table_ddl()
        assert table == "posts"
        assert statement == (
            'CREATE TABLE public."posts" (\n'
            '    "id" UUID NOT NULL DEFAULT gen_random_uuid(),\n'
            '    "created_at" TIMESTAMPTZ DEFAULT now(),\n'
            "    \"status\" TEXT DEFAULT 'draft',\n"
            '    "title" TEXT NOT NULL,\n'
            '    PRIMARY KEY ("id")\n'
            ")"
        )

    @pytest.mark.asyncio
    async def test_export_ddl(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """The script has the header and one terminated statement per table."""
        await add_table(local_engine, "todos", TODO_COLUMNS)
        script = await source.export_ddl()
        assert script.startswith(DDL_HEADER)
        assert script.count("CREATE TABLE") == 1
        assert script.rstrip().endswith(");")

    @pytest.mark.asyncio
    async def test_unsafe_column_rejected(
        self, local_engine: AsyncEngine, source: LocalSource
    ) -> None:
        """A catalog entry with an unsafe name fails DDL generation."""
        await add_table(local_engine, "todos", TODO_COLUMNS)
        await insert_rows(
            local_engine,
            "_columns",
            [{"table_name": "todos", "column_name": "bad name", "pg_type": "text"}],
        )
        with pytest.raises(InvalidIdentifierError):
            await source.table_ddl()


class TestRows:
    """Tests for row reads and samples."""

    @pytest.mark.asyncio
    async def test_fetch_and_count(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """All rows are returned as dictionaries."""
        await add_table(local_engine, "todos", TODO_COLUMNS, todo_rows(3))
        rows = await source.fetch_rows("todos")
        assert len(rows) == 3
        assert rows[0] == {"id": 1, "title": "todo 1", "done": 1}
        assert await source.count_rows("todos") == 3

    @pytest.mark.asyncio
    async def test_order_column_prefers_primary_key(
        self, local_engine: AsyncEngine, source: LocalSource
    ) -> None:
        """The primary key orders samples."""
        await add_table(
            local_engine,
            "things",
            [ColumnSpec("name", "text"), ColumnSpec("code", "text", primary=True)],
        )
        assert await source.order_column("things") == "code"

    @pytest.mark.asyncio
    async def test_order_column_falls_back_to_first_column(
        self, local_engine: AsyncEngine, source: LocalSource
    ) -> None:
        """Without a primary key the first declared column is used."""
        await add_table(
            local_engine,
            "logs",
            [ColumnSpec("message", "text"), ColumnSpec("level", "text")],
        )
        assert await source.order_column("logs") == "message"

    @pytest.mark.asyncio
    async def test_order_column_unknown_table(self, source: LocalSource) -> None:
        """A table with no columns anywhere cannot be sampled."""
        with pytest.raises(ValidationError):
            await source.order_column("missing")

    @pytest.mark.asyncio
    async def test_samples(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """First and last samples follow the order column."""
        await add_table(local_engine, "todos", TODO_COLUMNS, todo_rows(20))
        first = await source.sample_rows("todos", "id", 3)
        last = await source.sample_rows("todos", "id", 3, descending=True)
        random = await source.random_rows("todos", 5)
        assert [row["id"] for row in first] == [1, 2, 3]
        assert [row["id"] for row in last] == [20, 19, 18]
        assert len(random) == 5
        assert len({row["id"] for row in random}) == 5


class TestAuthAndPolicies:
    """Tests for auth and policy reads."""

    @pytest.mark.asyncio
    async def test_users_and_identities(
        self, local_engine: AsyncEngine, source: LocalSource
    ) -> None:
        """Accounts and identities are read with their columns."""
        await insert_rows(
            local_engine,
            "auth_users",
            [
                {"id": "u1", "email": "a@example.com", "created_at": "2024-01-01 00:00:00"},
                {"id": "u2", "email": "b@example.com", "created_at": "2024-01-02 00:00:00"},
            ],
        )
        await insert_rows(
            local_engine,
            "auth_identities",
            [{"id": "i1", "user_id": "u1", "provider": "github", "provider_id": "42"}],
        )
        users = await source.fetch_users()
        assert [user["id"] for user in users] == ["u1", "u2"]
        assert "encrypted_password" in users[0]
        assert await source.count_users() == 2
        [identity] = await source.fetch_identities()
        assert identity["provider"] == "github"

    @pytest.mark.asyncio
    async def test_policies(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """Only tables with enabled policies are listed as RLS tables."""
        await insert_rows(
            local_engine,
            "_rls_policies",
            [
                {
                    "table_name": "todos",
                    "policy_name": "owner_only",
                    "command": "SELECT",
                    "using_expr": "auth.uid() = user_id",
                    "check_expr": None,
                    "enabled": 1,
                },
                {
                    "table_name": "notes",
                    "policy_name": "disabled",
                    "command": "ALL",
                    "using_expr": None,
                    "check_expr": None,
                    "enabled": 0,
                },
            ],
        )
        policies = await source.list_policies()
        assert [(p.table_name, p.enabled) for p in policies] == [
            ("notes", False),
            ("todos", True),
        ]
        assert await source.list_rls_tables() == ["todos"]


class TestStorage:
    """Tests for bucket and object reads."""

    @pytest.mark.asyncio
    async def test_buckets_and_objects(
        self, local_engine: AsyncEngine, source: LocalSource
    ) -> None:
        """Buckets and their object metadata are listed."""
        await insert_rows(
            local_engine,
            "storage_buckets",
            [{"id": "avatars", "name": "avatars", "public": 1}],
        )
        await insert_rows(
            local_engine,
            "storage_objects",
            [
                {"id": "o2", "bucket_id": "avatars", "name": "b.png", "mime_type": "image/png"},
                {"id": "o1", "bucket_id": "avatars", "name": "a.txt", "mime_type": None},
            ],
        )
        assert await source.list_bucket_ids() == ["avatars"]
        assert (await source.fetch_buckets())[0]["public"] == 1
        objects = await source.fetch_objects("avatars")
        assert [o.name for o in objects] == ["a.txt", "b.png"]
        assert await source.count_objects("avatars") == 2
        assert await source.count_objects("other") == 0

    def test_read_object(self, source: LocalSource, storage_dir: Path) -> None:
        """Object bytes are read from <storage>/<bucket>/<name>."""
        (storage_dir / "avatars" / "nested").mkdir(parents=True)
        (storage_dir / "avatars" / "nested" / "a.txt").write_bytes(b"hello")
        assert source.read_object("avatars", "nested/a.txt") == b"hello"

    def test_read_object_outside_bucket_is_rejected(
        self, source: LocalSource, storage_dir: Path
    ) -> None:
        """Names cannot escape the bucket directory."""
        (storage_dir / "avatars").mkdir()
        (storage_dir / "secret.txt").write_bytes(b"x")
        with pytest.raises(ItemMigrationError, match="escapes"):
            source.read_object("avatars", "../secret.txt")

    def test_read_missing_object(self, source: LocalSource, storage_dir: Path) -> None:
        """A missing file is an item failure."""
        (storage_dir / "avatars").mkdir()
        with pytest.raises(ItemMigrationError, match="missing.txt"):
            source.read_object("avatars", "missing.txt")


class TestFunctions:
    """Tests for function secrets, metadata and packaging."""

    @pytest.mark.asyncio
    async def test_verify_jwt_defaults_to_true(
        self, local_engine: AsyncEngine, source: LocalSource
    ) -> None:
        """Functions without metadata verify JWTs."""
        await insert_rows(local_engine, "_functions_metadata", [{"name": "open", "verify_jwt": 0}])
        assert await source.function_verify_jwt("open") is False
        assert await source.function_verify_jwt("unknown") is True

    @pytest.mark.asyncio
    async def test_secret_names(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """Secrets are listed by name."""
        await insert_rows(
            local_engine,
            "_functions_secrets",
            [{"name": "B_KEY", "value": "x"}, {"name": "A_KEY", "value": "y"}],
        )
        assert await source.list_secret_names() == ["A_KEY", "B_KEY"]
        assert [s["name"] for s in await source.fetch_secrets()] == ["A_KEY", "B_KEY"]

    def test_package_function(self, source: LocalSource, functions_dir: Path) -> None:
        """The archive holds the sources under <name>/."""
        function_dir = functions_dir / "hello"
        (function_dir / "lib").mkdir(parents=True)
        (function_dir / "index.ts").write_text("export default () => {}")
        (function_dir / "lib" / "util.ts").write_text("export const x = 1")

        archive = source.package_function("hello")

        with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tar:
            names = tar.getnames()
        assert "hello/index.ts" in names
        assert "hello/lib/util.ts" in names

    def test_package_missing_function(self, source: LocalSource) -> None:
        """A function without a source directory cannot be packaged."""
        with pytest.raises(ItemMigrationError, match="not found"):
            source.package_function("ghost")


class TestSettings:
    """Tests for dashboard settings."""

    @pytest.mark.asyncio
    async def test_get_setting(self, local_engine: AsyncEngine, source: LocalSource) -> None:
        """Settings read back as text; missing keys are None."""
        await set_setting(local_engine, "allow_anonymous", "true")
        assert await source.get_setting("allow_anonymous") == "true"
        assert await source.get_setting("missing") is None
