"""
Shared test fixtures for hostmigrate.

This module provides:
- FakePlatform: an in-memory fake of the hosted management and project APIs
- SQLiteRemote / RecordingEngine: stand-ins for the remote database
- Local backend builders (create_local_schema, add_table, set_setting)
- make_item / store_items: migration items, unsaved or stored with a status

Usage:
    from tests.fixtures import FakePlatform, SQLiteRemote, add_table
"""

from tests.fixtures.items import make_item, store_items
from tests.fixtures.local import (
    LOCAL_SCHEMA,
    TODO_COLUMNS,
    ColumnSpec,
    add_table,
    create_local_schema,
    insert_rows,
    set_setting,
    todo_rows,
)
from tests.fixtures.platform import MANAGEMENT_HOST, FakePlatform
from tests.fixtures.remote import (
    PLATFORM_TABLES,
    RecordingEngine,
    RecordingEngineFactory,
    SQLiteRemote,
)

__all__ = [
    "LOCAL_SCHEMA",
    "MANAGEMENT_HOST",
    "PLATFORM_TABLES",
    "TODO_COLUMNS",
    "ColumnSpec",
    "FakePlatform",
    "RecordingEngine",
    "RecordingEngineFactory",
    "SQLiteRemote",
    "add_table",
    "create_local_schema",
    "insert_rows",
    "make_item",
    "set_setting",
    "store_items",
    "todo_rows",
]
