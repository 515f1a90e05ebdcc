"""
Persistence for hostmigrate.

Exports the state store protocol, its SQLAlchemy implementation and the
connection helpers shared with the local source and remote catalog.
"""

from hostmigrate.repositories._connection import (
    Connectable,
    execute_with_connection,
    fetch_all,
    fetch_column,
    fetch_scalar,
)
from hostmigrate.repositories.state import (
    DB_PASSWORD_KEY_PREFIX,
    VALID_TRANSITIONS,
    SQLAlchemyStateStore,
    StateStore,
)

__all__ = [
    "DB_PASSWORD_KEY_PREFIX",
    "VALID_TRANSITIONS",
    "Connectable",
    "SQLAlchemyStateStore",
    "StateStore",
    "execute_with_connection",
    "fetch_all",
    "fetch_column",
    "fetch_scalar",
]
