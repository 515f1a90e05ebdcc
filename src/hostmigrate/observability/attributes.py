"""
Standard span attributes for hostmigrate.

Attribute constants used across the engine for consistent span naming.
These follow OpenTelemetry semantic conventions where applicable.

Example:
    >>> from hostmigrate.observability.attributes import ATTR_MIGRATION_ID
    >>>
    >>> with tracer.span(
    ...     "hostmigrate.orchestrator.run_migration",
    ...     {ATTR_MIGRATION_ID: str(migration_id)},
    ... ):
    ...     pass
"""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_ID = "hostmigrate.migration.id"
"""Unique identifier of the migration (UUID string)."""

ATTR_MIGRATION_STATUS = "hostmigrate.migration.status"
"""Migration status after the operation (e.g. 'completed')."""

ATTR_PROJECT_REF = "hostmigrate.project.ref"
"""Reference of the selected remote project."""

# =============================================================================
# Item Attributes
# =============================================================================

ATTR_ITEM_TYPE = "hostmigrate.item.type"
"""Item type being migrated (e.g. 'data')."""

ATTR_ITEM_NAME = "hostmigrate.item.name"
"""Item name: table, bucket, function or the type's sentinel."""

ATTR_ITEM_COUNT = "hostmigrate.item.count"
"""Number of items processed by an operation (integer)."""

ATTR_ROW_COUNT = "hostmigrate.row.count"
"""Number of rows transferred (integer)."""

# =============================================================================
# Verification Attributes
# =============================================================================

ATTR_VERIFICATION_LAYER = "hostmigrate.verification.layer"
"""Verification layer (basic, integrity, functional)."""

ATTR_CHECKS_TOTAL = "hostmigrate.verification.checks_total"
"""Number of checks run by a verification (integer)."""

ATTR_CHECKS_FAILED = "hostmigrate.verification.checks_failed"
"""Number of checks that failed (integer)."""

# =============================================================================
# HTTP Attributes (OTEL semantic)
# =============================================================================

ATTR_HTTP_METHOD = "http.request.method"
"""HTTP method of a remote API call."""

ATTR_HTTP_STATUS_CODE = "http.response.status_code"
"""HTTP status returned by a remote API call."""

ATTR_URL_PATH = "url.path"
"""Path of a remote API call (never includes credentials)."""


__all__ = [
    "ATTR_CHECKS_FAILED",
    "ATTR_CHECKS_TOTAL",
    "ATTR_HTTP_METHOD",
    "ATTR_HTTP_STATUS_CODE",
    "ATTR_ITEM_COUNT",
    "ATTR_ITEM_NAME",
    "ATTR_ITEM_TYPE",
    "ATTR_MIGRATION_ID",
    "ATTR_MIGRATION_STATUS",
    "ATTR_PROJECT_REF",
    "ATTR_ROW_COUNT",
    "ATTR_URL_PATH",
    "ATTR_VERIFICATION_LAYER",
]
