"""
Observability utilities for hostmigrate.

This module provides the injectable tracer and the standard span attribute
names used across the engine.

Example:
    >>> from hostmigrate.observability import create_tracer
    >>>
    >>> class MyComponent:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from hostmigrate.observability.attributes import (
    ATTR_CHECKS_FAILED,
    ATTR_CHECKS_TOTAL,
    ATTR_HTTP_METHOD,
    ATTR_HTTP_STATUS_CODE,
    ATTR_ITEM_COUNT,
    ATTR_ITEM_NAME,
    ATTR_ITEM_TYPE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STATUS,
    ATTR_PROJECT_REF,
    ATTR_ROW_COUNT,
    ATTR_URL_PATH,
    ATTR_VERIFICATION_LAYER,
)
from hostmigrate.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Attributes
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
    # Tracer
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "Tracer",
    "create_tracer",
]
