"""
Row sample comparison for integrity verification.

Both sides are normalized before comparison so that representation
differences between SQLite and Postgres (booleans, timestamps, blobs,
integral floats) are not reported as mismatches.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from hostmigrate.normalize import normalize_row, row_key


def _differences(local: Mapping[str, Any], remote: Mapping[str, Any]) -> list[dict[str, Any]]:
    differences: list[dict[str, Any]] = []
    for column, value in local.items():
        if column not in remote:
            differences.append(
                {"column": column, "sblite_value": value, "supabase_note": "column missing"}
            )
        elif remote[column] != value:
            differences.append(
                {"column": column, "sblite_value": value, "supabase_value": remote[column]}
            )
    return differences


def _closest_row(
    local: Mapping[str, Any],
    candidates: Sequence[Mapping[str, Any]],
) -> Mapping[str, Any] | None:
    """The remote row sharing the most column values with `local`, if any."""
    best = None
    best_shared = 0
    for candidate in candidates:
        shared = sum(
            1
            for column, value in local.items()
            if column in candidate and candidate[column] == value
        )
        if shared > best_shared:
            best, best_shared = candidate, shared
    return best


def compare_rows(
    local_rows: Sequence[Mapping[str, Any]],
    remote_rows: Sequence[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """
    Find local rows with no identical remote row.

    A mismatching local row is reported as "different", with a per-column
    diff against the closest remote row, when at least one column value
    matches a remote row; otherwise it is reported as "missing_or_different".

    Returns:
        One mismatch entry per unmatched local row, in local order.
    """
    remote_normalized = [normalize_row(row) for row in remote_rows]
    remote_keys = {row_key(row) for row in remote_normalized}

    mismatches: list[dict[str, Any]] = []
    for row in local_rows:
        local = normalize_row(row)
        if row_key(local) in remote_keys:
            continue
        closest = _closest_row(local, remote_normalized)
        if closest is None:
            mismatches.append({"type": "missing_or_different", "sblite_row": local})
        else:
            mismatches.append(
                {
                    "type": "different",
                    "sblite_row": local,
                    "supabase_row": dict(closest),
                    "differences": _differences(local, closest),
                }
            )
    return mismatches


__all__ = ["compare_rows"]
