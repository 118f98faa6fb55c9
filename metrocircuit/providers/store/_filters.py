"""Validation shared by the row-store adapters."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_name(name: str, kind: str = "field") -> str:
    """Reject table and field names that are not plain identifiers."""
    if not _NAME_RE.match(name):
        raise ValueError(f"Invalid {kind} name: {name!r}")
    return name


def matches(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(row.get(field) == value for field, value in filters.items())
