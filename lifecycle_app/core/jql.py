"""Small JQL building helpers."""

from __future__ import annotations

from collections.abc import Iterable


def quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def field_ref(field_id: str) -> str:
    """``customfield_123`` -> ``cf[123]``; system fields are returned unchanged."""
    if field_id.startswith("customfield_"):
        return f"cf[{field_id.removeprefix('customfield_')}]"
    return field_id


def in_list(values: Iterable[str]) -> str:
    return "(" + ", ".join(quote(v) for v in values) + ")"
