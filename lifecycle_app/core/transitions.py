"""Priority degradation along a fixed transition table."""

from __future__ import annotations

from collections.abc import Iterable

from .models import Transition


def degrade_priority(transitions: Iterable[Transition], current: str) -> str:
    """Return the priority one step below ``current``.

    The first transition whose source equals ``current`` wins. A priority that
    is not the source of any transition (e.g. ``"low"``) is returned unchanged.
    """
    for transition in transitions:
        if transition.source == current:
            return transition.target
    return current


def parse_transitions(raw: Iterable[dict]) -> list[Transition]:
    """Build transitions from config entries like ``{"from": "high", "to": "medium"}``."""
    out: list[Transition] = []
    for entry in raw:
        source = entry.get("from")
        target = entry.get("to")
        if not source or not target:
            raise ValueError(f"priority transition needs 'from' and 'to': {entry!r}")
        out.append(Transition(source=str(source).lower(), target=str(target).lower()))
    return out
