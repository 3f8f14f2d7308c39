"""Whiteboard helpers: the status whiteboard is a space-delimited tag set."""

from __future__ import annotations

from collections.abc import Iterable, Iterator


class TagSet:
    """Ordered set of whiteboard tokens.

    Parsing drops empty tokens and duplicates; ``str()`` joins the tokens with
    single spaces, so ``str(TagSet(text))`` is the normalized whiteboard.
    """

    __slots__ = ("_tags",)

    def __init__(self, tags: str | Iterable[str] | None = None):
        if tags is None:
            tags = ()
        elif isinstance(tags, str):
            tags = tags.split(" ")
        self._tags: dict[str, None] = {}
        for tag in tags:
            if tag:
                self._tags[tag] = None

    def add(self, tag: str) -> TagSet:
        if tag:
            self._tags.setdefault(tag, None)
        return self

    def remove(self, tag: str) -> TagSet:
        self._tags.pop(tag, None)
        return self

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TagSet):
            return list(self._tags) == list(other._tags)
        return NotImplemented

    def __str__(self) -> str:
        return " ".join(self._tags)

    def __repr__(self) -> str:
        return f"TagSet({str(self)!r})"


def with_keyword(whiteboard: str | None, keyword: str) -> str:
    """Return ``whiteboard`` with ``keyword`` appended unless already present."""
    return str(TagSet(whiteboard).add(keyword))


def without_keyword(whiteboard: str | None, keyword: str) -> str:
    return str(TagSet(whiteboard).remove(keyword))
