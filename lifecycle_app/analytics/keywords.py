"""Noise keywords: comment text that does not count as human attention."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from lifecycle_app.core.config import STALE_TAG

# Sprint/process boilerplate and generic status chatter
PROCESS_KEYWORDS: Sequence[str] = (
    "PM Score",
    "UpcomingSprint",
    "This bug will be evaluated during the next sprint and prioritized appropriately.",
    "I am working on other high priority items. I will get to this bug next sprint.",
    "This bug will be evaluated next sprint.",
    "bug is actively worked on",
)

# Comments previously left by the lifecycle bot itself
BOT_COMMENT_KEYWORDS: Sequence[str] = (
    f'we\'re marking this bug as "{STALE_TAG}"',
    f"The {STALE_TAG} keyword was removed because",
)


def matching_keyword(text: str | None, keywords: Iterable[str]) -> str | None:
    """Return the first keyword contained in ``text`` (case-sensitive substring)."""
    if not text:
        return None
    for keyword in keywords:
        if keyword in text:
            return keyword
    return None


def is_noise(text: str | None, keywords: Iterable[str]) -> bool:
    return matching_keyword(text, keywords) is not None


def significant_keywords(stale_comment: str | None) -> list[str]:
    """Noise set for staleness: the bot's own stale comment, bot markers, process talk."""
    keywords: list[str] = []
    # An empty template would match every comment.
    if stale_comment:
        keywords.append(stale_comment)
    keywords.extend(BOT_COMMENT_KEYWORDS)
    keywords.extend(PROCESS_KEYWORDS)
    return keywords
