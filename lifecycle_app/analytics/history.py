"""Last significant change: freshness of an issue from its comments and changelog."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, TypeVar

import pandas as pd
import pytz

from lifecycle_app.core.config import STALE_TAG, WHITEBOARD_FIELD_NAMES
from lifecycle_app.core.errors import TimestampParseError
from lifecycle_app.core.models import CommentModel, HistoryItemModel, IssueModel

from .keywords import matching_keyword, significant_keywords

if TYPE_CHECKING:
    from lifecycle_app.core.service import IssueService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Date, optional time with fraction, optional zone (Z, +hh:mm or +hhmm)
ISO_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?)?(Z|[+-]\d{2}:?\d{2})?$"
)


def parse_timestamp(value) -> datetime:
    """Parse a Jira timestamp into an aware UTC datetime.

    Strings must be ISO-8601; relative words such as ``now`` are rejected.
    Raises TimestampParseError when the value is empty or unparsable.
    """
    if value is None or value == "":
        raise TimestampParseError(value)
    if isinstance(value, str) and not ISO_TIMESTAMP_RE.match(value.strip()):
        raise TimestampParseError(value)
    try:
        ts = pd.to_datetime(value, utc=True, errors="coerce")
    except (TypeError, ValueError) as exc:
        raise TimestampParseError(value) from exc
    if ts is None or pd.isna(ts):
        raise TimestampParseError(value)
    return ts.tz_convert(pytz.UTC).to_pydatetime()


def latest_timestamp(
    start: datetime,
    records: Iterable[T],
    *,
    timestamp: Callable[[T], object],
    significant: Callable[[T], bool],
    describe: Callable[[T], str],
) -> datetime:
    """Fold ``records`` into the latest timestamp among the significant ones.

    Records with an unparsable timestamp are logged and skipped.
    """
    latest = start
    for record in records:
        if not significant(record):
            continue
        raw = timestamp(record)
        try:
            at = parse_timestamp(raw)
        except TimestampParseError as exc:
            logger.warning("Skipping %s because of time %r parse error: %s", describe(record), raw, exc)
            continue
        if at > latest:
            latest = at
    return latest


def removes_stale_tag(change: HistoryItemModel) -> bool:
    """True when the change took the stale tag off the whiteboard."""
    for item in change.items:
        if (item.field or "").lower() not in WHITEBOARD_FIELD_NAMES:
            continue
        if STALE_TAG in (item.removed or "") and STALE_TAG not in (item.added or ""):
            return True
    return False


def last_significant_change_at(
    issue: IssueModel,
    comments: Sequence[CommentModel],
    histories: Sequence[HistoryItemModel],
    noise_keywords: Sequence[str],
) -> datetime:
    """Most recent significant event of ``issue``, never earlier than its creation.

    A comment is significant unless it contains a noise keyword; a changelog
    entry is significant only when it removes the stale tag from the whiteboard.
    """
    created_at = parse_timestamp(issue.created)

    def comment_is_significant(cmt: CommentModel) -> bool:
        keyword = matching_keyword(cmt.body, noise_keywords)
        if keyword is None:
            return True
        short_text = (cmt.body or "").split("\n", 1)[0]
        logger.debug(
            "Ignoring comment #%s for %s due to keyword %r: %s", cmt.count, issue.ref, keyword, short_text
        )
        return False

    latest = latest_timestamp(
        created_at,
        comments,
        timestamp=lambda c: c.created,
        significant=comment_is_significant,
        describe=lambda c: f"comment #{c.count} of {issue.ref}",
    )
    after_history = latest_timestamp(
        latest,
        histories,
        timestamp=lambda h: h.created,
        significant=removes_stale_tag,
        describe=lambda h: f"change on {h.created} of {issue.ref}",
    )
    if after_history > latest:
        logger.debug("%s removed from %s, counting as significant change", STALE_TAG, issue.ref)
    return after_history


def last_non_keyword_change_at(
    service: IssueService, issue: IssueModel, keywords: Sequence[str]
) -> datetime:
    """Fetch comments and changelog of ``issue`` and compute its last significant change."""
    comments = service.get_comments(issue.ref, since=issue.updated)
    histories = service.get_history(issue.ref, since=issue.updated)
    return last_significant_change_at(issue, comments, histories, keywords)


def last_significant_change_at_for(
    service: IssueService, issue: IssueModel, stale_comment: str | None
) -> datetime:
    """Last change ignoring process chatter, bot comments and the stale comment itself."""
    return last_non_keyword_change_at(service, issue, significant_keywords(stale_comment))
