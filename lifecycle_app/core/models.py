"""Domain data models for Jira issues, comments, change histories, and updates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# Timestamps stay as delivered by Jira and are parsed during analysis.
Timestamp = str | datetime | None


@dataclass(slots=True)
class FlagModel:
    name: str
    status: str
    requestee: str | None = None


@dataclass(slots=True)
class CommentModel:
    count: int
    created: Timestamp
    body: str
    author: str | None = None


@dataclass(slots=True)
class FieldChange:
    field: str
    removed: str = ""
    added: str = ""


@dataclass(slots=True)
class HistoryItemModel:
    created: Timestamp
    author: str | None = None
    items: list[FieldChange] = field(default_factory=list)


@dataclass(slots=True)
class IssueModel:
    id: int
    key: str | None = None
    summary: str | None = None
    priority: str = "unspecified"
    severity: str | None = None
    status: str | None = None
    created: Timestamp = None
    updated: Timestamp = None
    # E-mails, used for Slack lookups; empty when Jira hides them
    assignee: str = ""
    reporter: str = ""
    # Jira account keys, used in edits
    assignee_account: str = ""
    reporter_account: str = ""
    whiteboard: str = ""
    devel_whiteboard: str = ""
    components: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    flags: list[FlagModel] = field(default_factory=list)

    @property
    def ref(self) -> str:
        """Identifier accepted by the Jira REST API."""
        return self.key or str(self.id)


@dataclass(frozen=True, slots=True)
class Transition:
    source: str
    target: str


@dataclass(slots=True)
class FlagChange:
    name: str
    status: str
    requestee: str | None = None


@dataclass(slots=True)
class IssueUpdate:
    whiteboard: str | None = None
    priority: str | None = None
    flags: list[FlagChange] = field(default_factory=list)
    comment: str | None = None
    assignee: str | None = None
    status: str | None = None
