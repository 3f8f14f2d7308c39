"""Central configuration, constants, lifecycle markers, and the operator config model."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from .models import Transition

# =============================================================================
# Jira Connection Settings
# =============================================================================
JIRA_DEFAULT_SERVER = "https://issues.redhat.com"
JIRA_REST_API_VERSION = "2"
DEFAULT_PROJECT_KEY = "OCPBUGS"

# Key under which edits reference users: "name" on Data Center, "accountId" on Cloud
USER_KEY_NAME = "name"
USER_KEY_ACCOUNT_ID = "accountId"

# =============================================================================
# Lifecycle Markers
# Whiteboard tokens used as durable state of the lifecycle bot.
# =============================================================================
STALE_TAG = "LifecycleStale"
RESET_TAG = "LifecycleReset"
FROZEN_TAG = "LifecycleFrozen"

# =============================================================================
# Staleness Settings
# =============================================================================
DEFAULT_STALE_DAYS: int = 30
MINIMUM_STALE_DURATION = timedelta(days=DEFAULT_STALE_DAYS)
STALE_RESYNC_SECONDS: int = 60 * 60
METACOMPONENT_RESYNC_SECONDS: int = 3 * 60 * 60

DEFAULT_STALE_COMMENT = (
    "This bug hasn't had any activity in the last 30 days. Maybe the problem got resolved, "
    'was a duplicate of something else, or became less pressing for some reason - or maybe '
    "it's still relevant but just hasn't been looked at yet. As such, we're marking this bug "
    'as "LifecycleStale" and decreasing the severity/priority.\n\n'
    "If you have further information on the current state of the bug, please update it, "
    "otherwise this bug can be closed in about 7 days. The information can be, for example, "
    "that the problem still occurs, that you still want the feature, that more information "
    "is needed, or that the bug is (for whatever reason) no longer relevant.\n\n"
    "Additionally, you can add LifecycleFrozen into Whiteboard if you think this bug should "
    "never be marked as stale. Please consult with bug assignee before you do that."
)

# Account asked to acknowledge the blocker rejection when a stale bug drops to "low".
DEFAULT_TRIAGE_OWNER = "eparis"

# Issue updates that never stick; the reporter is not notified about these.
NOTIFICATION_EXCLUDED_ISSUE_IDS: frozenset[int] = frozenset({1801755})

# =============================================================================
# Priority Configuration
# =============================================================================
LOW_PRIORITY = "low"

DEFAULT_PRIORITY_TRANSITIONS: Sequence[Transition] = (
    Transition(source="high", target="medium"),
    Transition(source="medium", target="low"),
    Transition(source="unspecified", target="low"),
)

# Jira priority names keyed by the normalized (lowercase) priority
JIRA_PRIORITY_NAMES: dict[str, str] = {
    "urgent": "Critical",
    "high": "Major",
    "medium": "Normal",
    "low": "Minor",
    "unspecified": "Undefined",
}

# Priority aliases for normalization (lowercase keys)
PRIORITY_ALIASES: dict[str, str] = {
    "blocker": "urgent",
    "critical": "urgent",
    "urgent": "urgent",
    "major": "high",
    "high": "high",
    "normal": "medium",
    "medium": "medium",
    "minor": "low",
    "low": "low",
    "trivial": "low",
    "undefined": "unspecified",
    "unspecified": "unspecified",
    "none": "unspecified",
}


def normalize_priority_name(priority: str | None) -> str:
    """Normalize a Jira priority name to the lifecycle priority vocabulary.

    Handles variations like:
    - "(migrated)" suffixes: "Major (migrated)" -> "high"
    - Case variations: "HIGH" -> "high"
    - Whitespace: "  Normal  " -> "medium"

    Parameters
    ----------
    priority : str or None
        Raw priority string from Jira.

    Returns
    -------
    str
        Lowercase canonical priority; unknown priorities are passed through
        lowercased so they never match a transition by accident.
    """
    if priority is None:
        return "unspecified"

    cleaned = str(priority).strip()
    if not cleaned:
        return "unspecified"

    cleaned = re.sub(r"\s*\(migrated\)\s*$", "", cleaned, flags=re.IGNORECASE).strip()

    lookup_key = cleaned.lower()
    if lookup_key in PRIORITY_ALIASES:
        return PRIORITY_ALIASES[lookup_key]
    return lookup_key


def jira_priority_name(priority: str, names: dict[str, str] | None = None) -> str:
    """Map a normalized priority back to the name Jira expects on update."""
    names = JIRA_PRIORITY_NAMES if names is None else names
    return names.get(priority, priority)


# =============================================================================
# Blocker Flag Values
# =============================================================================
BLOCKER_STATUS_BY_VALUE: dict[str, str] = {
    "proposed": "?",
    "approved": "+",
    "rejected": "-",
}
BLOCKER_VALUE_BY_STATUS: dict[str, str] = {
    "?": "Proposed",
    "+": "Approved",
    "-": "Rejected",
}

# =============================================================================
# Jira Custom Field IDs
# =============================================================================
FIELD_IDS = {
    "whiteboard": "customfield_12316843",
    "devel_whiteboard": "customfield_12322640",
    "severity": "customfield_12316142",
    "needinfo": "customfield_12311840",
    "blocker": "customfield_12319743",
}

# Changelog "field" names that refer to the status whiteboard
WHITEBOARD_FIELD_NAMES: frozenset[str] = frozenset({"whiteboard", "status whiteboard"})

# =============================================================================
# Candidate Query Settings
# =============================================================================
OPEN_STATUSES: Sequence[str] = ("NEW", "ASSIGNED", "POST", "ON_DEV")
EXCLUDED_SEVERITY = "Urgent"
EXCLUDED_SUMMARY_TEXT: Sequence[str] = ("CVE",)
EXCLUDED_LABELS: Sequence[str] = ("Security", "Blocker")

JIRA_FETCH_BASE_FIELDS = [
    "summary",
    "created",
    "updated",
    "assignee",
    "reporter",
    "priority",
    "status",
    "components",
    "labels",
]

# =============================================================================
# Slack Settings
# =============================================================================
SLACK_API_URL = "https://slack.com/api"
SLACK_CHANNEL_ROLES: frozenset[str] = frozenset({"admin", "status"})


@dataclass(slots=True)
class Component:
    lead: str
    developers: list[str] = field(default_factory=list)


@dataclass(slots=True)
class OperatorConfig:
    """Static, pre-validated input to the controllers."""

    project_key: str = DEFAULT_PROJECT_KEY
    components: dict[str, Component] = field(default_factory=dict)
    meta_components: dict[str, Component] = field(default_factory=dict)
    stale_comment: str = DEFAULT_STALE_COMMENT
    stale_after: timedelta = MINIMUM_STALE_DURATION
    priority_transitions: list[Transition] = field(
        default_factory=lambda: list(DEFAULT_PRIORITY_TRANSITIONS)
    )
    triage_owner: str = DEFAULT_TRIAGE_OWNER
    notification_excluded_ids: frozenset[int] = NOTIFICATION_EXCLUDED_ISSUE_IDS
    open_statuses: list[str] = field(default_factory=lambda: list(OPEN_STATUSES))
    extra_jql: str | None = None
    slack_channels: dict[str, str] = field(default_factory=dict)
    field_ids: dict[str, str] = field(default_factory=lambda: dict(FIELD_IDS))
    priority_names: dict[str, str] = field(default_factory=lambda: dict(JIRA_PRIORITY_NAMES))
    user_key_field: str = USER_KEY_NAME

    def component_names(self) -> list[str]:
        return sorted(self.components)
