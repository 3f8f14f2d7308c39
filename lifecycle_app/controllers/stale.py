"""Stale controller: marks issues without significant activity as LifecycleStale.

Each pass searches open candidate issues, computes their last significant
change from comments and changelog, degrades the priority of the stale ones,
tags them, asks the reporter for information, and tells assignees and
reporters about it on Slack.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass, field
from datetime import datetime

import pytz

from lifecycle_app.analytics.history import last_significant_change_at_for
from lifecycle_app.core.config import (
    EXCLUDED_LABELS,
    EXCLUDED_SEVERITY,
    EXCLUDED_SUMMARY_TEXT,
    FROZEN_TAG,
    LOW_PRIORITY,
    RESET_TAG,
    STALE_TAG,
    OperatorConfig,
)
from lifecycle_app.core.errors import AggregateError, DeliveryError, LifecycleError
from lifecycle_app.core.events import LoggingEventRecorder
from lifecycle_app.core.jql import field_ref, in_list, quote
from lifecycle_app.core.mappers import format_issue_message
from lifecycle_app.core.models import FlagChange, IssueModel, IssueUpdate
from lifecycle_app.core.service import IssueService
from lifecycle_app.core.slack_client import SlackClient
from lifecycle_app.core.transitions import degrade_priority
from lifecycle_app.core.whiteboard import TagSet

logger = logging.getLogger(__name__)

NOTIFICATION_TEMPLATE = (
    "Hi there!\nThese bugs you are assigned to or you created were just marked as _{tag}_:\n\n"
    "{messages}\n\nPlease review these and remove this flag if you think they are still valid bugs."
)


def stale_candidates_jql(config: OperatorConfig) -> str:
    """JQL for open issues that may be stale: not yet tagged, not frozen, not urgent or security."""
    whiteboard = field_ref(config.field_ids["whiteboard"])
    severity = field_ref(config.field_ids["severity"])
    clauses = [f"project = {quote(config.project_key)}"]
    clauses.append(f"status in {in_list(config.open_statuses)}")
    if config.components:
        clauses.append(f"component in {in_list(config.component_names())}")
    clauses.append(
        f"({whiteboard} is EMPTY OR ({whiteboard} !~ {quote(STALE_TAG)} AND {whiteboard} !~ {quote(FROZEN_TAG)}))"
    )
    clauses.append(f"({severity} is EMPTY OR {severity} != {quote(EXCLUDED_SEVERITY)})")
    clauses.extend(f"summary !~ {quote(text)}" for text in EXCLUDED_SUMMARY_TEXT)
    clauses.append(f"(labels is EMPTY OR labels not in {in_list(EXCLUDED_LABELS)})")
    if config.extra_jql:
        clauses.append(f"({config.extra_jql})")
    return " AND ".join(clauses) + " ORDER BY created ASC"


def has_blocker_question_mark(issue: IssueModel) -> bool:
    return any(f.name == "blocker" and f.status == "?" for f in issue.flags)


def build_stale_update(
    issue: IssueModel,
    degraded_priority: str,
    stale_comment: str,
    triage_owner: str,
) -> IssueUpdate:
    """Mutation applied to a stale issue. Pure; nothing is sent to Jira here."""
    whiteboard = TagSet(issue.whiteboard).remove(RESET_TAG).add(STALE_TAG)
    flags = [FlagChange(name="needinfo", status="?", requestee=issue.reporter_account)]
    # Minimized priority must not keep an open blocker nomination.
    if degraded_priority == LOW_PRIORITY and has_blocker_question_mark(issue):
        flags.append(FlagChange(name="blocker", status="-", requestee=triage_owner))
    return IssueUpdate(
        whiteboard=str(whiteboard),
        priority=degraded_priority,
        flags=flags,
        comment=stale_comment,
    )


def notification_recipients(issue: IssueModel, excluded_ids: Collection[int]) -> list[str]:
    """E-mails to notify: assignee always; reporter too when different and the issue is not excluded."""
    recipients = [issue.assignee]
    if issue.reporter != issue.assignee and issue.id not in excluded_ids:
        recipients.append(issue.reporter)
    return recipients


def aggregate_notifications(
    issues: Iterable[IssueModel],
    excluded_ids: Iterable[int],
    format_message: Callable[[IssueModel], str],
) -> dict[str, list[str]]:
    excluded = frozenset(excluded_ids)
    notifications: dict[str, list[str]] = {}
    for issue in issues:
        message = format_message(issue)
        for recipient in notification_recipients(issue, excluded):
            notifications.setdefault(recipient, []).append(message)
    return notifications


def format_notification(messages: list[str]) -> str:
    return NOTIFICATION_TEMPLATE.format(tag=STALE_TAG, messages="\n".join(messages))


@dataclass(slots=True)
class PassResult:
    candidates: int = 0
    stale: list[IssueModel] = field(default_factory=list)
    updated: list[IssueModel] = field(default_factory=list)
    notified: dict[str, list[str]] = field(default_factory=dict)
    delivery_failures: dict[str, Exception] = field(default_factory=dict)
    errors: list[Exception] = field(default_factory=list)
    cancelled: bool = False


class StaleController:
    name = "StaleController"

    def __init__(
        self,
        service: IssueService,
        slack: SlackClient,
        config: OperatorConfig,
        recorder: LoggingEventRecorder | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        self.service = service
        self.slack = slack
        self.config = config
        self.recorder = recorder or LoggingEventRecorder(self.name)
        self.clock = clock or (lambda: datetime.now(pytz.UTC))

    def handle_issue(self, issue: IssueModel) -> IssueUpdate:
        logger.info(
            "%s (S:%s, P:%s, R:%s, A:%s): %s",
            issue.ref,
            issue.severity,
            issue.priority,
            issue.reporter,
            issue.assignee,
            issue.summary,
        )
        degraded = degrade_priority(self.config.priority_transitions, issue.priority)
        return build_stale_update(issue, degraded, self.config.stale_comment, self.config.triage_owner)

    def format_message(self, issue: IssueModel) -> str:
        return format_issue_message(issue, self.service.server)

    def run_pass(self, cancel: threading.Event | None = None) -> PassResult:
        """One synchronization pass.

        Per-issue failures never stop the pass; they are raised together as an
        AggregateError (carrying the PassResult) once everything else is done.
        Slack delivery failures are only recorded as warnings.
        """
        result = PassResult()
        cancelled = cancel.is_set if cancel is not None else (lambda: False)

        try:
            candidates = self.service.search(stale_candidates_jql(self.config))
        except LifecycleError as exc:
            self.recorder.warn("BuglistFailed", str(exc))
            raise
        result.candidates = len(candidates)
        logger.debug("Got %d potentially stale bugs.", len(candidates))

        threshold = self.clock() - self.config.stale_after
        for issue in candidates:
            if cancelled():
                result.cancelled = True
                break
            try:
                last_change = last_significant_change_at_for(self.service, issue, self.config.stale_comment)
            except LifecycleError as exc:
                self.recorder.warn("GetCachedBugComments", f"skipping bug {issue.ref}: {exc}")
                result.errors.append(exc)
                continue
            if last_change < threshold:
                result.stale.append(issue)

        for issue in result.stale:
            if result.cancelled or cancelled():
                result.cancelled = True
                break
            update = self.handle_issue(issue)
            try:
                self.service.update_issue(issue.ref, update)
            except LifecycleError as exc:
                logger.warning("Failed to mark %s as %s: %s", issue.ref, STALE_TAG, exc)
                result.errors.append(exc)
                continue
            # Search results can miss the assignee or reporter.
            if not issue.assignee or not issue.reporter:
                try:
                    issue = self.service.get_issue(issue.ref)
                except LifecycleError as exc:
                    logger.warning("Re-fetching %s failed: %s", issue.ref, exc)
            result.updated.append(issue)

        if result.cancelled:
            logger.info("Stale pass cancelled, notifying about %d updated bug(s)", len(result.updated))

        notifications = aggregate_notifications(
            result.updated, self.config.notification_excluded_ids, self.format_message
        )
        for target, messages in notifications.items():
            if not target:
                body = "\n".join(messages)
                self.recorder.warn("MessageFailed", f"no recipient for:\n{body}")
                result.delivery_failures[target] = DeliveryError("no recipient")
                continue
            try:
                self.slack.message_user(target, format_notification(messages))
            except LifecycleError as exc:
                self.recorder.warn("MessageFailed", f"Message to {target!r} failed to send: {exc}")
                result.delivery_failures[target] = exc
                continue
            result.notified[target] = messages

        if notifications:
            links = "\n".join(self.format_message(i) for i in result.updated)
            self.recorder.info("StaleCommentsBugs", f"Following notifications sent:\n{links}\n")

        if result.errors:
            raise AggregateError(result.errors, result=result)
        return result

    def sync(self, cancel: threading.Event | None = None) -> None:
        self.run_pass(cancel)
