"""Meta-component controller: hands NEW issues over to meta-component leads.

A NEW issue whose development whiteboard names a meta component (for example
``SingleNode``) and that is still assigned to its component's default lead is
reassigned to the meta-component lead and moved to ASSIGNED. Issues already
taken by someone else are left alone. Leads are Jira account keys.
"""

from __future__ import annotations

import logging
import threading

from lifecycle_app.core.config import OperatorConfig
from lifecycle_app.core.errors import LifecycleError
from lifecycle_app.core.events import LoggingEventRecorder
from lifecycle_app.core.jql import field_ref, in_list, quote
from lifecycle_app.core.mappers import issue_url
from lifecycle_app.core.models import IssueModel, IssueUpdate
from lifecycle_app.core.service import IssueService
from lifecycle_app.core.slack_client import SlackClient

logger = logging.getLogger(__name__)


def metacomponent_jql(config: OperatorConfig) -> str:
    devel_whiteboard = field_ref(config.field_ids["devel_whiteboard"])
    clauses = [f"project = {quote(config.project_key)}", f"status = {quote('NEW')}"]
    if config.components:
        clauses.append(f"component in {in_list(config.component_names())}")
    names = " OR ".join(f"{devel_whiteboard} ~ {quote(name)}" for name in config.meta_components)
    clauses.append(f"({names})")
    return " AND ".join(clauses)


def plan_reassignments(issues: list[IssueModel], config: OperatorConfig) -> dict[str, IssueUpdate]:
    """Updates for issues that should move to a meta-component lead, keyed by issue ref."""
    updates: dict[str, IssueUpdate] = {}
    for issue in issues:
        for name, meta in config.meta_components.items():
            if name not in issue.devel_whiteboard or issue.assignee_account == meta.lead:
                continue
            if not issue.components:
                continue
            component = config.components.get(issue.components[0])
            if component is None:
                continue
            # Only take issues still sitting with the default component lead.
            if issue.assignee_account != component.lead:
                continue
            updates[issue.ref] = IssueUpdate(status="ASSIGNED", assignee=meta.lead)
            break
    return updates


class MetaComponentController:
    name = "MetaComponentController"

    def __init__(
        self,
        service: IssueService,
        slack: SlackClient,
        config: OperatorConfig,
        recorder: LoggingEventRecorder | None = None,
    ):
        self.service = service
        self.slack = slack
        self.config = config
        self.recorder = recorder or LoggingEventRecorder(self.name)

    def run_pass(self, cancel: threading.Event | None = None) -> list[str]:
        """Reassign matching issues; returns the refs that were reassigned."""
        if not self.config.meta_components:
            return []

        issues = self.service.search(metacomponent_jql(self.config))
        updates = plan_reassignments(issues, self.config)

        reassigned: list[str] = []
        messages: list[str] = []
        for ref, update in updates.items():
            if cancel is not None and cancel.is_set():
                break
            try:
                self.service.update_issue(ref, update)
            except LifecycleError as exc:
                self.recorder.warn("BugUpdateFailed", f"Failed to reassign bug {ref}: {exc}")
                continue
            url = issue_url(self.service.server, IssueModel(id=0, key=ref))
            messages.append(f"> Bug {url} reassigned to {update.assignee}")
            reassigned.append(ref)

        if not reassigned:
            return reassigned

        logger.info("%d bugs reassigned to meta-component leads", len(reassigned))
        self.slack.message_admin_channel(f"{len(reassigned)} bugs reassigned:\n\n" + "\n".join(messages))
        return reassigned

    def sync(self, cancel: threading.Event | None = None) -> None:
        self.run_pass(cancel)
