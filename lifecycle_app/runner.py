"""Controller runner: resyncs each controller on its own interval until stopped."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from lifecycle_app.core.config import METACOMPONENT_RESYNC_SECONDS, STALE_RESYNC_SECONDS, OperatorConfig
from lifecycle_app.core.errors import AggregateError
from lifecycle_app.core.events import LoggingEventRecorder
from lifecycle_app.core.jira_client import JiraAPI
from lifecycle_app.core.service import IssueService
from lifecycle_app.core.settings import Credentials
from lifecycle_app.core.slack_client import SlackClient
from lifecycle_app.controllers.metacomponent import MetaComponentController
from lifecycle_app.controllers.stale import StaleController

logger = logging.getLogger(__name__)


class Controller(Protocol):
    name: str

    def sync(self, cancel: threading.Event | None = None) -> None: ...


@dataclass(slots=True)
class Scheduled:
    controller: Controller
    interval: float
    next_run: float = 0.0


class Runner:
    def __init__(
        self,
        scheduled: Sequence[Scheduled],
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.scheduled = list(scheduled)
        self.clock = clock
        self.stop_event = threading.Event()

    def run_once(self) -> bool:
        """Run every controller once; True when all passes succeeded."""
        ok = True
        for entry in self.scheduled:
            if self.stop_event.is_set():
                break
            ok = self._sync(entry.controller) and ok
        return ok

    def run_forever(self) -> None:
        while not self.stop_event.is_set():
            now = self.clock()
            for entry in self.scheduled:
                if self.stop_event.is_set():
                    break
                if now >= entry.next_run:
                    self._sync(entry.controller)
                    entry.next_run = self.clock() + entry.interval
            due = min((e.next_run for e in self.scheduled), default=now + 60.0)
            self.stop_event.wait(max(0.0, due - self.clock()))

    def stop(self) -> None:
        self.stop_event.set()

    def _sync(self, controller: Controller) -> bool:
        started = time.monotonic()
        try:
            controller.sync(self.stop_event)
        except AggregateError as exc:
            logger.error("%s finished with %d error(s): %s", controller.name, len(exc.errors), exc)
            return False
        except Exception:
            # The next scheduled pass always runs.
            logger.exception("%s failed", controller.name)
            return False
        logger.info("%s synced in %.1fs", controller.name, time.monotonic() - started)
        return True


def build_controllers(
    config: OperatorConfig,
    credentials: Credentials,
    names: Sequence[str] = ("stale", "metacomponent"),
) -> list[Scheduled]:
    api = JiraAPI(
        credentials.jira_server,
        credentials.jira_email,
        credentials.jira_token or "",
        api_version=credentials.jira_api_version,
        enhanced_search=credentials.jira_enhanced_search,
    )
    service = IssueService(api, config)
    slack = SlackClient(credentials.slack_token or "", config.slack_channels)
    scheduled: list[Scheduled] = []
    if "stale" in names:
        controller = StaleController(service, slack, config, LoggingEventRecorder(StaleController.name))
        scheduled.append(Scheduled(controller, STALE_RESYNC_SECONDS))
    if "metacomponent" in names:
        controller = MetaComponentController(
            service, slack, config, LoggingEventRecorder(MetaComponentController.name)
        )
        scheduled.append(Scheduled(controller, METACOMPONENT_RESYNC_SECONDS))
    return scheduled
