"""Event recorder used by controllers for warnings and audit records."""

from __future__ import annotations

import logging


class LoggingEventRecorder:
    """Writes controller events to the log, tagged with the controller name."""

    def __init__(self, source: str, logger: logging.Logger | None = None):
        self.source = source
        self.logger = logger or logging.getLogger(f"lifecycle_app.events.{source}")

    def warn(self, reason: str, detail: str) -> None:
        self.logger.warning("%s %s: %s", self.source, reason, detail)

    def info(self, kind: str, detail: str) -> None:
        self.logger.info("%s %s: %s", self.source, kind, detail)
