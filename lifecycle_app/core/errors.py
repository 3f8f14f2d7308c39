"""Exceptions raised by the lifecycle controllers and their Jira/Slack clients."""

from __future__ import annotations


class LifecycleError(RuntimeError):
    """Base exception for lifecycle bot errors."""


class ConfigError(LifecycleError):
    """Raised when the operator configuration cannot be loaded."""


class FetchError(LifecycleError):
    """Raised when searching issues or loading comments/history fails."""


class TimestampParseError(LifecycleError):
    """Raised when a Jira timestamp cannot be parsed."""

    def __init__(self, value: object) -> None:
        super().__init__(f"cannot parse timestamp {value!r}")
        self.value = value


class MutationApplyError(LifecycleError):
    """Raised when an issue update is rejected by Jira."""

    def __init__(self, ref: str, reason: object) -> None:
        super().__init__(f"failed to update {ref}: {reason}")
        self.ref = ref


class DeliveryError(LifecycleError):
    """Raised when a Slack message cannot be delivered."""


class AggregateError(LifecycleError):
    """Collects every per-issue failure of a single pass.

    Carries the pass result so callers still see what succeeded.
    """

    def __init__(self, errors: list[Exception], *, result: object | None = None) -> None:
        self.errors: list[Exception] = list(errors)
        self.result = result
        if len(self.errors) == 1:
            message = str(self.errors[0])
        else:
            message = "[" + ", ".join(str(e) for e in self.errors) + "]"
        super().__init__(message)
