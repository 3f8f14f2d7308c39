"""IssueService: typed tracker operations on top of the raw Jira client."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .config import JIRA_FETCH_BASE_FIELDS, OperatorConfig
from .errors import FetchError, MutationApplyError
from .jira_client import JiraAPI
from .mappers import map_comments, map_histories, map_issue, update_to_payload
from .models import CommentModel, HistoryItemModel, IssueModel, IssueUpdate, Timestamp

logger = logging.getLogger(__name__)


def _since_hint(since: Timestamp) -> str | None:
    if since is None or since == "":
        return None
    return since if isinstance(since, str) else since.isoformat()


class IssueService:
    def __init__(self, api: JiraAPI, config: OperatorConfig | None = None):
        self.api = api
        self.config = config or OperatorConfig()

    @property
    def server(self) -> str:
        return self.api.server

    def fetch_fields(self) -> list[str]:
        ids = self.config.field_ids
        custom = [ids["whiteboard"], ids["devel_whiteboard"], ids["severity"], ids["needinfo"], ids["blocker"]]
        return list(JIRA_FETCH_BASE_FIELDS) + custom

    # ------------------ Fetch Methods ------------------
    def search(self, jql: str, fields: Sequence[str] | None = None) -> list[IssueModel]:
        try:
            raw = self.api.search(jql, fields=list(fields or self.fetch_fields()))
        except FetchError:
            raise
        except Exception as exc:
            raise FetchError(f"search failed: {exc}") from exc
        return [map_issue(r, self.config.field_ids) for r in raw]

    def get_issue(self, ref: str | int) -> IssueModel:
        try:
            raw = self.api.fetch_issue_raw(str(ref))
        except FetchError:
            raise
        except Exception as exc:
            raise FetchError(f"fetching {ref} failed: {exc}") from exc
        return map_issue(raw, self.config.field_ids)

    def _issue_detail(self, ref: str, since: Timestamp) -> dict:
        try:
            return self.api.fetch_issue_detail(ref, _since_hint(since))
        except FetchError:
            raise
        except Exception as exc:
            raise FetchError(f"fetching detail of {ref} failed: {exc}") from exc

    def get_comments(self, ref: str, since: Timestamp = None) -> list[CommentModel]:
        """All comments of ``ref``, oldest first. ``since`` is only a cache hint."""
        return map_comments(self._issue_detail(ref, since))

    def get_history(self, ref: str, since: Timestamp = None) -> list[HistoryItemModel]:
        """Full changelog of ``ref``. ``since`` is only a cache hint."""
        return map_histories(self._issue_detail(ref, since), self.config.field_ids)

    # ------------------ Update Methods ------------------
    def update_issue(self, ref: str | int, update: IssueUpdate) -> None:
        ref = str(ref)
        payload = update_to_payload(
            update,
            self.config.field_ids,
            self.config.priority_names,
            user_key_field=self.config.user_key_field,
            api_version=self.api.api_version,
        )
        logger.debug("Updating %s with %s", ref, payload)
        try:
            self.api.update_issue_raw(ref, payload)
            if update.status:
                self.api.transition_issue(ref, update.status)
        except MutationApplyError:
            raise
        except Exception as exc:
            raise MutationApplyError(ref, exc) from exc
