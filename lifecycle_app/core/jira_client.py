"""Jira API client wrapper (REST search pagination, cached issue detail, edits)."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any

from jira import JIRA, JIRAError

from .config import JIRA_REST_API_VERSION
from .errors import FetchError, MutationApplyError


class JiraAPI:
    def __init__(
        self,
        server: str,
        email: str | None,
        token: str,
        *,
        api_version: str = JIRA_REST_API_VERSION,
        enhanced_search: bool = False,
    ):
        self.server = server.rstrip("/")
        self.api_version = api_version
        self.enhanced_search = enhanced_search
        options = {"server": self.server, "rest_api_version": api_version}
        if email:
            self.client = JIRA(basic_auth=(email, token), options=options)
        else:
            # Jira Data Center personal access token
            self.client = JIRA(token_auth=token, options=options)
        # Simple in-memory cache: {(hash): (timestamp, data)}
        self._cache: dict[str, tuple[float, list]] = {}
        self._cache_ttl = 300.0  # seconds
        # Issue detail cache: {issue key: (since hint, raw issue)}
        self._detail_cache: dict[str, tuple[str, dict[str, Any]]] = {}

    def clear_cache(self) -> None:
        """Reset the in-memory search and detail caches."""
        cache = getattr(self, "_cache", None)
        if isinstance(cache, dict):
            cache.clear()
        detail_cache = getattr(self, "_detail_cache", None)
        if isinstance(detail_cache, dict):
            detail_cache.clear()

    def _session(self):
        session = getattr(self.client, "_session", None)
        if session is None:
            raise FetchError("JIRA session unavailable")
        return session

    def _cache_key(self, jql: str, fields, expand, page_size: int) -> str:
        payload = {
            "jql": jql,
            "fields": fields,
            "expand": expand,
            "page_size": page_size,
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()

    def search(
        self,
        jql: str,
        fields: list[str] | None = None,
        expand: list[str] | None = None,
        page_size: int = 500,
    ) -> list[dict[str, Any]]:
        session = self._session()
        key = self._cache_key(jql, fields, expand, page_size)
        now = time.time()
        cached = self._cache.get(key)
        if cached and (now - cached[0]) < self._cache_ttl:
            return cached[1]
        params: dict[str, Any] = {"jql": jql, "maxResults": page_size}
        if fields:
            params["fields"] = ",".join(fields)
        if expand:
            params["expand"] = ",".join(expand)
        if self.enhanced_search:
            out = self._search_token_paged(session, params)
        else:
            out = self._search_offset_paged(session, params)
        self._cache[key] = (now, out)
        return out

    def _search_token_paged(self, session, params: dict[str, Any]) -> list[dict[str, Any]]:
        url = f"{self.server}/rest/api/{self.api_version}/search/jql"
        out: list[dict[str, Any]] = []
        token = None
        while True:
            qp = dict(params)
            if token:
                qp["nextPageToken"] = token
            data = self._get_json(session, url, qp)
            out.extend(data.get("issues", []))
            token = data.get("nextPageToken")
            if not token or data.get("isLast") is True:
                break
        return out

    def _search_offset_paged(self, session, params: dict[str, Any]) -> list[dict[str, Any]]:
        url = f"{self.server}/rest/api/{self.api_version}/search"
        out: list[dict[str, Any]] = []
        start_at = 0
        while True:
            qp = dict(params)
            qp["startAt"] = start_at
            data = self._get_json(session, url, qp)
            issues = data.get("issues", []) or []
            out.extend(issues)
            start_at += len(issues)
            total = data.get("total")
            if not issues or not isinstance(total, int) or start_at >= total:
                break
        return out

    @staticmethod
    def _get_json(session, url: str, params: dict[str, Any]) -> dict[str, Any]:
        resp = session.get(url, params=params)
        if resp.status_code >= 400:
            raise FetchError(f"GET {url} failed {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    def fetch_issue_raw(self, issue_key: str) -> dict[str, Any]:
        try:
            issue = self.client.issue(issue_key, expand="changelog")
        except JIRAError as exc:
            raise FetchError(f"Failed to fetch issue {issue_key}: {exc}") from exc
        if hasattr(issue, "raw"):
            raw = issue.raw
        elif isinstance(issue, dict):
            raw = issue
        else:
            raise FetchError(f"Unexpected issue payload type for {issue_key}: {type(issue)!r}")
        return self._complete_detail(issue_key, raw)

    def _complete_detail(self, issue_key: str, raw: dict[str, Any]) -> dict[str, Any]:
        """Load the comments and changelog entries the issue response left out.

        Jira caps the pages embedded in an issue (notably on Cloud); truncated
        lists are re-read in full from the comment and changelog endpoints.
        """
        base = f"{self.server}/rest/api/{self.api_version}/issue/{issue_key}"
        comment = (raw.get("fields") or {}).get("comment")
        if isinstance(comment, dict) and _truncated(comment, "comments"):
            comment["comments"] = self._page_all(f"{base}/comment", "comments")
        changelog = raw.get("changelog")
        if isinstance(changelog, dict) and _truncated(changelog, "histories"):
            changelog["histories"] = self._page_all(f"{base}/changelog", "values")
        return raw

    def _page_all(self, url: str, items_key: str) -> list[dict[str, Any]]:
        """Every entry of an offset-paged list endpoint, read from the start."""
        session = self._session()
        out: list[dict[str, Any]] = []
        while True:
            data = self._get_json(session, url, {"startAt": len(out), "maxResults": 100})
            items = data.get(items_key, []) or []
            out.extend(items)
            total = data.get("total")
            if not items or data.get("isLast") is True or (isinstance(total, int) and len(out) >= total):
                break
        return out

    def fetch_issue_detail(self, issue_key: str, since: str | None) -> dict[str, Any]:
        """Issue detail with full comments and changelog, cached per ``since`` hint.

        ``since`` is the issue's last-change time; a new value invalidates the
        entry. Without a hint the issue is always re-fetched.
        """
        if since:
            cached = self._detail_cache.get(issue_key)
            if cached and cached[0] == since:
                return cached[1]
        raw = self.fetch_issue_raw(issue_key)
        if since:
            self._detail_cache[issue_key] = (since, raw)
        return raw

    def update_issue_raw(self, issue_key: str, payload: dict[str, Any]) -> None:
        if not payload:
            return
        session = getattr(self.client, "_session", None)
        if session is None:
            raise MutationApplyError(issue_key, "JIRA session unavailable")
        url = f"{self.server}/rest/api/{self.api_version}/issue/{issue_key}"
        resp = session.put(url, json=payload)
        if resp.status_code >= 400:
            raise MutationApplyError(issue_key, f"{resp.status_code}: {resp.text[:200]}")
        self._detail_cache.pop(issue_key, None)

    def transition_issue(self, issue_key: str, status: str) -> None:
        """Move the issue to ``status`` using the first transition that leads there."""
        try:
            transitions = self.client.transitions(issue_key)
            for t in transitions:
                target = (t.get("to") or {}).get("name") or t.get("name")
                if target and target.lower() == status.lower():
                    self.client.transition_issue(issue_key, t["id"])
                    self._detail_cache.pop(issue_key, None)
                    return
        except JIRAError as exc:
            raise MutationApplyError(issue_key, exc) from exc
        raise MutationApplyError(issue_key, f"no transition to status {status!r}")


def _truncated(page: dict[str, Any], items_key: str) -> bool:
    total = page.get("total")
    return isinstance(total, int) and total > len(page.get(items_key) or [])
