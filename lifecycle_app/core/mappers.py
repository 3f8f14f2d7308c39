"""Mapping raw Jira issue JSON into models, and updates back into Jira edit payloads."""

from __future__ import annotations

from typing import Any

from .config import (
    BLOCKER_STATUS_BY_VALUE,
    BLOCKER_VALUE_BY_STATUS,
    FIELD_IDS,
    JIRA_REST_API_VERSION,
    USER_KEY_NAME,
    jira_priority_name,
    normalize_priority_name,
)
from .models import CommentModel, FieldChange, FlagModel, HistoryItemModel, IssueModel, IssueUpdate


def user_account(value: Any) -> str:
    """Jira account key of a user object: ``accountId`` on Cloud, ``name`` on Data Center."""
    if not isinstance(value, dict):
        return ""
    return value.get("accountId") or value.get("name") or ""


def user_email(value: Any) -> str:
    """E-mail of a user object; empty when Jira hides it."""
    if not isinstance(value, dict):
        return ""
    return value.get("emailAddress") or ""


def user_ref(account: str, key_field: str = USER_KEY_NAME) -> dict[str, str]:
    """User reference accepted by Jira edits, e.g. ``{"name": "bob"}``."""
    return {key_field: account}


def adf_document(text: str) -> dict[str, Any]:
    """Wrap plain text into an Atlassian document, one paragraph per non-empty line."""
    paragraphs = [
        {"type": "paragraph", "content": [{"type": "text", "text": line}]}
        for line in text.split("\n")
        if line.strip()
    ]
    return {"type": "doc", "version": 1, "content": paragraphs}


def _text(value: Any) -> str:
    """Flatten plain strings and Atlassian document format bodies into text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    parts: list[str] = []

    def walk(node: Any):
        if isinstance(node, dict):
            if node.get("type") == "text" and isinstance(node.get("text"), str):
                parts.append(node["text"])
            for child in node.get("content") or []:
                walk(child)
            if node.get("type") == "paragraph":
                parts.append("\n")
        elif isinstance(node, list):
            for item in node:
                walk(item)

    walk(value)
    return "".join(parts).strip("\n")


def _option_value(value: Any) -> str | None:
    if isinstance(value, dict):
        return value.get("value") or value.get("name")
    if isinstance(value, str):
        return value
    return None


def _map_flags(fields: dict[str, Any], field_ids: dict[str, str]) -> list[FlagModel]:
    flags: list[FlagModel] = []
    needinfo = fields.get(field_ids["needinfo"])
    if isinstance(needinfo, dict):
        needinfo = [needinfo]
    for user in needinfo or []:
        requestee = user_account(user)
        if requestee:
            flags.append(FlagModel(name="needinfo", status="?", requestee=requestee))
    blocker = _option_value(fields.get(field_ids["blocker"]))
    if blocker:
        status = BLOCKER_STATUS_BY_VALUE.get(blocker.strip().lower())
        if status:
            flags.append(FlagModel(name="blocker", status=status))
    return flags


def map_issue(raw: dict[str, Any], field_ids: dict[str, str] | None = None) -> IssueModel:
    field_ids = field_ids or FIELD_IDS
    fields = raw.get("fields", {}) or {}
    priority = (fields.get("priority") or {}).get("name") if fields.get("priority") else None
    return IssueModel(
        id=int(raw.get("id") or 0),
        key=raw.get("key"),
        summary=fields.get("summary"),
        priority=normalize_priority_name(priority),
        severity=_option_value(fields.get(field_ids["severity"])),
        status=(fields.get("status") or {}).get("name") if fields.get("status") else None,
        created=fields.get("created"),
        updated=fields.get("updated"),
        assignee=user_email(fields.get("assignee")),
        assignee_account=user_account(fields.get("assignee")),
        reporter=user_email(fields.get("reporter")),
        reporter_account=user_account(fields.get("reporter")),
        whiteboard=fields.get(field_ids["whiteboard"]) or "",
        devel_whiteboard=fields.get(field_ids["devel_whiteboard"]) or "",
        components=[c.get("name") for c in fields.get("components") or [] if c.get("name")],
        labels=list(fields.get("labels", []) or []),
        flags=_map_flags(fields, field_ids),
    )


def map_comments(raw: dict[str, Any]) -> list[CommentModel]:
    """Comments of a raw issue detail, oldest first, numbered from 1."""
    fields = raw.get("fields", {}) or {}
    comments_raw = (fields.get("comment") or {}).get("comments", []) or []
    return [
        CommentModel(
            count=idx,
            created=c.get("created"),
            body=_text(c.get("body")),
            author=user_account(c.get("author")) or None,
        )
        for idx, c in enumerate(comments_raw, start=1)
    ]


def map_histories(raw: dict[str, Any], field_ids: dict[str, str] | None = None) -> list[HistoryItemModel]:
    """Changelog of a raw issue detail; the whiteboard field is reported as ``whiteboard``."""
    field_ids = field_ids or FIELD_IDS
    whiteboard_id = field_ids["whiteboard"]
    histories_raw = (raw.get("changelog") or {}).get("histories", []) or []
    histories: list[HistoryItemModel] = []
    for h in histories_raw:
        items = []
        for it in h.get("items") or []:
            name = "whiteboard" if it.get("fieldId") == whiteboard_id else (it.get("field") or "")
            items.append(
                FieldChange(
                    field=name,
                    removed=it.get("fromString") or "",
                    added=it.get("toString") or "",
                )
            )
        histories.append(
            HistoryItemModel(
                created=h.get("created"),
                author=user_account(h.get("author")) or None,
                items=items,
            )
        )
    return histories


def update_to_payload(
    update: IssueUpdate,
    field_ids: dict[str, str] | None = None,
    priority_names: dict[str, str] | None = None,
    *,
    user_key_field: str = USER_KEY_NAME,
    api_version: str = JIRA_REST_API_VERSION,
) -> dict[str, Any]:
    """Translate an IssueUpdate into a Jira edit body (``fields`` + ``update`` ops).

    Users are referenced by account key under ``user_key_field``. REST API v3
    takes the comment as an Atlassian document instead of plain text. The
    status is not part of the edit body; Jira changes it via a transition.
    """
    field_ids = field_ids or FIELD_IDS
    fields: dict[str, Any] = {}
    ops: dict[str, list[dict[str, Any]]] = {}
    if update.priority is not None:
        fields["priority"] = {"name": jira_priority_name(update.priority, priority_names)}
    if update.whiteboard is not None:
        fields[field_ids["whiteboard"]] = update.whiteboard
    if update.assignee is not None:
        fields["assignee"] = user_ref(update.assignee, user_key_field)
    for flag in update.flags:
        if flag.name == "needinfo":
            if not flag.requestee:
                continue
            op = "add" if flag.status == "?" else "remove"
            ops.setdefault(field_ids["needinfo"], []).append({op: user_ref(flag.requestee, user_key_field)})
        elif flag.name == "blocker":
            fields[field_ids["blocker"]] = {"value": BLOCKER_VALUE_BY_STATUS[flag.status]}
        else:
            raise ValueError(f"unsupported flag {flag.name!r}")
    if update.comment:
        body = adf_document(update.comment) if str(api_version) == "3" else update.comment
        ops["comment"] = [{"add": {"body": body}}]
    payload: dict[str, Any] = {}
    if fields:
        payload["fields"] = fields
    if ops:
        payload["update"] = ops
    return payload


def issue_url(server: str, issue: IssueModel) -> str:
    return f"{server.rstrip('/')}/browse/{issue.ref}"


def format_issue_message(issue: IssueModel, server: str) -> str:
    """One-line Slack summary: link, severity/priority and title."""
    severity = (issue.severity or "unspecified").lower()
    return f"<{issue_url(server, issue)}|{issue.ref}> [*{severity}/{issue.priority}*] {issue.summary or ''}".rstrip()
