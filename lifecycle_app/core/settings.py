"""Load the operator configuration from YAML (with fallbacks) and credentials from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from .config import (
    DEFAULT_PROJECT_KEY,
    JIRA_DEFAULT_SERVER,
    JIRA_REST_API_VERSION,
    USER_KEY_ACCOUNT_ID,
    USER_KEY_NAME,
    Component,
    OperatorConfig,
)
from .errors import ConfigError
from .transitions import parse_transitions

DEFAULT_CONFIG_NAME = "operator.yaml"


@dataclass(slots=True)
class Credentials:
    jira_server: str = JIRA_DEFAULT_SERVER
    jira_email: str | None = None
    jira_token: str | None = None
    jira_api_version: str = JIRA_REST_API_VERSION
    jira_enhanced_search: bool = False
    slack_token: str | None = None


def _components(raw: Any, section: str) -> dict[str, Component]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{section}' must be a mapping of name -> {{lead, developers}}")
    out: dict[str, Component] = {}
    for name, value in raw.items():
        value = value or {}
        lead = value.get("lead")
        if not lead:
            raise ConfigError(f"{section}.{name}: 'lead' is required")
        out[str(name)] = Component(lead=lead, developers=list(value.get("developers") or []))
    return out


def parse_operator_config(data: dict[str, Any]) -> OperatorConfig:
    cfg = OperatorConfig()
    jira = data.get("jira") or {}
    stale = data.get("stale") or {}
    slack = data.get("slack") or {}
    try:
        cfg.project_key = jira.get("project") or DEFAULT_PROJECT_KEY
        # Jira Cloud dropped user names; edits must reference accountId there
        cfg.user_key_field = USER_KEY_ACCOUNT_ID if jira.get("cloud") else USER_KEY_NAME
        cfg.components = _components(data.get("components"), "components")
        cfg.meta_components = _components(data.get("meta_components"), "meta_components")
        if data.get("fields"):
            cfg.field_ids.update({str(k): str(v) for k, v in data["fields"].items()})
        if data.get("priority_names"):
            cfg.priority_names.update({str(k).lower(): str(v) for k, v in data["priority_names"].items()})
        if stale.get("comment"):
            cfg.stale_comment = stale["comment"]
        if stale.get("after_days") is not None:
            cfg.stale_after = timedelta(days=float(stale["after_days"]))
        if stale.get("priority_transitions"):
            cfg.priority_transitions = parse_transitions(stale["priority_transitions"])
        if stale.get("triage_owner"):
            cfg.triage_owner = stale["triage_owner"]
        if stale.get("notification_excluded_ids") is not None:
            cfg.notification_excluded_ids = frozenset(int(i) for i in stale["notification_excluded_ids"])
        if stale.get("open_statuses"):
            cfg.open_statuses = [str(s) for s in stale["open_statuses"]]
        cfg.extra_jql = stale.get("extra_jql") or None
        cfg.slack_channels = {str(k): str(v) for k, v in (slack.get("channels") or {}).items()}
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"invalid operator configuration: {exc}") from exc
    return cfg


def load_operator_config(path: str | Path | None = None) -> OperatorConfig:
    """Read the YAML config at ``path``; a missing file yields the defaults."""
    yaml_path = Path(path or DEFAULT_CONFIG_NAME)
    if not yaml_path.exists():
        return OperatorConfig()
    try:
        data = yaml.safe_load(yaml_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {yaml_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{yaml_path}: top level must be a mapping")
    return parse_operator_config(data)


def load_credentials(path: str | Path | None = None, env: dict[str, str] | None = None) -> Credentials:
    """Jira/Slack credentials from the environment, with the server taken from YAML when unset."""
    env = os.environ if env is None else env
    creds = Credentials()
    yaml_path = Path(path or DEFAULT_CONFIG_NAME)
    jira: dict[str, Any] = {}
    if yaml_path.exists():
        try:
            jira = (yaml.safe_load(yaml_path.read_text()) or {}).get("jira") or {}
        except (yaml.YAMLError, AttributeError) as exc:
            raise ConfigError(f"cannot parse {yaml_path}: {exc}") from exc
    creds.jira_server = env.get("JIRA_SERVER") or jira.get("server") or JIRA_DEFAULT_SERVER
    creds.jira_email = env.get("JIRA_EMAIL") or env.get("JIRA_USER") or None
    creds.jira_token = env.get("JIRA_API_TOKEN") or env.get("JIRA_TOKEN") or None
    creds.jira_api_version = str(jira.get("api_version") or JIRA_REST_API_VERSION)
    creds.jira_enhanced_search = bool(jira.get("enhanced_search", False))
    creds.slack_token = env.get("SLACK_BOT_TOKEN") or env.get("SLACK_TOKEN") or None
    return creds
