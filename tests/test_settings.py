from datetime import timedelta

import pytest

from lifecycle_app.core.config import DEFAULT_STALE_COMMENT, JIRA_DEFAULT_SERVER, OperatorConfig
from lifecycle_app.core.errors import ConfigError
from lifecycle_app.core.models import Transition
from lifecycle_app.core.settings import load_credentials, load_operator_config, parse_operator_config

CONFIG_YAML = """
jira:
  server: https://jira.internal.example.com
  project: MYBUGS
  api_version: 3
  enhanced_search: true
fields:
  whiteboard: customfield_1
priority_names:
  Low: Trivial
components:
  etcd:
    lead: lead@example.com
    developers: [dev1@example.com]
meta_components:
  Unknown:
    lead: triage@example.com
stale:
  after_days: 14
  triage_owner: someone
  notification_excluded_ids: [7, 8]
  priority_transitions:
    - {from: High, to: Low}
  extra_jql: 'labels != "keep"'
slack:
  channels:
    admin: C1
    status: C2
"""


def test_missing_file_yields_defaults(tmp_path):
    cfg = load_operator_config(tmp_path / "absent.yaml")
    assert cfg == OperatorConfig()
    assert cfg.stale_comment == DEFAULT_STALE_COMMENT
    assert cfg.stale_after == timedelta(days=30)


def test_full_config(tmp_path):
    path = tmp_path / "operator.yaml"
    path.write_text(CONFIG_YAML)
    cfg = load_operator_config(path)
    assert cfg.project_key == "MYBUGS"
    assert cfg.field_ids["whiteboard"] == "customfield_1"
    assert cfg.field_ids["severity"] == "customfield_12316142"
    assert cfg.priority_names["low"] == "Trivial"
    assert cfg.priority_names["high"] == "Major"
    assert cfg.components["etcd"].developers == ["dev1@example.com"]
    assert cfg.meta_components["Unknown"].lead == "triage@example.com"
    assert cfg.stale_after == timedelta(days=14)
    assert cfg.triage_owner == "someone"
    assert cfg.notification_excluded_ids == frozenset({7, 8})
    assert cfg.priority_transitions == [Transition("high", "low")]
    assert cfg.extra_jql == 'labels != "keep"'
    assert cfg.slack_channels == {"admin": "C1", "status": "C2"}


def test_invalid_yaml_and_shapes(tmp_path):
    path = tmp_path / "operator.yaml"
    path.write_text("jira: [unclosed")
    with pytest.raises(ConfigError):
        load_operator_config(path)
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_operator_config(path)
    with pytest.raises(ConfigError):
        parse_operator_config({"components": {"etcd": {"developers": []}}})
    with pytest.raises(ConfigError):
        parse_operator_config({"stale": {"priority_transitions": [{"from": "high"}]}})


def test_credentials_from_environment(tmp_path):
    path = tmp_path / "operator.yaml"
    path.write_text(CONFIG_YAML)
    creds = load_credentials(path, env={"JIRA_USER": "bot@example.com", "JIRA_TOKEN": "t", "SLACK_BOT_TOKEN": "x"})
    assert creds.jira_server == "https://jira.internal.example.com"
    assert creds.jira_email == "bot@example.com"
    assert creds.jira_token == "t"
    assert creds.jira_api_version == "3"
    assert creds.jira_enhanced_search is True
    assert creds.slack_token == "x"

    creds = load_credentials(tmp_path / "absent.yaml", env={"JIRA_SERVER": "https://other"})
    assert creds.jira_server == "https://other"
    assert creds.jira_token is None

    assert load_credentials(tmp_path / "absent.yaml", env={}).jira_server == JIRA_DEFAULT_SERVER


def test_cloud_switches_user_references_to_account_id():
    assert parse_operator_config({}).user_key_field == "name"
    assert parse_operator_config({"jira": {"cloud": True}}).user_key_field == "accountId"
