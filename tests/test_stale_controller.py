import threading

import pytest

from fakes import NOW, SERVER, DummyAPI, DummySlack, RecordingRecorder, days_ago, raw_issue
from lifecycle_app.core.config import FIELD_IDS, OperatorConfig
from lifecycle_app.core.errors import AggregateError, FetchError, MutationApplyError
from lifecycle_app.core.models import FlagChange, FlagModel, IssueModel
from lifecycle_app.core.service import IssueService
from lifecycle_app.controllers.stale import (
    StaleController,
    aggregate_notifications,
    build_stale_update,
    format_notification,
    notification_recipients,
    stale_candidates_jql,
)

WHITEBOARD = FIELD_IDS["whiteboard"]
NEEDINFO = FIELD_IDS["needinfo"]
BLOCKER = FIELD_IDS["blocker"]


def _controller(issues, *, slack=None, config=None):
    api = DummyAPI(issues)
    config = config or OperatorConfig(project_key="OCPBUGS")
    recorder = RecordingRecorder()
    controller = StaleController(
        IssueService(api, config), slack or DummySlack(), config, recorder, clock=lambda: NOW
    )
    return controller, api, recorder


def _issue(**kwargs):
    defaults = {
        "id": 7,
        "key": "OCPBUGS-7",
        "assignee": "alice@example.com",
        "reporter": "bob@example.com",
        "assignee_account": "alice",
        "reporter_account": "bob",
    }
    defaults.update(kwargs)
    return IssueModel(**defaults)


# ------------------ Mutation builder ------------------


def test_build_stale_update_tags_and_requests_info():
    issue = _issue(whiteboard="LifecycleReset triaged", priority="high")
    update = build_stale_update(issue, "medium", "stale!", "triager")
    assert update.whiteboard == "triaged LifecycleStale"
    assert update.priority == "medium"
    assert update.comment == "stale!"
    assert update.flags == [FlagChange(name="needinfo", status="?", requestee="bob")]


def test_build_stale_update_never_keeps_reset_and_stale_together():
    for whiteboard in ("", "LifecycleReset", "LifecycleStale LifecycleReset", "a  LifecycleReset  b"):
        update = build_stale_update(_issue(whiteboard=whiteboard), "low", "c", "t")
        tokens = update.whiteboard.split(" ")
        assert "LifecycleStale" in tokens
        assert "LifecycleReset" not in tokens
        assert "" not in tokens


def test_blocker_rejected_only_when_degraded_to_low_with_open_nomination():
    proposed = _issue(flags=[FlagModel(name="blocker", status="?")])
    update = build_stale_update(proposed, "low", "c", "triager")
    assert FlagChange(name="blocker", status="-", requestee="triager") in update.flags

    assert len(build_stale_update(proposed, "medium", "c", "triager").flags) == 1
    for status in ("+", "-"):
        issue = _issue(flags=[FlagModel(name="blocker", status=status)])
        assert len(build_stale_update(issue, "low", "c", "triager").flags) == 1
    other_flag = _issue(flags=[FlagModel(name="needinfo", status="?", requestee="x")])
    assert len(build_stale_update(other_flag, "low", "c", "triager").flags) == 1


# ------------------ Notification aggregation ------------------


def test_recipients_assignee_and_reporter():
    assert notification_recipients(_issue(), frozenset()) == ["alice@example.com", "bob@example.com"]
    same = _issue(reporter="alice@example.com")
    assert notification_recipients(same, frozenset()) == ["alice@example.com"]


def test_recipients_excluded_issue_skips_reporter():
    issue = _issue(id=1801755)
    assert notification_recipients(issue, frozenset({1801755})) == ["alice@example.com"]


def test_aggregate_notifications_groups_by_recipient():
    issues = [
        _issue(id=1, key="OCPBUGS-1"),
        _issue(id=2, key="OCPBUGS-2", assignee="carol@example.com"),
    ]
    out = aggregate_notifications(issues, {1801755}, lambda i: i.ref)
    assert out == {
        "alice@example.com": ["OCPBUGS-1"],
        "bob@example.com": ["OCPBUGS-1", "OCPBUGS-2"],
        "carol@example.com": ["OCPBUGS-2"],
    }
    assert "OCPBUGS-1\nOCPBUGS-2" in format_notification(out["bob@example.com"])


# ------------------ Candidate query ------------------


def test_candidates_jql_excludes_tagged_frozen_and_security():
    config = OperatorConfig(project_key="OCPBUGS", extra_jql="labels != Customer")
    jql = stale_candidates_jql(config)
    assert 'project = "OCPBUGS"' in jql
    assert 'status in ("NEW", "ASSIGNED", "POST", "ON_DEV")' in jql
    assert '!~ "LifecycleStale"' in jql
    assert '!~ "LifecycleFrozen"' in jql
    assert 'summary !~ "CVE"' in jql
    assert '"Security", "Blocker"' in jql
    assert "(labels != Customer)" in jql
    assert "cf[12316843]" in jql


# ------------------ End-to-end passes ------------------


def test_old_issue_without_activity_is_marked_stale():
    controller, api, recorder = _controller([raw_issue(1, priority="Major")])
    slack = controller.slack

    result = controller.run_pass()

    assert [i.ref for i in result.stale] == ["OCPBUGS-1"]
    ((key, payload),) = api.updates
    assert key == "OCPBUGS-1"
    assert payload["fields"]["priority"] == {"name": "Normal"}
    assert payload["fields"][WHITEBOARD] == "LifecycleStale"
    assert BLOCKER not in payload["fields"]
    assert payload["update"][NEEDINFO] == [{"add": {"name": "bob"}}]
    assert payload["update"]["comment"] == [{"add": {"body": controller.config.stale_comment}}]
    assert set(slack.direct) == {"alice@example.com", "bob@example.com"}
    assert f"<{SERVER}/browse/OCPBUGS-1|OCPBUGS-1>" in slack.direct["alice@example.com"][0]
    assert recorder.infos and recorder.infos[0][0] == "StaleCommentsBugs"


def test_edits_use_account_key_and_slack_uses_email():
    raw = raw_issue(1)
    raw["fields"]["reporter"] = {"name": "bwayne", "emailAddress": "bruce@example.com"}
    controller, api, _ = _controller([raw])

    controller.run_pass()

    ((_, payload),) = api.updates
    assert payload["update"][NEEDINFO] == [{"add": {"name": "bwayne"}}]
    assert "bruce@example.com" in controller.slack.direct


def test_cloud_edits_reference_account_id():
    raw = raw_issue(1)
    raw["fields"]["reporter"] = {"accountId": "5b10ac8d82e05b22cc7d4ef5", "emailAddress": "bob@example.com"}
    config = OperatorConfig(project_key="OCPBUGS", user_key_field="accountId")
    controller, api, _ = _controller([raw], config=config)

    controller.run_pass()

    ((_, payload),) = api.updates
    assert payload["update"][NEEDINFO] == [{"add": {"accountId": "5b10ac8d82e05b22cc7d4ef5"}}]
    assert "bob@example.com" in controller.slack.direct


def test_own_stale_comment_does_not_reset_the_clock():
    config = OperatorConfig(project_key="OCPBUGS")
    comment = f"Hello.\n\n{config.stale_comment}"
    controller, api, _ = _controller([raw_issue(1, comments=[(days_ago(5), comment)])], config=config)

    result = controller.run_pass()

    assert [i.ref for i in result.stale] == ["OCPBUGS-1"]
    assert len(api.updates) == 1


def test_human_comment_keeps_issue_fresh():
    controller, api, recorder = _controller([raw_issue(1, comments=[(days_ago(5), "Still reproduces on 4.16")])])

    result = controller.run_pass()

    assert result.stale == []
    assert api.updates == []
    assert controller.slack.direct == {}
    assert recorder.infos == []


def test_blocker_nomination_rejected_when_priority_drops_to_low():
    controller, api, _ = _controller([raw_issue(1, priority="Normal", blocker="Proposed")])
    controller.run_pass()
    ((_, payload),) = api.updates
    assert payload["fields"]["priority"] == {"name": "Minor"}
    assert payload["fields"][BLOCKER] == {"value": "Rejected"}


def test_low_priority_issue_keeps_priority():
    controller, api, _ = _controller([raw_issue(1, priority="Minor")])
    controller.run_pass()
    ((_, payload),) = api.updates
    assert payload["fields"]["priority"] == {"name": "Minor"}


def test_search_failure_is_raised_and_recorded():
    controller, api, recorder = _controller([raw_issue(1)])
    api.fail_search = True
    with pytest.raises(FetchError):
        controller.run_pass()
    assert recorder.warnings[0][0] == "BuglistFailed"
    assert api.updates == []


def test_partial_failures_do_not_stop_the_pass():
    issues = [raw_issue(1), raw_issue(2), raw_issue(3), raw_issue(4, created="not-a-date")]
    controller, api, recorder = _controller(issues)
    api.fail_detail.add("OCPBUGS-1")
    api.fail_update.add("OCPBUGS-2")

    with pytest.raises(AggregateError) as excinfo:
        controller.run_pass()

    err = excinfo.value
    assert len(err.errors) == 3
    assert any(isinstance(e, MutationApplyError) for e in err.errors)
    result = err.result
    assert [i.ref for i in result.updated] == ["OCPBUGS-3"]
    assert [k for k, _ in api.updates] == ["OCPBUGS-3"]
    assert [r for r, _ in recorder.warnings].count("GetCachedBugComments") == 2
    # The issue whose update failed is not announced.
    assert all("OCPBUGS-2" not in m for msgs in controller.slack.direct.values() for m in msgs)


def test_delivery_failure_is_only_a_warning():
    slack = DummySlack(failing={"alice@example.com"})
    controller, _, recorder = _controller([raw_issue(1)], slack=slack)

    result = controller.run_pass()

    assert list(slack.direct) == ["bob@example.com"]
    assert "alice@example.com" in result.delivery_failures
    assert ("MessageFailed" in [r for r, _ in recorder.warnings])
    assert result.errors == []


def test_missing_assignee_is_refetched_after_update():
    controller, api, _ = _controller([raw_issue(1)])
    api.search_omits["OCPBUGS-1"] = ("assignee",)

    result = controller.run_pass()

    assert result.updated[0].assignee == "alice@example.com"
    assert "alice@example.com" in controller.slack.direct


def test_failed_update_is_not_refetched():
    controller, api, _ = _controller([raw_issue(1)])
    api.search_omits["OCPBUGS-1"] = ("assignee",)
    api.fail_update.add("OCPBUGS-1")

    with pytest.raises(AggregateError):
        controller.run_pass()

    # One detail fetch for comments/history, none for re-fetching identities.
    assert api.detail_fetches == ["OCPBUGS-1"]
    assert controller.slack.direct == {}


def test_cancelled_pass_stops_between_issues():
    cancel = threading.Event()
    controller, api, _ = _controller([raw_issue(1), raw_issue(2)])
    original = api.fetch_issue_raw

    def fetch_then_cancel(key):
        cancel.set()
        return original(key)

    api.fetch_issue_raw = fetch_then_cancel
    result = controller.run_pass(cancel)

    assert result.cancelled
    assert api.updates == []
