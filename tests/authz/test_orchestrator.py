import json
import logging

import pytest

from scopegate.authz.orchestrator import ValidationOrchestrator
from scopegate.authz.types import AuthorizationRequest
from scopegate.decision.types import DenialReason
from scopegate.errors import AuthorizationDenied, ConfigError
from scopegate.observability.internal_metrics import snapshot
from scopegate.policy.store import PolicyStore, resolve_policy

RESTRICTED_SETTINGS = {
    "defaults": {
        "allowed-commands": ["issue", "user"],
        "allowed-jira-projects": [
            "OPEN",
            {"key": "NARROW", "commands": ["issue.get"]},
            {"key": "MINE", "filters": {"participated": {"was_assignee": True}}},
        ],
        "allowed-confluence-spaces": ["DOCS"],
    }
}


class _Search:
    def __init__(self, keys=(), error=None):
        self.keys = list(keys)
        self.error = error
        self.queries = []

    def __call__(self, jql, max_results):
        self.queries.append(jql)
        if self.error is not None:
            raise self.error
        return [{"key": key} for key in self.keys]


def _orchestrator(search=None, settings=RESTRICTED_SETTINGS, alias="acme", **kwargs):
    return ValidationOrchestrator(resolve_policy(settings, alias), search_fn=search, **kwargs)


def test_command_gate_runs_first():
    search = _Search()
    result = _orchestrator(search).authorize(
        AuthorizationRequest(command="confl.get", project_key="NOPE", issue_key="NOPE-1")
    )
    assert result.reason == DenialReason.COMMAND_NOT_ALLOWED
    assert result.denial.detail == "Command 'confl.get' is not allowed."
    assert "Update settings.yaml to enable this command." in result.denial.hints
    assert search.queries == []


def test_command_only_request_is_allowed():
    assert _orchestrator().authorize(AuthorizationRequest(command="user.me")).allowed


def test_unlisted_project_denied():
    result = _orchestrator().authorize(AuthorizationRequest(command="issue.get", project_key="SECRET"))
    assert result.reason == DenialReason.PROJECT_NOT_ALLOWED
    assert result.denial.gate == "project"
    assert any("OPEN" in hint for hint in result.denial.hints)


def test_project_command_narrowing():
    orchestrator = _orchestrator()
    assert orchestrator.authorize_issue("NARROW-1", "issue.get").allowed
    denied = orchestrator.authorize_issue("NARROW-1", "issue.update")
    assert denied.reason == DenialReason.COMMAND_NOT_ALLOWED
    assert denied.project_key == "NARROW"


def test_filter_mismatch_when_probe_returns_nothing():
    search = _Search(keys=[])
    result = _orchestrator(search).authorize_issue("MINE-5", "issue.get")
    assert result.reason == DenialReason.FILTER_MISMATCH
    assert result.probed
    assert search.queries == ['key = "MINE-5" AND (assignee WAS currentUser())']
    assert "assignee WAS currentUser()" in result.denial.hints[0]


def test_allowed_when_probe_returns_the_issue():
    search = _Search(keys=["MINE-5"])
    result = _orchestrator(search).authorize_issue("MINE-5", "issue.get")
    assert result.allowed
    assert result.probed
    assert result.project_key == "MINE"


def test_unrestricted_project_never_probes():
    search = _Search()
    assert _orchestrator(search).authorize_issue("OPEN-1", "issue.update").allowed
    assert search.queries == []


def test_listing_request_with_project_only_is_not_probed():
    search = _Search()
    result = _orchestrator(search).authorize(AuthorizationRequest(command="issue.search", project_key="MINE"))
    assert result.allowed
    assert not result.probed
    assert search.queries == []


def test_probe_failure_is_distinct_from_mismatch_and_keeps_cause():
    error = ConnectionError("jira down")
    result = _orchestrator(_Search(error=error)).authorize_issue("MINE-5", "issue.get")
    assert result.reason == DenialReason.PROBE_UNAVAILABLE
    assert result.cause.__cause__ is error
    assert result.denial.is_infrastructure_failure


def test_filters_without_search_fail_closed():
    result = _orchestrator(search=None).authorize_issue("MINE-5", "issue.get")
    assert result.reason == DenialReason.PROBE_UNAVAILABLE


def test_project_key_fetcher_wins_over_issue_prefix():
    orchestrator = _orchestrator(fetch_project_key=lambda issue_key: "OPEN")
    result = orchestrator.authorize_issue("MOVED-9", "issue.update")
    assert result.allowed
    assert result.project_key == "OPEN"


def test_project_key_fetch_failure_is_probe_unavailable():
    def _broken(issue_key):
        raise ConnectionError("timeout")

    result = _orchestrator(fetch_project_key=_broken).authorize_issue("OPEN-1", "issue.get")
    assert result.reason == DenialReason.PROBE_UNAVAILABLE
    assert isinstance(result.cause, ConnectionError)


def test_explicit_project_key_must_match_issue_prefix():
    result = _orchestrator().authorize_issue("X-1", "issue.get", project_key="OPEN")
    assert result.reason == DenialReason.PROJECT_NOT_ALLOWED
    assert result.denial.gate == "project"
    assert result.project_key == "X"
    assert "belongs to project 'X', not 'OPEN'" in result.denial.detail


def test_explicit_project_key_must_match_fetched_project():
    search = _Search()
    orchestrator = _orchestrator(search, fetch_project_key=lambda issue_key: "MINE")
    result = orchestrator.authorize_issue("OPEN-1", "issue.get", project_key="OPEN")
    assert result.reason == DenialReason.PROJECT_NOT_ALLOWED
    assert result.project_key == "MINE"
    assert search.queries == []


def test_explicit_project_key_that_agrees_is_allowed():
    assert _orchestrator().authorize_issue("OPEN-1", "issue.get", project_key="OPEN").allowed


def test_lowercase_issue_key_is_checked_against_its_project_rule():
    settings = {
        "defaults": {
            "allowed-jira-projects": ["all", {"key": "SEC", "filters": {"participated": {"was_assignee": True}}}],
            "allowed-commands": "all",
        }
    }
    search = _Search(keys=[])
    result = ValidationOrchestrator(resolve_policy(settings), search_fn=search).authorize_issue("sec-5", "issue.get")
    assert result.reason == DenialReason.FILTER_MISMATCH
    assert result.project_key == "SEC"
    assert search.queries == ['key = "SEC-5" AND (assignee WAS currentUser())']


def test_space_gate():
    orchestrator = _orchestrator(settings={"defaults": {"allowed-confluence-spaces": ["DOCS"]}})
    assert orchestrator.authorize_space("DOCS", "confl.get").allowed
    denied = orchestrator.authorize_space("HR", "confl.get")
    assert denied.reason == DenialReason.PROJECT_NOT_ALLOWED
    assert denied.denial.gate == "space"


def test_broken_settings_deny_everything_with_config_invalid():
    store = PolicyStore(loader=lambda: {"defaults": {"allowed-commands": [1]}})
    orchestrator = ValidationOrchestrator.from_settings(alias="acme", store=store)
    result = orchestrator.authorize(AuthorizationRequest(command="user.me"))
    assert result.reason == DenialReason.CONFIG_INVALID
    assert isinstance(result.cause, ConfigError)


def test_orchestrator_requires_policy_or_error():
    with pytest.raises(ValueError):
        ValidationOrchestrator(None)


def test_require_raises_with_reason_and_exit_code():
    orchestrator = _orchestrator(_Search(error=ConnectionError("down")))
    with pytest.raises(AuthorizationDenied) as denied:
        orchestrator.require(AuthorizationRequest(command="issue.get", project_key="SECRET"))
    assert denied.value.reason == DenialReason.PROJECT_NOT_ALLOWED
    assert denied.value.exit_code == 1

    with pytest.raises(AuthorizationDenied) as unavailable:
        orchestrator.require(AuthorizationRequest(command="issue.get", issue_key="MINE-1"))
    assert unavailable.value.exit_code == 2
    assert unavailable.value.__cause__ is not None


def test_decisions_are_counted_per_organization():
    orchestrator = _orchestrator(_Search(keys=[]))
    orchestrator.authorize_issue("OPEN-1", "issue.get")
    orchestrator.authorize_issue("MINE-1", "issue.get")

    metrics = snapshot(org="acme")
    assert metrics["authorizations_evaluated"] == 2
    assert metrics["authorizations_denied"] == 1
    assert metrics["probes_issued"] == 1
    assert "probe_failures" not in metrics


def test_decision_is_logged_as_structured_event(caplog):
    caplog.set_level(logging.INFO, logger="scopegate")
    _orchestrator(_Search(error=ConnectionError("down"))).authorize_issue("MINE-1", "issue.get")

    records = [r for r in caplog.records if r.name == "scopegate.authz.orchestrator"]
    assert records
    payload = json.loads(records[-1].getMessage())
    assert records[-1].levelno == logging.ERROR
    assert payload["event"] == "authz.decision"
    assert payload["component"] == "authz_orchestrator"
    assert payload["reason_code"] == "PROBE_UNAVAILABLE"
    assert payload["probe_unavailable"] is True
    assert payload["org"] == "acme"


@pytest.mark.parametrize("returned, expected_reason", [([], DenialReason.FILTER_MISMATCH), (["OPS-5"], None)])
def test_ops_project_end_to_end(returned, expected_reason):
    settings = {
        "defaults": {
            "allowed-jira-projects": [{"key": "OPS", "filters": {"participated": {"was_assignee": True}}}],
            "allowed-commands": "all",
        }
    }
    search = _Search(keys=returned)
    result = ValidationOrchestrator(resolve_policy(settings), search_fn=search).authorize_issue("OPS-5", "issue.get")
    assert result.reason == expected_reason
    assert search.queries == ['key = "OPS-5" AND (assignee WAS currentUser())']
