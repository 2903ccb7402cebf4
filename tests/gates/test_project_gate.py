from scopegate.decision.types import DenialReason
from scopegate.gates.projects import VisibilityStatus, is_project_visible, resolve_project
from scopegate.policy.store import resolve_policy


def _policy(projects):
    return resolve_policy({"defaults": {"allowed-jira-projects": projects}})


def test_all_projects_are_unrestricted():
    visibility = resolve_project(resolve_policy({}), "ANY", "issue.get")
    assert visibility.status == VisibilityStatus.ALLOWED_UNRESTRICTED
    assert visibility.allowed
    assert not visibility.needs_probe


def test_unlisted_project_is_denied():
    visibility = resolve_project(_policy(["PROJ"]), "OTHER", "issue.get")
    assert not visibility.allowed
    assert visibility.reason == DenialReason.PROJECT_NOT_ALLOWED
    assert "OTHER" in visibility.detail


def test_empty_project_list_denies_everything():
    policy = _policy([])
    assert resolve_project(policy, "PROJ", "issue.get").reason == DenialReason.PROJECT_NOT_ALLOWED
    assert not is_project_visible(policy, "PROJ")


def test_bare_key_is_unrestricted():
    visibility = resolve_project(_policy(["PROJ"]), "PROJ", "issue.create")
    assert visibility.status == VisibilityStatus.ALLOWED_UNRESTRICTED


def test_project_key_match_is_case_sensitive():
    assert resolve_project(_policy(["PROJ"]), "proj", "issue.get").reason == DenialReason.PROJECT_NOT_ALLOWED


def test_rule_commands_narrow_the_project():
    policy = _policy([{"key": "PROJ", "commands": ["issue.get", "issue.search"]}])
    assert resolve_project(policy, "PROJ", "issue.get").allowed

    denied = resolve_project(policy, "PROJ", "issue.create")
    assert denied.reason == DenialReason.COMMAND_NOT_ALLOWED
    assert denied.detail == "Command 'issue.create' is not permitted for project 'PROJ'."


def test_filters_require_a_probe():
    policy = _policy(
        [{"key": "PROJ", "filters": {"participated": {"was_assignee": True}, "jql": "labels = x"}}]
    )
    visibility = resolve_project(policy, "PROJ", "issue.get")
    assert visibility.status == VisibilityStatus.ALLOWED_WITH_FILTERS
    assert visibility.needs_probe
    assert visibility.filters.jql == "labels = x"


def test_rule_under_all_still_narrows_its_project():
    policy = _policy(["all", {"key": "SEC", "commands": ["issue.get"]}])
    assert resolve_project(policy, "OPEN", "issue.create").allowed
    assert resolve_project(policy, "SEC", "issue.create").reason == DenialReason.COMMAND_NOT_ALLOWED
    assert is_project_visible(policy, "OPEN")
