from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from scopegate.errors import ConfigError
from scopegate.policy.store import (
    DEFAULT_SETTINGS,
    PolicyStore,
    load_raw_policy_config,
    parse_settings,
    resolve_policy,
    save_settings,
)
from scopegate.policy.types import ALL, ParticipationFilter


def _write(path: Path, content: str) -> None:
    path.write_text(dedent(content).strip() + "\n", encoding="utf-8")


def test_empty_document_is_fully_open():
    policy = resolve_policy({})
    assert policy.allowed_projects is ALL
    assert policy.allowed_commands is ALL
    assert policy.allowed_spaces is ALL
    assert policy.is_fully_open


def test_omitted_field_is_all_but_empty_list_allows_nothing():
    policy = resolve_policy(
        {
            "defaults": {
                "allowed-commands": [],
                "allowed-jira-projects": ["PROJ"],
            }
        }
    )
    assert policy.allowed_commands == frozenset()
    assert policy.allowed_spaces is ALL
    assert [rule.key for rule in policy.allowed_projects] == ["PROJ"]


def test_all_token_as_field_or_list_member_means_all():
    policy = resolve_policy(
        {
            "defaults": {
                "allowed-commands": "all",
                "allowed-confluence-spaces": ["DOCS", "all"],
            }
        }
    )
    assert policy.allowed_commands is ALL
    assert policy.allowed_spaces is ALL


def test_structured_rule_is_kept_under_all_projects():
    policy = resolve_policy(
        {
            "defaults": {
                "allowed-jira-projects": [
                    "all",
                    {"key": "SEC", "filters": {"participated": {"was_assignee": True}}},
                ]
            }
        }
    )
    assert policy.allowed_projects is ALL
    rule = policy.rule_for("SEC")
    assert rule is not None
    assert rule.filters.participated == ParticipationFilter(was_assignee=True)
    assert not policy.is_fully_open


def test_structured_rule_beats_bare_key_for_same_project():
    policy = resolve_policy(
        {
            "defaults": {
                "allowed-jira-projects": [
                    "PROJ",
                    {"key": "PROJ", "commands": ["issue.get"]},
                ]
            }
        }
    )
    rule = policy.rule_for("PROJ")
    assert rule.commands == frozenset({"issue.get"})
    assert len(policy.allowed_projects) == 1


def test_organization_override_replaces_field_without_union():
    raw = {
        "defaults": {"allowed-jira-projects": ["A", "B"], "allowed-commands": ["issue"]},
        "organizations": {"acme": {"allowed-jira-projects": ["C"]}},
    }
    policy = resolve_policy(raw, "acme")
    assert [rule.key for rule in policy.allowed_projects] == ["C"]
    assert policy.allowed_commands == frozenset({"issue"})
    assert policy.provenance["allowed-jira-projects"] == "organization"
    assert policy.provenance["allowed-commands"] == "defaults"
    assert policy.provenance["allowed-confluence-spaces"] == "default"


def test_explicit_null_override_resets_field_to_all():
    raw = {
        "defaults": {"allowed-jira-projects": ["A"]},
        "organizations": {"acme": {"allowed-jira-projects": None}},
    }
    assert resolve_policy(raw, "acme").allowed_projects is ALL
    assert [rule.key for rule in resolve_policy(raw, "other").allowed_projects] == ["A"]


def test_unknown_alias_falls_back_to_defaults():
    raw = {"defaults": {"allowed-commands": ["user"]}, "organizations": {"acme": None}}
    policy = resolve_policy(raw, "missing")
    assert policy.alias == "missing"
    assert policy.allowed_commands == frozenset({"user"})
    assert resolve_policy(raw, "acme").allowed_commands == frozenset({"user"})


def test_legacy_top_level_keys_are_read_as_defaults():
    policy = resolve_policy({"projects": ["OLD"], "commands": ["me"]})
    assert [rule.key for rule in policy.allowed_projects] == ["OLD"]
    assert policy.allowed_commands == frozenset({"me"})


def test_resolution_hash_is_stable_and_tracks_content():
    raw = {"defaults": {"allowed-commands": ["issue"]}}
    first = resolve_policy(raw)
    second = resolve_policy({"defaults": {"allowed-commands": ["issue"]}})
    changed = resolve_policy({"defaults": {"allowed-commands": ["user"]}})
    assert first.resolution_hash == second.resolution_hash
    assert first.resolution_hash != changed.resolution_hash


@pytest.mark.parametrize(
    "raw",
    [
        {"defaults": {"allowed-commands": [1, 2]}},
        {"defaults": {"allowed-commands": "issue"}},
        {"defaults": {"allowed-jira-projects": [""]}},
        {"defaults": {"allowed-jira-projects": [{"commands": ["issue"]}]}},
        {"defaults": {"allowed-jira-projects": [{"key": "A", "filters": {"participated": {"was_owner": True}}}]}},
        {"defaults": {"allowed-jira-projects": [{"key": "A"}, {"key": "A"}]}},
        {"defaults": {"unexpected": True}},
        ["not", "a", "mapping"],
    ],
)
def test_structurally_invalid_settings_raise_config_error(raw):
    with pytest.raises(ConfigError):
        resolve_policy(raw)


def test_config_error_lists_every_problem_location():
    with pytest.raises(ConfigError) as exc:
        parse_settings(
            {"defaults": {"allowed-commands": [1], "allowed-confluence-spaces": [2]}},
            source="settings.yaml",
        )
    assert "settings.yaml" in str(exc.value)
    joined = "\n".join(exc.value.issues)
    assert "allowed-commands" in joined
    assert "allowed-confluence-spaces" in joined


def test_load_raw_policy_config_missing_file_is_empty(tmp_path):
    assert load_raw_policy_config(tmp_path / "missing.yaml") == {}


def test_load_raw_policy_config_rejects_bad_yaml(tmp_path):
    settings_file = tmp_path / "settings.yaml"
    settings_file.write_text("defaults: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_raw_policy_config(settings_file)


def test_store_loads_from_settings_file(tmp_path, monkeypatch):
    settings_file = tmp_path / "settings.yaml"
    _write(
        settings_file,
        """
        defaults:
          allowed-commands: [issue, user]
        organizations:
          acme:
            allowed-jira-projects:
              - key: PROJ
                commands: [issue.get]
                filters:
                  jql: labels = public
        """,
    )
    monkeypatch.setenv("SCOPEGATE_SETTINGS_PATH", str(settings_file))
    policy = PolicyStore().load("acme")
    rule = policy.rule_for("PROJ")
    assert rule.filters.jql == "labels = public"
    assert policy.allowed_commands == frozenset({"issue", "user"})
    assert PolicyStore.organization_aliases(load_raw_policy_config()) == ["acme"]


def test_save_settings_validates_before_writing(tmp_path):
    target = tmp_path / "nested" / "settings.yaml"
    with pytest.raises(ConfigError):
        save_settings({"defaults": {"allowed-commands": [1]}}, target)
    assert not target.exists()

    save_settings(DEFAULT_SETTINGS, target)
    policy = resolve_policy(load_raw_policy_config(target))
    assert policy.allowed_projects is ALL
    assert "issue" in policy.allowed_commands
