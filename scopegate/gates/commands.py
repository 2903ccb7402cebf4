from __future__ import annotations

from typing import Iterable, List

from scopegate.policy.types import ALL, KeySet, PolicyDocument

# Flat command names from the pre-hierarchy CLI mapped to their dotted paths.
LEGACY_COMMAND_MAP = {
    "me": "user.me",
    "projects": "project.list",
    "task-with-details": "issue.get",
    "project-statuses": "project.statuses",
    "list-issue-types": "project.types",
    "list-colleagues": "user.search",
    "run-jql": "issue.search",
    "update-description": "issue.update",
    "add-comment": "issue.comment",
    "add-label-to-issue": "issue.label.add",
    "delete-label-from-issue": "issue.label.remove",
    "create-task": "issue.create",
    "transition": "issue.transition",
    "get-issue-statistics": "issue.stats",
    "get-person-worklog": "user.worklog",
    "organization": "org",
    "confluence": "confl",
}

KNOWN_COMMANDS = (
    "issue.get",
    "issue.create",
    "issue.search",
    "issue.transition",
    "issue.update",
    "issue.comment",
    "issue.stats",
    "issue.assign",
    "issue.label.add",
    "issue.label.remove",
    "project.list",
    "project.statuses",
    "project.types",
    "user.me",
    "user.search",
    "user.worklog",
    "org.list",
    "org.use",
    "confl.get",
    "confl.spaces",
    "confl.pages",
    "confl.search",
    "confl.create",
    "confl.comment",
)


def canonical_command(command: str) -> str:
    name = str(command or "").strip()
    return LEGACY_COMMAND_MAP.get(name, name)


def _command_ancestors(command_path: str) -> List[str]:
    """``issue.label.add`` -> ``["issue.label.add", "issue.label", "issue"]``."""
    parts = command_path.split(".")
    return [".".join(parts[:i]) for i in range(len(parts), 0, -1)]


def command_matches(command: str, allowed: KeySet) -> bool:
    """
    True when ``allowed`` is ALL or names the command or one of its dotted
    ancestors. Comparisons are exact and case-sensitive.
    """
    if allowed is ALL:
        return True
    if not allowed:
        return False
    configured = {canonical_command(entry) for entry in allowed}
    return any(path in configured for path in _command_ancestors(canonical_command(command)))


def is_command_allowed(policy: PolicyDocument, command: str) -> bool:
    return command_matches(command, policy.allowed_commands)


def is_command_visible(policy: PolicyDocument, command: str) -> bool:
    """
    Whether a command should be offered at all: allowed globally, or allowed by
    at least one project rule that narrows commands.
    """
    if is_command_allowed(policy, command):
        return True
    for rule in policy.project_rules.values():
        if rule.commands is not ALL and command_matches(command, rule.commands):
            return True
    return False


def visible_commands(policy: PolicyDocument, commands: Iterable[str] = KNOWN_COMMANDS) -> List[str]:
    return [command for command in commands if is_command_visible(policy, command)]


def describe_allowed_commands(policy: PolicyDocument) -> str:
    if policy.allowed_commands is ALL:
        return "all"
    if not policy.allowed_commands:
        return "none"
    return ", ".join(sorted(policy.allowed_commands))
