from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Set, Union

from scopegate.errors import ConfigError
from scopegate.gates.commands import KNOWN_COMMANDS, canonical_command
from scopegate.integrations.jira.client import JiraClient, JiraClientError
from scopegate.policy.schema import ALL_TOKEN, RawOrganizationSettings, RawSettings
from scopegate.policy.store import load_raw_policy_config, parse_settings


@dataclass
class SettingsIssue:
    severity: Literal["ERROR", "WARN"]
    code: str
    message: str
    location: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload = {
            "severity": self.severity,
            "code": self.code,
            "message": self.message,
        }
        if self.location:
            payload["location"] = self.location
        return payload


def _layers(settings: RawSettings) -> Iterable[tuple[str, RawOrganizationSettings]]:
    if settings.defaults is not None:
        yield "defaults", settings.defaults
    for alias, layer in sorted(settings.organizations.items()):
        if layer is not None:
            yield f"organizations.{alias}", layer


def _collect_project_keys(settings: RawSettings) -> List[str]:
    keys: Set[str] = set()
    for _, layer in _layers(settings):
        projects = layer.allowed_jira_projects
        if projects is None or projects == ALL_TOKEN:
            continue
        for entry in projects:
            key = entry if isinstance(entry, str) else entry.key
            if key != ALL_TOKEN:
                keys.add(key)
    return sorted(keys)


def _collect_space_keys(settings: RawSettings) -> List[str]:
    keys: Set[str] = set()
    for _, layer in _layers(settings):
        spaces = layer.allowed_confluence_spaces
        if spaces is None or spaces == ALL_TOKEN:
            continue
        keys.update(space for space in spaces if space != ALL_TOKEN)
    return sorted(keys)


def _is_known_command(command: str) -> bool:
    path = canonical_command(command)
    if path == ALL_TOKEN:
        return True
    return any(known == path or known.startswith(path + ".") for known in KNOWN_COMMANDS)


def _lint_warnings(settings: RawSettings) -> List[SettingsIssue]:
    warnings: List[SettingsIssue] = []
    for location, layer in _layers(settings):
        commands = layer.allowed_commands
        if isinstance(commands, list):
            for command in commands:
                if not _is_known_command(command):
                    warnings.append(
                        SettingsIssue(
                            severity="WARN",
                            code="COMMAND_UNKNOWN",
                            message=f"`{command}` does not name a known command or command group.",
                            location=f"{location}.allowed-commands",
                        )
                    )
        projects = layer.allowed_jira_projects
        if not isinstance(projects, list):
            continue
        for entry in projects:
            if isinstance(entry, str) or entry.filters is None:
                continue
            participated = entry.filters.participated
            has_flag = participated is not None and any(
                [participated.was_assignee, participated.was_reporter, participated.was_commenter, participated.is_watcher]
            )
            if not has_flag and not entry.filters.jql:
                warnings.append(
                    SettingsIssue(
                        severity="WARN",
                        code="FILTERS_EMPTY",
                        message=f"Filters for project `{entry.key}` enable nothing and impose no restriction.",
                        location=f"{location}.allowed-jira-projects.{entry.key}",
                    )
                )
    return warnings


def _connectivity_issues(settings: RawSettings, jira_client: JiraClient) -> List[SettingsIssue]:
    issues: List[SettingsIssue] = []

    if not jira_client.check_permissions():
        issues.append(
            SettingsIssue(
                severity="WARN",
                code="JIRA_CONNECTIVITY_UNAVAILABLE",
                message="Jira connectivity check skipped because credentials are unavailable or invalid.",
                location="jira_connectivity",
            )
        )
        return issues

    project_keys = _collect_project_keys(settings)
    if project_keys:
        try:
            known_projects = set(jira_client.list_project_keys())
        except JiraClientError as exc:
            issues.append(
                SettingsIssue(
                    severity="WARN",
                    code="JIRA_PROJECT_LOOKUP_FAILED",
                    message=f"Unable to fetch Jira projects: {exc}",
                    location="jira_projects",
                )
            )
        else:
            for project_key in project_keys:
                if project_key not in known_projects:
                    issues.append(
                        SettingsIssue(
                            severity="ERROR",
                            code="PROJECT_UNKNOWN",
                            message=f'Project "{project_key}" not found in Jira.',
                            location=f"project:{project_key}",
                        )
                    )

    space_keys = _collect_space_keys(settings)
    if space_keys:
        try:
            known_spaces = set(jira_client.list_space_keys())
        except JiraClientError as exc:
            issues.append(
                SettingsIssue(
                    severity="WARN",
                    code="CONFLUENCE_SPACE_LOOKUP_FAILED",
                    message=f"Unable to fetch Confluence spaces: {exc}",
                    location="confluence_spaces",
                )
            )
        else:
            for space_key in space_keys:
                if space_key not in known_spaces:
                    issues.append(
                        SettingsIssue(
                            severity="ERROR",
                            code="SPACE_UNKNOWN",
                            message=f'Confluence space "{space_key}" not found.',
                            location=f"space:{space_key}",
                        )
                    )
    return issues


def validate_settings_file(
    path: Union[str, Path],
    *,
    check_jira: bool = False,
    jira_client: Optional[JiraClient] = None,
) -> Dict[str, Any]:
    issues: List[SettingsIssue] = []
    settings_file = Path(path)
    settings: Optional[RawSettings] = None

    if not settings_file.exists():
        issues.append(
            SettingsIssue(
                severity="ERROR",
                code="SETTINGS_FILE_MISSING",
                message=f"File not found: {settings_file}",
                location=str(settings_file),
            )
        )
    else:
        try:
            settings = parse_settings(load_raw_policy_config(settings_file), source=str(settings_file))
        except ConfigError as exc:
            details = exc.issues or [str(exc)]
            for detail in details:
                issues.append(
                    SettingsIssue(
                        severity="ERROR",
                        code="SETTINGS_INVALID",
                        message=detail,
                        location=str(settings_file),
                    )
                )

    if settings is not None:
        issues.extend(_lint_warnings(settings))
        if check_jira:
            issues.extend(_connectivity_issues(settings, jira_client or JiraClient()))

    errors = [issue.as_dict() for issue in issues if issue.severity == "ERROR"]
    warnings = [issue.as_dict() for issue in issues if issue.severity == "WARN"]
    status = "FAIL" if errors else ("WARN" if warnings else "OK")
    return {
        "status": status,
        "ok": not errors,
        "error_count": len(errors),
        "warning_count": len(warnings),
        "issues": [issue.as_dict() for issue in issues],
        "settings_path": str(settings_file),
        "organization_count": len(settings.organizations) if settings is not None else 0,
        "checked_jira": bool(check_jira and settings is not None),
    }


def format_settings_report(report: Dict[str, Any]) -> str:
    lines = [
        f"Settings Validation: {report.get('status', 'FAIL')}",
        f"Settings File: {report.get('settings_path')}",
        f"Organizations: {report.get('organization_count', 0)}",
        f"Errors: {report.get('error_count', 0)}",
        f"Warnings: {report.get('warning_count', 0)}",
    ]
    issues = report.get("issues") or []
    if issues:
        lines.append("")
        lines.append("Issues:")
        for issue in issues:
            location = f" ({issue['location']})" if issue.get("location") else ""
            lines.append(
                f"- [{issue.get('severity')}] {issue.get('code')}: {issue.get('message')}{location}"
            )
    return "\n".join(lines)
