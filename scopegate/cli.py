import argparse
import json
import sys
from typing import Any, List, Optional

import yaml

from scopegate import __version__
from scopegate.authz.batch import authorize_many
from scopegate.authz.listing import scope_listing_jql
from scopegate.authz.orchestrator import ValidationOrchestrator
from scopegate.authz.types import AuthorizationRequest, AuthorizationResult
from scopegate.config import is_json_logging_enabled, probe_timeout_seconds, settings_path
from scopegate.errors import ConfigError
from scopegate.gates.commands import KNOWN_COMMANDS, visible_commands
from scopegate.integrations.jira.client import JiraClient
from scopegate.integrations.jira.validate import format_settings_report, validate_settings_file
from scopegate.observability.events import configure_logging
from scopegate.organizations.credentials import OrganizationCredentials, load_credentials_file
from scopegate.organizations.registry import OrganizationRegistry
from scopegate.policy.store import DEFAULT_SETTINGS, load_raw_policy_config, save_settings


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="scopegate")
    sub = p.add_subparsers(dest="cmd", required=True)

    settings_p = sub.add_parser("settings", help="Inspect and manage the access policy.")
    settings_sub = settings_p.add_subparsers(dest="settings_cmd", required=True)

    show_p = settings_sub.add_parser("show", help="Show the effective policy for an organization")
    show_p.add_argument("--org", help="Organization alias (defaults to the current one)")
    show_p.add_argument("--format", default="text", choices=["text", "json"])

    validate_p = settings_sub.add_parser("validate", help="Validate a settings file")
    validate_p.add_argument("file", nargs="?", help="Settings file (defaults to the active settings.yaml)")
    validate_p.add_argument("--check-jira", action="store_true", help="Verify project and space keys exist")
    validate_p.add_argument("--format", default="text", choices=["text", "json"])

    apply_p = settings_sub.add_parser("apply", help="Validate a settings file and install it")
    apply_p.add_argument("file")

    settings_sub.add_parser("reset", help="Restore the default settings")

    org_p = sub.add_parser("org", help="Organizations.")
    org_sub = org_p.add_subparsers(dest="org_cmd", required=True)
    org_list = org_sub.add_parser("list", help="List configured organizations")
    org_list.add_argument("--format", default="text", choices=["text", "json"])

    authz_p = sub.add_parser("authorize", help="Check whether a command may touch a project, issue or space.")
    authz_p.add_argument("--command", required=True, help="Command path, e.g. issue.get")
    authz_p.add_argument("--project", help="Project key")
    target = authz_p.add_mutually_exclusive_group()
    target.add_argument("--issue", action="append", default=[], help="Issue key (repeatable)")
    target.add_argument("--space", help="Confluence space key")
    authz_p.add_argument("--org", help="Organization alias (defaults to the current one)")
    authz_p.add_argument("--format", default="text", choices=["text", "json"])

    jql_p = sub.add_parser("scope-jql", help="Print a search query restricted to the visible projects.")
    jql_p.add_argument("--jql", default="", help="User query, ORDER BY is preserved")
    jql_p.add_argument("--command", help="Only keep projects whose rule allows this command")
    jql_p.add_argument("--org", help="Organization alias (defaults to the current one)")

    commands_p = sub.add_parser("commands", help="List commands the policy makes available.")
    commands_p.add_argument("--org", help="Organization alias (defaults to the current one)")

    sub.add_parser("version", help="Print version.")
    return p


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _print_config_error(exc: ConfigError) -> None:
    print(f"Error: {exc}", file=sys.stderr)


def _jira_client_for(credentials: Optional[OrganizationCredentials]) -> Optional[JiraClient]:
    if credentials is None or not credentials.is_complete:
        return None
    return JiraClient(credentials)


def _current_credentials() -> Optional[OrganizationCredentials]:
    try:
        current, organizations = load_credentials_file()
    except ConfigError:
        return OrganizationCredentials.from_env()
    if current and current in organizations:
        return organizations[current]
    return OrganizationCredentials.from_env()


def _build_orchestrator(alias: Optional[str]) -> ValidationOrchestrator:
    try:
        context = OrganizationRegistry.load(alias=alias).resolve(alias)
    except ConfigError as exc:
        return ValidationOrchestrator(None, config_error=exc)
    client = _jira_client_for(context.credentials)
    return ValidationOrchestrator(
        context.policy,
        search_fn=client.search_issue_keys if client is not None else None,
        fetch_project_key=client.fetch_issue_project_key if client is not None else None,
        probe_timeout_seconds=probe_timeout_seconds(),
    )


def _format_result(result: AuthorizationResult) -> List[str]:
    request = result.request
    target = request.issue_key or request.space_key or request.project_key or "-"
    if result.allowed:
        return [f"ALLOWED {request.command} {target}"]
    lines = [f"DENIED  {request.command} {target} [{result.reason.value}] {result.denial.detail}"]
    lines.extend(f"  hint: {hint}" for hint in result.denial.hints)
    return lines


def _exit_code(results: List[AuthorizationResult]) -> int:
    denied = [result for result in results if not result.allowed]
    if not denied:
        return 0
    if any(result.denial.is_infrastructure_failure for result in denied):
        return 2
    return 1


def main() -> int:
    if len(sys.argv) == 1:
        sys.argv.append("--help")

    p = build_parser()
    args = p.parse_args()
    configure_logging(json_lines=is_json_logging_enabled())

    if args.cmd == "version":
        print(f"scopegate {__version__}")
        return 0

    if args.cmd == "settings":
        if args.settings_cmd == "show":
            try:
                context = OrganizationRegistry.load(alias=args.org).resolve(args.org)
            except ConfigError as exc:
                _print_config_error(exc)
                return 1
            payload = context.policy.as_dict()
            payload["policy_hash"] = context.policy.resolution_hash
            if args.format == "json":
                _print_json(payload)
            else:
                print(yaml.safe_dump(payload, sort_keys=False).rstrip())
            return 0

        if args.settings_cmd == "validate":
            report = validate_settings_file(
                args.file or settings_path(),
                check_jira=args.check_jira,
                jira_client=JiraClient(_current_credentials()) if args.check_jira else None,
            )
            if args.format == "json":
                _print_json(report)
            else:
                print(format_settings_report(report))
            return 0 if report.get("ok") else 1

        if args.settings_cmd == "apply":
            try:
                raw = load_raw_policy_config(args.file)
                if not raw:
                    raise ConfigError(f"{args.file} is missing or empty", source=args.file)
                target = save_settings(raw)
            except ConfigError as exc:
                _print_config_error(exc)
                return 1
            print(f"Settings applied to {target}")
            return 0

        if args.settings_cmd == "reset":
            target = save_settings(DEFAULT_SETTINGS)
            print(f"Settings reset to defaults at {target}")
            return 0

    if args.cmd == "org":
        try:
            registry = OrganizationRegistry.load()
        except ConfigError as exc:
            _print_config_error(exc)
            return 1
        rows = [
            {
                "alias": alias,
                "current": alias == registry.current_alias,
                "host": (registry.organizations[alias].credentials.host if registry.organizations[alias].credentials else None),
            }
            for alias in registry.aliases()
        ]
        if args.format == "json":
            _print_json(rows)
        elif not rows:
            print("No organizations configured.")
        else:
            for row in rows:
                marker = "*" if row["current"] else " "
                print(f"{marker} {row['alias']}  {row['host'] or '-'}")
        return 0

    if args.cmd == "authorize":
        if args.space is not None and args.project is not None:
            p.error("argument --space: not allowed with argument --project")
        orchestrator = _build_orchestrator(args.org)
        if args.issue:
            requests = [
                AuthorizationRequest(command=args.command, project_key=args.project, issue_key=issue)
                for issue in args.issue
            ]
            outcome = authorize_many(orchestrator, requests)
            results = outcome.results
        else:
            results = [
                orchestrator.authorize(
                    AuthorizationRequest(command=args.command, project_key=args.project, space_key=args.space)
                )
            ]
        if args.format == "json":
            _print_json([result.as_dict() for result in results])
        else:
            for result in results:
                print("\n".join(_format_result(result)))
        return _exit_code(results)

    if args.cmd == "scope-jql":
        try:
            policy = OrganizationRegistry.load(alias=args.org).resolve(args.org).policy
        except ConfigError as exc:
            _print_config_error(exc)
            return 1
        scoped = scope_listing_jql(policy, args.jql, command=args.command)
        if scoped is None:
            print("No Jira projects are visible for this query; a listing returns no issues.", file=sys.stderr)
            return 0
        print(scoped)
        return 0

    if args.cmd == "commands":
        try:
            policy = OrganizationRegistry.load(alias=args.org).resolve(args.org).policy
        except ConfigError as exc:
            _print_config_error(exc)
            return 1
        for command in visible_commands(policy, KNOWN_COMMANDS):
            print(command)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
