from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Optional

from scopegate.authz.jql import filter_branches, project_key_from_issue_key
from scopegate.authz.probe import AuthorizationProbe, SearchFn
from scopegate.authz.types import AuthorizationRequest, AuthorizationResult
from scopegate.decision.types import Denial, DenialReason
from scopegate.errors import ConfigError, ProbeUnavailable
from scopegate.gates.commands import canonical_command, describe_allowed_commands, is_command_allowed
from scopegate.gates.projects import resolve_project
from scopegate.gates.spaces import resolve_space
from scopegate.observability.events import log_event
from scopegate.observability.internal_metrics import (
    AUTHORIZATIONS_DENIED,
    AUTHORIZATIONS_EVALUATED,
    PROBE_FAILURES,
    PROBES_ISSUED,
    incr,
)
from scopegate.policy.store import PolicyStore
from scopegate.policy.types import ALL, PolicyDocument, ProjectFilters

logger = logging.getLogger(__name__)

ProjectKeyFetcher = Callable[[str], str]

SETTINGS_HINT = "Update settings.yaml to enable this command."


def _describe_projects(policy: PolicyDocument) -> str:
    if policy.allowed_projects is ALL:
        return "all"
    if not policy.allowed_projects:
        return "none"
    return ", ".join(rule.key for rule in policy.allowed_projects)


def _describe_spaces(policy: PolicyDocument) -> str:
    if policy.allowed_spaces is ALL:
        return "all"
    if not policy.allowed_spaces:
        return "none"
    return ", ".join(sorted(policy.allowed_spaces))


def _describe_filters(filters: ProjectFilters) -> str:
    return " OR ".join(filter_branches(filters))


def _normalize_request(request: AuthorizationRequest) -> AuthorizationRequest:
    """Jira issue keys are case-insensitive; gates and the search see the upper-case form."""
    if request.issue_key is None:
        return request
    issue_key = request.issue_key.strip().upper()
    if issue_key == request.issue_key:
        return request
    return replace(request, issue_key=issue_key)


class ValidationOrchestrator:
    """
    Single entry point commands call before a sensitive read or a mutation.

    Gates run in order (command, project or space, probe), each at most once,
    and the first denial wins. ``authorize`` always returns a typed result so a
    batch caller can skip one item and continue; ``require`` raises instead.
    The policy is held read-only, so one orchestrator may serve concurrent
    per-issue calls.
    """

    def __init__(
        self,
        policy: Optional[PolicyDocument],
        *,
        search_fn: Optional[SearchFn] = None,
        fetch_project_key: Optional[ProjectKeyFetcher] = None,
        probe_timeout_seconds: Optional[float] = None,
        config_error: Optional[ConfigError] = None,
    ):
        if policy is None and config_error is None:
            raise ValueError("either a policy or the config error that prevented it is required")
        self.policy = policy
        self.config_error = config_error
        self.fetch_project_key = fetch_project_key
        self.probe = (
            AuthorizationProbe(search_fn, timeout_seconds=probe_timeout_seconds) if search_fn is not None else None
        )

    @classmethod
    def from_settings(
        cls,
        *,
        alias: Optional[str] = None,
        store: Optional[PolicyStore] = None,
        search_fn: Optional[SearchFn] = None,
        fetch_project_key: Optional[ProjectKeyFetcher] = None,
        probe_timeout_seconds: Optional[float] = None,
    ) -> "ValidationOrchestrator":
        """
        Resolve the policy for ``alias``. A broken settings document yields an
        orchestrator that denies every request with CONFIG_INVALID.
        """
        try:
            policy = (store or PolicyStore()).load(alias)
        except ConfigError as exc:
            log_event(
                logger,
                "error",
                component="authz_orchestrator",
                event="authz.config_invalid",
                org=alias,
                error=str(exc),
            )
            return cls(
                None,
                search_fn=search_fn,
                fetch_project_key=fetch_project_key,
                probe_timeout_seconds=probe_timeout_seconds,
                config_error=exc,
            )
        return cls(
            policy,
            search_fn=search_fn,
            fetch_project_key=fetch_project_key,
            probe_timeout_seconds=probe_timeout_seconds,
        )

    @property
    def org(self) -> Optional[str]:
        return self.policy.alias if self.policy is not None else None

    def authorize(self, request: AuthorizationRequest) -> AuthorizationResult:
        result = self._evaluate(_normalize_request(request))
        self._record(result)
        return result

    def require(self, request: AuthorizationRequest) -> AuthorizationResult:
        result = self.authorize(request)
        result.require()
        return result

    def authorize_issue(self, issue_key: str, command: str, *, project_key: Optional[str] = None) -> AuthorizationResult:
        return self.authorize(AuthorizationRequest(command=command, project_key=project_key, issue_key=issue_key))

    def authorize_space(self, space_key: str, command: str) -> AuthorizationResult:
        return self.authorize(AuthorizationRequest(command=command, space_key=space_key))

    def _evaluate(self, request: AuthorizationRequest) -> AuthorizationResult:
        if self.policy is None:
            return AuthorizationResult.deny(
                request,
                Denial(
                    reason=DenialReason.CONFIG_INVALID,
                    detail=f"Access policy could not be loaded: {self.config_error}",
                    hints=("Run `scopegate settings validate <file>` to see every problem.",),
                    gate="config",
                ),
                cause=self.config_error,
            )
        policy = self.policy

        if not is_command_allowed(policy, request.command):
            return AuthorizationResult.deny(
                request,
                Denial(
                    reason=DenialReason.COMMAND_NOT_ALLOWED,
                    detail=f"Command '{canonical_command(request.command)}' is not allowed.",
                    hints=(f"Allowed commands: {describe_allowed_commands(policy)}", SETTINGS_HINT),
                    gate="command",
                ),
            )

        if request.space_key is not None:
            space = resolve_space(policy, request.space_key)
            if space.allowed:
                return AuthorizationResult.allow(request)
            return AuthorizationResult.deny(
                request,
                Denial(
                    reason=DenialReason.PROJECT_NOT_ALLOWED,
                    detail=space.detail,
                    hints=(f"Allowed Confluence spaces: {_describe_spaces(policy)}",),
                    gate="space",
                ),
            )

        if request.project_key is None and request.issue_key is None:
            return AuthorizationResult.allow(request)

        project_key = request.project_key
        if request.issue_key is not None:
            try:
                issue_project = self._resolve_project_key(request.issue_key)
            except Exception as exc:
                return AuthorizationResult.deny(
                    request,
                    Denial(
                        reason=DenialReason.PROBE_UNAVAILABLE,
                        detail=f"Could not determine the project of {request.issue_key}: {exc}",
                        hints=("Check Jira connectivity and credentials, then retry.",),
                        gate="project",
                    ),
                    cause=exc,
                )
            if not issue_project:
                return AuthorizationResult.deny(
                    request,
                    Denial(
                        reason=DenialReason.PROJECT_NOT_ALLOWED,
                        detail=f"Could not determine the project of {request.issue_key}.",
                        gate="project",
                    ),
                )
            # A caller-supplied project must agree with the issue's real project.
            if project_key is not None and project_key != issue_project:
                return AuthorizationResult.deny(
                    request,
                    Denial(
                        reason=DenialReason.PROJECT_NOT_ALLOWED,
                        detail=f"Issue {request.issue_key} belongs to project '{issue_project}', not '{project_key}'.",
                        gate="project",
                    ),
                    project_key=issue_project,
                )
            project_key = issue_project

        visibility = resolve_project(policy, project_key, request.command)
        if not visibility.allowed:
            if visibility.reason == DenialReason.COMMAND_NOT_ALLOWED:
                rule = policy.rule_for(project_key)
                allowed_here = sorted(rule.commands) if rule is not None and rule.commands is not ALL else []
                hints = (f"Commands allowed for project {project_key}: {', '.join(allowed_here) or 'none'}", SETTINGS_HINT)
            else:
                hints = (f"Allowed projects: {_describe_projects(policy)}",)
            return AuthorizationResult.deny(
                request,
                Denial(reason=visibility.reason, detail=visibility.detail, hints=hints, gate="project"),
                project_key=project_key,
            )

        # Listing commands pass a project only; they scope their own JQL.
        if request.issue_key is None or not visibility.needs_probe:
            return AuthorizationResult.allow(request, project_key=project_key)
        if not filter_branches(visibility.filters):
            return AuthorizationResult.allow(request, project_key=project_key)

        if self.probe is None:
            return AuthorizationResult.deny(
                request,
                Denial(
                    reason=DenialReason.PROBE_UNAVAILABLE,
                    detail=f"Access filters for project {project_key} need a Jira search, but none is configured.",
                    hints=("Configure Jira credentials for this organization.",),
                    gate="probe",
                ),
                project_key=project_key,
            )

        incr(PROBES_ISSUED, org=self.org)
        try:
            matched = self.probe.check(request.issue_key, visibility.filters)
        except ProbeUnavailable as exc:
            incr(PROBE_FAILURES, org=self.org)
            return AuthorizationResult.deny(
                request,
                Denial(
                    reason=DenialReason.PROBE_UNAVAILABLE,
                    detail=str(exc),
                    hints=("Check Jira connectivity and credentials, then retry.",),
                    gate="probe",
                ),
                project_key=project_key,
                probed=True,
                cause=exc,
            )

        if not matched:
            return AuthorizationResult.deny(
                request,
                Denial(
                    reason=DenialReason.FILTER_MISMATCH,
                    detail=f"Issue {request.issue_key} is restricted by the access filters of project {project_key}.",
                    hints=(f"Project {project_key} only exposes issues matching: {_describe_filters(visibility.filters)}",),
                    gate="probe",
                ),
                project_key=project_key,
                probed=True,
            )
        return AuthorizationResult.allow(request, project_key=project_key, probed=True)

    def _resolve_project_key(self, issue_key: Optional[str]) -> Optional[str]:
        if not issue_key:
            return None
        if self.fetch_project_key is not None:
            return self.fetch_project_key(issue_key)
        return project_key_from_issue_key(issue_key)

    def _record(self, result: AuthorizationResult) -> None:
        incr(AUTHORIZATIONS_EVALUATED, org=self.org)
        payload = {
            "event": "authz.decision",
            "org": self.org,
            "command": canonical_command(result.request.command),
            "project_key": result.project_key or result.request.project_key,
            "issue_key": result.request.issue_key,
            "space_key": result.request.space_key,
            "result": "ALLOWED" if result.allowed else "DENIED",
            "reason_code": result.reason.value if result.reason else None,
            "probed": result.probed,
            "policy_hash": self.policy.resolution_hash if self.policy is not None else None,
        }
        if result.allowed:
            log_event(logger, "info", component="authz_orchestrator", **payload)
            return

        incr(AUTHORIZATIONS_DENIED, org=self.org)
        if result.denial.is_infrastructure_failure:
            # Distinguishes "could not check policy" from "policy says no".
            log_event(
                logger,
                "error",
                component="authz_orchestrator",
                probe_unavailable=result.reason == DenialReason.PROBE_UNAVAILABLE,
                error=repr(result.cause) if result.cause is not None else None,
                **payload,
            )
            return
        log_event(logger, "warning", component="authz_orchestrator", **payload)
