from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scopegate.decision.types import DenialReason
from scopegate.gates.commands import canonical_command, command_matches
from scopegate.policy.types import ALL, PolicyDocument, ProjectFilters


class VisibilityStatus(str, Enum):
    DENIED = "DENIED"
    ALLOWED_UNRESTRICTED = "ALLOWED_UNRESTRICTED"
    ALLOWED_WITH_FILTERS = "ALLOWED_WITH_FILTERS"


@dataclass(frozen=True)
class ProjectVisibility:
    status: VisibilityStatus
    project_key: str
    filters: Optional[ProjectFilters] = None
    reason: Optional[DenialReason] = None
    detail: str = ""

    @property
    def allowed(self) -> bool:
        return self.status != VisibilityStatus.DENIED

    @property
    def needs_probe(self) -> bool:
        return self.status == VisibilityStatus.ALLOWED_WITH_FILTERS

    @classmethod
    def denied(cls, project_key: str, reason: DenialReason, detail: str) -> "ProjectVisibility":
        return cls(status=VisibilityStatus.DENIED, project_key=project_key, reason=reason, detail=detail)

    @classmethod
    def unrestricted(cls, project_key: str) -> "ProjectVisibility":
        return cls(status=VisibilityStatus.ALLOWED_UNRESTRICTED, project_key=project_key)

    @classmethod
    def with_filters(cls, project_key: str, filters: ProjectFilters) -> "ProjectVisibility":
        return cls(status=VisibilityStatus.ALLOWED_WITH_FILTERS, project_key=project_key, filters=filters)


def is_project_visible(policy: PolicyDocument, project_key: str) -> bool:
    """Key membership only; ignores per-project command narrowing and filters."""
    return policy.allowed_projects is ALL or project_key in policy.project_rules


def resolve_project(policy: PolicyDocument, project_key: str, command: str) -> ProjectVisibility:
    """
    Decide whether ``project_key`` is visible for ``command``.

    A rule declared for the key always applies, even when the project list is
    ALL; ALL only relaxes the key membership test for projects without a rule.
    """
    rule = policy.rule_for(project_key)
    if rule is None:
        if policy.allowed_projects is ALL:
            return ProjectVisibility.unrestricted(project_key)
        return ProjectVisibility.denied(
            project_key,
            DenialReason.PROJECT_NOT_ALLOWED,
            f"Project '{project_key}' is not allowed.",
        )

    if rule.commands is not ALL and not command_matches(command, rule.commands):
        return ProjectVisibility.denied(
            project_key,
            DenialReason.COMMAND_NOT_ALLOWED,
            f"Command '{canonical_command(command)}' is not permitted for project '{project_key}'.",
        )

    if rule.filters is not None:
        return ProjectVisibility.with_filters(project_key, rule.filters)
    return ProjectVisibility.unrestricted(project_key)
