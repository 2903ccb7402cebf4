from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union


class AllMarker:
    """
    Sentinel meaning "no restriction configured for this field".
    There is exactly one instance, ``ALL``; compare with ``is``.
    """

    _instance: Optional["AllMarker"] = None

    def __new__(cls) -> "AllMarker":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ALL"

    def __reduce__(self):
        return (AllMarker, ())


ALL = AllMarker()

KeySet = Union[FrozenSet[str], AllMarker]


def is_all(value: object) -> bool:
    return value is ALL


@dataclass(frozen=True)
class ParticipationFilter:
    was_assignee: bool = False
    was_reporter: bool = False
    was_commenter: bool = False
    is_watcher: bool = False

    def enabled_flags(self) -> Tuple[str, ...]:
        flags = []
        for name in ("was_assignee", "was_reporter", "was_commenter", "is_watcher"):
            if getattr(self, name):
                flags.append(name)
        return tuple(flags)


@dataclass(frozen=True)
class ProjectFilters:
    participated: Optional[ParticipationFilter] = None
    jql: Optional[str] = None


@dataclass(frozen=True)
class ProjectRule:
    """
    Normalized per-project rule. A bare key in the settings file becomes a rule
    with ``commands=ALL`` and no filters.
    """

    key: str
    commands: KeySet = ALL
    filters: Optional[ProjectFilters] = None

    @property
    def is_unrestricted(self) -> bool:
        return self.commands is ALL and self.filters is None


@dataclass(frozen=True)
class PolicyDocument:
    """
    Effective access-control configuration for one organization.

    ``project_rules`` holds every rule the organization declared, keyed by
    project key. It is populated even when ``allowed_projects`` is ``ALL`` so a
    structured rule can narrow one project under an otherwise open policy.
    """

    allowed_projects: Union[Tuple[ProjectRule, ...], AllMarker] = ALL
    allowed_commands: KeySet = ALL
    allowed_spaces: KeySet = ALL
    project_rules: Mapping[str, ProjectRule] = field(default_factory=lambda: MappingProxyType({}))
    alias: Optional[str] = None
    resolution_hash: Optional[str] = None
    provenance: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def rule_for(self, project_key: str) -> Optional[ProjectRule]:
        return self.project_rules.get(project_key)

    @property
    def is_fully_open(self) -> bool:
        return (
            self.allowed_projects is ALL
            and self.allowed_commands is ALL
            and self.allowed_spaces is ALL
            and all(rule.is_unrestricted for rule in self.project_rules.values())
        )

    def as_dict(self) -> Dict[str, object]:
        """Render back to the settings-file vocabulary, for display."""

        def _keys(value: KeySet):
            return "all" if value is ALL else sorted(value)

        def _rule(rule: ProjectRule):
            if rule.is_unrestricted:
                return rule.key
            payload: Dict[str, object] = {"key": rule.key}
            if rule.commands is not ALL:
                payload["commands"] = sorted(rule.commands)
            if rule.filters is not None:
                filters: Dict[str, object] = {}
                if rule.filters.participated is not None:
                    filters["participated"] = {
                        name: True for name in rule.filters.participated.enabled_flags()
                    }
                if rule.filters.jql:
                    filters["jql"] = rule.filters.jql
                payload["filters"] = filters
            return payload

        if self.allowed_projects is ALL:
            projects: object = ["all"] + [_rule(r) for r in self.project_rules.values()]
        else:
            projects = [_rule(r) for r in self.allowed_projects]
        return {
            "organization": self.alias,
            "allowed-jira-projects": projects,
            "allowed-commands": _keys(self.allowed_commands),
            "allowed-confluence-spaces": _keys(self.allowed_spaces),
            "provenance": dict(self.provenance),
        }
