from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from scopegate.config import settings_path
from scopegate.errors import ConfigError
from scopegate.policy.inheritance import migrate_legacy_settings, resolve_organization_layers
from scopegate.policy.schema import ALL_TOKEN, RawOrganizationSettings, RawProjectConfig, RawSettings
from scopegate.policy.types import (
    ALL,
    AllMarker,
    KeySet,
    ParticipationFilter,
    PolicyDocument,
    ProjectFilters,
    ProjectRule,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "defaults": {
        "allowed-jira-projects": ["all"],
        "allowed-commands": [
            "issue",  # get, create, search, transition, update, comment, stats, assign, label
            "project",  # list, statuses, types
            "user",  # me, search, worklog
            "org",
            "confl",
        ],
        "allowed-confluence-spaces": ["all"],
    }
}


def _format_validation_issue(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = str(error.get("msg", "invalid value"))
    return f"{location}: {message}" if location else message


def parse_settings(raw: Any, *, source: Optional[str] = None) -> RawSettings:
    """Structural validation of a raw settings document."""
    where = f" in {source}" if source else ""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"expected a settings object at top-level{where}", source=source)
    migrated = migrate_legacy_settings(raw)
    try:
        return RawSettings.model_validate(migrated)
    except ValidationError as exc:
        issues = [_format_validation_issue(err) for err in exc.errors()]
        raise ConfigError(f"invalid settings structure{where}", issues=issues, source=source) from exc


def load_raw_policy_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Read the layered settings file. A missing file is an empty (fully
    permissive) document.
    """
    settings_file = Path(path) if path else settings_path()
    if not settings_file.exists():
        logger.debug("settings file %s not found; using permissive defaults", settings_file)
        return {}
    try:
        with settings_file.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse YAML in {settings_file}: {exc}", source=str(settings_file)) from exc
    except OSError as exc:
        raise ConfigError(f"failed to read {settings_file}: {exc}", source=str(settings_file)) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"expected a YAML object at top-level in {settings_file}", source=str(settings_file))
    return data


def save_settings(raw: Dict[str, Any], path: Optional[Union[str, Path]] = None) -> Path:
    settings_file = Path(path) if path else settings_path()
    parse_settings(raw, source=str(settings_file))
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    with settings_file.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(raw, handle, sort_keys=False)
    return settings_file


def _normalize_keys(value: Optional[Union[str, List[str]]]) -> KeySet:
    if value is None or value == ALL_TOKEN:
        return ALL
    if ALL_TOKEN in value:
        return ALL
    return frozenset(value)


def _normalize_filters(raw: RawProjectConfig) -> Optional[ProjectFilters]:
    if raw.filters is None:
        return None
    participated = None
    if raw.filters.participated is not None:
        flags = raw.filters.participated
        participated = ParticipationFilter(
            was_assignee=bool(flags.was_assignee),
            was_reporter=bool(flags.was_reporter),
            was_commenter=bool(flags.was_commenter),
            is_watcher=bool(flags.is_watcher),
        )
    return ProjectFilters(participated=participated, jql=raw.filters.jql)


def _normalize_projects(value) -> Tuple[Union[Tuple[ProjectRule, ...], AllMarker], Dict[str, ProjectRule]]:
    if value is None or value == ALL_TOKEN:
        return ALL, {}

    open_projects = False
    rules: Dict[str, ProjectRule] = {}
    for entry in value:
        if isinstance(entry, str):
            if entry == ALL_TOKEN:
                open_projects = True
            elif entry not in rules:
                rules[entry] = ProjectRule(key=entry)
            continue
        # A structured rule always wins over a bare key for the same project.
        rules[entry.key] = ProjectRule(
            key=entry.key,
            commands=_normalize_keys(entry.commands),
            filters=_normalize_filters(entry),
        )

    if open_projects:
        return ALL, rules
    return tuple(rules.values()), rules


def build_policy_document(
    layer: RawOrganizationSettings,
    *,
    alias: Optional[str] = None,
    provenance: Optional[Dict[str, str]] = None,
    resolution_hash: Optional[str] = None,
) -> PolicyDocument:
    allowed_projects, rules = _normalize_projects(layer.allowed_jira_projects)
    return PolicyDocument(
        allowed_projects=allowed_projects,
        allowed_commands=_normalize_keys(layer.allowed_commands),
        allowed_spaces=_normalize_keys(layer.allowed_confluence_spaces),
        project_rules=MappingProxyType(dict(rules)),
        alias=alias,
        provenance=MappingProxyType(dict(provenance or {})),
        resolution_hash=resolution_hash,
    )


class PolicyStore:
    """
    Resolves the effective PolicyDocument for an organization from the layered
    settings document (``defaults`` overridden per alias under
    ``organizations.<alias>``).
    """

    def __init__(self, loader: Optional[Callable[[], Dict[str, Any]]] = None):
        self._loader = loader or load_raw_policy_config

    def load(self, active_alias: Optional[str] = None) -> PolicyDocument:
        return self.resolve(self._loader(), active_alias)

    def resolve(self, raw_config: Any, active_alias: Optional[str] = None) -> PolicyDocument:
        settings = parse_settings(raw_config)
        defaults = settings.defaults or RawOrganizationSettings()
        organization = settings.layer_for(active_alias)
        if active_alias and organization is None:
            logger.info("organization %s has no policy override; using defaults", active_alias)

        merged = resolve_organization_layers(
            defaults_layer=defaults.model_dump(by_alias=True, exclude_unset=True),
            organization_layer=(
                organization.model_dump(by_alias=True, exclude_unset=True) if organization is not None else None
            ),
        )
        layer = RawOrganizationSettings.model_validate(merged["resolved"])
        document = build_policy_document(
            layer,
            alias=active_alias,
            provenance=merged["provenance"],
            resolution_hash=merged["policy_resolution_hash"],
        )
        logger.debug(
            "resolved policy for %s scope=%s hash=%s",
            active_alias or "<defaults>",
            ",".join(merged["policy_scope"]) or "none",
            merged["policy_resolution_hash"][:12],
        )
        return document

    @staticmethod
    def organization_aliases(raw_config: Any) -> List[str]:
        return sorted(parse_settings(raw_config).organizations.keys())


def resolve_policy(raw_config: Any, active_alias: Optional[str] = None) -> PolicyDocument:
    return PolicyStore(loader=lambda: raw_config).resolve(raw_config, active_alias)
