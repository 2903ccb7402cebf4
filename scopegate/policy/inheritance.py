from __future__ import annotations

import hashlib
import json
from copy import deepcopy
from typing import Any, Dict, Optional

from scopegate.policy.schema import SETTINGS_FIELDS

LEGACY_PROJECTS_KEY = "projects"
LEGACY_COMMANDS_KEY = "commands"


def policy_resolution_hash(resolved: Dict[str, Any]) -> str:
    payload = json.dumps(
        resolved or {},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def migrate_legacy_settings(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Move the flat pre-organization layout (top-level ``projects`` and
    ``commands``) under ``defaults``. An explicit ``defaults`` block wins over
    the legacy keys for any field it sets.
    """
    settings = deepcopy(raw or {})
    if LEGACY_PROJECTS_KEY not in settings and LEGACY_COMMANDS_KEY not in settings:
        return settings

    legacy_defaults: Dict[str, Any] = {}
    if LEGACY_PROJECTS_KEY in settings:
        legacy_defaults["allowed-jira-projects"] = settings.pop(LEGACY_PROJECTS_KEY)
    if LEGACY_COMMANDS_KEY in settings:
        legacy_defaults["allowed-commands"] = settings.pop(LEGACY_COMMANDS_KEY)

    existing = settings.get("defaults")
    if isinstance(existing, dict):
        legacy_defaults.update(existing)
    settings["defaults"] = legacy_defaults
    return settings


def resolve_organization_layers(
    *,
    defaults_layer: Optional[Dict[str, Any]],
    organization_layer: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Field-level replace-or-inherit merge of the ``defaults`` block and one
    organization override.

    A field the organization defines (even as null) replaces the default
    wholesale; lists are never unioned and mappings are never deep-merged.
    Fields defined by neither layer are left out of ``resolved`` and marked
    ``default`` in provenance.
    """
    defaults = defaults_layer if isinstance(defaults_layer, dict) else {}
    override = organization_layer if isinstance(organization_layer, dict) else None

    resolved: Dict[str, Any] = {}
    provenance: Dict[str, str] = {}
    for field_name in SETTINGS_FIELDS:
        if override is not None and field_name in override:
            resolved[field_name] = deepcopy(override[field_name])
            provenance[field_name] = "organization"
        elif field_name in defaults:
            resolved[field_name] = deepcopy(defaults[field_name])
            provenance[field_name] = "defaults"
        else:
            provenance[field_name] = "default"

    scope = []
    if defaults:
        scope.append("defaults")
    if override is not None:
        scope.append("organization")

    return {
        "resolved": resolved,
        "policy_scope": scope,
        "provenance": provenance,
        "policy_resolution_hash": policy_resolution_hash(resolved),
    }
