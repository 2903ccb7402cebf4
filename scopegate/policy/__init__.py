from scopegate.policy.store import (
    DEFAULT_SETTINGS,
    PolicyStore,
    load_raw_policy_config,
    parse_settings,
    resolve_policy,
    save_settings,
)
from scopegate.policy.types import (
    ALL,
    AllMarker,
    ParticipationFilter,
    PolicyDocument,
    ProjectFilters,
    ProjectRule,
    is_all,
)

__all__ = [
    "ALL",
    "AllMarker",
    "DEFAULT_SETTINGS",
    "ParticipationFilter",
    "PolicyDocument",
    "PolicyStore",
    "ProjectFilters",
    "ProjectRule",
    "is_all",
    "load_raw_policy_config",
    "parse_settings",
    "resolve_policy",
    "save_settings",
]
