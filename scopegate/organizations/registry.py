from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from scopegate.config import org_alias_override
from scopegate.errors import ConfigError
from scopegate.organizations.credentials import OrganizationCredentials, load_credentials_file
from scopegate.policy.store import PolicyStore, load_raw_policy_config
from scopegate.policy.types import PolicyDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrganizationContext:
    """Everything one command needs about the active organization."""

    alias: Optional[str]
    policy: PolicyDocument
    credentials: Optional[OrganizationCredentials] = None


@dataclass(frozen=True)
class OrganizationRegistry:
    """
    Alias -> resolved organization context, plus the current alias.

    Built once per process from the settings and credentials files and never
    mutated; ``switch`` returns a new registry instead.
    """

    current_alias: Optional[str]
    organizations: Mapping[str, OrganizationContext] = field(default_factory=lambda: MappingProxyType({}))
    defaults: Optional[OrganizationContext] = None

    @classmethod
    def load(
        cls,
        *,
        raw_settings: Optional[Dict[str, Any]] = None,
        settings_file: Optional[Union[str, Path]] = None,
        credentials_file: Optional[Union[str, Path]] = None,
        alias: Optional[str] = None,
    ) -> "OrganizationRegistry":
        raw = raw_settings if raw_settings is not None else load_raw_policy_config(settings_file)
        stored_current, credentials = load_credentials_file(credentials_file)
        current = alias or org_alias_override() or stored_current
        env_credentials = OrganizationCredentials.from_env()

        store = PolicyStore(loader=lambda: raw)
        aliases = set(credentials) | set(store.organization_aliases(raw))
        if current:
            aliases.add(current)

        contexts = {
            name: OrganizationContext(
                alias=name,
                policy=store.resolve(raw, name),
                credentials=credentials.get(name) or env_credentials,
            )
            for name in sorted(aliases)
        }
        defaults = OrganizationContext(alias=None, policy=store.resolve(raw, None), credentials=env_credentials)
        logger.debug("loaded %d organization(s); current=%s", len(contexts), current or "<none>")
        return cls(current_alias=current, organizations=MappingProxyType(contexts), defaults=defaults)

    def aliases(self) -> List[str]:
        return sorted(self.organizations.keys())

    def resolve(self, alias: Optional[str] = None) -> OrganizationContext:
        target = alias or self.current_alias
        if target is None:
            if self.defaults is None:
                raise ConfigError("no organization is configured")
            return self.defaults
        context = self.organizations.get(target)
        if context is None:
            raise ConfigError(
                f"unknown organization `{target}`",
                issues=[f"known organizations: {', '.join(self.aliases()) or 'none'}"],
            )
        return context

    def current(self) -> OrganizationContext:
        return self.resolve(None)

    def switch(self, alias: str) -> "OrganizationRegistry":
        self.resolve(alias)
        return replace(self, current_alias=alias)
