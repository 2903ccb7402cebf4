from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from scopegate.config import credentials_path
from scopegate.errors import ConfigError

logger = logging.getLogger(__name__)

LEGACY_ALIAS = "default"


@dataclass(frozen=True)
class OrganizationCredentials:
    host: str
    email: str
    api_token: str

    @property
    def is_complete(self) -> bool:
        return all([self.host, self.email, self.api_token])

    def __repr__(self) -> str:
        return f"OrganizationCredentials(host={self.host!r}, email={self.email!r}, api_token='***')"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "OrganizationCredentials":
        return cls(
            host=str(payload.get("host") or "").strip().rstrip("/"),
            email=str(payload.get("email") or "").strip(),
            api_token=str(payload.get("apiToken") or payload.get("api_token") or "").strip(),
        )

    @classmethod
    def from_env(cls) -> Optional["OrganizationCredentials"]:
        creds = cls(
            host=os.getenv("JIRA_BASE_URL", "").strip().rstrip("/"),
            email=os.getenv("JIRA_EMAIL", "").strip(),
            api_token=os.getenv("JIRA_API_TOKEN", "").strip(),
        )
        return creds if creds.is_complete else None


def load_credentials_file(
    path: Optional[Union[str, Path]] = None,
) -> Tuple[Optional[str], Dict[str, OrganizationCredentials]]:
    """
    Read ``{"current": alias, "organizations": {alias: {host, email, apiToken}}}``.
    The single-credential layout (``{host, email, apiToken}`` at top level) is
    read as one organization named ``default``.
    """
    creds_file = Path(path) if path else credentials_path()
    if not creds_file.exists():
        return None, {}
    try:
        with creds_file.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"failed to read credentials from {creds_file}: {exc}", source=str(creds_file)) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"expected a JSON object in {creds_file}", source=str(creds_file))

    if "organizations" not in data and "host" in data:
        logger.info("reading legacy single-organization credentials from %s", creds_file)
        return LEGACY_ALIAS, {LEGACY_ALIAS: OrganizationCredentials.from_dict(data)}

    organizations = data.get("organizations") or {}
    if not isinstance(organizations, dict):
        raise ConfigError(f"`organizations` must be an object in {creds_file}", source=str(creds_file))
    parsed = {
        str(alias): OrganizationCredentials.from_dict(payload)
        for alias, payload in organizations.items()
        if isinstance(payload, dict)
    }
    current = str(data.get("current") or "").strip() or None
    return current, parsed
