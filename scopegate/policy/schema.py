from __future__ import annotations

from typing import Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator, model_validator

ALL_TOKEN = "all"

SETTINGS_FIELDS = (
    "allowed-jira-projects",
    "allowed-commands",
    "allowed-confluence-spaces",
)


def _clean_entries(value: Optional[Sequence[str]], *, what: str) -> Optional[List[str]]:
    if value is None:
        return None
    cleaned: List[str] = []
    for item in value:
        text = item.strip()
        if not text:
            raise ValueError(f"{what} must not contain empty values")
        cleaned.append(text)
    return cleaned


class RawParticipation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    was_assignee: Optional[StrictBool] = None
    was_reporter: Optional[StrictBool] = None
    was_commenter: Optional[StrictBool] = None
    is_watcher: Optional[StrictBool] = None


class RawProjectFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    participated: Optional[RawParticipation] = None
    jql: Optional[StrictStr] = None

    @field_validator("jql")
    @classmethod
    def _strip_jql(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class RawProjectConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: StrictStr
    commands: Optional[List[StrictStr]] = None
    filters: Optional[RawProjectFilters] = None

    @field_validator("key")
    @classmethod
    def _strip_key(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("project key must not be empty")
        return cleaned

    @field_validator("commands")
    @classmethod
    def _normalize_commands(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_entries(value, what="project commands")


ProjectEntry = Union[StrictStr, RawProjectConfig]


class RawOrganizationSettings(BaseModel):
    """One settings layer: the shared ``defaults`` block or an organization override."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    allowed_jira_projects: Optional[Union[Literal["all"], List[ProjectEntry]]] = Field(
        default=None, alias="allowed-jira-projects"
    )
    allowed_commands: Optional[Union[Literal["all"], List[StrictStr]]] = Field(
        default=None, alias="allowed-commands"
    )
    allowed_confluence_spaces: Optional[Union[Literal["all"], List[StrictStr]]] = Field(
        default=None, alias="allowed-confluence-spaces"
    )

    @field_validator("allowed_jira_projects")
    @classmethod
    def _normalize_projects(cls, value):
        if value is None or value == ALL_TOKEN:
            return value
        normalized: List[ProjectEntry] = []
        structured_keys: set[str] = set()
        for entry in value:
            if isinstance(entry, str):
                text = entry.strip()
                if not text:
                    raise ValueError("allowed-jira-projects must not contain empty values")
                normalized.append(text)
                continue
            if entry.key in structured_keys:
                raise ValueError(f"duplicate project rule for `{entry.key}`")
            structured_keys.add(entry.key)
            normalized.append(entry)
        return normalized

    @field_validator("allowed_commands")
    @classmethod
    def _normalize_commands(cls, value):
        if value is None or value == ALL_TOKEN:
            return value
        return _clean_entries(value, what="allowed-commands")

    @field_validator("allowed_confluence_spaces")
    @classmethod
    def _normalize_spaces(cls, value):
        if value is None or value == ALL_TOKEN:
            return value
        return _clean_entries(value, what="allowed-confluence-spaces")


class RawSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    defaults: Optional[RawOrganizationSettings] = None
    organizations: Dict[str, Optional[RawOrganizationSettings]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _null_organizations(cls, data):
        if isinstance(data, dict) and data.get("organizations", {}) is None:
            data = {**data, "organizations": {}}
        return data

    @field_validator("organizations")
    @classmethod
    def _validate_aliases(cls, value: Dict[str, Optional[RawOrganizationSettings]]):
        for alias in value:
            if not str(alias).strip():
                raise ValueError("organizations contains an empty alias")
        return value

    def layer_for(self, alias: Optional[str]) -> Optional[RawOrganizationSettings]:
        if not alias or alias not in self.organizations:
            return None
        return self.organizations[alias] or RawOrganizationSettings()
