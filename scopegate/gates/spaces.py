from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from scopegate.policy.types import ALL, PolicyDocument


@dataclass(frozen=True)
class SpaceVisibility:
    space_key: str
    allowed: bool
    detail: str = ""


def resolve_space(policy: PolicyDocument, space_key: str) -> SpaceVisibility:
    if policy.allowed_spaces is ALL or space_key in policy.allowed_spaces:
        return SpaceVisibility(space_key=space_key, allowed=True)
    return SpaceVisibility(
        space_key=space_key,
        allowed=False,
        detail=f"Confluence space '{space_key}' is not allowed.",
    )


def is_space_allowed(policy: PolicyDocument, space_key: str) -> bool:
    return resolve_space(policy, space_key).allowed


def filter_visible_spaces(policy: PolicyDocument, space_keys: Iterable[str]) -> List[str]:
    return [key for key in space_keys if is_space_allowed(policy, key)]
