from __future__ import annotations

import re
from typing import List, Optional, Tuple

from scopegate.policy.types import ProjectFilters

# Each predicate expresses the *historical* relationship, which only Jira can
# evaluate from the change log.
PARTICIPATION_PREDICATES = {
    "was_assignee": "assignee WAS currentUser()",
    "was_reporter": "reporter WAS currentUser()",
    "was_commenter": "issue IN updatedBy(currentUser())",
    "is_watcher": "watcher = currentUser()",
}

_ORDER_BY = re.compile(r"^(.*?)\bORDER\s+BY\b(.*)$", re.IGNORECASE | re.DOTALL)


def quote_value(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def project_key_from_issue_key(issue_key: str) -> Optional[str]:
    text = str(issue_key or "").strip()
    if "-" not in text:
        return None
    prefix = text.rsplit("-", 1)[0]
    return prefix or None


def filter_branches(filters: Optional[ProjectFilters]) -> List[str]:
    """
    OR-branches contributed by a project's filters: one per enabled
    participation flag, plus the raw JQL clause (parenthesized, otherwise
    untouched).
    """
    if filters is None:
        return []
    branches: List[str] = []
    if filters.participated is not None:
        for flag in filters.participated.enabled_flags():
            branches.append(PARTICIPATION_PREDICATES[flag])
    if filters.jql:
        branches.append(f"({filters.jql})")
    return branches


def combine_or(branches: List[str]) -> str:
    return " OR ".join(branches)


def build_probe_jql(issue_key: str, branches: List[str]) -> str:
    return f"key = {quote_value(issue_key)} AND ({combine_or(branches)})"


def split_order_by(jql: str) -> Tuple[str, str]:
    """``"a = 1 ORDER BY created"`` -> ``("a = 1", " ORDER BY created")``."""
    text = str(jql or "")
    match = _ORDER_BY.match(text)
    if not match:
        return text.strip(), ""
    order_part = match.group(2).strip()
    return match.group(1).strip(), (f" ORDER BY {order_part}" if order_part else "")
