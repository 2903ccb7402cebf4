from __future__ import annotations

from typing import List, Optional

from scopegate.authz.jql import combine_or, filter_branches, quote_value, split_order_by
from scopegate.gates.commands import command_matches
from scopegate.policy.types import ALL, PolicyDocument, ProjectRule

def _rule_allows(rule: ProjectRule, command: Optional[str]) -> bool:
    return command is None or rule.commands is ALL or command_matches(command, rule.commands)


def _project_clause(rule: ProjectRule) -> str:
    clause = f"project = {quote_value(rule.key)}"
    branches = filter_branches(rule.filters)
    if branches:
        return f"({clause} AND ({combine_or(branches)}))"
    return clause


def scope_listing_jql(policy: PolicyDocument, jql: str, *, command: Optional[str] = None) -> Optional[str]:
    """
    Restrict a listing/search query to what the policy lets the caller see.

    Issue-level probes do not run for listings; instead each visible project's
    filters are folded into the query. A trailing ORDER BY is preserved.
    Passing ``command`` also drops projects whose rule does not allow it.
    Returns None when no project is visible; callers skip the search.
    """
    filter_part, order_part = split_order_by(jql)
    user_part = f" AND ({filter_part})" if filter_part else ""

    if policy.allowed_projects is ALL:
        narrowed: List[ProjectRule] = [
            rule
            for rule in policy.project_rules.values()
            if filter_branches(rule.filters) or not _rule_allows(rule, command)
        ]
        if not narrowed:
            return jql
        excluded = ", ".join(quote_value(rule.key) for rule in narrowed)
        clauses = [f"project NOT IN ({excluded})"]
        clauses.extend(_project_clause(rule) for rule in narrowed if _rule_allows(rule, command))
        return f"({combine_or(clauses)}){user_part}{order_part}"

    visible = [rule for rule in policy.allowed_projects if _rule_allows(rule, command)]
    if not visible:
        return None
    clauses = [_project_clause(rule) for rule in visible]
    return f"({combine_or(clauses)}){user_part}{order_part}"
