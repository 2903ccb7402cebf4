from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, TypeVar

from scopegate.authz.jql import build_probe_jql, filter_branches
from scopegate.errors import ProbeUnavailable
from scopegate.policy.types import ProjectFilters

logger = logging.getLogger(__name__)
T = TypeVar("T")

# search_fn(jql, max_results) -> issue keys or rows carrying a "key"
SearchFn = Callable[[str, int], Sequence[Any]]

PROBE_MAX_RESULTS = 1


def _call_with_timeout(
    dependency: str,
    fn: Callable[..., T],
    timeout_seconds: float,
    *args: Any,
    **kwargs: Any,
) -> T:
    pool = ThreadPoolExecutor(max_workers=1)
    future = pool.submit(fn, *args, **kwargs)
    try:
        result = future.result(timeout=max(timeout_seconds, 0.1))
        pool.shutdown(wait=True, cancel_futures=False)
        return result
    except FutureTimeout as exc:
        future.cancel()
        pool.shutdown(wait=False, cancel_futures=True)
        raise TimeoutError(f"{dependency} timed out after {timeout_seconds:.2f}s") from exc
    except Exception:
        pool.shutdown(wait=False, cancel_futures=True)
        raise


def _row_key(row: Any) -> Optional[str]:
    if isinstance(row, str):
        return row
    if isinstance(row, Mapping):
        value = row.get("key")
    else:
        value = getattr(row, "key", None)
    return str(value) if value is not None else None


def returned_keys(rows: Optional[Iterable[Any]]) -> set[str]:
    keys = set()
    for row in rows or []:
        key = _row_key(row)
        if key:
            keys.add(key)
    return keys


class AuthorizationProbe:
    """
    Asks the remote search whether one issue satisfies a project's filters.

    The filters describe history ("was ever assignee", "commented") that only
    the tracker can evaluate, so the check is a membership test on a
    ``key = X AND (...)`` search rather than an inspection of a fetched issue.
    """

    def __init__(self, search_fn: SearchFn, *, timeout_seconds: Optional[float] = None):
        self._search_fn = search_fn
        self.timeout_seconds = timeout_seconds

    def build_query(self, issue_key: str, filters: Optional[ProjectFilters]) -> Optional[str]:
        """Probe JQL, or None when the filters impose no restriction."""
        branches = filter_branches(filters)
        if not branches:
            return None
        return build_probe_jql(issue_key, branches)

    def check(self, issue_key: str, filters: Optional[ProjectFilters]) -> bool:
        jql = self.build_query(issue_key, filters)
        if jql is None:
            return True

        logger.debug("probing %s with jql=%s", issue_key, jql)
        try:
            if self.timeout_seconds:
                rows = _call_with_timeout(
                    "jira_search",
                    self._search_fn,
                    self.timeout_seconds,
                    jql,
                    PROBE_MAX_RESULTS,
                )
            else:
                rows = self._search_fn(jql, PROBE_MAX_RESULTS)
        except Exception as exc:
            raise ProbeUnavailable(
                f"Could not verify access filters for {issue_key}: {exc}",
                issue_key=issue_key,
                jql=jql,
            ) from exc

        # Exact key match: a lax backend returning some other issue is a miss.
        return issue_key in returned_keys(rows)


def probe_issue(
    issue_key: str,
    filters: Optional[ProjectFilters],
    search_fn: SearchFn,
    *,
    timeout_seconds: Optional[float] = None,
) -> bool:
    return AuthorizationProbe(search_fn, timeout_seconds=timeout_seconds).check(issue_key, filters)
