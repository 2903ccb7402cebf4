"""
In-process authorization counters, kept per organization alias.

Counters live for one process only. The orchestrator increments them on
every decision; embedding callers read them through ``snapshot``.
Requests evaluated without an organization are counted under ``default``.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from threading import Lock
from typing import Dict, Optional

DEFAULT_ORG = "default"

AUTHORIZATIONS_EVALUATED = "authorizations_evaluated"
AUTHORIZATIONS_DENIED = "authorizations_denied"
PROBES_ISSUED = "probes_issued"
PROBE_FAILURES = "probe_failures"

_lock = Lock()
_counters_by_org: Dict[str, Counter] = defaultdict(Counter)


def _org_key(org: Optional[str]) -> str:
    return str(org or "").strip() or DEFAULT_ORG


def incr(metric: str, value: int = 1, org: Optional[str] = None) -> None:
    with _lock:
        _counters_by_org[_org_key(org)][metric] += int(value)


def snapshot(org: Optional[str] = None, include_orgs: bool = False) -> Dict[str, int]:
    """
    Counters for one organization, or totals across all of them. With
    ``include_orgs`` the totals carry a ``_by_org`` breakdown.
    """
    with _lock:
        if org:
            return dict(_counters_by_org.get(_org_key(org), Counter()))

        totals: Counter = Counter()
        for org_counter in _counters_by_org.values():
            totals.update(org_counter)
        result: Dict[str, int] = dict(totals)

        if include_orgs:
            result["_by_org"] = {name: dict(counter) for name, counter in sorted(_counters_by_org.items())}
        return result


def reset(org: Optional[str] = None) -> None:
    with _lock:
        if org:
            _counters_by_org.pop(_org_key(org), None)
            return
        _counters_by_org.clear()
