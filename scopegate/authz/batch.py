from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from scopegate.authz.orchestrator import ValidationOrchestrator
from scopegate.authz.types import AuthorizationRequest, AuthorizationResult
from scopegate.config import batch_max_workers

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    results: List[AuthorizationResult] = field(default_factory=list)
    # Requests never evaluated because the batch was cancelled. Not allowances.
    not_evaluated: List[AuthorizationRequest] = field(default_factory=list)

    @property
    def allowed(self) -> List[AuthorizationResult]:
        return [result for result in self.results if result.allowed]

    @property
    def denied(self) -> List[AuthorizationResult]:
        return [result for result in self.results if not result.allowed]

    @property
    def cancelled(self) -> bool:
        return bool(self.not_evaluated)


def authorize_many(
    orchestrator: ValidationOrchestrator,
    requests: Sequence[AuthorizationRequest],
    *,
    max_workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchOutcome:
    """
    Authorize independent per-issue requests concurrently.

    Each request gets its own orchestrator call and probe, so a timeout or
    failure only denies that item. Once ``cancel_event`` is set no new probe is
    started; requests not yet started land in ``not_evaluated``. Results keep
    the input order.
    """
    event = cancel_event or threading.Event()
    workers = max(1, int(max_workers or batch_max_workers()))

    def _run(request: AuthorizationRequest) -> Optional[AuthorizationResult]:
        if event.is_set():
            return None
        return orchestrator.authorize(request)

    outcome = BatchOutcome()
    if not requests:
        return outcome

    pool = ThreadPoolExecutor(max_workers=min(workers, len(requests)))
    try:
        futures = [pool.submit(_run, request) for request in requests]
        for request, future in zip(requests, futures):
            result = future.result()
            if result is None:
                outcome.not_evaluated.append(request)
            else:
                outcome.results.append(result)
    except KeyboardInterrupt:
        event.set()
        pool.shutdown(wait=False, cancel_futures=True)
        logger.warning("authorization batch interrupted; no further probes will be issued")
        raise
    pool.shutdown(wait=True)
    if outcome.not_evaluated:
        logger.info(
            "authorization batch cancelled: %d evaluated, %d not evaluated",
            len(outcome.results),
            len(outcome.not_evaluated),
        )
    return outcome
