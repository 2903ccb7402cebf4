from scopegate.authz.batch import BatchOutcome, authorize_many
from scopegate.authz.listing import scope_listing_jql
from scopegate.authz.orchestrator import ValidationOrchestrator
from scopegate.authz.probe import AuthorizationProbe, probe_issue
from scopegate.authz.types import AuthorizationRequest, AuthorizationResult

__all__ = [
    "AuthorizationProbe",
    "AuthorizationRequest",
    "AuthorizationResult",
    "BatchOutcome",
    "ValidationOrchestrator",
    "authorize_many",
    "probe_issue",
    "scope_listing_jql",
]
