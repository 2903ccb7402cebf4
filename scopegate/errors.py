from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from scopegate.decision.types import Denial


class ScopegateError(RuntimeError):
    """Base error for the authorization layer."""


class ConfigError(ScopegateError):
    """Raised when the policy document is structurally invalid."""

    def __init__(self, message: str, *, issues: Optional[Sequence[str]] = None, source: Optional[str] = None):
        super().__init__(message)
        self.issues: List[str] = list(issues or [])
        self.source = source

    def __str__(self) -> str:
        base = super().__str__()
        if not self.issues:
            return base
        return base + "\n" + "\n".join(f"  - {issue}" for issue in self.issues)


class ProbeUnavailable(ScopegateError):
    """
    The remote search could not be consulted for a filter probe.
    The underlying transport or auth error is kept as ``__cause__``.
    """

    def __init__(self, message: str, *, issue_key: str, jql: Optional[str] = None):
        super().__init__(message)
        self.issue_key = issue_key
        self.jql = jql


class AuthorizationDenied(ScopegateError):
    """Raised by fail-fast call sites when the orchestrator denies a request."""

    def __init__(self, denial: "Denial", *, exit_code: int = 1):
        super().__init__(denial.detail)
        self.denial = denial
        self.exit_code = exit_code

    @property
    def reason(self):
        return self.denial.reason

    @property
    def hints(self) -> List[str]:
        return list(self.denial.hints)
