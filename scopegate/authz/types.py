from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from scopegate.decision.types import Denial, DenialReason
from scopegate.errors import AuthorizationDenied


@dataclass(frozen=True)
class AuthorizationRequest:
    """
    One authorization question. ``project_key`` may be omitted when
    ``issue_key`` is present; it is then looked up or derived. ``space_key``
    is set instead for Confluence commands.
    """

    command: str
    project_key: Optional[str] = None
    issue_key: Optional[str] = None
    space_key: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "project_key": self.project_key,
            "issue_key": self.issue_key,
            "space_key": self.space_key,
        }


@dataclass(frozen=True)
class AuthorizationResult:
    request: AuthorizationRequest
    denial: Optional[Denial] = None
    project_key: Optional[str] = None
    probed: bool = False
    cause: Optional[BaseException] = None

    @property
    def allowed(self) -> bool:
        return self.denial is None

    @property
    def reason(self) -> Optional[DenialReason]:
        return self.denial.reason if self.denial is not None else None

    def require(self) -> None:
        """Raise ``AuthorizationDenied`` for fail-fast call sites."""
        if self.denial is None:
            return
        exit_code = 2 if self.denial.is_infrastructure_failure else 1
        error = AuthorizationDenied(self.denial, exit_code=exit_code)
        if self.cause is not None:
            raise error from self.cause
        raise error

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            **self.request.as_dict(),
            "allowed": self.allowed,
            "probed": self.probed,
        }
        if self.project_key and not self.request.project_key:
            payload["project_key"] = self.project_key
        if self.denial is not None:
            payload["denial"] = self.denial.as_dict()
        return payload

    @classmethod
    def allow(cls, request: AuthorizationRequest, *, project_key: Optional[str] = None, probed: bool = False):
        return cls(request=request, project_key=project_key, probed=probed)

    @classmethod
    def deny(
        cls,
        request: AuthorizationRequest,
        denial: Denial,
        *,
        project_key: Optional[str] = None,
        probed: bool = False,
        cause: Optional[BaseException] = None,
    ):
        return cls(request=request, denial=denial, project_key=project_key, probed=probed, cause=cause)
