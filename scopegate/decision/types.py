from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class DenialReason(str, Enum):
    COMMAND_NOT_ALLOWED = "COMMAND_NOT_ALLOWED"
    PROJECT_NOT_ALLOWED = "PROJECT_NOT_ALLOWED"
    FILTER_MISMATCH = "FILTER_MISMATCH"
    PROBE_UNAVAILABLE = "PROBE_UNAVAILABLE"
    CONFIG_INVALID = "CONFIG_INVALID"


class Denial(BaseModel):
    """
    Transient, user-facing result of a failed gate. Never persisted.
    Callers switch on ``reason``; ``detail`` and ``hints`` are for humans.
    """
    model_config = ConfigDict(frozen=True)

    reason: DenialReason
    detail: str
    hints: Tuple[str, ...] = Field(default_factory=tuple)
    gate: Optional[str] = None  # command | project | space | probe | config

    @property
    def is_infrastructure_failure(self) -> bool:
        return self.reason in {DenialReason.PROBE_UNAVAILABLE, DenialReason.CONFIG_INVALID}

    def as_dict(self) -> dict:
        return {
            "reason": self.reason.value,
            "detail": self.detail,
            "hints": list(self.hints),
            "gate": self.gate,
        }
