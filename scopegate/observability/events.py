from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


def log_event(logger: logging.Logger, level: str, *, component: str, **payload: Any) -> None:
    """Emit one structured event as a single JSON line."""
    payload.setdefault("component", component)
    payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    method = getattr(logger, level, logger.info)
    method(json.dumps(payload, sort_keys=True, default=str))


def configure_logging(*, json_lines: bool = False, level: int = logging.WARNING) -> None:
    """
    CLI logging setup. Event payloads are already JSON, so ``json_lines`` only
    drops the human prefix and lowers the threshold to INFO.
    """
    handler = logging.StreamHandler(sys.stderr)
    if json_lines:
        handler.setFormatter(logging.Formatter("%(message)s"))
        level = min(level, logging.INFO)
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("scopegate")
    root.handlers[:] = [handler]
    root.setLevel(level)
