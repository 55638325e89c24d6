from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

LOGGER_NAME = "readydeploy"

logger = logging.getLogger(LOGGER_NAME)


def configure_logging(level: str = "info") -> None:
    """
    One JSON object per line on stderr. Safe to call more than once.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers = [handler]
    logger.setLevel(getattr(logging, (level or "info").strip().upper(), logging.INFO))
    logger.propagate = True


def build_log_context(**fields: Any) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


def log_event(
    event: str,
    *,
    ctx: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
) -> None:
    if not logger.isEnabledFor(level):
        return
    payload: Dict[str, Any] = {"event": event}
    payload.update(ctx or {})
    if data:
        payload["data"] = data
    logger.log(level, json.dumps(payload, sort_keys=True, default=str))
