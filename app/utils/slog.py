# =============================================
# File: app/utils/slog.py
# Purpose: JSON request/event lines on the "drillblocks" stdlib logger
# =============================================
from __future__ import annotations
import hashlib
import json
import logging
import os
import uuid
from typing import Any, Dict, Iterable, Optional

LOGGER_NAME = "drillblocks"

_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    _logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))  # lines are already JSON
    _logger.addHandler(_handler)
    _logger.propagate = True  # pytest caplog hooks the root logger


def phash(skill_level: str, equipment: Iterable[str], excluded: Iterable[str]) -> str:
    """
    10-char fingerprint of a request profile.

    Level and equipment are case-folded and every list is sorted, so the same
    profile always hashes the same; raw drill ids never reach the log.
    """
    parts = [
        (skill_level or "").strip().lower(),
        ",".join(sorted(e.strip().lower() for e in equipment or [])),
        ",".join(sorted(excluded or [])),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:10]


def new_request_id() -> str:
    return uuid.uuid4().hex


def _emit(payload: Dict[str, Any]) -> None:
    _logger.info(json.dumps(payload, ensure_ascii=False, default=str))


def log_event(event: str, **fields: Any) -> None:
    _emit({"event": event, **fields})


def finalize_request_log(
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: int,
    client_ip: Optional[str],
    ctx: Optional[Dict[str, Any]] = None,
) -> None:
    """One 'request.completed' line; router-provided context (user, phash, error kind) is merged in."""
    log_event(
        "request.completed",
        request_id=request_id,
        method=method,
        path=path,
        status=status,
        latency_ms=latency_ms,
        client_ip=client_ip or "",
        **(ctx or {}),
    )
