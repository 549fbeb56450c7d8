# =============================================
# File: app/utils/ratelimit.py
# Purpose: In-memory per-key sliding-window rate limiter
# =============================================
from __future__ import annotations
import os
import threading
import time
from collections import deque
from typing import Dict, Deque, Optional

# key -> request timestamps inside the current window
_store: Dict[str, Deque[float]] = {}
_lock = threading.Lock()


def _get_limits() -> tuple[int, int]:
    """Read limits at call time so tests/env overrides take effect."""
    max_reqs = int(os.getenv("RL_MAX_REQS", "60"))
    window_s = int(os.getenv("RL_WINDOW_SECONDS", "60"))
    return max_reqs, window_s


def rate_key(user_id: Optional[str], client_ip: Optional[str]) -> str:
    if user_id and user_id != "anonymous":
        return f"user:{user_id}"
    return f"ip:{client_ip or 'anon'}"


def check_rate_limit(key: str) -> None:
    """Raise RuntimeError when `key` is over its budget for the window."""
    now = time.time()
    max_reqs, window_s = _get_limits()

    with _lock:
        dq = _store.setdefault(key, deque())
        cutoff = now - window_s
        while dq and dq[0] < cutoff:
            dq.popleft()

        if len(dq) >= max_reqs:
            raise RuntimeError("Rate limit exceeded")
        dq.append(now)


def reset_rate_limit() -> None:
    """For tests: clear in-memory counters."""
    with _lock:
        _store.clear()
