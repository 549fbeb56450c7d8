# =============================================
# File: app/routers/metrics.py
# Purpose: Expose recommender counters/latency as JSON
# =============================================
from __future__ import annotations
from typing import Any, Dict

from fastapi import APIRouter
from app.utils.metrics import snapshot

router = APIRouter(tags=["metrics"])

@router.get("/metrics")
def get_metrics() -> Dict[str, Any]:
    """Counters, failure kinds, naming models, request latency histogram and per-stage timings."""
    return snapshot()
