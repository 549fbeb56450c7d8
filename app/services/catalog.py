# =============================================
# File: app/services/catalog.py
# Purpose: Drill catalog backed by a JSON export (id -> drill lookups)
# =============================================

# app/services/catalog.py
from __future__ import annotations
import json
import math
import os
import re
import threading
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from app.services.retrieval import _to_int
from app.utils.drill_core import DIFFICULTIES, Drill, UserProgress

DEFAULT_DRILLS_PATH = os.getenv(
    "DRILLS_PATH",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "drills.json"),
)

_SETS_RE = re.compile(r"(\d+)\s*sets?\s*x\s*(\d+)", re.IGNORECASE)


def _split_csv(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [p.strip() for p in str(value).split(",") if p.strip()]


def estimate_duration(reps: str) -> int:
    """Minutes from a reps spec like '3 sets x 6 reps' (~30s per rep)."""
    reps = (reps or "").strip()
    if reps == "Fundamentals":
        return 5
    m = _SETS_RE.search(reps)
    if m:
        sets, per_set = int(m.group(1)), int(m.group(2))
        return math.ceil((sets * per_set * 0.5) / 60) or 10
    return 10


def difficulty_from_levels(levels: Iterable[str]) -> str:
    levels = list(levels)
    if "Youth" in levels:
        return "beginner"
    if "College" in levels:
        return "advanced"
    return "intermediate"


def drill_from_record(rec: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize one catalog record.

    Accepts the raw export shape ("Drill ID", "Drill Name", "Skill Level", ...)
    or an already-normalized one (id, title, ...). Returns a dict carrying the
    Drill fields plus index-only extras (skill_levels, equipment, rank).
    """
    if "Drill ID" in rec or "Drill Name" in rec:
        skill_levels = _split_csv(rec.get("Skill Level"))
        reps = str(rec.get("Reps") or "")
        return {
            "id": str(rec.get("Drill ID") or "").strip(),
            "title": str(rec.get("Drill Name") or "").strip(),
            "name": str(rec.get("Drill Name") or "").strip(),
            "description": str(rec.get("Description") or "").strip(),
            "reps": reps or "TBD",
            "category": str(rec.get("Content Type") or "").strip() or None,
            "difficulty": difficulty_from_levels(skill_levels),
            "focus": _split_csv(rec.get("Skills")),
            "prerequisites": [],
            "duration": estimate_duration(reps),
            "tags": [],
            "skill_levels": skill_levels,
            "equipment": _split_csv(rec.get("Equipment")),
            "rank": rec.get("Rank", ""),
        }

    difficulty = str(rec.get("difficulty") or "").strip().lower()
    out = {
        "id": str(rec.get("id") or "").strip(),
        "title": str(rec.get("title") or rec.get("name") or "").strip(),
        "name": str(rec.get("name") or rec.get("title") or "").strip(),
        "description": str(rec.get("description") or "").strip(),
        "reps": str(rec.get("reps") or "TBD"),
        "category": str(rec.get("category") or "").strip() or None,
        "difficulty": difficulty if difficulty in DIFFICULTIES else None,
        "focus": _split_csv(rec.get("focus")),
        "prerequisites": _split_csv(rec.get("prerequisites")),
        "duration": _to_int(rec.get("duration")),
        "tags": _split_csv(rec.get("tags")),
        "skill_levels": _split_csv(rec.get("skill_levels")),
        "equipment": _split_csv(rec.get("equipment")),
        "rank": rec.get("rank", ""),
    }
    return out


class DrillCatalog:
    """
    Read-only drill catalog:
    - loaded lazily from a JSON list on first access (thread-safe)
    - id -> record lookups for profile text construction
    A missing file yields an empty catalog rather than an error.
    """
    def __init__(self, path: str = DEFAULT_DRILLS_PATH, records: Optional[List[Dict[str, Any]]] = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._records: Optional[List[Dict[str, Any]]] = None
        self._by_id: Dict[str, Dict[str, Any]] = {}
        if records is not None:
            self._index(records)

    def _index(self, raw: List[Dict[str, Any]]) -> None:
        records = [drill_from_record(r) for r in raw if isinstance(r, dict)]
        records = [r for r in records if r["id"]]
        self._records = records
        self._by_id = {r["id"]: r for r in records}

    def _ensure_loaded(self) -> None:
        if self._records is not None:
            return
        with self._lock:
            if self._records is not None:
                return
            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    raw = json.load(f)
            except FileNotFoundError:
                logger.warning(f"[catalog] no drills file at {self._path}")
                raw = []
            self._index(raw if isinstance(raw, list) else [])
            logger.info(f"[catalog] loaded {len(self._records)} drills from {self._path}")

    def records(self) -> List[Dict[str, Any]]:
        self._ensure_loaded()
        return list(self._records or [])

    def get(self, drill_id: str) -> Optional[Drill]:
        self._ensure_loaded()
        rec = self._by_id.get(drill_id)
        if rec is None:
            return None
        return Drill(**{k: v for k, v in rec.items() if k in Drill.model_fields})

    def titles_for(self, drill_ids: Iterable[str]) -> List[str]:
        self._ensure_loaded()
        ids = set(drill_ids or [])
        # catalog order, like filtering the loaded list
        return [r["title"] for r in self._records or [] if r["id"] in ids]

    def get_available_drills(
        self,
        progress: UserProgress,
        categories: Optional[List[str]] = None,
        max_results: int = 50,
    ) -> List[Drill]:
        """Drills not yet completed whose prerequisites are met, optionally by category."""
        completed = set(progress.completed_drill_ids)
        out: List[Drill] = []
        for rec in self.records():
            if rec["id"] in completed:
                continue
            if not all(p in completed for p in rec["prerequisites"]):
                continue
            if categories and (rec["category"] or "general") not in categories:
                continue
            out.append(self.get(rec["id"]))
            if len(out) >= max_results:
                break
        return out


def infer_categories(progress: UserProgress) -> List[str]:
    if progress.preferences:
        return list(progress.preferences)
    if progress.recent_activity:
        return list(progress.recent_activity[:3])
    return ["general"]
