# =============================================
# File: app/services/indexer.py
# Purpose: Batch-index the drill catalog into the Chroma drill index.
# =============================================
from __future__ import annotations
import os
from typing import Any, Dict, List, Tuple

from loguru import logger

from app.services.catalog import DrillCatalog
from app.services.retrieval import LIST_FIELDS, DrillIndex
from app.utils.dedup import normalize_title

DEFAULT_BATCH_SIZE = int(os.getenv("INDEX_BATCH_SIZE", "100"))


def drill_text(rec: Dict[str, Any]) -> str:
    """Rich text for embedding: title, description, skills, levels, equipment, type."""
    parts = [
        rec.get("title", ""),
        rec.get("description", ""),
        f"Skills: {' '.join(rec.get('focus') or [])}",
        f"Skill Level: {', '.join(rec.get('skill_levels') or []) or rec.get('difficulty') or ''}",
        f"Equipment: {', '.join(rec.get('equipment') or [])}",
        f"Content Type: {rec.get('category') or 'general'}",
    ]
    return "\n".join(p for p in parts if p).strip()


def _normalize_metadata(md: Dict) -> Dict:
    """Chroma only accepts str|int|float|bool. Coerce None/lists/other types."""
    norm: Dict[str, str | int | float | bool] = {}
    for k, v in md.items():
        if v is None:
            norm[k] = ""
        elif k in LIST_FIELDS or isinstance(v, (list, tuple, set)):
            norm[k] = ",".join(str(x) for x in (v or []))
        elif isinstance(v, (str, int, float, bool)):
            norm[k] = v
        else:
            norm[k] = str(v)
    return norm


def drill_metadata(rec: Dict[str, Any]) -> Dict:
    return _normalize_metadata({
        "id": rec["id"],
        "title": rec.get("title") or rec["id"],
        "name": rec.get("name") or rec["id"],
        "description": rec.get("description", ""),
        "reps": rec.get("reps") or "TBD",
        "category": rec.get("category") or "general",
        "difficulty": rec.get("difficulty") or "beginner",
        "focus": rec.get("focus") or [],
        "duration": rec.get("duration") or 10,
        "prerequisites": rec.get("prerequisites") or [],
        "tags": rec.get("tags") or [],
        "skill_levels": rec.get("skill_levels") or [],
        "equipment": rec.get("equipment") or [],
        "rank": rec.get("rank", ""),
    })


def _warn_duplicate_titles(records: List[Dict[str, Any]]) -> None:
    seen: Dict[str, str] = {}
    for rec in records:
        key = normalize_title(rec.get("title", ""))
        if key in seen and seen[key] != rec["id"]:
            logger.warning(
                f"[indexer] duplicate title '{rec.get('title')}' for ids {seen[key]} and {rec['id']}; "
                "retrieval will keep only one of them"
            )
        seen.setdefault(key, rec["id"])


def index_drills(
    index: DrillIndex,
    records: List[Dict[str, Any]],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Tuple[int, int]:
    """
    Upsert normalized catalog records in fixed-size batches.

    A failing batch is logged and skipped; the remaining batches still run.
    Returns: (num_indexed, num_failed_batches)
    """
    if not index.is_initialized:
        index.initialize()

    _warn_duplicate_titles(records)

    batch_size = max(1, int(batch_size))
    total_batches = (len(records) + batch_size - 1) // batch_size
    logger.info(f"[indexer] processing {len(records)} drills in batches of {batch_size}")

    indexed = 0
    failed = 0
    for i in range(0, len(records), batch_size):
        batch = records[i : i + batch_size]
        batch_num = i // batch_size + 1
        try:
            index.upsert(
                ids=[r["id"] for r in batch],
                documents=[drill_text(r) for r in batch],
                metadatas=[drill_metadata(r) for r in batch],
            )
        except Exception as e:
            failed += 1
            logger.error(f"[indexer] failed batch {batch_num}/{total_batches}: {e}")
            continue
        indexed += len(batch)
        logger.info(f"[indexer] batch {batch_num}/{total_batches} completed")

    logger.info(f"[indexer] done: indexed={indexed} failed_batches={failed}")
    return indexed, failed


def refresh_drills(
    catalog: DrillCatalog,
    index: DrillIndex,
    batch_size: int = DEFAULT_BATCH_SIZE,
    clear: bool = False,
) -> Tuple[int, int]:
    """Rebuild the drill index from a catalog file."""
    records = catalog.records()
    if not records:
        return (0, 0)
    index.initialize()
    if clear:
        index.reset()
    return index_drills(index, records, batch_size=batch_size)
