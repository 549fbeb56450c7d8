# =============================================
# File: app/utils/dedup.py
# Purpose: Collapse retrieved candidates that share a normalized title
# =============================================
from __future__ import annotations

from typing import Dict, List

from loguru import logger

from .drill_core import ScoredDrill


def normalize_title(title: str) -> str:
    return (title or "").lower().strip()


def deduplicate_by_title(drills: List[ScoredDrill]) -> List[ScoredDrill]:
    """
    Keep one drill per normalized title.

    A later candidate only replaces the kept one when its relevance score is
    strictly higher, so on an exact tie the first-seen candidate wins.
    Output is ordered by descending relevance (stable).

    Note: two distinct catalog entries sharing a title will collapse here;
    titles are assumed unique in the catalog.
    """
    by_title: Dict[str, ScoredDrill] = {}
    removed = 0

    for drill in drills:
        key = normalize_title(drill.title)
        prev = by_title.get(key)
        if prev is None:
            by_title[key] = drill
            continue
        removed += 1
        if drill.relevance_score > prev.relevance_score:
            logger.debug(
                f'[dedup] duplicate removed: "{prev.title}" '
                f"(kept higher score: {drill.relevance_score:.3f} vs {prev.relevance_score:.3f})"
            )
            by_title[key] = drill
        else:
            logger.debug(f'[dedup] duplicate removed: "{drill.title}" (lower score: {drill.relevance_score:.3f})')

    if removed:
        logger.info(f"[dedup] {len(drills)} -> {len(by_title)} drills (removed {removed} duplicates)")

    return sorted(by_title.values(), key=lambda d: -d.relevance_score)
