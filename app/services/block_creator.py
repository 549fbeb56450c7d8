# =============================================
# File: app/services/block_creator.py
# Purpose: Progressive-difficulty block assembly + block enrichment helpers
# =============================================
from __future__ import annotations

import secrets
import time
from typing import Dict, List, Optional

from loguru import logger

from app.utils.drill_core import (
    DIFFICULTIES,
    LEVELS,
    BlockDrill,
    Drill,
    DrillBlock,
    ScoredDrill,
    UserProgress,
)
from app.utils.errors import InsufficientCandidatesError
from app.utils.ranking import rank_drills

MIN_BLOCK_SIZE = 3


def apply_progressive_selection(drills: List[ScoredDrill], block_size: int) -> List[ScoredDrill]:
    """
    Spread a block across difficulty tiers instead of picking purely by rank.

    Beginner and intermediate get floor(block_size / 3) slots each, advanced
    absorbs the remaining room; whatever is still open is backfilled from the
    unselected pool in ranked order. Drills without a known difficulty only
    enter through the backfill.
    """
    groups: Dict[str, List[ScoredDrill]] = {d: [] for d in DIFFICULTIES}
    for drill in drills:
        if drill.difficulty in groups:
            groups[drill.difficulty].append(drill)

    quota = block_size // 3
    selected: List[ScoredDrill] = []
    selected.extend(groups["beginner"][:quota])
    selected.extend(groups["intermediate"][:quota])
    selected.extend(groups["advanced"][: max(0, block_size - len(selected))])

    chosen = {d.id for d in selected}
    for drill in drills:
        if len(selected) >= block_size:
            break
        if drill.id in chosen:
            continue
        selected.append(drill)
        chosen.add(drill.id)

    return selected[:block_size]


def select_block_drills(
    relevant_drills: List[ScoredDrill],
    progress: UserProgress,
    block_size: int = 8,
) -> List[ScoredDrill]:
    """
    Rank -> truncate to block_size -> progressive selection.
    Raises InsufficientCandidatesError when fewer than 3 drills qualify.
    """
    completed = set(progress.completed_drill_ids)
    pool = [d for d in relevant_drills if d.id not in completed]
    if len(pool) < MIN_BLOCK_SIZE:
        raise InsufficientCandidatesError(found=len(pool), minimum=MIN_BLOCK_SIZE)

    ranked = rank_drills(pool, progress.skill_level)[:block_size]
    selected = apply_progressive_selection(ranked, block_size)

    if len(selected) < MIN_BLOCK_SIZE:
        raise InsufficientCandidatesError(found=len(selected), minimum=MIN_BLOCK_SIZE)
    return selected


# ---------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------

def drill_reasoning(drill: ScoredDrill, progress: UserProgress) -> str:
    weak = set(progress.weak_areas or [])
    if weak and weak.intersection(drill.focus):
        return "Targets your weak areas"
    if drill.relevance_score > 0.8:
        return "High relevance to your profile"
    return "Good skill progression match"


def calculate_coherence(drills: List[Drill]) -> float:
    """Shared-focus ratio in [0, 1]; 0 when no drill carries focus tags."""
    all_focus = [f for d in drills for f in d.focus]
    unique = set(all_focus)
    if not drills or not unique:
        return 0.0
    return min(len(all_focus) / len(unique) / len(drills), 1.0)


def calculate_block_difficulty(drills: List[Drill]) -> str:
    if not drills:
        return "beginner"
    avg = sum(LEVELS.get(d.difficulty or "beginner", 1) for d in drills) / len(drills)
    if avg <= 1.4:
        return "beginner"
    if avg <= 2.4:
        return "intermediate"
    return "advanced"


def total_duration(drills: List[Drill]) -> int:
    return sum(d.duration or 10 for d in drills)


def new_block_id() -> str:
    return f"block-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def build_block(
    selected: List[ScoredDrill],
    theme: str,
    progress: UserProgress,
    metadata: Optional[Dict] = None,
) -> DrillBlock:
    meta = metadata or {}
    block = DrillBlock(
        id=new_block_id(),
        name=str(meta.get("name") or theme),
        theme=theme,
        description=str(meta.get("description") or ""),
        drills=[
            BlockDrill(**d.model_dump(), reasoning=drill_reasoning(d, progress))
            for d in selected
        ],
        coherence_score=calculate_coherence(selected),
        total_duration=total_duration(selected),
        difficulty=calculate_block_difficulty(selected),
        learning_objectives=[str(o) for o in meta.get("objectives") or []],
        user_id=progress.user_id,
    )
    logger.info(
        f"[block] theme={theme} size={len(block.drills)} "
        f"difficulty={block.difficulty} duration={block.total_duration}"
    )
    return block
