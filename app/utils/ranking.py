# =============================================
# File: app/utils/ranking.py
# Purpose: Skill-fit weighting and deterministic ranking of candidates
# =============================================
from __future__ import annotations

from typing import List, Optional

from .drill_core import LEVELS, ScoredDrill


def level_of(difficulty: Optional[str]) -> int:
    """Ordinal level; missing/unknown values count as beginner."""
    return LEVELS.get((difficulty or "").lower(), 1)


def skill_weight(drill_difficulty: Optional[str], user_level: Optional[str]) -> float:
    """
    Prefer drills at the user's level or slightly above.

      same level      -> 1.0
      one above       -> 0.8
      one below       -> 0.6
      anything else   -> 0.3
    """
    drill_lvl = level_of(drill_difficulty)
    user_lvl = level_of(user_level)
    if drill_lvl == user_lvl:
        return 1.0
    if drill_lvl == user_lvl + 1:
        return 0.8
    if drill_lvl == user_lvl - 1:
        return 0.6
    return 0.3


def rank_drills(drills: List[ScoredDrill], user_level: Optional[str]) -> List[ScoredDrill]:
    # stable: equal keys keep input order
    return sorted(
        drills,
        key=lambda d: (-skill_weight(d.difficulty, user_level), -d.relevance_score),
    )
