# =============================================
# File: app/utils/drill_core.py
# Purpose: Core drill/progress/block models shared by the pipeline
# =============================================

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Difficulty = Literal["beginner", "intermediate", "advanced"]

DIFFICULTIES: tuple = ("beginner", "intermediate", "advanced")
LEVELS = {"beginner": 1, "intermediate": 2, "advanced": 3}


class Drill(BaseModel):
    """A catalog drill. Immutable once retrieved."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    name: str = ""
    description: str = ""
    reps: str = "TBD"
    category: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    focus: List[str] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    duration: int = 10
    tags: List[str] = Field(default_factory=list)


class ScoredDrill(Drill):
    # higher = more relevant (the index adapter converts distances)
    relevance_score: float


class BlockDrill(ScoredDrill):
    reasoning: str = ""


class UserProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    completed_drill_ids: List[str] = Field(default_factory=list)
    skill_level: Optional[Difficulty] = None
    preferences: Optional[List[str]] = None
    weak_areas: Optional[List[str]] = None
    recent_activity: Optional[List[str]] = None  # last 10 drill categories


class DrillBlock(BaseModel):
    id: str
    name: str
    theme: str
    description: str
    drills: List[BlockDrill]
    coherence_score: float
    total_duration: int
    difficulty: Difficulty
    learning_objectives: List[str]
    user_id: Optional[str] = None
