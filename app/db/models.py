# =============================================
# File: app/db/models.py
# Purpose: SQLModel ORM definitions for the log of generated drill blocks.
# =============================================

from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone

class BlockRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    block_id: str
    theme: str
    drill_ids: str  # comma-joined, block order
    total_duration: int = 0
    difficulty: str = "beginner"
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
