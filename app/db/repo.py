# =============================================
# File: app/db/repo.py
# Purpose: DB repository: engine from DB_URL (default SQLite), table creation and block logging.
# =============================================

import os
from functools import lru_cache
from typing import List

from sqlmodel import SQLModel, Session, create_engine, select

from app.db.models import BlockRecord
from app.utils.drill_core import DrillBlock


@lru_cache(maxsize=1)
def get_engine():
    db_url = os.getenv("DB_URL", "sqlite:///./app.db")
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_engine(db_url, echo=False, connect_args=connect_args)


def init_db(engine=None) -> None:
    SQLModel.metadata.create_all(engine or get_engine())


def save_block(block: DrillBlock, engine=None) -> BlockRecord:
    rec = BlockRecord(
        user_id=block.user_id or "anonymous",
        block_id=block.id,
        theme=block.theme,
        drill_ids=",".join(d.id for d in block.drills),
        total_duration=block.total_duration,
        difficulty=block.difficulty,
    )
    with Session(engine or get_engine()) as session:
        session.add(rec)
        session.commit()
        session.refresh(rec)
    return rec


def blocks_for_user(user_id: str, engine=None) -> List[BlockRecord]:
    with Session(engine or get_engine()) as session:
        stmt = select(BlockRecord).where(BlockRecord.user_id == user_id).order_by(BlockRecord.id)
        return list(session.exec(stmt).all())
