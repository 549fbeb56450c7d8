# app/routers/recommend.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.services.recommender import DrillRecommendationSystem
from app.utils import slog
from app.utils.drill_core import DrillBlock
from app.utils.errors import RecommendationError
from app.utils.metrics import record_rate_limit_hit
from app.utils.ratelimit import check_rate_limit, rate_key

router = APIRouter(tags=["recommend"])

FAILURE_MESSAGE = "Failed to generate drill blocks"


# ---------- Schemas ----------
class RecommendRequest(BaseModel):
    """
    Incoming recommendation payload. camelCase keys from the mobile client
    (skillLevel, completedDrillIds, ...) are accepted as aliases.
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field("anonymous", alias="userId", min_length=1, max_length=128)
    skill_level: str = Field("beginner", alias="skillLevel", max_length=64)
    equipments: List[str] = Field(default_factory=list, alias="equipment")
    completed_drill_ids: List[str] = Field(default_factory=list, alias="completedDrillIds")
    liked_drill_ids: List[str] = Field(default_factory=list, alias="likedDrillIds")
    disliked_drill_ids: List[str] = Field(default_factory=list, alias="dislikedDrillIds")
    block_size: int = Field(8, alias="blockSize", ge=3, le=20)
    num_blocks: int = Field(3, alias="numBlocks", ge=1, le=5)

    @field_validator("skill_level")
    @classmethod
    def _trim_level(cls, v: str) -> str:
        v = (v or "").strip().lower()
        return v or "beginner"

    @field_validator("equipments", "completed_drill_ids", "liked_drill_ids", "disliked_drill_ids")
    @classmethod
    def _drop_blanks(cls, v: List[str]) -> List[str]:
        return [s.strip() for s in v if s and s.strip()]


class RecommendResponse(BaseModel):
    blocks: List[DrillBlock]


def get_system(request: Request) -> DrillRecommendationSystem:
    return request.app.state.recommender


# ---------- Endpoint ----------
@router.post("/recommend-drills", response_model=RecommendResponse)
@router.post("/recommend", response_model=RecommendResponse, include_in_schema=False)
def post_recommend_drills(req: RecommendRequest, request: Request) -> RecommendResponse:
    """
    Personalized drill blocks.

    Liked and disliked drills are excluded from results just like completed ones.
    Failures return 500 with detail {"error", "kind"}; a partial block is never returned.
    """
    client_ip = request.client.host if request.client else None
    excluded = [*req.completed_drill_ids, *req.liked_drill_ids, *req.disliked_drill_ids]
    request.state.log_context = {
        "user_id": req.user_id,
        "phash": slog.phash(req.skill_level, req.equipments, excluded),
    }

    try:
        check_rate_limit(rate_key(req.user_id, client_ip))
    except RuntimeError:
        record_rate_limit_hit()
        request.state.log_context["rate_limited"] = True
        raise HTTPException(status_code=429, detail="Too Many Requests")

    system = get_system(request)
    try:
        blocks = system.recommend_for_request(
            skill_level=req.skill_level,
            equipment=req.equipments,
            completed_ids=req.completed_drill_ids,
            liked_ids=req.liked_drill_ids,
            disliked_ids=req.disliked_drill_ids,
            num_blocks=req.num_blocks,
            block_size=req.block_size,
            user_id=req.user_id,
        )
    except RecommendationError as e:
        logger.error(f"[recommend] {e.kind}: {e}")
        request.state.log_context["error_kind"] = e.kind
        raise HTTPException(status_code=500, detail={"error": FAILURE_MESSAGE, "kind": e.kind})
    except Exception as e:
        logger.exception(f"[recommend] unexpected failure: {e}")
        request.state.log_context["error_kind"] = "internal"
        raise HTTPException(status_code=500, detail={"error": FAILURE_MESSAGE, "kind": "internal"})

    request.state.log_context["blocks"] = len(blocks)
    request.state.log_context["drills"] = sum(len(b.drills) for b in blocks)
    return RecommendResponse(blocks=blocks)
