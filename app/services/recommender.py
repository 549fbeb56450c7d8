# =============================================
# File: app/services/recommender.py
# Purpose: Drill block recommender: retrieve -> dedup -> rank -> assemble -> name
# =============================================

# app/services/recommender.py
from __future__ import annotations
import os
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from app.services.block_creator import MIN_BLOCK_SIZE, build_block, select_block_drills
from app.services.catalog import DrillCatalog
from app.services.generation import FALLBACK_MODEL, fallback_metadata, generate_block_metadata
from app.services.retrieval import DrillIndex, find_relevant_drills
from app.utils.dedup import deduplicate_by_title
from app.utils.drill_core import DrillBlock, ScoredDrill, UserProgress
from app.utils.errors import IndexNotInitializedError, InsufficientCandidatesError, NoCandidatesError
from app.utils.metrics import record_block
from app.utils.timing import stage_timer

DEFAULT_THEME = os.getenv("REC_DEFAULT_THEME", "Hitting")

BlockNamer = Callable[[List[ScoredDrill], str, UserProgress], Tuple[Dict, Dict]]


def _candidate_factor() -> int:
    # read at call time so env overrides take effect
    return max(1, int(os.getenv("REC_CANDIDATE_FACTOR", "20")))


def build_user_profile(
    skill_level: str,
    liked_titles: Sequence[str],
    disliked_titles: Sequence[str],
    equipment: Sequence[str],
) -> str:
    return "\n".join([
        f"User is an {skill_level} level athlete.",
        f"Drills they Liked: {', '.join(liked_titles)}",
        f"Drills they Disliked: {', '.join(disliked_titles)}",
        f"Equipment: {', '.join(equipment)}",
    ])


def group_by_focus(drills: List[ScoredDrill]) -> Dict[str, List[ScoredDrill]]:
    """Focus tag -> drills, in order of each tag's first appearance."""
    groups: Dict[str, List[ScoredDrill]] = {}
    for drill in drills:
        for focus in drill.focus:
            groups.setdefault(focus, []).append(drill)
    return groups


class DrillRecommendationSystem:
    """
    Request pipeline over an injected index session.

    The index is initialized lazily, once, on the first request; the same
    handle is then shared read-only by concurrent requests.
    """

    def __init__(
        self,
        index: DrillIndex,
        catalog: Optional[DrillCatalog] = None,
        block_namer: BlockNamer = generate_block_metadata,
        recorder: Optional[Callable[[DrillBlock], Any]] = None,
    ) -> None:
        self.index = index
        self.catalog = catalog or DrillCatalog()
        self.block_namer = block_namer
        self.recorder = recorder
        self._init_lock = threading.Lock()

    def ensure_index(self) -> DrillIndex:
        if not self.index.is_initialized:
            with self._init_lock:
                if not self.index.is_initialized:
                    try:
                        self.index.initialize()
                    except Exception as e:
                        logger.error(f"[recommend] index initialization failed: {e}")
                        raise IndexNotInitializedError(f"Vector store initialization failed: {e}") from e
        return self.index

    # ---- retrieval + dedup ----
    def find_relevant_drills(
        self,
        user_profile: str,
        progress: UserProgress,
        top_k: int = 30,
        skill_level: Optional[str] = None,
        equipment: Optional[Sequence[str]] = None,
    ) -> List[ScoredDrill]:
        with stage_timer("retrieve"):
            raw = find_relevant_drills(
                self.index, user_profile, progress, top_k=top_k,
                skill_level=skill_level, equipment=equipment,
            )
        # dedup by title, then back to the requested count
        return deduplicate_by_title(raw)[:top_k]

    # ---- naming ----
    def _name_block(self, drills: List[ScoredDrill], theme: str, progress: UserProgress) -> Dict:
        """Best-effort: any namer failure falls back to deterministic labels."""
        try:
            metadata, meta = self.block_namer(drills, theme, progress)
            model = meta.get("model") or FALLBACK_MODEL
        except Exception as e:
            logger.warning(f"[recommend] block naming failed, using fallback: {e}")
            metadata, model = fallback_metadata(theme), FALLBACK_MODEL
        record_block(model)
        return metadata

    def _record(self, block: DrillBlock) -> None:
        if self.recorder is None:
            return
        try:
            self.recorder(block)
        except Exception as e:
            logger.warning(f"[recommend] failed to record block {block.id}: {e}")

    def create_block(
        self,
        relevant_drills: List[ScoredDrill],
        theme: str,
        progress: UserProgress,
        block_size: int = 8,
    ) -> DrillBlock:
        with stage_timer("assemble"):
            selected = select_block_drills(relevant_drills, progress, block_size)
        metadata = self._name_block(selected, theme, progress)
        block = build_block(selected, theme, progress, metadata)
        self._record(block)
        return block

    # ---- main entry points ----
    def create_personalized_drill_blocks(
        self,
        user_profile: str,
        progress: UserProgress,
        skill_level: Optional[str] = None,
        equipment: Optional[Sequence[str]] = None,
        num_blocks: int = 3,
        block_size: int = 8,
        theme: str = DEFAULT_THEME,
    ) -> List[DrillBlock]:
        """
        First block: whole ranked pool, default theme (its failure fails the call).
        Further blocks: focus-area groups over drills not used yet; groups with
        fewer than 3 unused drills are skipped.
        """
        logger.info(
            f"[recommend] user={progress.user_id} blocks={num_blocks} size={block_size} "
            f"completed={len(progress.completed_drill_ids)}"
        )
        self.ensure_index()

        top_k = max(1, num_blocks) * block_size * _candidate_factor()
        relevant = self.find_relevant_drills(
            user_profile, progress, top_k=top_k, skill_level=skill_level, equipment=equipment,
        )
        logger.info(f"[recommend] found {len(relevant)} relevant drills")
        if not relevant:
            raise NoCandidatesError()

        blocks = [self.create_block(relevant, theme, progress, block_size)]
        used = {d.id for d in blocks[0].drills}

        for focus, in_focus in group_by_focus(relevant).items():
            if len(blocks) >= num_blocks:
                break
            available = [d for d in in_focus if d.id not in used]
            if len(available) < MIN_BLOCK_SIZE:
                continue
            try:
                block = self.create_block(available, focus, progress, block_size)
            except InsufficientCandidatesError:
                continue
            blocks.append(block)
            used.update(d.id for d in block.drills)

        logger.info(f"[recommend] created {len(blocks)} drill blocks")
        return blocks

    def recommend_for_request(
        self,
        skill_level: str,
        equipment: Sequence[str],
        completed_ids: Sequence[str],
        liked_ids: Sequence[str] = (),
        disliked_ids: Sequence[str] = (),
        num_blocks: int = 3,
        block_size: int = 8,
        user_id: str = "anonymous",
    ) -> List[DrillBlock]:
        """Liked/disliked drills are folded into the exclusion set so they are never re-suggested."""
        liked_titles = self.catalog.titles_for(liked_ids)
        disliked_titles = self.catalog.titles_for(disliked_ids)

        excluded: List[str] = []
        for drill_id in [*completed_ids, *liked_ids, *disliked_ids]:
            if drill_id and drill_id not in excluded:
                excluded.append(drill_id)

        level = skill_level if skill_level in ("beginner", "intermediate", "advanced") else None
        progress = UserProgress(user_id=user_id, completed_drill_ids=excluded, skill_level=level)
        profile = build_user_profile(skill_level, liked_titles, disliked_titles, equipment)

        return self.create_personalized_drill_blocks(
            profile, progress, skill_level=skill_level, equipment=list(equipment),
            num_blocks=num_blocks, block_size=block_size,
        )
