# =============================================
# File: app/services/retrieval.py
# Purpose: Candidate retrieval over the Chroma drill index
# =============================================

# app/services/retrieval.py
from __future__ import annotations

import os
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

import chromadb
from chromadb.utils.embedding_functions import SentenceTransformerEmbeddingFunction
from loguru import logger

from app.utils.drill_core import DIFFICULTIES, ScoredDrill, UserProgress
from app.utils.errors import IndexNotInitializedError

# ---------------------------------------------------------------------
# Chroma constants
# ---------------------------------------------------------------------

CHROMA_PATH = os.getenv("CHROMA_PERSIST_DIR", "store/chroma")
COLLECTION_NAME = os.getenv("CHROMA_COLLECTION", "drills_idx")

# Use cosine to be consistent with most sentence-transformers
HNSW_SPACE = "cosine"

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")

# Candidates fetched per requested drill, to leave headroom for dedup
OVERFETCH_FACTOR = 2

# Chroma metadata values are scalars; these are stored comma-joined
LIST_FIELDS = ("focus", "prerequisites", "tags", "skill_levels", "equipment")


def _get_embedding_function() -> SentenceTransformerEmbeddingFunction:
    """Return a sentence-transformers embedding function for Chroma."""
    return SentenceTransformerEmbeddingFunction(model_name=EMBEDDING_MODEL)


def _distance_to_similarity(dist: float, space: str = HNSW_SPACE) -> float:
    """
    Convert Chroma distance to a similarity score roughly in [0, 1].

    For cosine, Chroma returns distance = 1 - cosine_sim, so we invert.
    Higher always means closer after this conversion.
    """
    if space == "cosine":
        sim = 1.0 - float(dist)
    else:
        # l2 / ip: simple monotonic transform
        sim = 1.0 / (1.0 + float(dist))
    return max(0.0, min(1.0, sim))


# ---------------------------------------------------------------------
# Index session
# ---------------------------------------------------------------------

class DrillIndex:
    """
    Handle on the drill collection.

    Constructed cheaply; the Chroma client and embedding model are only
    created by `initialize()`, which runs at most once per instance.
    Queries before initialization raise IndexNotInitializedError.
    """

    def __init__(
        self,
        persist_dir: str = CHROMA_PATH,
        collection_name: str = COLLECTION_NAME,
        client: Any = None,
        embedding_function: Any = None,
    ) -> None:
        self.persist_dir = persist_dir
        self.collection_name = collection_name
        self._client = client
        self._embedding_function = embedding_function
        self._collection = None
        self._lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._collection is not None

    def initialize(self):
        with self._lock:
            if self._collection is not None:
                return self._collection
            if self._client is None:
                self._client = chromadb.PersistentClient(path=self.persist_dir)
            ef = self._embedding_function or _get_embedding_function()
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": HNSW_SPACE},
                embedding_function=ef,
            )
            logger.info(f"[index] initialized collection={self.collection_name} path={self.persist_dir}")
            return self._collection

    @property
    def collection(self):
        if self._collection is None:
            raise IndexNotInitializedError()
        return self._collection

    def count(self) -> int:
        return int(self.collection.count())

    def reset(self) -> None:
        """Drop and recreate the collection (offline reindex only)."""
        self.collection  # raises when not initialized
        with self._lock:
            try:
                self._client.delete_collection(self.collection_name)
            except Exception as e:
                logger.warning(f"[index] delete_collection failed: {e}")
            self._collection = None
        self.initialize()

    def upsert(self, ids: List[str], documents: List[str], metadatas: List[Dict[str, Any]]) -> None:
        self.collection.upsert(ids=ids, documents=documents, metadatas=metadatas)

    def query(
        self,
        text: str,
        k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Tuple[Dict[str, Any], str, float]]:
        """Return (metadata, document, similarity) triples, most similar first."""
        col = self.collection
        k_final = min(max(0, int(k)), self.count())
        if k_final == 0:
            return []

        res = col.query(
            query_texts=[text],
            n_results=k_final,
            where=where,
            include=["documents", "metadatas", "distances"],
        )
        docs = (res.get("documents") or [[]])[0]
        metas = (res.get("metadatas") or [[]])[0]
        dists = (res.get("distances") or [[]])[0]

        return [
            (dict(m or {}), d or "", _distance_to_similarity(dist))
            for d, m, dist in zip(docs, metas, dists)
        ]


# ---------------------------------------------------------------------
# Query & filter construction
# ---------------------------------------------------------------------

def _joined(values: Optional[Sequence[str]], empty: str = "none") -> str:
    vals = [str(v).strip() for v in (values or []) if str(v).strip()]
    return ", ".join(vals) if vals else empty


def build_enhanced_query(
    user_profile: str,
    progress: UserProgress,
    skill_level: Optional[str] = None,
    equipment: Optional[Sequence[str]] = None,
) -> str:
    """Single composite query text; no per-field vectors."""
    lines = [
        (user_profile or "").strip(),
        f"Skill level: {progress.skill_level or 'beginner'}",
        f"Weak areas: {_joined(progress.weak_areas)}",
        f"Preferences: {_joined(progress.preferences)}",
        f"Recent focus: {_joined(progress.recent_activity)}",
        f"Skill Level: {skill_level or 'any'}",
        f"Equipment: {_joined(equipment)}",
    ]
    return "\n".join(lines)


def build_exclusion_filter(completed_ids: Sequence[str]) -> Optional[Dict[str, Any]]:
    """
    Chroma where-clause excluding completed drills.
    An empty set yields no clause at all ($nin with [] is rejected/over-filters).
    """
    ids = sorted({str(i) for i in completed_ids or [] if i})
    if not ids:
        return None
    return {"id": {"$nin": ids}}


# ---------------------------------------------------------------------
# Result shaping
# ---------------------------------------------------------------------

def _split_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [p.strip() for p in str(value).split(",") if p.strip()]


def _to_int(value: Any, default: int = 10) -> int:
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


def scored_drill_from_hit(meta: Dict[str, Any], document: str, score: float) -> ScoredDrill:
    drill_id = str(meta.get("id") or "")
    difficulty = str(meta.get("difficulty") or "").lower() or None
    if difficulty not in DIFFICULTIES:
        difficulty = None
    return ScoredDrill(
        id=drill_id,
        title=str(meta.get("title") or drill_id),
        name=str(meta.get("name") or drill_id),
        description=str(meta.get("description") or (document or "")[:200]),
        reps=str(meta.get("reps") or "TBD"),
        category=(meta.get("category") or None),
        difficulty=difficulty,
        focus=_split_list(meta.get("focus")),
        prerequisites=_split_list(meta.get("prerequisites")),
        duration=_to_int(meta.get("duration")),
        tags=_split_list(meta.get("tags")),
        relevance_score=float(score),
    )


# ---------------------------------------------------------------------
# Public retriever
# ---------------------------------------------------------------------

def find_relevant_drills(
    index: DrillIndex,
    user_profile: str,
    progress: UserProgress,
    top_k: int = 30,
    skill_level: Optional[str] = None,
    equipment: Optional[Sequence[str]] = None,
) -> List[ScoredDrill]:
    """
    Semantic search for candidate drills, excluding completed ids.
    Over-fetches OVERFETCH_FACTOR x top_k so deduplication has headroom.
    """
    query_text = build_enhanced_query(user_profile, progress, skill_level, equipment)
    where = build_exclusion_filter(progress.completed_drill_ids)

    hits = index.query(query_text, k=top_k * OVERFETCH_FACTOR, where=where)

    completed = set(progress.completed_drill_ids)
    drills = [
        scored_drill_from_hit(meta, doc, score)
        for meta, doc, score in hits
        if meta.get("id") and str(meta.get("id")) not in completed
    ]
    logger.debug(f"[retrieval] k={top_k * OVERFETCH_FACTOR} hits={len(hits)} kept={len(drills)}")
    return drills
