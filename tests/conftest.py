# =============================================
# File: tests/conftest.py
# Purpose: Shared fixtures: in-memory Chroma stand-in + drill factories
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from typing import Any, Dict, List, Optional

import pytest

from app.services.retrieval import DrillIndex
from app.utils.drill_core import ScoredDrill
from app.utils.metrics import reset as metrics_reset
from app.utils.ratelimit import reset_rate_limit


class FakeCollection:
    """
    Minimal Chroma collection: entries are returned in ascending distance,
    honoring n_results and an {"id": {"$nin": [...]}} where-clause.
    """

    def __init__(self, entries: Optional[List[Dict[str, Any]]] = None, fail_on_upsert: Optional[set] = None):
        self.entries: List[Dict[str, Any]] = list(entries or [])
        self.queries: List[Dict[str, Any]] = []
        self.upserts: List[List[str]] = []
        self.fail_on_upsert = fail_on_upsert or set()

    def count(self) -> int:
        return len(self.entries)

    def upsert(self, ids, documents, metadatas):
        call_no = len(self.upserts) + 1
        self.upserts.append(list(ids))
        if call_no in self.fail_on_upsert:
            raise RuntimeError(f"upsert {call_no} rejected")
        for i, d, m in zip(ids, documents, metadatas):
            self.entries = [e for e in self.entries if e["meta"].get("id") != i]
            self.entries.append({"meta": dict(m), "doc": d, "distance": 0.5})

    def query(self, query_texts, n_results, where=None, include=None):
        self.queries.append({"query_texts": query_texts, "n_results": n_results, "where": where})
        excluded = set((where or {}).get("id", {}).get("$nin", []))
        hits = [e for e in self.entries if e["meta"].get("id") not in excluded]
        hits = sorted(hits, key=lambda e: e["distance"])[:n_results]
        return {
            "documents": [[e["doc"] for e in hits]],
            "metadatas": [[e["meta"] for e in hits]],
            "distances": [[e["distance"] for e in hits]],
        }


class FakeClient:
    def __init__(self, collection: FakeCollection):
        self.collection = collection
        self.created = 0
        self.deleted: List[str] = []

    def get_or_create_collection(self, name, metadata=None, embedding_function=None):
        self.created += 1
        return self.collection

    def delete_collection(self, name):
        self.deleted.append(name)
        self.collection.entries = []


def entry(drill_id: str, title: str, difficulty: str = "beginner", distance: float = 0.2, focus: str = "hitting", **extra) -> Dict[str, Any]:
    meta = {
        "id": drill_id,
        "title": title,
        "name": title,
        "description": f"{title} description",
        "reps": "3 sets x 10 reps",
        "category": "general",
        "difficulty": difficulty,
        "focus": focus,
        "duration": 10,
        "prerequisites": "",
        "tags": "",
    }
    meta.update(extra)
    return {"meta": meta, "doc": f"{title}\n{title} description", "distance": distance}


def make_drill(drill_id: str, difficulty: Optional[str] = "beginner", score: float = 0.5, title: Optional[str] = None, focus=("hitting",)) -> ScoredDrill:
    return ScoredDrill(
        id=drill_id,
        title=title or f"Drill {drill_id}",
        difficulty=difficulty,
        focus=list(focus),
        relevance_score=score,
    )


def sample_entries() -> List[Dict[str, Any]]:
    """12 drills, 4 per difficulty, two focus groups; d01 is closest."""
    levels = ["beginner", "intermediate", "advanced"]
    out = []
    for i in range(12):
        out.append(entry(
            f"d{i + 1:02d}",
            f"Drill {i + 1}",
            difficulty=levels[i % 3],
            distance=round(0.05 + 0.04 * i, 2),
            focus="contact" if i % 2 == 0 else "power",
        ))
    return out


@pytest.fixture
def fake_collection():
    return FakeCollection(sample_entries())


@pytest.fixture
def fake_index(fake_collection):
    return DrillIndex(
        persist_dir="unused",
        collection_name="drills_test",
        client=FakeClient(fake_collection),
        embedding_function=object(),
    )


@pytest.fixture(autouse=True)
def _clean_state(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("RL_MAX_REQS", "100")
    monkeypatch.setenv("RL_WINDOW_SECONDS", "60")
    reset_rate_limit()
    metrics_reset()
    yield
