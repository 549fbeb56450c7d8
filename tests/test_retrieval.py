# =============================================
# File: tests/test_retrieval.py
# Purpose: Query construction, exclusion filter, result shaping over a fake Chroma collection
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from app.services.retrieval import (
    DrillIndex,
    _distance_to_similarity,
    build_enhanced_query,
    build_exclusion_filter,
    find_relevant_drills,
    scored_drill_from_hit,
)
from app.utils.drill_core import UserProgress
from app.utils.errors import IndexNotInitializedError
from conftest import FakeClient, FakeCollection


def test_enhanced_query_defaults():
    q = build_enhanced_query("User is an beginner level athlete.", UserProgress(user_id="u"))
    lines = q.split("\n")
    assert lines[0] == "User is an beginner level athlete."
    assert "Skill level: beginner" in lines
    assert "Weak areas: none" in lines
    assert "Preferences: none" in lines
    assert "Recent focus: none" in lines
    assert "Skill Level: any" in lines
    assert "Equipment: none" in lines


def test_enhanced_query_with_fields():
    progress = UserProgress(
        user_id="u",
        skill_level="advanced",
        weak_areas=["contact", "timing"],
        preferences=["hitting"],
        recent_activity=["fielding"],
    )
    q = build_enhanced_query("profile", progress, skill_level="advanced", equipment=["Bat", "Tee"])
    assert "Weak areas: contact, timing" in q
    assert "Preferences: hitting" in q
    assert "Recent focus: fielding" in q
    assert "Skill Level: advanced" in q
    assert "Equipment: Bat, Tee" in q


def test_empty_exclusion_yields_no_clause():
    assert build_exclusion_filter([]) is None
    assert build_exclusion_filter(None) is None
    assert build_exclusion_filter(["d2", "d1", "d2"]) == {"id": {"$nin": ["d1", "d2"]}}


def test_query_before_initialize_fails(fake_index):
    assert not fake_index.is_initialized
    with pytest.raises(IndexNotInitializedError) as exc:
        find_relevant_drills(fake_index, "p", UserProgress(user_id="u"), top_k=3)
    assert exc.value.kind == "uninitialized_index"


def test_initialize_is_idempotent(fake_index):
    client = fake_index._client
    fake_index.initialize()
    fake_index.initialize()
    assert client.created == 1
    assert fake_index.is_initialized


def test_overfetch_and_shaping(fake_index, fake_collection):
    fake_index.initialize()
    drills = find_relevant_drills(fake_index, "p", UserProgress(user_id="u"), top_k=3)

    assert fake_collection.queries[-1]["n_results"] == 6
    assert fake_collection.queries[-1]["where"] is None
    assert [d.id for d in drills] == ["d01", "d02", "d03", "d04", "d05", "d06"]
    first = drills[0]
    assert first.relevance_score == pytest.approx(0.95)
    assert first.focus == ["contact"]
    assert first.prerequisites == []
    assert first.difficulty == "beginner"
    # higher is closer after conversion
    scores = [d.relevance_score for d in drills]
    assert scores == sorted(scores, reverse=True)


def test_completed_are_filtered(fake_index, fake_collection):
    fake_index.initialize()
    progress = UserProgress(user_id="u", completed_drill_ids=["d01", "d03"])
    drills = find_relevant_drills(fake_index, "p", progress, top_k=2)

    assert fake_collection.queries[-1]["where"] == {"id": {"$nin": ["d01", "d03"]}}
    assert [d.id for d in drills] == ["d02", "d04", "d05", "d06"]


def test_k_is_clamped_to_collection_size():
    col = FakeCollection()
    index = DrillIndex(client=FakeClient(col), embedding_function=object())
    index.initialize()
    assert index.query("anything", k=10) == []
    assert col.queries == []


def test_distance_conversion():
    assert _distance_to_similarity(0.0) == 1.0
    assert _distance_to_similarity(0.25) == pytest.approx(0.75)
    assert _distance_to_similarity(1.7) == 0.0
    assert _distance_to_similarity(1.0, space="l2") == pytest.approx(0.5)


def test_hit_shaping_defaults():
    d = scored_drill_from_hit({"id": "x1", "difficulty": "Elite", "duration": "abc"}, "long document " * 30, 0.4)
    assert d.title == "x1"
    assert d.difficulty is None
    assert d.duration == 10
    assert d.reps == "TBD"
    assert len(d.description) == 200
