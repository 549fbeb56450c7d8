# tests/test_recommend_endpoint.py

import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import json

from fastapi.testclient import TestClient

from app.services.catalog import DrillCatalog
from app.services.recommender import DrillRecommendationSystem
from app.services.retrieval import DrillIndex
from conftest import FakeClient, FakeCollection, entry


def _stub_namer(drills, theme, progress):
    return {"name": f"{theme} Builder", "description": "Stub.", "objectives": ["Stay short"]}, {"model": "stub-model"}


def _mount_client(monkeypatch, index):
    from app.main import app
    system = DrillRecommendationSystem(index=index, catalog=DrillCatalog(records=[]), block_namer=_stub_namer)
    monkeypatch.setattr(app.state, "recommender", system)
    return TestClient(app)


def test_recommend_returns_blocks(monkeypatch, fake_index):
    client = _mount_client(monkeypatch, fake_index)
    r = client.post("/recommend-drills", json={"user_id": "u42", "skill_level": "beginner", "block_size": 6})
    assert r.status_code == 200
    assert r.headers.get("X-Request-ID")
    blocks = r.json()["blocks"]
    assert 1 <= len(blocks) <= 3
    first = blocks[0]
    assert first["name"] == "Hitting Builder"
    assert 3 <= len(first["drills"]) <= 6
    for d in first["drills"]:
        assert d["id"] and d["title"]
        assert "relevance_score" in d
        assert d["reasoning"]


def test_camel_case_payload_and_exclusions(monkeypatch, fake_index):
    client = _mount_client(monkeypatch, fake_index)
    payload = {
        "userId": "u43",
        "skillLevel": " Intermediate ",
        "equipment": ["Bat"],
        "completedDrillIds": ["d01"],
        "likedDrillIds": ["d02"],
        "dislikedDrillIds": ["d03"],
        "blockSize": 4,
        "numBlocks": 1,
    }
    r = client.post("/recommend-drills", json=payload)
    assert r.status_code == 200
    blocks = r.json()["blocks"]
    assert len(blocks) == 1
    ids = {d["id"] for d in blocks[0]["drills"]}
    assert not ids & {"d01", "d02", "d03"}
    assert blocks[0]["user_id"] == "u43"


def test_invalid_block_size_is_rejected(monkeypatch, fake_index):
    client = _mount_client(monkeypatch, fake_index)
    r = client.post("/recommend-drills", json={"user_id": "u44", "block_size": 2})
    assert r.status_code == 422


def test_pipeline_failure_returns_kind(monkeypatch):
    index = DrillIndex(client=FakeClient(FakeCollection([entry("a", "A"), entry("b", "B")])), embedding_function=object())
    client = _mount_client(monkeypatch, index)
    r = client.post("/recommend-drills", json={"user_id": "u45"})
    assert r.status_code == 500
    assert r.json()["detail"] == {"error": "Failed to generate drill blocks", "kind": "insufficient_candidates"}


def test_no_candidates_kind(monkeypatch):
    index = DrillIndex(client=FakeClient(FakeCollection([])), embedding_function=object())
    client = _mount_client(monkeypatch, index)
    r = client.post("/recommend", json={"user_id": "u46"})
    assert r.status_code == 500
    assert r.json()["detail"]["kind"] == "no_candidates"


def test_unexpected_error_is_internal(monkeypatch, fake_index):
    client = _mount_client(monkeypatch, fake_index)

    def boom(*args, **kwargs):
        raise ValueError("bad metadata")

    from app.main import app
    monkeypatch.setattr(app.state.recommender, "recommend_for_request", boom)
    r = client.post("/recommend-drills", json={"user_id": "u47"})
    assert r.status_code == 500
    assert r.json()["detail"]["kind"] == "internal"


class _UnreachableClient(FakeClient):
    def get_or_create_collection(self, name, metadata=None, embedding_function=None):
        raise ConnectionError("chroma unreachable")


def test_index_startup_failure_reports_uninitialized_index(monkeypatch):
    index = DrillIndex(client=_UnreachableClient(FakeCollection()), embedding_function=object())
    client = _mount_client(monkeypatch, index)
    r = client.post("/recommend-drills", json={"user_id": "u48"})
    assert r.status_code == 500
    assert r.json()["detail"] == {"error": "Failed to generate drill blocks", "kind": "uninitialized_index"}


def test_malformed_catalog_record_does_not_break_requests(monkeypatch, fake_index, tmp_path):
    path = tmp_path / "drills.json"
    path.write_text(json.dumps([
        {"id": "ok", "title": "Good Drill", "difficulty": "Beginner"},
        {"id": "bad", "title": "Bad Drill", "duration": "n/a", "difficulty": "Elite"},
    ]))
    from app.main import app
    system = DrillRecommendationSystem(index=fake_index, catalog=DrillCatalog(path=str(path)), block_namer=_stub_namer)
    monkeypatch.setattr(app.state, "recommender", system)
    client = TestClient(app)

    r = client.post("/recommend-drills", json={"userId": "u49", "likedDrillIds": ["ok"], "numBlocks": 1})
    assert r.status_code == 200
    assert r.json()["blocks"]
