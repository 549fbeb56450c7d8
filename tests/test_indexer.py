# =============================================
# File: tests/test_indexer.py
# Purpose: Batch indexing keeps going past failed batches; metadata is Chroma-safe
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from app.services.catalog import DrillCatalog
from app.services.indexer import drill_metadata, drill_text, index_drills, refresh_drills
from app.services.retrieval import DrillIndex
from conftest import FakeClient, FakeCollection

RAW = [
    {
        "Drill ID": f"r-{i}",
        "Drill Name": f"Raw Drill {i}",
        "Description": "Hit off a tee.",
        "Skills": "Contact, Bat Path",
        "Skill Level": "Youth, High School",
        "Equipment": "Bat, Batting Tee",
        "Reps": "3 sets x 10 reps",
        "Content Type": "Hitting",
        "Rank": i,
    }
    for i in range(5)
]


def _index(col):
    return DrillIndex(client=FakeClient(col), embedding_function=object())


def test_metadata_is_scalar_only():
    rec = DrillCatalog(records=RAW).records()[0]
    md = drill_metadata(rec)
    assert md["focus"] == "Contact,Bat Path"
    assert md["equipment"] == "Bat,Batting Tee"
    assert md["prerequisites"] == ""
    assert md["difficulty"] == "beginner"
    assert all(isinstance(v, (str, int, float, bool)) for v in md.values())


def test_drill_text_mentions_skills_and_equipment():
    rec = DrillCatalog(records=RAW).records()[0]
    text = drill_text(rec)
    assert text.startswith("Raw Drill 0")
    assert "Skills: Contact Bat Path" in text
    assert "Equipment: Bat, Batting Tee" in text
    assert "Content Type: Hitting" in text


def test_failing_batch_is_skipped():
    col = FakeCollection(fail_on_upsert={2})
    records = DrillCatalog(records=RAW).records()

    indexed, failed = index_drills(_index(col), records, batch_size=2)

    assert (indexed, failed) == (3, 1)
    assert col.upserts == [["r-0", "r-1"], ["r-2", "r-3"], ["r-4"]]
    assert {e["meta"]["id"] for e in col.entries} == {"r-0", "r-1", "r-4"}


def test_refresh_with_clear_drops_old_entries():
    col = FakeCollection()
    col.entries.append({"meta": {"id": "stale"}, "doc": "", "distance": 0.1})
    index = _index(col)

    indexed, failed = refresh_drills(DrillCatalog(records=RAW), index, batch_size=10, clear=True)

    assert (indexed, failed) == (5, 0)
    assert index._client.deleted == [index.collection_name]
    assert "stale" not in {e["meta"]["id"] for e in col.entries}


def test_refresh_empty_catalog_is_noop():
    col = FakeCollection()
    assert refresh_drills(DrillCatalog(records=[]), _index(col)) == (0, 0)
    assert col.upserts == []
