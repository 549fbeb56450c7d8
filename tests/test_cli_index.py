# =============================================
# File: tests/test_cli_index.py
# Purpose: Index CLI exit codes with a stubbed Chroma index
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import json

import pytest

import app.cli.index_drills as cli
from app.services.retrieval import DrillIndex
from conftest import FakeClient, FakeCollection


def _patch_index(monkeypatch, collection):
    def _factory(persist_dir, collection_name):
        return DrillIndex(persist_dir, collection_name, client=FakeClient(collection), embedding_function=object())
    monkeypatch.setattr(cli, "DrillIndex", _factory)
    monkeypatch.setattr(cli, "configure_logging", lambda: None)


def _write_drills(tmp_path, n):
    path = tmp_path / "drills.json"
    path.write_text(json.dumps([{"Drill ID": f"x{i}", "Drill Name": f"X {i}"} for i in range(n)]))
    return str(path)


def test_indexes_all_drills(monkeypatch, tmp_path, capsys):
    col = FakeCollection()
    _patch_index(monkeypatch, col)
    cli.main(["--drills", _write_drills(tmp_path, 3), "--batch-size", "2"])
    assert col.count() == 3
    assert "[OK] Indexed 3 drills" in capsys.readouterr().out


def test_failed_batch_exit_code(monkeypatch, tmp_path):
    _patch_index(monkeypatch, FakeCollection(fail_on_upsert={1}))
    with pytest.raises(SystemExit) as exc:
        cli.main(["--drills", _write_drills(tmp_path, 3), "--batch-size", "2"])
    assert exc.value.code == 2


def test_missing_drills_exit_code(monkeypatch, tmp_path):
    _patch_index(monkeypatch, FakeCollection())
    with pytest.raises(SystemExit) as exc:
        cli.main(["--drills", str(tmp_path / "missing.json")])
    assert exc.value.code == 1
