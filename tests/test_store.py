from __future__ import annotations

import json

import pytest

from core.config import Settings
from core.errors import NotFoundError, StoreError
from core.store import JsonDocumentStore, open_store


def test_set_get_merge(tmp_path):
    s = JsonDocumentStore(tmp_path)
    s.set("things", "a", {"x": 1, "y": 2})
    s.set("things", "a", {"y": 3}, merge=True)
    assert s.get("things", "a").data == {"x": 1, "y": 3}
    s.set("things", "a", {"z": 9})
    assert s.get("things", "a").data == {"z": 9}
    assert s.get("things", "missing") is None


def test_update_requires_existing(tmp_path):
    s = JsonDocumentStore(tmp_path)
    with pytest.raises(NotFoundError):
        s.update("things", "nope", {"x": 1})
    s.set("things", "a", {"x": 1})
    s.update("things", "a", {"y": 2})
    assert s.get("things", "a").data == {"x": 1, "y": 2}


def test_delete_and_query(tmp_path):
    s = JsonDocumentStore(tmp_path)
    s.set("things", "a", {"owner": "p"})
    s.set("things", "b", {"owner": "q"})
    s.set("things", "c", {"owner": "p"})
    assert [d.id for d in s.query_eq("things", "owner", "p")] == ["a", "c"]
    s.delete("things", "a")
    s.delete("things", "absent")
    assert [d.id for d in s.list_all("things")] == ["b", "c"]
    assert [d.id for d in s.list_all("things", limit=1)] == ["b"]


def test_list_returns_copies(tmp_path):
    s = JsonDocumentStore(tmp_path)
    s.set("things", "a", {"x": 1})
    s.list_all("things")[0].data["x"] = 99
    assert s.get("things", "a").data["x"] == 1


def test_invalid_collection_name(tmp_path):
    s = JsonDocumentStore(tmp_path)
    with pytest.raises(StoreError):
        s.list_all("../etc")


def test_corrupt_file_recovers_from_backup(tmp_path):
    s = JsonDocumentStore(tmp_path)
    s.set("things", "a", {"x": 1})
    s.set("things", "b", {"x": 2})  # backup of the {"a"} state is taken here
    (tmp_path / "things.json").write_text("{not json", encoding="utf-8")
    recovered = {d.id for d in s.list_all("things")}
    assert recovered == {"a"}


def test_corrupt_file_without_backup_raises(tmp_path):
    s = JsonDocumentStore(tmp_path)
    (tmp_path / "things.json").write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(StoreError):
        s.list_all("things")


def test_file_layout(tmp_path):
    s = JsonDocumentStore(tmp_path)
    s.set("things", "a", {"x": 1})
    assert json.loads((tmp_path / "things.json").read_text(encoding="utf-8")) == {"a": {"x": 1}}
    assert not list(tmp_path.glob("*.tmp.*"))


def test_new_ids_unique(tmp_path):
    s = JsonDocumentStore(tmp_path)
    ids = {s.new_id() for _ in range(50)}
    assert len(ids) == 50


def test_open_store_json(tmp_path):
    store = open_store(Settings(data_dir=tmp_path / "d"))
    assert isinstance(store, JsonDocumentStore)
    assert (tmp_path / "d").is_dir()
