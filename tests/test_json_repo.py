import json

import pytest

from invoicing.errors import ConcurrencyConflict
from invoicing.storage.json_repo import JsonRepository


@pytest.fixture
def repo(tmp_path):
    return JsonRepository(tmp_path / "items.json", entity_name="item", backup_enabled=False)


def test_file_created_empty(tmp_path):
    path = tmp_path / "sub" / "items.json"
    JsonRepository(path)
    assert json.loads(path.read_text(encoding="utf-8")) == []


def test_add_and_get(repo):
    repo.add({"id": "a", "version": 1, "label": "first"})
    assert repo.get_by_id("a")["label"] == "first"
    assert repo.get_by_id("missing") is None


def test_add_generates_key(repo):
    record = repo.add({"label": "no key"})
    assert record["id"]
    assert repo.get_by_id(record["id"]) == record


def test_duplicate_key_rejected(repo):
    repo.add({"id": "a"})
    with pytest.raises(ValueError):
        repo.add({"id": "a"})


def test_compare_and_swap(repo):
    repo.add({"id": "a", "version": 1, "label": "v1"})
    repo.compare_and_swap({"id": "a", "version": 2, "label": "v2"}, expected_version=1)
    assert repo.get_by_id("a")["label"] == "v2"

    with pytest.raises(ConcurrencyConflict) as exc:
        repo.compare_and_swap({"id": "a", "version": 2, "label": "stale"}, expected_version=1)
    assert exc.value.actual_version == 2
    assert repo.get_by_id("a")["label"] == "v2"


def test_compare_and_swap_missing(repo):
    with pytest.raises(ValueError):
        repo.compare_and_swap({"id": "ghost", "version": 1}, expected_version=0)


def test_find(repo):
    repo.add({"id": "a", "project": "p1"})
    repo.add({"id": "b", "project": "p2"})
    assert [r["id"] for r in repo.find(lambda r: r["project"] == "p2")] == ["b"]


def test_backups_rotate(tmp_path):
    path = tmp_path / "items.json"
    repo = JsonRepository(path, backup_enabled=True, backup_keep=2)
    for i in range(5):
        repo.add({"id": str(i)})
    backups = list(tmp_path.glob("items.*.bak.json"))
    assert len(backups) == 2


def test_unchanged_content_is_not_rewritten(tmp_path):
    path = tmp_path / "items.json"
    repo = JsonRepository(path, backup_enabled=True, backup_keep=5)
    repo.add({"id": "a", "version": 1})
    before = list(tmp_path.glob("items.*.bak.json"))
    repo.compare_and_swap({"id": "a", "version": 1}, expected_version=1)
    assert list(tmp_path.glob("items.*.bak.json")) == before


def test_corrupt_file_is_set_aside(tmp_path):
    path = tmp_path / "items.json"
    repo = JsonRepository(path, backup_enabled=False)
    path.write_text("{not json", encoding="utf-8")
    assert repo.list_all() == []
    assert (tmp_path / "items.corrupt.json").read_text(encoding="utf-8") == "{not json"
