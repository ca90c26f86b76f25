from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeClock

from cloud.api.objects import ObjectStore, content_key, extension_for
from cloud.api.store import ServerStore


def test_upsert_is_last_write_wins(server_store: ServerStore, clock: FakeClock) -> None:
    clock.now = 100
    server_store.upsert_recipe({"id": "r1", "name": "Soup", "tags": ["winter"], "shareToFamily": True})
    clock.now = 200
    server_store.upsert_recipe({"id": "r1", "name": "Stew", "shareToFamily": True})

    stored = server_store.get_recipe("r1")
    assert stored["name"] == "Stew"
    assert "tags" not in stored
    assert stored["updatedAt"] == 200


def test_upsert_revives_tombstone(server_store: ServerStore, clock: FakeClock) -> None:
    server_store.delete_recipe("r1")
    clock.advance(1)
    server_store.upsert_recipe({"id": "r1", "name": "Back", "shareToFamily": True})
    assert server_store.get_recipe("r1").get("deleted") is None
    assert server_store.purge_tombstones(clock.now + 1) == 0


def test_changes_since_filters_private(server_store: ServerStore, clock: FakeClock) -> None:
    server_store.upsert_recipe({"id": "mine", "shareToFamily": False})
    server_store.upsert_recipe({"id": "unflagged"})
    server_store.upsert_recipe({"id": "ours", "shareToFamily": True})
    assert [r["id"] for r in server_store.changes_since(0)] == ["ours"]


def test_deleting_private_recipe_keeps_it_private(server_store: ServerStore, clock: FakeClock) -> None:
    server_store.upsert_recipe({"id": "mine", "shareToFamily": False})
    clock.advance(1)
    server_store.delete_recipe("mine")

    assert server_store.get_recipe("mine")["deleted"] is True
    assert server_store.get_recipe("mine")["shareToFamily"] is False
    assert server_store.changes_since(0) == []

    server_store.delete_recipe("unknown")
    assert [r["id"] for r in server_store.changes_since(0)] == ["unknown"]


def test_rejects_records_without_id(server_store: ServerStore) -> None:
    with pytest.raises(ValueError):
        server_store.upsert_recipe({"name": "anonymous"})
    with pytest.raises(ValueError):
        server_store.upsert_plan({"date": "2026-10-19"})


def test_store_persists_to_file(tmp_path: Path, clock: FakeClock) -> None:
    ServerStore(tmp_path / "cloud.db", clock=clock).upsert_recipe({"id": "r1", "shareToFamily": True})
    assert ServerStore(tmp_path / "cloud.db", clock=clock).get_recipe("r1")["id"] == "r1"


# ------------------------------------------------------------------
def test_extension_detection() -> None:
    assert extension_for("Photo.JPG") == "jpg"
    assert extension_for("noext") == "bin"
    assert extension_for(None) == "bin"
    assert extension_for("weird.ex t") == "bin"


def test_object_store_dedupes(tmp_path: Path) -> None:
    objects = ObjectStore(tmp_path / "images")
    key, deduplicated = objects.put(b"bytes", "a.webp")
    again, deduplicated_again = objects.put(b"bytes", "b.webp")

    assert key == again == content_key(b"bytes", "a.webp")
    assert (deduplicated, deduplicated_again) == (False, True)
    assert objects.get(key) == b"bytes"
    assert len(list((tmp_path / "images").iterdir())) == 1


def test_object_store_rejects_bad_input(tmp_path: Path) -> None:
    objects = ObjectStore(tmp_path)
    with pytest.raises(ValueError):
        objects.put(b"")
    with pytest.raises(ValueError):
        objects.get("../../secret.png")
    assert objects.get(f"{'a' * 64}.png") is None
