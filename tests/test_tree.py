from __future__ import annotations

import logging

import pytest

from logstore.errors import ConflictError, InvalidArgumentError, NotFoundError
from logstore.models import ROOT_ID
from logstore.tree import TreeStore


def _ids(objects) -> list[str]:
    return [o.id for o in objects]


def test_create_list_path_then_cascade_delete(tree_store: TreeStore) -> None:
    tree_store.create("A", ROOT_ID, "Doc")
    tree_store.create("B", "A", "Child")

    assert _ids(tree_store.list_children(ROOT_ID)) == ["A"]
    assert _ids(tree_store.list_children("A")) == ["B"]
    assert [e.id for e in tree_store.get_full_path("B")] == [ROOT_ID, "A", "B"]

    deleted = tree_store.delete("A", ROOT_ID)

    assert deleted == ["B", "A"]
    assert tree_store.list_children(ROOT_ID) == []
    assert tree_store.active_items() == {}
    everything = tree_store.replay_all()
    assert everything["A"].exists is False
    assert everything["B"].exists is False
    assert not tree_store.blobs.exists("A")
    assert not tree_store.blobs.exists("B")


def test_on_disk_format(tree_store: TreeStore) -> None:
    tree_store.create("A", ROOT_ID, "Doc, with comma", b"body")
    tree_store.create("B", "A", "Child")
    tree_store.delete("A", ROOT_ID)

    index = (tree_store.structure_dir / "index.log").read_text().splitlines()
    names = (tree_store.structure_dir / "names.log").read_text().splitlines()

    assert index == [f"CR,A,{ROOT_ID}", "CR,B,A", "DE,B,A", f"DE,A,{ROOT_ID}"]
    assert names == ["CR,A,Doc, with comma", "CR,B,Child"]


def test_children_keep_creation_order(tree_store: TreeStore) -> None:
    for item_id in ("c", "a", "b"):
        tree_store.create(item_id, ROOT_ID, item_id.upper())

    assert _ids(tree_store.list_children(ROOT_ID)) == ["c", "a", "b"]
    assert [o.title for o in tree_store.list_children(ROOT_ID)] == ["C", "A", "B"]


def test_cascade_delete_is_depth_first(tree_store: TreeStore) -> None:
    tree_store.create("p", ROOT_ID, "P")
    tree_store.create("c1", "p", "C1")
    tree_store.create("g1", "c1", "G1")
    tree_store.create("c2", "p", "C2")
    tree_store.create("other", ROOT_ID, "Other")

    deleted = tree_store.delete("p", ROOT_ID)

    assert deleted == ["g1", "c1", "c2", "p"]
    de_lines = [
        line for line in (tree_store.structure_dir / "index.log").read_text().splitlines()
        if line.startswith("DE,")
    ]
    assert de_lines == ["DE,g1,c1", "DE,c1,p", "DE,c2,p", f"DE,p,{ROOT_ID}"]
    assert _ids(tree_store.list_children(ROOT_ID)) == ["other"]


def test_upsert_without_changes_does_not_grow_logs(tree_store: TreeStore) -> None:
    tree_store.upsert("x", ROOT_ID, "Title", b"v1")
    index_size = (tree_store.structure_dir / "index.log").stat().st_size
    names_size = (tree_store.structure_dir / "names.log").stat().st_size

    tree_store.upsert("x", ROOT_ID, "Title", b"v2")

    assert (tree_store.structure_dir / "index.log").stat().st_size == index_size
    assert (tree_store.structure_dir / "names.log").stat().st_size == names_size
    assert tree_store.get_content("x") == b"v2"


def test_upsert_existing_logs_move_and_rename(tree_store: TreeStore) -> None:
    tree_store.upsert("p1", ROOT_ID, "P1")
    tree_store.upsert("p2", ROOT_ID, "P2")
    tree_store.upsert("x", "p1", "Old", b"old")

    obj = tree_store.upsert("x", "p2", "New", b"new")

    assert obj.parent == "p2"
    assert obj.title == "New"
    assert "MV,x,p2" in (tree_store.structure_dir / "index.log").read_text()
    assert "RN,x,New" in (tree_store.structure_dir / "names.log").read_text()
    assert tree_store.list_children("p1") == []
    assert _ids(tree_store.list_children("p2")) == ["x"]


def test_upsert_new_item_without_title_or_content(tree_store: TreeStore) -> None:
    tree_store.upsert("x", ROOT_ID)

    assert tree_store.get("x").title == ""
    assert tree_store.get_content("x") == b""
    assert (tree_store.structure_dir / "names.log").read_text() == ""

    tree_store.rename("x", "Named later")
    assert tree_store.get("x").title == "Named later"


def test_upsert_new_item_requires_parent(tree_store: TreeStore) -> None:
    with pytest.raises(InvalidArgumentError):
        tree_store.upsert("x", None, "Title")
    assert not tree_store.blobs.exists("x")


def test_create_validates_before_writing(tree_store: TreeStore) -> None:
    with pytest.raises(InvalidArgumentError):
        tree_store.create("x", ROOT_ID, "")
    with pytest.raises(InvalidArgumentError):
        tree_store.create("x", ROOT_ID, "two\nlines")
    with pytest.raises(NotFoundError):
        tree_store.create("x", "no-such-parent", "Title")

    assert not tree_store.blobs.exists("x")
    assert tree_store.index.records() == ()


def test_create_twice_conflicts(tree_store: TreeStore) -> None:
    tree_store.create("x", ROOT_ID, "X")
    with pytest.raises(ConflictError):
        tree_store.create("x", ROOT_ID, "X again")


def test_move(tree_store: TreeStore) -> None:
    tree_store.create("p1", ROOT_ID, "P1")
    tree_store.create("p2", ROOT_ID, "P2")
    tree_store.create("x", "p1", "X")

    assert tree_store.move("x", "p2") is True
    assert tree_store.move("x", "p2") is False
    assert _ids(tree_store.list_children("p2")) == ["x"]
    assert [e.id for e in tree_store.get_full_path("x")] == [ROOT_ID, "p2", "x"]


def test_move_into_own_subtree_is_rejected(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.create("b", "a", "B")
    tree_store.create("c", "b", "C")

    with pytest.raises(InvalidArgumentError):
        tree_store.move("a", "c")
    with pytest.raises(InvalidArgumentError):
        tree_store.move("a", "a")
    with pytest.raises(InvalidArgumentError):
        tree_store.move(ROOT_ID, "a")
    assert tree_store.get("a").parent == ROOT_ID


def test_full_path_links_each_hop_to_previous(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.create("b", "a", "B")
    tree_store.create("c", "b", "C")

    path = tree_store.get_full_path("c")

    assert path[0].id == ROOT_ID
    assert path[0].title == "Root"
    assert path[0].parent is None
    assert path[-1].id == "c"
    for prev, entry in zip(path, path[1:]):
        assert entry.parent == prev.id
    assert [e.title for e in path] == ["Root", "A", "B", "C"]


def test_full_path_of_root(tree_store: TreeStore) -> None:
    (entry,) = tree_store.get_full_path(ROOT_ID)
    assert entry.id == ROOT_ID
    assert entry.parent is None


def test_full_path_unknown_or_deleted(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.delete("a", ROOT_ID)

    with pytest.raises(NotFoundError):
        tree_store.get_full_path("a")
    with pytest.raises(NotFoundError):
        tree_store.get_full_path("never")


def test_full_path_stops_at_broken_chain(tree_store: TreeStore, caplog: pytest.LogCaptureFixture) -> None:
    with (tree_store.structure_dir / "index.log").open("a") as f:
        f.write("CR,orphan,ghost\nCR,leaf,orphan\n")

    with caplog.at_level(logging.WARNING, logger="logstore.tree"):
        path = tree_store.get_full_path("leaf")

    assert [e.id for e in path] == [ROOT_ID, "orphan", "leaf"]
    assert path[1].parent == "ghost"
    assert "broken parent chain" in caplog.text


def test_delete_root_is_rejected(tree_store: TreeStore) -> None:
    with pytest.raises(InvalidArgumentError):
        tree_store.delete(ROOT_ID, "")


def test_delete_unknown_item(tree_store: TreeStore) -> None:
    with pytest.raises(NotFoundError):
        tree_store.delete("nope", ROOT_ID)


def test_delete_tolerates_missing_blob(tree_store: TreeStore, caplog: pytest.LogCaptureFixture) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.create("b", "a", "B")
    tree_store.blobs.path_for("a").unlink()

    with caplog.at_level(logging.WARNING, logger="logstore.tree"):
        deleted = tree_store.delete("a", ROOT_ID)

    assert deleted == ["b", "a"]
    assert tree_store.active_items() == {}
    assert "blob was already missing" in caplog.text


def test_delete_orphan_blob_logs_tombstone(tree_store: TreeStore) -> None:
    tree_store.blobs.put("stray", b"left over")

    assert tree_store.delete("stray", ROOT_ID) == ["stray"]
    assert not tree_store.blobs.exists("stray")
    assert tree_store.index.records()[-1].action == "DE"


def test_recreate_after_delete(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.delete("a", ROOT_ID)
    tree_store.create("a", ROOT_ID, "A2", b"again")

    assert tree_store.get("a").title == "A2"
    assert tree_store.get_content("a") == b"again"


def test_content_access(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A", b"payload")

    assert tree_store.get_content("a") == b"payload"
    assert tree_store.get_content(ROOT_ID) == b""
    with pytest.raises(NotFoundError):
        tree_store.get_content("missing")

    tree_store.update_content("a", b"changed")
    assert tree_store.get_content("a") == b"changed"


def test_has_children_and_exists(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.create("b", "a", "B")

    assert tree_store.has_children("a")
    assert not tree_store.has_children("b")
    assert tree_store.exists(ROOT_ID)
    assert tree_store.exists("b")
    assert not tree_store.exists("c")


def test_all_items_lists_blob_files(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.blobs.put("stray", b"")

    items = {o.id: o for o in tree_store.all_items()}

    assert set(items) == {"a", "stray"}
    assert items["a"].title == "A"
    assert items["a"].parent == ROOT_ID
    assert items["stray"].exists is False


def test_cached_replay_matches_fresh_after_every_mutation(tree_store: TreeStore) -> None:
    def assert_consistent() -> None:
        for log in (tree_store.index, tree_store.names):
            assert log.records() == log.records(use_cache=False)

    steps = [
        lambda: tree_store.create("a", ROOT_ID, "A"),
        lambda: tree_store.create("b", "a", "B"),
        lambda: tree_store.rename("b", "B2"),
        lambda: tree_store.create("c", ROOT_ID, "C"),
        lambda: tree_store.move("b", "c"),
        lambda: tree_store.delete("c", ROOT_ID),
    ]
    for step in steps:
        step()
        assert_consistent()

    assert _ids(tree_store.active_items().values()) == ["a"]


def test_custom_root_sentinel(tmp_path) -> None:
    store = TreeStore(tmp_path / "d", tmp_path / "s", root_id="top", root_title="Top", locking=False)
    store.create("a", "top", "A")

    assert [e.title for e in store.get_full_path("a")] == ["Top", "A"]
    with pytest.raises(InvalidArgumentError):
        store.delete("top", "")
