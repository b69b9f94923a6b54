from __future__ import annotations

from logstore.consistency import check_files, check_tree
from logstore.files import FlatBlobStore
from logstore.models import ROOT_ID
from logstore.tree import TreeStore


def test_clean_tree(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.create("b", "a", "B")

    report = check_tree(tree_store)

    assert report.ok
    assert report.summary() == {
        "orphan_blobs": 0,
        "missing_blobs": 0,
        "dangling_parents": 0,
        "stale_checksums": 0,
    }


def test_tree_leftovers(tree_store: TreeStore) -> None:
    tree_store.create("a", ROOT_ID, "A")
    tree_store.blobs.put("stray", b"")
    tree_store.blobs.path_for("a").unlink()
    with (tree_store.structure_dir / "index.log").open("a") as f:
        f.write("CR,lost,ghost\n")
    tree_store.blobs.put("lost", b"")

    report = check_tree(tree_store)

    assert not report.ok
    assert report.orphan_blobs == ["stray"]
    assert report.missing_blobs == ["a"]
    assert report.dangling_parents == ["lost"]


def test_clean_files(files_store: FlatBlobStore) -> None:
    files_store.create("a.md", "A", b"1")
    files_store.create("b.md", "B", b"2")
    files_store.delete("b")

    assert check_files(files_store).ok


def test_files_leftovers(files_store: FlatBlobStore) -> None:
    files_store.create("a.md", "A", b"1")
    files_store.create("b.md", "B", b"2")
    files_store.blobs.put("c.txt", b"3")
    (files_store.blobs.data_dir / "b.md").unlink()
    # tombstone a without touching its blob or checksum
    files_store.names.append("DE", "a", "")

    report = check_files(files_store)

    assert report.orphan_blobs == ["a.md", "c.txt"]
    assert report.missing_blobs == ["b"]
    assert report.stale_checksums == ["a.md"]
    assert report.dangling_parents == []
