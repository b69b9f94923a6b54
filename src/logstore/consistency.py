"""Read-only comparison of blob directories against their replayed logs.

A blob write and its log appends are not atomic together, so a crash in
between leaves one side ahead of the other. These reports list the
leftovers; nothing is repaired automatically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from logstore.models import split_extension

if TYPE_CHECKING:
    from logstore.files import FlatBlobStore
    from logstore.tree import TreeStore


@dataclass
class ConsistencyReport:
    orphan_blobs: list[str] = field(default_factory=list)      # blob present, id not live
    missing_blobs: list[str] = field(default_factory=list)     # id live, no blob
    dangling_parents: list[str] = field(default_factory=list)  # live id whose parent is not live
    stale_checksums: list[str] = field(default_factory=list)   # indexed id that is not live

    @property
    def ok(self) -> bool:
        return not (self.orphan_blobs or self.missing_blobs or self.dangling_parents or self.stale_checksums)

    def summary(self) -> dict[str, int]:
        return {
            "orphan_blobs": len(self.orphan_blobs),
            "missing_blobs": len(self.missing_blobs),
            "dangling_parents": len(self.dangling_parents),
            "stale_checksums": len(self.stale_checksums),
        }


def check_tree(store: TreeStore) -> ConsistencyReport:
    report = ConsistencyReport()
    live = store.active_items()
    blob_ids = set(store.blobs.list_ids())

    report.orphan_blobs = sorted(blob_ids - live.keys())
    report.missing_blobs = [item_id for item_id in live if item_id not in blob_ids]
    report.dangling_parents = [
        obj.id for obj in live.values()
        if obj.parent != store.root_id and obj.parent not in live
    ]
    return report


def check_files(store: FlatBlobStore) -> ConsistencyReport:
    report = ConsistencyReport()
    live = {o.id for o in store.list_files()}
    blob_ids = store.blobs.list_ids()

    report.orphan_blobs = [b for b in blob_ids if split_extension(b)[0] not in live]
    blob_basenames = {split_extension(b)[0] for b in blob_ids}
    report.missing_blobs = sorted(live - blob_basenames)
    report.stale_checksums = [
        item_id for item_id in store.checksums.current()
        if split_extension(item_id)[0] not in live
    ]
    return report
