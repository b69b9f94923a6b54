"""Hierarchical store: items with one parent each, rooted at a sentinel id.

Layout:
    <data_dir>/<id>                 raw content, one file per item
    <structure_dir>/index.log       CR|MV|DE,<id>,<parent>
    <structure_dir>/names.log       CR|RN,<id>,<title>

The root sentinel never appears as a logged item; it is always live, has no
parent and is titled from config. The current parent of an item is the value
of its last CR or MV line; a DE line tombstones it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from logstore.blobs import BlobStore
from logstore.errors import ConflictError, InvalidArgumentError, NotFoundError
from logstore.locks import make_lock
from logstore.models import (
    CREATED,
    DELETED,
    MOVED,
    RENAMED,
    ROOT_ID,
    ROOT_TITLE,
    LogicalObject,
    PathEntry,
    validate_id,
)
from logstore.mutation_log import MutationLog

if TYPE_CHECKING:
    from logstore.models import ReplayState

logger = logging.getLogger("logstore.tree")

_INDEX_LOG = "index.log"
_NAMES_LOG = "names.log"


class TreeStore:
    """Parent/child item store backed by index.log and names.log."""

    def __init__(
        self,
        data_dir: Path | str,
        structure_dir: Path | str,
        *,
        root_id: str = ROOT_ID,
        root_title: str = ROOT_TITLE,
        locking: bool = True,
        cache: bool = True,
    ) -> None:
        self.blobs = BlobStore(data_dir)
        self.structure_dir = Path(structure_dir)
        self.structure_dir.mkdir(parents=True, exist_ok=True)
        self.root_id = root_id
        self.root_title = root_title
        self.lock = make_lock(self.structure_dir, enabled=locking)
        self.index = MutationLog(self.structure_dir / _INDEX_LOG, lock=self.lock, cache=cache)
        self.names = MutationLog(self.structure_dir / _NAMES_LOG, lock=self.lock, cache=cache)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def _index_states(self) -> dict[str, ReplayState]:
        return self.index.replay_all(create_actions=(CREATED, MOVED))

    def _titles(self) -> dict[str, str]:
        # RN counts even without a prior CR: items created without a title
        # get their first name through a rename.
        states = self.names.replay_all(create_actions=(CREATED, RENAMED))
        return {s.id: s.payload for s in states.values() if s.exists}

    def replay_all(self) -> dict[str, LogicalObject]:
        """Every id ever created, in first-CR order; deleted ones have exists=False."""
        titles = self._titles()
        return {
            item_id: LogicalObject(
                id=item_id,
                title=titles.get(item_id, ""),
                parent=state.payload,
                exists=state.exists,
            )
            for item_id, state in self._index_states().items()
        }

    def active_items(self) -> dict[str, LogicalObject]:
        return {k: o for k, o in self.replay_all().items() if o.exists}

    def title(self, item_id: str) -> str:
        if item_id == self.root_id:
            return self.root_title
        latest = self.names.replay_latest(item_id, set_actions=(CREATED, RENAMED))
        return latest[0] if latest else ""

    def last_parent(self, item_id: str) -> str | None:
        """Parent from the last CR/MV line, ignoring deletions."""
        latest = self.index.replay_latest(item_id, set_actions=(CREATED, MOVED), delete_actions=())
        return latest[0] if latest else None

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, item_id: str) -> bool:
        """True for the root and for every id whose last index record is not DE."""
        if item_id == self.root_id:
            return True
        state = self._index_states().get(item_id)
        return state is not None and state.exists

    def get(self, item_id: str) -> LogicalObject:
        if item_id == self.root_id:
            return LogicalObject(id=self.root_id, title=self.root_title, parent=None)
        obj = self.replay_all().get(item_id)
        if obj is None or not obj.exists:
            msg = f"Item not found: {item_id}"
            raise NotFoundError(msg)
        return obj

    def get_content(self, item_id: str) -> bytes:
        """Raw content of an item. The root has none."""
        if item_id == self.root_id:
            return b""
        return self.blobs.get(item_id)

    def list_children(self, parent_id: str) -> list[LogicalObject]:
        """Live children of parent_id in the order they were first created."""
        return [o for o in self.replay_all().values() if o.exists and o.parent == parent_id]

    def has_children(self, item_id: str) -> bool:
        return any(o.exists and o.parent == item_id for o in self.replay_all().values())

    def all_items(self) -> list[LogicalObject]:
        """One entry per blob file, with its last known title and parent."""
        states = self._index_states()
        result = []
        for name in self.blobs.list_ids():
            state = states.get(name)
            result.append(LogicalObject(
                id=name,
                title=self.title(name),
                parent=state.payload if state is not None else None,
                exists=state is not None and state.exists,
            ))
        return result

    def get_full_path(self, item_id: str) -> list[PathEntry]:
        """Ordered hops from the root down to item_id, both included.

        A parent missing from the live map ends the walk early; the partial
        chain is still returned behind the root.
        """
        root = PathEntry(id=self.root_id, title=self.root_title, parent=None)
        if item_id == self.root_id:
            return [root]

        objects = self.active_items()
        if item_id not in objects:
            msg = f"Item not found in index: {item_id}"
            raise NotFoundError(msg)

        path: list[PathEntry] = []
        seen: set[str] = set()
        current: str | None = item_id
        while current and current != self.root_id:
            obj = objects.get(current)
            if obj is None:
                logger.warning("broken parent chain at %s while resolving %s", current, item_id)
                break
            if current in seen:
                logger.warning("parent cycle at %s while resolving %s", current, item_id)
                break
            seen.add(current)
            path.append(PathEntry(id=obj.id, title=obj.title, parent=obj.parent))
            current = obj.parent

        path.reverse()
        return [root, *path]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upsert(
        self,
        item_id: str,
        parent_id: str | None = None,
        title: str | None = None,
        content: bytes | None = None,
    ) -> LogicalObject:
        """Create item_id or apply whichever of parent/title/content changed.

        A new item needs a parent; an empty blob is written when no content
        is given, and names.log only gets a line when a title is given. For an
        existing item, MV and RN are appended only when the value differs.
        """
        validate_id(item_id)
        if item_id == self.root_id:
            msg = "Cannot modify root item"
            raise InvalidArgumentError(msg)

        with self.lock:
            state = self._index_states().get(item_id)
            if state is None or not state.exists:
                if parent_id is None:
                    msg = f"Missing parent for new item: {item_id}"
                    raise InvalidArgumentError(msg)
                self._create(item_id, parent_id, title, content)
            else:
                if parent_id is not None and parent_id != state.payload:
                    self._move(item_id, parent_id)
                if title is not None and title != self.title(item_id):
                    self.names.append(RENAMED, item_id, title)
                if content is not None:
                    self.blobs.put(item_id, content)
            return self.get(item_id)

    def create(self, item_id: str, parent_id: str, title: str, content: bytes = b"") -> LogicalObject:
        """Create a new item. Raises ConflictError if item_id is already live."""
        if not title:
            msg = "Missing item title"
            raise InvalidArgumentError(msg)
        with self.lock:
            if self.exists(validate_id(item_id)):
                msg = f"Item already exists: {item_id}"
                raise ConflictError(msg)
            return self.upsert(item_id, parent_id, title, content)

    def _create(self, item_id: str, parent_id: str, title: str | None, content: bytes | None) -> None:
        self._check_parent(parent_id)
        # Reject bad log fields before any byte hits the disk.
        self.index.validate(CREATED, item_id, parent_id)
        if title is not None:
            self.names.validate(CREATED, item_id, title)

        self.blobs.put(item_id, content if content is not None else b"")
        self.index.append(CREATED, item_id, parent_id)
        if title is not None:
            self.names.append(CREATED, item_id, title)
        logger.info("created %s under %s", item_id, parent_id)

    def rename(self, item_id: str, title: str) -> bool:
        """Set a new title. Returns False when the title is unchanged."""
        with self.lock:
            self.get(item_id)
            if title == self.title(item_id):
                return False
            self.names.append(RENAMED, item_id, title)
            return True

    def move(self, item_id: str, parent_id: str) -> bool:
        """Re-parent an item. Returns False when the parent is unchanged."""
        with self.lock:
            current = self.get(item_id)
            if current.parent == parent_id:
                return False
            self._move(item_id, parent_id)
            return True

    def _move(self, item_id: str, parent_id: str) -> None:
        if item_id == self.root_id:
            msg = "Cannot move root item"
            raise InvalidArgumentError(msg)
        self._check_parent(parent_id)
        ancestors = {entry.id for entry in self.get_full_path(parent_id)}
        if item_id in ancestors:
            msg = f"Cannot move {item_id} under its own subtree ({parent_id})"
            raise InvalidArgumentError(msg)
        self.index.append(MOVED, item_id, parent_id)
        logger.info("moved %s to %s", item_id, parent_id)

    def _check_parent(self, parent_id: str) -> None:
        if not self.exists(parent_id):
            msg = f"Parent not found: {parent_id}"
            raise NotFoundError(msg)

    def update_content(self, item_id: str, content: bytes) -> None:
        with self.lock:
            self.get(item_id)
            self.blobs.put(item_id, content)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, item_id: str, parent_id: str) -> list[str]:
        """Delete item_id and its whole subtree, children before parents.

        One DE line is appended per removed id: descendants against their
        current parent, item_id against parent_id. An item whose blob is
        already gone is still tombstoned. Returns the ids in deletion order.
        """
        if item_id == self.root_id:
            msg = "Cannot delete root item"
            raise InvalidArgumentError(msg)
        validate_id(item_id)

        with self.lock:
            objects = self.active_items()
            if item_id not in objects and not self.blobs.exists(item_id):
                msg = f"Item not found: {item_id}"
                raise NotFoundError(msg)

            children: dict[str, list[str]] = {}
            for obj in objects.values():
                if obj.parent is not None:
                    children.setdefault(obj.parent, []).append(obj.id)

            order = _post_order(item_id, children)
            for node in order:
                node_parent = parent_id if node == item_id else objects[node].parent
                self.index.append(DELETED, node, node_parent or "")
                if not self.blobs.delete(node):
                    logger.warning("deleted %s: blob was already missing", node)

        logger.info("deleted %s (%d items)", item_id, len(order))
        return order


def _post_order(start: str, children: dict[str, list[str]]) -> list[str]:
    """Depth-first, children before parents, siblings in creation order."""
    order: list[str] = []
    seen: set[str] = set()
    stack: list[tuple[str, bool]] = [(start, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            order.append(node)
            continue
        if node in seen:
            continue
        seen.add(node)
        stack.append((node, True))
        stack.extend((child, False) for child in reversed(children.get(node, ())))
    return order
