"""Flat blob store: a single namespace of titled files with extensions.

Layout:
    <data_dir>/<basename>.<ext>        raw content
    <structure_dir>/names.log          CR|RN|DE,<basename>,<title>
    <structure_dir>/checksums.log      CR|UP|DE,<basename>.<ext>,<sha256>

names.log is keyed by basename, so "abc" and "abc.md" name the same object.
With dedup on, creating content whose checksum is already indexed under a
live id returns that id instead of storing a copy; callers must use the id
they get back.
"""

from __future__ import annotations

import logging
from pathlib import Path

from logstore.blobs import BlobStore
from logstore.checksums import ChecksumIndex, content_hash
from logstore.errors import ConflictError, InvalidArgumentError, NotFoundError
from logstore.locks import make_lock
from logstore.models import CREATED, DELETED, RENAMED, LogicalObject, split_extension, validate_id
from logstore.mutation_log import MutationLog

logger = logging.getLogger("logstore.files")

_NAMES_LOG = "names.log"
_CHECKSUMS_LOG = "checksums.log"


class FlatBlobStore:
    """Titled files in one directory, metadata replayed from names.log."""

    def __init__(
        self,
        data_dir: Path | str,
        structure_dir: Path | str,
        *,
        dedup: bool = True,
        locking: bool = True,
        cache: bool = True,
    ) -> None:
        self.blobs = BlobStore(data_dir)
        self.structure_dir = Path(structure_dir)
        self.structure_dir.mkdir(parents=True, exist_ok=True)
        self.dedup = dedup
        self.lock = make_lock(self.structure_dir, enabled=locking)
        self.names = MutationLog(self.structure_dir / _NAMES_LOG, lock=self.lock, cache=cache)
        self.checksums = ChecksumIndex(
            MutationLog(self.structure_dir / _CHECKSUMS_LOG, lock=self.lock, cache=cache),
        )

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def replay_all(self) -> dict[str, LogicalObject]:
        """basename -> object, tombstones included, in first-CR order."""
        states = self.names.replay_all(create_actions=(CREATED,), update_actions=(RENAMED,))
        return {
            basename: LogicalObject(
                id=basename,
                title=state.payload,
                extension=self.blobs.find_extension(basename),
                exists=state.exists,
            )
            for basename, state in states.items()
        }

    def current_title(self, item_id: str) -> str | None:
        basename, _ = split_extension(item_id)
        latest = self.names.replay_latest(basename, set_actions=(CREATED, RENAMED))
        return latest[0] if latest else None

    def is_active(self, item_id: str) -> bool:
        basename, _ = split_extension(item_id)
        state = self.names.replay_all(create_actions=(CREATED,)).get(basename)
        return state is not None and state.exists

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def list_files(self) -> list[LogicalObject]:
        return [o for o in self.replay_all().values() if o.exists]

    def list_files_by_extension(self, *extensions: str) -> list[LogicalObject]:
        files = self.list_files()
        if not extensions:
            return files
        return [f for f in files if f.extension in extensions]

    def get(self, item_id: str) -> LogicalObject:
        basename, _ = split_extension(item_id)
        obj = self.replay_all().get(basename)
        if obj is None or not obj.exists:
            msg = f"File not found: {item_id}"
            raise NotFoundError(msg)
        return obj

    def get_content(self, item_id: str) -> bytes:
        return self.blobs.get(item_id)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create(self, item_id: str, title: str, content: bytes = b"") -> str:
        """Store a new file and return the id it is stored under.

        With dedup on, an existing live id holding the same bytes is returned
        and nothing is written.
        """
        validate_id(item_id)
        if not title:
            msg = "Missing file title"
            raise InvalidArgumentError(msg)
        with self.lock:
            if self.dedup:
                digest = content_hash(content)
                for candidate in self.checksums.candidates(digest):
                    if self.is_active(candidate) and self.blobs.exists(candidate):
                        logger.info("dedup: %s has the same content as %s", item_id, candidate)
                        return candidate
            if self.is_active(item_id):
                msg = f"File already exists: {item_id}"
                raise ConflictError(msg)
            return self.upsert(item_id, title, content)

    def upsert(self, item_id: str, title: str | None, content: bytes | None = None) -> str:
        """Create item_id, or rename it and/or replace its content.

        RN is only logged when the title actually changes. Returns the full
        id (with extension) of the stored blob.
        """
        validate_id(item_id)
        basename, _ = split_extension(item_id)
        with self.lock:
            if not self.is_active(item_id):
                if not title:
                    msg = "Missing file title"
                    raise InvalidArgumentError(msg)
                self.names.validate(CREATED, basename, title)
                data = content if content is not None else b""
                path = self.blobs.put(item_id, data)
                self.names.append(CREATED, basename, title)
                self.checksums.index_content(path.name, content_hash(data), created=True)
                logger.info("created %s", path.name)
                return path.name

            if title is not None and title != self.current_title(basename):
                self.names.append(RENAMED, basename, title)
            if content is not None:
                path = self.blobs.put(item_id, content)
                self.checksums.index_content(path.name, content_hash(content), created=False)
                return path.name
            path = self.blobs.resolve(item_id)
            return path.name if path is not None else item_id

    def rename(self, item_id: str, title: str) -> bool:
        with self.lock:
            self.get(item_id)
            if title == self.current_title(item_id):
                return False
            basename, _ = split_extension(item_id)
            self.names.append(RENAMED, basename, title)
            return True

    def delete(self, item_id: str) -> bool:
        """Tombstone and remove a file. False when there was nothing to delete."""
        validate_id(item_id)
        with self.lock:
            path = self.blobs.resolve(item_id)
            full_id = path.name if path is not None else item_id
            basename, _ = split_extension(full_id)
            if path is None and not self.is_active(basename):
                return False

            self.names.append(DELETED, basename, "")
            for indexed in self.checksums.current():
                if split_extension(indexed)[0] == basename:
                    self.checksums.unindex(indexed)
            if path is not None:
                self.blobs.delete(full_id)
            else:
                logger.warning("deleted %s: blob was already missing", item_id)
        logger.info("deleted %s", full_id)
        return True
