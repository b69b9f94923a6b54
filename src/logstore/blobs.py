"""One file per object under a data directory.

Blobs carry no metadata; titles, parents and liveness live in the mutation
logs. A bare id (no extension) also matches a single ``<id>.<ext>`` file.
"""

from __future__ import annotations

import glob
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from logstore.errors import NotFoundError
from logstore.models import validate_id

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("logstore.blobs")

_TMP_SUFFIX = ".blobtmp"


class BlobStore:
    """Raw byte payloads keyed by object identifier."""

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def path_for(self, item_id: str) -> Path:
        """Path the blob for item_id is written to (no extension matching)."""
        return self.data_dir / validate_id(item_id)

    def resolve(self, item_id: str) -> Path | None:
        """Find the file backing item_id, or None.

        An exact name wins. A bare id falls back to ``<id>.*``; when several
        files match, the first in sorted order is taken.
        """
        direct = self.path_for(item_id)
        if direct.is_file():
            return direct
        if "." in item_id:
            return None
        matches = sorted(
            p for p in self.data_dir.glob(glob.escape(item_id) + ".*")
            if p.is_file() and not p.name.endswith(_TMP_SUFFIX)
        )
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "ambiguous blob id %s: %d candidates, using %s",
                item_id, len(matches), matches[0].name,
            )
        return matches[0]

    def find_extension(self, basename: str) -> str:
        """Extension of the first ``<basename>.*`` file, or "" if none."""
        for p in sorted(self.data_dir.glob(glob.escape(basename) + ".*")):
            if p.is_file() and not p.name.endswith(_TMP_SUFFIX):
                return p.name[len(basename) + 1:]
        return ""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, item_id: str) -> bool:
        return self.resolve(item_id) is not None

    def get(self, item_id: str) -> bytes:
        """Return the stored bytes. Raises NotFoundError if nothing matches."""
        path = self.resolve(item_id)
        if path is None:
            msg = f"Blob not found: {item_id}"
            raise NotFoundError(msg)
        return path.read_bytes()

    def list_ids(self) -> list[str]:
        """File names present in the data directory, sorted."""
        return sorted(self._iter_names())

    def _iter_names(self) -> Iterator[str]:
        for p in self.data_dir.iterdir():
            if p.is_file() and not p.name.endswith(_TMP_SUFFIX):
                yield p.name

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put(self, item_id: str, data: bytes) -> Path:
        """Write (or overwrite) the blob for item_id.

        An existing extensioned file matched by a bare id is overwritten in
        place. Written to a temp file and renamed, so readers never see a
        half-written blob.
        """
        path = self.resolve(item_id) or self.path_for(item_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + _TMP_SUFFIX)
        tmp.write_bytes(data)
        tmp.replace(path)
        return path

    def delete(self, item_id: str) -> bool:
        """Remove the blob. Returns whether a file was actually removed."""
        path = self.resolve(item_id)
        if path is None:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
