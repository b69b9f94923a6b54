"""Content checksum index for create-time dedup.

checksums.log (3 fields):
    CR,<item-id>,<sha256>    content stored
    UP,<item-id>,<sha256>    content replaced
    DE,<item-id>,<sha256>    content removed

Only consulted when creating; reads never go through it.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from logstore.models import CREATED, DELETED, UPDATED

if TYPE_CHECKING:
    from logstore.mutation_log import MutationLog


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class ChecksumIndex:
    """hash -> id lookups rebuilt by replaying checksums.log."""

    def __init__(self, log: MutationLog) -> None:
        self.log = log

    def index_content(self, item_id: str, digest: str, *, created: bool) -> None:
        self.log.append(CREATED if created else UPDATED, item_id, digest)

    def unindex(self, item_id: str) -> None:
        current = self.current().get(item_id, "")
        self.log.append(DELETED, item_id, current)

    def current(self) -> dict[str, str]:
        """Live item id -> digest."""
        states = self.log.replay_all(create_actions=(CREATED, UPDATED))
        return {s.id: s.payload for s in states.values() if s.exists}

    def lookup(self, digest: str) -> str | None:
        """Oldest live id indexed with this digest, or None."""
        matches = self.candidates(digest)
        return matches[0] if matches else None

    def candidates(self, digest: str) -> list[str]:
        """Every live id indexed with this digest, oldest first."""
        return [item_id for item_id, d in self.current().items() if d == digest]
