"""Append-only, comma-delimited mutation logs and the replay engine.

Line format (no quoting, no escaping):

    <action>,<id>,<value>[,<value>...]\\n

A log has a fixed width ``N`` (fields per line). Lines are split on the first
``N - 1`` commas, so only the final field may contain commas. Lines with too
few fields are skipped on read, never raised. Writers reject values that
would break this framing (a comma in a non-final field, a newline anywhere),
which keeps existing files readable byte-for-byte.

Appends are one ``write()`` on a file opened in append mode, under the owning
store's lock. Readers never lock.

Every read replays the whole file. Parsed records are cached per file
identity ``(st_ino, st_size, st_mtime_ns)``; an append by this instance clears
the cache, and any outside change to the file changes the key.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from logstore.errors import InvalidArgumentError
from logstore.locks import NullLock
from logstore.models import ACTIONS, MutationRecord, ReplayState, validate_id

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Iterable

    from logstore.locks import StoreLock

logger = logging.getLogger("logstore.mutation_log")


class MutationLog:
    """One log file with a fixed number of fields per line."""

    def __init__(
        self,
        path: Path | str,
        *,
        width: int = 3,
        lock: StoreLock | None = None,
        cache: bool = True,
    ) -> None:
        if width < 3:
            msg = f"log width must be at least 3, got {width}"
            raise ValueError(msg)
        self.path = Path(path)
        self.width = width
        self.lock: StoreLock = lock if lock is not None else NullLock()
        self.use_cache = cache
        self._cache_key: tuple[int, int, int] | None = None
        self._cache: tuple[MutationRecord, ...] = ()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def append(self, action: str, item_id: str, *values: str) -> MutationRecord:
        """Append one record. Returns the record as it will be read back."""
        record = self.validate(action, item_id, *values)
        line = record.to_line()
        with self.lock, self.path.open("a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
        self._invalidate()
        return record

    def validate(self, action: str, item_id: str, *values: str) -> MutationRecord:
        """Build the record for an append, or raise InvalidArgumentError."""
        if action not in ACTIONS:
            msg = f"Unknown action: {action!r}"
            raise InvalidArgumentError(msg)
        validate_id(item_id)
        if len(values) != self.width - 2:
            msg = f"{self.path.name} expects {self.width - 2} values, got {len(values)}"
            raise InvalidArgumentError(msg)
        for i, value in enumerate(values):
            if "\n" in value or "\r" in value:
                msg = f"Line break not allowed in log field: {value!r}"
                raise InvalidArgumentError(msg)
            if "," in value and i < len(values) - 1:
                msg = f"Comma not allowed in non-final log field: {value!r}"
                raise InvalidArgumentError(msg)
        return MutationRecord(action=action, id=item_id, values=tuple(values))

    def _invalidate(self) -> None:
        self._cache_key = None
        self._cache = ()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def records(self, *, use_cache: bool = True) -> tuple[MutationRecord, ...]:
        """All well-formed records in file order."""
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return ()
        key = (st.st_ino, st.st_size, st.st_mtime_ns)
        if use_cache and self.use_cache and key == self._cache_key:
            logger.debug("replay cache hit: %s", self.path.name)
            return self._cache

        records = tuple(self._scan())
        if self.use_cache:
            self._cache_key = key
            self._cache = records
        return records

    def _scan(self) -> Iterable[MutationRecord]:
        with self.path.open("rb") as f:
            for lineno, raw in enumerate(f, start=1):
                try:
                    line = raw.rstrip(b"\r\n").decode("utf-8")
                except UnicodeDecodeError:
                    logger.debug("skipping undecodable line %s:%d", self.path.name, lineno)
                    continue
                if not line:
                    continue
                parts = line.split(",", self.width - 1)
                if len(parts) < self.width:
                    logger.debug("skipping malformed line %s:%d", self.path.name, lineno)
                    continue
                yield MutationRecord(action=parts[0], id=parts[1], values=tuple(parts[2:]))

    def history(self, item_id: str) -> list[MutationRecord]:
        """Every record for item_id, in order (the audit trail)."""
        return [r for r in self.records() if r.id == item_id]

    def history_where(self, predicate: Callable[[MutationRecord], bool]) -> list[MutationRecord]:
        return [r for r in self.records() if predicate(r)]

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def replay_latest(
        self,
        item_id: str,
        set_actions: Collection[str],
        delete_actions: Collection[str] = ("DE",),
    ) -> tuple[str, ...] | None:
        """Values of the last set-action for item_id; None once deleted.

        Records are taken strictly in file order; the last one that is either
        a set-action or a delete-action decides the result.
        """
        latest: tuple[str, ...] | None = None
        for r in self.records():
            if r.id != item_id:
                continue
            if r.action in set_actions:
                latest = r.values
            elif r.action in delete_actions:
                latest = None
        return latest

    def replay_all(
        self,
        create_actions: Collection[str],
        update_actions: Collection[str] = (),
        delete_actions: Collection[str] = ("DE",),
    ) -> dict[str, ReplayState]:
        """Full forward scan into an id -> state map, tombstones kept."""
        return replay(self.records(), create_actions, update_actions, delete_actions)


def replay(
    records: Iterable[MutationRecord],
    create_actions: Collection[str],
    update_actions: Collection[str] = (),
    delete_actions: Collection[str] = ("DE",),
) -> dict[str, ReplayState]:
    """Apply records in order.

    create-actions set the values and mark the id live; update-actions replace
    the values of an id already in the map; delete-actions flip ``exists`` off
    but leave the entry so a later create reuses its slot. The map's order is
    first-seen order.
    """
    states: dict[str, ReplayState] = {}
    for r in records:
        if r.action in create_actions:
            state = states.get(r.id)
            if state is None:
                states[r.id] = ReplayState(id=r.id, values=r.values)
            else:
                state.values = r.values
                state.exists = True
        elif r.action in update_actions:
            state = states.get(r.id)
            if state is not None:
                state.values = r.values
        elif r.action in delete_actions:
            state = states.get(r.id)
            if state is not None:
                state.exists = False
    return states


def active(states: dict[str, ReplayState]) -> dict[str, ReplayState]:
    """Drop tombstoned entries, preserving order."""
    return {k: s for k, s in states.items() if s.exists}
