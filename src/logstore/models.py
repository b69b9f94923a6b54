"""Data models for the log-replay stores."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from logstore.errors import InvalidArgumentError

# Action codes written to the mutation logs.
CREATED = "CR"
RENAMED = "RN"
MOVED = "MV"
UPDATED = "UP"
DELETED = "DE"

ACTIONS = frozenset({CREATED, RENAMED, MOVED, UPDATED, DELETED})

ROOT_ID = "00000000-0000-0000-0000-000000000000"
ROOT_TITLE = "Root"

_FORBIDDEN_ID_CHARS = (",", "/", "\\", "\n", "\r", "\0")


def new_id() -> str:
    """Generate a fresh object identifier (uuid4, canonical form)."""
    return str(uuid.uuid4())


def validate_id(item_id: str) -> str:
    """Return item_id unchanged, or raise if it cannot be stored safely."""
    if not item_id:
        msg = "Missing item id"
        raise InvalidArgumentError(msg)
    if item_id in (".", "..") or any(c in item_id for c in _FORBIDDEN_ID_CHARS):
        msg = f"Invalid item id: {item_id!r}"
        raise InvalidArgumentError(msg)
    return item_id


def split_extension(item_id: str) -> tuple[str, str]:
    """Split "abc.md" into ("abc", "md"). Ids without a dot have no extension."""
    if "." not in item_id:
        return item_id, ""
    basename, _, extension = item_id.rpartition(".")
    return basename, extension


@dataclass(frozen=True)
class MutationRecord:
    """One parsed log line: action, id and the remaining fields in order."""

    action: str
    id: str
    values: tuple[str, ...]

    @property
    def payload(self) -> str:
        """The single value of a 3-field log (title, parent or checksum)."""
        return self.values[0] if self.values else ""

    def to_line(self) -> str:
        return ",".join((self.action, self.id, *self.values)) + "\n"


@dataclass
class ReplayState:
    """Per-id bookkeeping kept by the replay engine, tombstones included."""

    id: str
    values: tuple[str, ...]
    exists: bool = True

    @property
    def payload(self) -> str:
        return self.values[0] if self.values else ""


@dataclass
class LogicalObject:
    """The as-of-now view of an id, recomputed from the logs on every read."""

    id: str
    title: str = ""
    parent: str | None = None
    extension: str = ""
    role: str | None = None
    exists: bool = True

    @property
    def item_id(self) -> str:
        """Id with its extension appended, as used for blob lookups."""
        return f"{self.id}.{self.extension}" if self.extension else self.id

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.parent is not None:
            d["parent"] = self.parent
        if self.extension:
            d["extension"] = self.extension
        if self.role is not None:
            d["role"] = self.role
        return d


@dataclass(frozen=True)
class PathEntry:
    """One hop of a root-to-node path."""

    id: str
    title: str
    parent: str | None


@dataclass
class UserRecord:
    """An active account from users.log plus its JSON data blob."""

    uuid: str
    login: str
    password_hash: str
    role: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uuid": self.uuid,
            "login": self.login,
            "role": self.role,
            "data": self.data,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """One users.log line as exposed by the audit trail (no hash)."""

    action: str
    uuid: str
    login: str
    role: str
    has_password: bool


@dataclass(frozen=True)
class Principal:
    """The authenticated account a request runs as."""

    uuid: str
    login: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
