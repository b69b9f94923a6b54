"""User accounts replayed from users.log, with one JSON data file per account.

users.log (5 fields):
    CR,<uuid>,<login>,<password-hash>,<role>
    UP,<uuid>,<login>,<password-hash>,<role>
    DE,<uuid>,<login>,null,null

The latest CR/UP line of a uuid is its current state; DE removes it from the
active set. The full filtered stream stays available as an audit trail.
Password hashes are passlib pbkdf2_sha256 strings, which never contain commas.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from passlib.context import CryptContext

from logstore.blobs import BlobStore
from logstore.errors import ConflictError, InvalidArgumentError, NotFoundError
from logstore.locks import make_lock
from logstore.models import (
    CREATED,
    DELETED,
    UPDATED,
    HistoryEntry,
    Principal,
    ReplayState,
    UserRecord,
    new_id,
)
from logstore.mutation_log import MutationLog

logger = logging.getLogger("logstore.users")

_USERS_LOG = "users.log"
_NULL = "null"

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_secret(secret: str) -> str:
    return _pwd_context.hash(secret)


@dataclass(frozen=True)
class AdminSeed:
    """Account created the first time a users.log is initialised."""

    login: str = "admin"
    password: str = "admin123"
    role: str = "admin"


class UserStore:
    """Keyed account records plus per-account JSON blobs."""

    def __init__(
        self,
        data_dir: Path | str,
        structure_dir: Path | str,
        *,
        default_role: str = "user",
        seed: AdminSeed | None = None,
        locking: bool = True,
        cache: bool = True,
    ) -> None:
        self.blobs = BlobStore(data_dir)
        self.structure_dir = Path(structure_dir)
        self.structure_dir.mkdir(parents=True, exist_ok=True)
        self.default_role = default_role
        self.lock = make_lock(self.structure_dir, enabled=locking)

        log_path = self.structure_dir / _USERS_LOG
        fresh = not log_path.exists()
        self.log = MutationLog(log_path, width=5, lock=self.lock, cache=cache)
        if fresh and seed is not None:
            self.create_user(seed.login, seed.password, seed.role)
            logger.info("seeded admin account %s", seed.login)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def _states(self) -> dict[str, ReplayState]:
        return self.log.replay_all(create_actions=(CREATED, UPDATED))

    @staticmethod
    def _record(state: ReplayState) -> UserRecord:
        login, password_hash, role = state.values
        return UserRecord(uuid=state.id, login=login, password_hash=password_hash, role=role)

    def _with_data(self, user: UserRecord) -> UserRecord:
        user.data = self._read_data(user.uuid)
        return user

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def all_users(self) -> list[UserRecord]:
        """Active accounts in creation order (data blobs not loaded)."""
        return [self._record(s) for s in self._states().values() if s.exists]

    def get_by_uuid(self, uuid: str) -> UserRecord | None:
        state = self._states().get(uuid)
        if state is None or not state.exists:
            return None
        return self._with_data(self._record(state))

    def _find_login(self, login: str) -> UserRecord | None:
        for user in self.all_users():
            if user.login == login:
                return user
        return None

    def get_by_login(self, login: str) -> UserRecord | None:
        user = self._find_login(login)
        return self._with_data(user) if user is not None else None

    def get_by_role(self, role: str) -> list[UserRecord]:
        return [u for u in self.all_users() if u.role == role]

    def get_history(self, identifier: str, *, by_uuid: bool = True) -> list[HistoryEntry]:
        """Every users.log line for a uuid (or a login), oldest first."""
        if by_uuid:
            records = self.log.history(identifier)
        else:
            records = self.log.history_where(lambda r: r.values[0] == identifier)
        return [
            HistoryEntry(
                action=r.action,
                uuid=r.id,
                login=r.values[0],
                role=r.values[2],
                has_password=r.values[1] != _NULL,
            )
            for r in records
        ]

    def verify_credentials(self, login: str, secret: str) -> bool:
        user = self._find_login(login)
        if user is None:
            _pwd_context.dummy_verify()
            return False
        try:
            return _pwd_context.verify(secret, user.password_hash)
        except ValueError:
            logger.warning("unreadable password hash for %s", user.uuid)
            return False

    def authenticate(self, login: str, secret: str) -> Principal | None:
        """Principal for valid credentials, None otherwise."""
        if not self.verify_credentials(login, secret):
            return None
        user = self._find_login(login)
        if user is None:
            return None
        return Principal(uuid=user.uuid, login=user.login, role=user.role)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create_user(self, login: str, secret: str, role: str | None = None) -> str:
        """Create an account. Returns its new uuid."""
        if not login:
            msg = "Missing login"
            raise InvalidArgumentError(msg)
        if not secret:
            msg = "Missing password"
            raise InvalidArgumentError(msg)
        role = role or self.default_role

        with self.lock:
            if self._find_login(login) is not None:
                msg = f"User ID already exists: {login}"
                raise ConflictError(msg)
            uuid = new_id()
            password_hash = hash_secret(secret)
            self.log.validate(CREATED, uuid, login, password_hash, role)
            self.blobs.put(f"{uuid}.json", b"{}")
            self.log.append(CREATED, uuid, login, password_hash, role)
        logger.info("created user %s (%s)", login, uuid)
        return uuid

    def update_user(
        self,
        uuid: str,
        login: str | None = None,
        secret: str | None = None,
        role: str | None = None,
    ) -> UserRecord:
        """Append an UP line; omitted fields keep their current value."""
        with self.lock:
            user = self.get_by_uuid(uuid)
            if user is None:
                msg = f"User not found: {uuid}"
                raise NotFoundError(msg)
            new_login = login or user.login
            if new_login != user.login:
                other = self._find_login(new_login)
                if other is not None and other.uuid != uuid:
                    msg = f"User ID already exists: {new_login}"
                    raise ConflictError(msg)
            password_hash = hash_secret(secret) if secret else user.password_hash
            new_role = role or user.role
            self.log.append(UPDATED, uuid, new_login, password_hash, new_role)
        return UserRecord(
            uuid=uuid, login=new_login, password_hash=password_hash, role=new_role, data=user.data,
        )

    def delete_user(self, uuid: str) -> None:
        with self.lock:
            user = self.get_by_uuid(uuid)
            if user is None:
                msg = f"User not found: {uuid}"
                raise NotFoundError(msg)
            self.log.append(DELETED, uuid, user.login, _NULL, _NULL)
            self.blobs.delete(f"{uuid}.json")
        logger.info("deleted user %s (%s)", user.login, uuid)

    # ------------------------------------------------------------------
    # Account data
    # ------------------------------------------------------------------

    def _read_data(self, uuid: str) -> dict[str, Any]:
        try:
            raw = self.blobs.get(f"{uuid}.json")
        except NotFoundError:
            return {}
        try:
            data = json.loads(raw or b"{}")
        except ValueError:
            logger.warning("unreadable account data for %s", uuid)
            return {}
        return data if isinstance(data, dict) else {}

    def get_data(self, uuid: str) -> dict[str, Any]:
        if self.get_by_uuid(uuid) is None:
            msg = f"User not found: {uuid}"
            raise NotFoundError(msg)
        return self._read_data(uuid)

    def set_data(self, uuid: str, data: dict[str, Any]) -> None:
        with self.lock:
            if self.get_by_uuid(uuid) is None:
                msg = f"User not found: {uuid}"
                raise NotFoundError(msg)
            self.blobs.put(f"{uuid}.json", json.dumps(data).encode("utf-8"))
