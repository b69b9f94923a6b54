"""StoreConfig: project-local config for the log-replay stores.

Default layout (all relative to the project root):

    logstore.toml          # project config
    storage/
        users/
            data/<uuid>.json
            structure/users.log
        <principal-uuid>/
            content/       # tree store
                data/<id>
                structure/index.log, names.log
            files/         # flat blob store
                data/<id>.<ext>
                structure/names.log, checksums.log

logstore.toml example:

    [store]
    name = "my-store"
    # root = "storage"
    # root_id = "00000000-0000-0000-0000-000000000000"
    # root_title = "Root"
    # locking = true
    # cache = true

    [files]
    dedup = true

    [users]
    seed_admin = true
    admin_login = "admin"
    admin_password = "admin123"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from logstore.models import ROOT_ID, ROOT_TITLE

_CONFIG_FILENAME = "logstore.toml"
_DEFAULT_ROOT = "storage"


@dataclass
class FilesConfig:
    dedup: bool = True


@dataclass
class UsersConfig:
    seed_admin: bool = True
    admin_login: str = "admin"
    admin_password: str = "admin123"
    admin_role: str = "admin"
    default_role: str = "user"


@dataclass
class StoreConfig:
    """Resolved configuration for a store project."""

    root: Path                      # directory that contains logstore.toml
    name: str = ""
    storage_dir: Path = field(default_factory=Path)
    root_id: str = ROOT_ID
    root_title: str = ROOT_TITLE
    locking: bool = True
    cache: bool = True
    files: FilesConfig = field(default_factory=FilesConfig)
    users: UsersConfig = field(default_factory=UsersConfig)

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    def users_dirs(self) -> tuple[Path, Path]:
        """(data_dir, structure_dir) of the shared account store."""
        base = self.storage_dir / "users"
        return base / "data", base / "structure"

    def content_dirs(self, principal_uuid: str) -> tuple[Path, Path]:
        """(data_dir, structure_dir) of a principal's tree store."""
        base = self.storage_dir / principal_uuid / "content"
        return base / "data", base / "structure"

    def files_dirs(self, principal_uuid: str) -> tuple[Path, Path]:
        """(data_dir, structure_dir) of a principal's flat blob store."""
        base = self.storage_dir / principal_uuid / "files"
        return base / "data", base / "structure"

    def ensure_dirs(self) -> None:
        for d in self.users_dirs():
            d.mkdir(parents=True, exist_ok=True)


def load_config(root: Path | str | None = None) -> StoreConfig:
    """Load logstore.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    store_section = raw.get("store", {})
    files_section = raw.get("files", {})
    users_section = raw.get("users", {})

    return StoreConfig(
        root=root_path,
        name=store_section.get("name", root_path.name),
        storage_dir=root_path / store_section.get("root", _DEFAULT_ROOT),
        root_id=str(store_section.get("root_id", ROOT_ID)),
        root_title=str(store_section.get("root_title", ROOT_TITLE)),
        locking=bool(store_section.get("locking", True)),
        cache=bool(store_section.get("cache", True)),
        files=FilesConfig(
            dedup=bool(files_section.get("dedup", True)),
        ),
        users=UsersConfig(
            seed_admin=bool(users_section.get("seed_admin", True)),
            admin_login=str(users_section.get("admin_login", "admin")),
            admin_password=str(users_section.get("admin_password", "admin123")),
            admin_role=str(users_section.get("admin_role", "admin")),
            default_role=str(users_section.get("default_role", "user")),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for logstore.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default logstore.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"logstore.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[store]
name = "{project_name}"
# root = "storage"          # blobs + logs, relative to this file
# root_id = "{ROOT_ID}"
# root_title = "{ROOT_TITLE}"
# locking = true            # flock per store; false = no locking between writers
# cache = true              # reuse parsed logs until the file changes

# [files]
# dedup = true              # return the existing id when identical content is created

# [users]
# seed_admin = true         # create the admin account with a fresh users.log
# admin_login = "admin"
# admin_password = "admin123"
# admin_role = "admin"
# default_role = "user"
"""
    config_path.write_text(content)
    return config_path
