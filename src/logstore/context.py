"""Request-scoped access to the stores.

Each request carries the config and the authenticated principal; the
principal's uuid selects its private tree and file namespaces. Nothing here
is cached at module level.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from logstore.files import FlatBlobStore
from logstore.tree import TreeStore
from logstore.users import AdminSeed, UserStore

if TYPE_CHECKING:
    from logstore.config import StoreConfig
    from logstore.models import Principal


def open_users(cfg: StoreConfig) -> UserStore:
    """The shared account store, seeded with the admin on first use if configured."""
    data_dir, structure_dir = cfg.users_dirs()
    seed = None
    if cfg.users.seed_admin:
        seed = AdminSeed(
            login=cfg.users.admin_login,
            password=cfg.users.admin_password,
            role=cfg.users.admin_role,
        )
    return UserStore(
        data_dir,
        structure_dir,
        default_role=cfg.users.default_role,
        seed=seed,
        locking=cfg.locking,
        cache=cfg.cache,
    )


@dataclass(frozen=True)
class RequestContext:
    """Config plus the principal a request runs as."""

    config: StoreConfig
    principal: Principal

    def tree(self) -> TreeStore:
        data_dir, structure_dir = self.config.content_dirs(self.principal.uuid)
        return TreeStore(
            data_dir,
            structure_dir,
            root_id=self.config.root_id,
            root_title=self.config.root_title,
            locking=self.config.locking,
            cache=self.config.cache,
        )

    def files(self) -> FlatBlobStore:
        data_dir, structure_dir = self.config.files_dirs(self.principal.uuid)
        return FlatBlobStore(
            data_dir,
            structure_dir,
            dedup=self.config.files.dedup,
            locking=self.config.locking,
            cache=self.config.cache,
        )
