from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from logstore.files import FlatBlobStore
from logstore.tree import TreeStore
from logstore.users import UserStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def tree_store(tmp_path: Path) -> TreeStore:
    return TreeStore(tmp_path / "content" / "data", tmp_path / "content" / "structure")


@pytest.fixture
def files_store(tmp_path: Path) -> FlatBlobStore:
    return FlatBlobStore(tmp_path / "files" / "data", tmp_path / "files" / "structure")


@pytest.fixture
def user_store(tmp_path: Path) -> UserStore:
    return UserStore(tmp_path / "users" / "data", tmp_path / "users" / "structure")
