from __future__ import annotations

import threading
from pathlib import Path

from logstore.locks import FileLock, NullLock, make_lock
from logstore.mutation_log import MutationLog


def test_make_lock(tmp_path: Path) -> None:
    assert isinstance(make_lock(tmp_path, enabled=False), NullLock)
    lock = make_lock(tmp_path)
    assert isinstance(lock, FileLock)
    assert lock.path == tmp_path / ".lock"


def test_file_lock_is_reentrant(tmp_path: Path) -> None:
    lock = FileLock(tmp_path / ".lock")

    with lock, lock, lock:
        assert (tmp_path / ".lock").exists()

    # released: another instance on the same file can take it
    with FileLock(tmp_path / ".lock"):
        pass


def test_concurrent_appends_stay_parseable(tmp_path: Path) -> None:
    path = tmp_path / "names.log"
    lock = FileLock(tmp_path / ".lock")

    def writer(n: int) -> None:
        log = MutationLog(path, lock=lock)
        for i in range(50):
            log.append("CR", f"w{n}-{i}", f"title {n}, item {i}")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    records = MutationLog(path).records()
    assert len(records) == 200
    assert len(path.read_text().splitlines()) == 200
    assert {r.id for r in records} == {f"w{n}-{i}" for n in range(4) for i in range(50)}
