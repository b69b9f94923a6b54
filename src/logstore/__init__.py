"""Log-replay object store: append-only mutation logs as the source of truth.

Layout of one store:
    data/
        <id>[.<ext>]      # raw bytes, one file per object
    structure/
        *.log             # comma-delimited mutation records, append-only
        .lock             # flock target for writers

Log line types (fields split on the first N-1 commas):
    CR,<id>,<value...>    # created
    RN,<id>,<title>       # renamed
    MV,<id>,<parent>      # moved (tree only)
    UP,<id>,<value...>    # updated
    DE,<id>,<value...>    # deleted (tombstone)

There is no materialized index: every read replays the log from the start.
Concurrent writes: one FileLock per store instance around blob write + appends.
"""

from logstore.config import StoreConfig, init_config, load_config
from logstore.context import RequestContext, open_users
from logstore.errors import ConflictError, InvalidArgumentError, NotFoundError, StoreError
from logstore.files import FlatBlobStore
from logstore.models import LogicalObject, MutationRecord, PathEntry, Principal, UserRecord
from logstore.mutation_log import MutationLog
from logstore.tree import TreeStore
from logstore.users import UserStore

__all__ = [
    "ConflictError",
    "FlatBlobStore",
    "InvalidArgumentError",
    "LogicalObject",
    "MutationLog",
    "MutationRecord",
    "NotFoundError",
    "PathEntry",
    "Principal",
    "RequestContext",
    "StoreConfig",
    "StoreError",
    "TreeStore",
    "UserRecord",
    "UserStore",
    "init_config",
    "load_config",
    "open_users",
]
