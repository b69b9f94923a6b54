"""Typed failures raised by the stores.

IO problems are not wrapped: the builtin OSError family propagates as-is.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every validation failure a store reports."""


class NotFoundError(StoreError):
    """Unknown or inactive id, or a blob that does not exist."""


class InvalidArgumentError(StoreError, ValueError):
    """Rejected input: deleting the root, missing id/title, unsafe field text."""


class ConflictError(StoreError):
    """The key already resolves to an active record."""
