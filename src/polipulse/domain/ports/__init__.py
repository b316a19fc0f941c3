"""Domain port definitions for adapters."""

from __future__ import annotations

from .store import (
    DuplicateKeyError,
    ManagedPolicyStore,
    PolicyStore,
    RecordNotFoundError,
    StoreError,
)

__all__ = [
    "DuplicateKeyError",
    "ManagedPolicyStore",
    "PolicyStore",
    "RecordNotFoundError",
    "StoreError",
]
