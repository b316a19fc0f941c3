"""SQLAlchemy adapter package for polipulse."""

from __future__ import annotations

from .mappings import create_all_tables, metadata, policy_table
from .store import (
    SqlAlchemyPolicyStore,
    StartupError,
    configured_engine,
    create_store_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyPolicyStore",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "create_store_engine",
    "is_started",
    "metadata",
    "policy_table",
    "shutdown",
    "startup",
]
