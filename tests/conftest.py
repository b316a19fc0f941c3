from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.engine import Engine  # noqa: TC002

from polipulse.adapters.sqlalchemy import SqlAlchemyPolicyStore, create_all_tables, shutdown
from polipulse.adapters.sqlalchemy.store import create_store_engine, startup

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_store_engine("sqlite+pysqlite:///:memory:")
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_store(sqlite_engine: Engine) -> Iterator[SqlAlchemyPolicyStore]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield SqlAlchemyPolicyStore()
    finally:
        shutdown()


@pytest.fixture(autouse=True)
def _reset_sqlalchemy_adapter() -> Iterator[None]:
    yield
    shutdown()
