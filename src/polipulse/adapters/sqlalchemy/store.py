"""SQLAlchemy-backed policy record store.

Each store call opens its own transaction with ``engine.begin()``, so every
insert or update commits on its own, matching the import's fail-soft,
per-row semantics.

Blocking database work runs off the event loop. SQLite calls share one
dedicated thread per store; other dialects use the default thread pool so
several import workers can have statements in flight.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, delete, insert, make_url, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from polipulse.config.storage import get_database_config
from polipulse.domain.policy import PolicyRecord
from polipulse.domain.ports.store import DuplicateKeyError, RecordNotFoundError, StoreError

from .mappings import WRITABLE_COLUMNS, create_all_tables, policy_table

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence
    from types import TracebackType

    from sqlalchemy.engine import Connection, Engine, RowMapping

    from polipulse.domain.policy import PolicyValues

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the SQLAlchemy store is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None


_STATE = _AdapterState()


def create_store_engine(database_uri: str) -> Engine:
    """Create an engine for ``database_uri``.

    An in-memory SQLite database lives on a single connection, which is shared
    with the store's worker thread.
    """

    url = make_url(database_uri)
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        return create_engine(
            url, poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
    return create_engine(url)


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> Engine:
    """Initialise the engine and create the policy table."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_store_engine(database_uri or get_database_config().uri)
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine
    return resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


def _writable(values: PolicyValues) -> dict[str, object]:
    return {name: value for name, value in values.items() if name in WRITABLE_COLUMNS}


def _to_record(row: RowMapping | Mapping[str, object]) -> PolicyRecord:
    return PolicyRecord.from_mapping(row, id=str(row["id"]))


class SqlAlchemyPolicyStore:
    """:class:`~polipulse.domain.ports.store.PolicyStore` over SQLAlchemy Core."""

    def __init__(self, engine: Engine | None = None) -> None:
        resolved = engine or _STATE.engine
        if resolved is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call polipulse.adapters.sqlalchemy."
                "store.startup() before creating a store."
            )
        self.engine = resolved
        self._executor: ThreadPoolExecutor | None = None
        if resolved.dialect.name == "sqlite":
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="polipulse-sqlite"
            )

    async def __aenter__(self) -> SqlAlchemyPolicyStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        return None

    async def find_by_keys(self, keys: Sequence[str]) -> list[PolicyRecord]:
        if not keys:
            return []
        statement = select(policy_table).where(policy_table.c.policy_no.in_(list(keys)))

        def run() -> list[PolicyRecord]:
            with self._transaction() as connection:
                rows = connection.execute(statement).mappings().all()
            return [_to_record(row) for row in rows]

        return await self._run(run)

    async def select_by_keys(self, keys: Sequence[str]) -> list[PolicyRecord]:
        return await self.find_by_keys(keys)

    async def select_all(self) -> list[PolicyRecord]:
        statement = select(policy_table).order_by(
            policy_table.c.created_at, policy_table.c.policy_no
        )

        def run() -> list[PolicyRecord]:
            with self._transaction() as connection:
                rows = connection.execute(statement).mappings().all()
            return [_to_record(row) for row in rows]

        return await self._run(run)

    async def insert(self, values: PolicyValues) -> PolicyRecord:
        policy_no = values.get("policy_no")
        if not policy_no:
            raise StoreError("Cannot insert a policy without a policy number")

        def run() -> PolicyRecord:
            with self._transaction(policy_no=str(policy_no)) as connection:
                connection.execute(insert(policy_table).values(**_writable(values)))
                row = connection.execute(
                    select(policy_table).where(policy_table.c.policy_no == policy_no)
                ).mappings().one()
            return _to_record(row)

        return await self._run(run)

    async def update(self, policy_no: str, values: PolicyValues) -> PolicyRecord:
        writable = _writable(values)
        new_key = writable.get("policy_no") or policy_no

        def run() -> PolicyRecord:
            with self._transaction(policy_no=str(new_key)) as connection:
                result = connection.execute(
                    update(policy_table)
                    .where(policy_table.c.policy_no == policy_no)
                    .values(**writable)
                )
                if result.rowcount == 0:
                    raise RecordNotFoundError(policy_no)
                row = connection.execute(
                    select(policy_table).where(policy_table.c.policy_no == new_key)
                ).mappings().one()
            return _to_record(row)

        return await self._run(run)

    async def delete(self, policy_no: str) -> None:
        def run() -> None:
            with self._transaction() as connection:
                result = connection.execute(
                    delete(policy_table).where(policy_table.c.policy_no == policy_no)
                )
                if result.rowcount == 0:
                    raise RecordNotFoundError(policy_no)

        await self._run(run)

    async def search_keys(self, fragment: str, *, limit: int = 8) -> list[str]:
        statement = (
            select(policy_table.c.policy_no)
            .where(policy_table.c.policy_no.icontains(fragment, autoescape=True))
            .order_by(policy_table.c.policy_no)
            .limit(limit)
        )

        def run() -> list[str]:
            with self._transaction() as connection:
                return list(connection.execute(statement).scalars().all())

        return await self._run(run)

    async def _run[T](self, func: Callable[[], T]) -> T:
        if self._executor is None:
            return await asyncio.to_thread(func)
        return await asyncio.get_running_loop().run_in_executor(self._executor, func)

    @contextmanager
    def _transaction(self, *, policy_no: str | None = None) -> Iterator[Connection]:
        try:
            with self.engine.begin() as connection:
                yield connection
        except IntegrityError as exc:
            log.debug("Integrity error for policy %s: %s", policy_no, exc.orig)
            raise DuplicateKeyError(f"Policy number {policy_no!r} already exists") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Database error: {exc}") from exc
