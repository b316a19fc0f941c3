from __future__ import annotations

import asyncio
import threading

import pytest
from sqlalchemy import event, inspect
from sqlalchemy.engine import Engine  # noqa: TC002

from polipulse.adapters.sqlalchemy import (
    SqlAlchemyPolicyStore,
    StartupError,
    configured_engine,
    create_store_engine,
    shutdown,
    startup,
)
from polipulse.domain.importing import ImportExecutor, ResolutionPolicy, RunStatus
from polipulse.domain.ports.store import (
    DuplicateKeyError,
    ManagedPolicyStore,
    RecordNotFoundError,
)
from tests.helpers.policies import make_candidate, make_policy


def test_policy_table_has_unique_policy_number(sqlite_engine: Engine) -> None:
    inspector = inspect(sqlite_engine)

    constraints = inspector.get_unique_constraints("policy")

    assert [constraint["column_names"] for constraint in constraints] == [["policy_no"]]


def test_store_satisfies_managed_port(sqlite_store: SqlAlchemyPolicyStore) -> None:
    assert isinstance(sqlite_store, ManagedPolicyStore)


def test_insert_and_find_by_keys(sqlite_store: SqlAlchemyPolicyStore) -> None:
    async def scenario() -> None:
        inserted = await sqlite_store.insert(
            make_policy(policy_no="POL1", remarks="").to_store_values()
        )
        await sqlite_store.insert(make_policy(policy_no="POL2").to_store_values())

        found = await sqlite_store.find_by_keys(["POL1", "POL3"])

        assert [record.policy_no for record in found] == ["POL1"]
        assert found[0].id == inserted.id
        assert found[0].remarks == ""
        assert found[0].premium == 12000.0

    asyncio.run(scenario())


def test_duplicate_insert_raises_duplicate_key(sqlite_store: SqlAlchemyPolicyStore) -> None:
    values = make_policy(policy_no="POL1").to_store_values()
    asyncio.run(sqlite_store.insert(values))

    with pytest.raises(DuplicateKeyError, match="POL1"):
        asyncio.run(sqlite_store.insert(values))


def test_update_and_delete(sqlite_store: SqlAlchemyPolicyStore) -> None:
    async def scenario() -> None:
        await sqlite_store.insert(make_policy(policy_no="POL1").to_store_values())

        updated = await sqlite_store.update(
            "POL1", make_policy(policy_no="POL1", client_name="Renamed").to_store_values()
        )
        assert updated.client_name == "Renamed"

        await sqlite_store.delete("POL1")
        assert await sqlite_store.select_all() == []

        with pytest.raises(RecordNotFoundError):
            await sqlite_store.update("POL1", make_policy(policy_no="POL1").to_store_values())
        with pytest.raises(RecordNotFoundError):
            await sqlite_store.delete("POL1")

    asyncio.run(scenario())


def test_search_keys_is_case_insensitive_and_escapes_wildcards(
    sqlite_store: SqlAlchemyPolicyStore,
) -> None:
    async def scenario() -> None:
        for policy_no in ("ABC-1", "abc-2", "XYZ", "A%C"):
            await sqlite_store.insert(make_policy(policy_no=policy_no).to_store_values())

        assert await sqlite_store.search_keys("abc") == ["ABC-1", "abc-2"]
        assert await sqlite_store.search_keys("%") == ["A%C"]
        assert await sqlite_store.search_keys("abc", limit=1) == ["ABC-1"]

    asyncio.run(scenario())


def test_executor_against_sqlite_records_per_row_failures(
    sqlite_store: SqlAlchemyPolicyStore,
) -> None:
    rows = [make_candidate(0, policy_no="POL1"), make_candidate(1, policy_no="POL1")]

    outcome = asyncio.run(
        ImportExecutor(store=sqlite_store).run(rows, ResolutionPolicy.INSERT_ONLY)
    )

    assert outcome.status is RunStatus.COMPLETED_WITH_FAILURES
    assert (outcome.succeeded, outcome.failed) == (1, 1)
    assert len(asyncio.run(sqlite_store.select_all())) == 1


def test_startup_twice_requires_force(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine)

    with pytest.raises(StartupError):
        startup(engine=sqlite_engine)

    startup(engine=sqlite_engine, force=True)
    assert configured_engine() is sqlite_engine


def test_store_requires_startup() -> None:
    shutdown()

    with pytest.raises(StartupError):
        SqlAlchemyPolicyStore()


def test_queries_run_off_the_event_loop_thread(sqlite_store: SqlAlchemyPolicyStore) -> None:
    threads: list[str] = []

    def record_thread(*_args: object) -> None:
        threads.append(threading.current_thread().name)

    event.listen(sqlite_store.engine, "before_cursor_execute", record_thread)
    try:
        asyncio.run(sqlite_store.insert(make_policy(policy_no="POL1").to_store_values()))
        asyncio.run(sqlite_store.find_by_keys(["POL1"]))
    finally:
        event.remove(sqlite_store.engine, "before_cursor_execute", record_thread)

    assert threads
    assert threading.main_thread().name not in threads
    assert all(name.startswith("polipulse-sqlite") for name in threads)


def test_in_memory_engine_shares_one_database_across_threads() -> None:
    engine = create_store_engine("sqlite+pysqlite:///:memory:")
    startup(engine=engine)
    store = SqlAlchemyPolicyStore()

    async def scenario() -> list[str]:
        await asyncio.gather(
            *(
                store.insert(make_policy(policy_no=f"POL{index}").to_store_values())
                for index in range(3)
            )
        )
        return [record.policy_no for record in await store.select_all()]

    assert sorted(asyncio.run(scenario())) == ["POL0", "POL1", "POL2"]
