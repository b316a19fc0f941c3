from __future__ import annotations

import asyncio
import logging

import pytest

from polipulse.domain.importing import (
    NOTHING_TO_IMPORT,
    ImportExecutor,
    ImportTask,
    InvalidTransitionError,
    ResolutionPolicy,
    RunStatus,
    TaskOperation,
    progress_percent,
)
from polipulse.domain.policy import PolicyList
from polipulse.domain.ports.store import StoreError
from tests.helpers.policies import InMemoryPolicyStore, make_candidate, make_record


@pytest.mark.parametrize(
    ("completed", "total", "expected"),
    [(1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 2, 50), (1, 8, 13), (0, 4, 0)],
)
def test_progress_percent(completed: int, total: int, expected: int) -> None:
    assert progress_percent(completed, total) == expected


def test_run_inserts_new_rows_and_reports_progress() -> None:
    store = InMemoryPolicyStore()
    progress: list[int] = []
    executor = ImportExecutor(store=store, on_progress=progress.append)
    rows = [make_candidate(index, policy_no=f"POL{index}") for index in range(3)]

    outcome = asyncio.run(executor.run(rows, ResolutionPolicy.INSERT_ONLY))

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.inserted == 3
    assert outcome.failed == 0
    assert outcome.message == "CSV import completed"
    assert progress == [33, 67, 100]
    assert executor.status is RunStatus.COMPLETED
    assert set(store.records) == {"POL0", "POL1", "POL2"}


def test_duplicate_rows_within_file_produce_one_success_and_one_failure() -> None:
    store = InMemoryPolicyStore()
    rows = [make_candidate(0, policy_no="POL1"), make_candidate(1, policy_no="POL1")]

    outcome = asyncio.run(ImportExecutor(store=store).run(rows, ResolutionPolicy.INSERT_ONLY))

    assert outcome.succeeded == 1
    assert outcome.failed == 1
    assert outcome.failures[0].origin_index == 1
    assert outcome.status is RunStatus.COMPLETED_WITH_FAILURES
    assert outcome.message == "Import completed with 1 failed rows"


def test_failures_do_not_stop_later_tasks(caplog: pytest.LogCaptureFixture) -> None:
    store = InMemoryPolicyStore(fail_inserts={"POL1"})
    rows = [make_candidate(index, policy_no=f"POL{index}") for index in range(3)]

    with caplog.at_level(logging.WARNING):
        outcome = asyncio.run(ImportExecutor(store=store).run(rows, ResolutionPolicy.INSERT_ONLY))

    assert store.call_names().count("insert") == 3
    assert set(store.records) == {"POL0", "POL2"}
    assert [(failure.origin_index, failure.reason) for failure in outcome.failures] == [
        (1, "insert of POL1 rejected")
    ]
    assert outcome.progress == 100
    assert "Row 1 (POL1) failed to insert" in caplog.text


def test_update_existing_updates_matching_rows() -> None:
    store = InMemoryPolicyStore([make_record("OLD1", client_name="Before")])
    rows = [
        make_candidate(0, policy_no="OLD1", client_name="After"),
        make_candidate(1, policy_no="NEW1"),
    ]

    outcome = asyncio.run(
        ImportExecutor(store=store).run(rows, ResolutionPolicy.UPDATE_EXISTING)
    )

    assert (outcome.inserted, outcome.updated, outcome.skipped) == (1, 1, 0)
    assert store.records["OLD1"].client_name == "After"


@pytest.mark.parametrize(
    "policy", [ResolutionPolicy.INSERT_ONLY, ResolutionPolicy.SKIP_DUPLICATES]
)
def test_non_update_policies_never_touch_existing_rows(policy: ResolutionPolicy) -> None:
    store = InMemoryPolicyStore([make_record("OLD1", client_name="Before")])
    rows = [make_candidate(0, policy_no="OLD1", client_name="After")]

    outcome = asyncio.run(ImportExecutor(store=store).run(rows, policy))

    assert "update" not in store.call_names()
    assert store.records["OLD1"].client_name == "Before"
    assert outcome.skipped == 1
    assert outcome.message == NOTHING_TO_IMPORT


def test_empty_task_list_makes_no_store_calls() -> None:
    store = InMemoryPolicyStore()
    progress: list[int] = []

    outcome = asyncio.run(
        ImportExecutor(store=store, on_progress=progress.append).execute((), skipped=2)
    )

    assert store.calls == []
    assert progress == []
    assert outcome.status is RunStatus.COMPLETED
    assert outcome.total_tasks == 0
    assert outcome.skipped == 2
    assert outcome.message == NOTHING_TO_IMPORT


def test_refresh_merges_affected_records_into_policy_list() -> None:
    store = InMemoryPolicyStore([make_record("OLD1")])
    policies = PolicyList([make_record("OLD1"), make_record("OTHER")])
    tasks = (
        ImportTask(
            operation=TaskOperation.UPDATE,
            row=make_candidate(0, policy_no="OLD1", client_name="New"),
        ),
        ImportTask(operation=TaskOperation.INSERT, row=make_candidate(1, policy_no="NEW1")),
    )

    asyncio.run(ImportExecutor(store=store, policies=policies).execute(tasks))

    assert policies.keys() == ("OLD1", "OTHER", "NEW1")
    refreshed = policies.get("OLD1")
    assert refreshed is not None
    assert refreshed.client_name == "New"
    assert store.calls[-1] == ("select_by_keys", ("OLD1", "NEW1"))


@pytest.mark.parametrize("error", [StoreError("timeout"), ConnectionError("reset by peer")])
def test_refresh_failure_is_logged_and_outcome_kept(
    error: Exception, caplog: pytest.LogCaptureFixture
) -> None:
    store = InMemoryPolicyStore(refresh_error=error)
    policies = PolicyList()
    tasks = (ImportTask(operation=TaskOperation.INSERT, row=make_candidate(0)),)

    with caplog.at_level(logging.ERROR):
        outcome = asyncio.run(ImportExecutor(store=store, policies=policies).execute(tasks))

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.inserted == 1
    assert len(policies) == 0
    assert "Could not refresh 1 affected policies" in caplog.text


def test_executor_is_single_use() -> None:
    executor = ImportExecutor(store=InMemoryPolicyStore())
    asyncio.run(executor.execute(()))

    with pytest.raises(InvalidTransitionError):
        asyncio.run(executor.execute(()))


def test_default_worker_count_runs_one_task_at_a_time() -> None:
    store = InMemoryPolicyStore(delay=0.001)
    rows = [make_candidate(index, policy_no=f"POL{index}") for index in range(4)]

    asyncio.run(ImportExecutor(store=store).run(rows, ResolutionPolicy.INSERT_ONLY))

    assert store.max_in_flight == 1
    assert [value for name, value in store.calls if name == "insert"] == [
        "POL0",
        "POL1",
        "POL2",
        "POL3",
    ]


def test_workers_bound_concurrent_store_calls() -> None:
    store = InMemoryPolicyStore(delay=0.001)
    progress: list[int] = []
    rows = [make_candidate(index, policy_no=f"POL{index}") for index in range(6)]
    executor = ImportExecutor(store=store, workers=2, on_progress=progress.append)

    outcome = asyncio.run(executor.run(rows, ResolutionPolicy.INSERT_ONLY))

    assert store.max_in_flight == 2
    assert outcome.inserted == 6
    assert progress == sorted(progress)
    assert progress[-1] == 100


def test_workers_must_be_positive() -> None:
    with pytest.raises(ValueError, match="workers must be at least 1"):
        ImportExecutor(store=InMemoryPolicyStore(), workers=0)
