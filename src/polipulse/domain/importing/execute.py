"""Import executor: apply a resolved task list against the record store.

Execution is fail-soft. A store failure on one task is recorded against the
row's origin index and the remaining tasks still run. Each task commits on its
own; there is no batch transaction and no rollback.

With the default single worker, task N+1 is not submitted before the result of
task N has been recorded. More workers bound the number of in-flight store
calls instead; progress still only moves forward.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from .contracts import (
    ImportFailure,
    ImportOutcome,
    InvalidTransitionError,
    RunStatus,
    TaskOperation,
)
from .resolve import distinct_keys, plan_tasks, resolve_duplicates

if TYPE_CHECKING:
    from collections.abc import Sequence

    from polipulse.domain.policy import CandidateRow, PolicyList
    from polipulse.domain.ports.store import PolicyStore

    from .contracts import ImportTask, ProgressCallback, ResolutionPolicy

log = getLogger(__name__)

NOTHING_TO_IMPORT = "No rows to import (all duplicates skipped or nothing to insert)."


def progress_percent(completed: int, total: int) -> int:
    """``round(100 * completed / total)`` with halves rounded up."""

    if total <= 0:
        return 100
    return (200 * completed + total) // (2 * total)


@dataclass(slots=True)
class _ProgressTracker:
    total: int
    callback: ProgressCallback | None = None
    completed: int = 0
    percent: int = 0

    def advance(self) -> int:
        self.completed += 1
        self.percent = max(self.percent, progress_percent(self.completed, self.total))
        if self.callback is not None:
            self.callback(self.percent)
        return self.percent


@dataclass(slots=True)
class ImportExecutor:
    """Run one import: re-check duplicates, plan, apply, refresh.

    An executor is single-use; its ``status`` moves
    ``pending -> running -> completed | completed-with-failures``.
    """

    store: PolicyStore
    policies: PolicyList | None = None
    workers: int = 1
    on_progress: ProgressCallback | None = None
    status: RunStatus = field(default=RunStatus.PENDING, init=False)

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("workers must be at least 1")

    async def run(
        self,
        rows: Sequence[CandidateRow],
        policy: ResolutionPolicy,
    ) -> ImportOutcome:
        """Re-resolve ``rows`` against the live store and apply them under ``policy``."""

        self._require_pending()
        summary = await resolve_duplicates(rows, self.store)
        tasks, skipped = plan_tasks(summary, policy)
        log.info(
            "Planned %s tasks under %s (%s rows skipped)", len(tasks), policy.value, skipped
        )
        return await self.execute(tasks, skipped=skipped)

    async def execute(self, tasks: Sequence[ImportTask], *, skipped: int = 0) -> ImportOutcome:
        """Apply ``tasks`` in order and return the outcome."""

        self._require_pending()
        planned = tuple(tasks)
        if not planned:
            self.status = RunStatus.COMPLETED
            log.info(NOTHING_TO_IMPORT)
            return ImportOutcome(
                status=self.status,
                skipped=skipped,
                notice=NOTHING_TO_IMPORT,
            )

        self.status = RunStatus.RUNNING
        tracker = _ProgressTracker(total=len(planned), callback=self.on_progress)
        results: list[ImportFailure | None] = [None] * len(planned)
        queue = iter(enumerate(planned))

        async def worker() -> None:
            for position, task in queue:
                results[position] = await self._apply(task)
                tracker.advance()

        await asyncio.gather(*(worker() for _ in range(min(self.workers, len(planned)))))

        failures = tuple(result for result in results if result is not None)
        inserted = sum(
            1
            for task, result in zip(planned, results, strict=True)
            if result is None and task.operation is TaskOperation.INSERT
        )
        updated = len(planned) - len(failures) - inserted

        await self._refresh(planned)

        self.status = RunStatus.COMPLETED_WITH_FAILURES if failures else RunStatus.COMPLETED
        outcome = ImportOutcome(
            status=self.status,
            total_tasks=len(planned),
            inserted=inserted,
            updated=updated,
            skipped=skipped,
            failures=failures,
            progress=tracker.percent,
        )
        if failures:
            log.warning(outcome.message)
        else:
            log.info("%s: %s inserted, %s updated", outcome.message, inserted, updated)
        return outcome

    async def _apply(self, task: ImportTask) -> ImportFailure | None:
        row = task.row
        values = row.to_store_values()
        try:
            if task.operation is TaskOperation.INSERT:
                await self.store.insert(values)
            else:
                await self.store.update(row.policy_no.strip(), values)
        except Exception as exc:  # noqa: BLE001
            reason = str(exc) or type(exc).__name__
            log.warning(
                "Row %s (%s) failed to %s: %s",
                row.origin_index,
                row.policy_no,
                task.operation.value,
                reason,
            )
            return ImportFailure(
                origin_index=row.origin_index, policy_no=row.policy_no, reason=reason
            )
        return None

    async def _refresh(self, tasks: Sequence[ImportTask]) -> None:
        if self.policies is None:
            return
        keys = distinct_keys(task.row for task in tasks)
        if not keys:
            return
        try:
            records = await self.store.select_by_keys(keys)
        except Exception:  # noqa: BLE001
            log.exception("Could not refresh %s affected policies", len(keys))
            return
        self.policies.merge(records)
        log.debug("Refreshed %s policies after import", len(records))

    def _require_pending(self) -> None:
        if self.status is not RunStatus.PENDING:
            raise InvalidTransitionError(
                f"Import executor already used (status={self.status.value})"
            )
