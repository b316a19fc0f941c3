"""Duplicate resolution against the record store and task planning.

Responsibilities of this stage:
- look up every distinct candidate policy number with one batched query
- partition candidates into ``existing`` and ``incoming``
- turn a partition plus an operator policy into an immutable task list

Rows sharing a policy number inside one file are not collapsed: each is
resolved on its own against the store snapshot.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from polipulse.domain.ports.store import StoreError

from .contracts import (
    DuplicateLookupError,
    DuplicateSummary,
    ImportTask,
    ResolutionPolicy,
    TaskOperation,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from polipulse.domain.policy import CandidateRow
    from polipulse.domain.ports.store import PolicyStore

log = getLogger(__name__)


def distinct_keys(rows: Iterable[CandidateRow]) -> list[str]:
    """Non-empty policy numbers in first-seen order, without repeats."""

    seen: dict[str, None] = {}
    for row in rows:
        key = row.policy_no.strip()
        if key:
            seen.setdefault(key, None)
    return list(seen)


async def resolve_duplicates(
    rows: Sequence[CandidateRow],
    store: PolicyStore,
) -> DuplicateSummary:
    """Partition ``rows`` by whether their policy number is already stored."""

    candidates = tuple(rows)
    keys = distinct_keys(candidates)
    if not keys:
        return DuplicateSummary(rows=candidates)

    try:
        records = await store.find_by_keys(keys)
    except StoreError as exc:
        log.error("Duplicate lookup failed for %s keys: %s", len(keys), exc)
        raise DuplicateLookupError(f"Duplicate check failed: {exc}") from exc

    requested = set(keys)
    existing_keys = frozenset(
        record.policy_no for record in records if record.policy_no in requested
    )
    summary = DuplicateSummary(rows=candidates, existing_keys=existing_keys)
    log.info(
        "Duplicate check: %s rows, %s existing, %s incoming",
        len(candidates),
        len(summary.existing),
        len(summary.incoming),
    )
    return summary


def plan_tasks(
    summary: DuplicateSummary,
    policy: ResolutionPolicy,
) -> tuple[tuple[ImportTask, ...], int]:
    """Return the tasks for ``summary`` under ``policy`` and the skipped row count.

    Tasks keep file order. Existing rows become updates only under
    ``update-existing``; otherwise they are skipped.
    """

    tasks: list[ImportTask] = []
    skipped = 0
    for row in summary.rows:
        if row.policy_no.strip() not in summary.existing_keys:
            tasks.append(ImportTask(operation=TaskOperation.INSERT, row=row))
        elif policy is ResolutionPolicy.UPDATE_EXISTING:
            tasks.append(ImportTask(operation=TaskOperation.UPDATE, row=row))
        else:
            skipped += 1
    return tuple(tasks), skipped
