"""Bulk import and reconciliation engine for policy records.

Layered flow:
1) parse raw CSV content into candidate rows (adapter supplied)
2) validate every row with the shared row validator
3) resolve candidate policy numbers against the store in one batched lookup
4) let the operator pick a resolution policy when duplicates exist
5) re-check duplicates, plan insert/update tasks, apply them fail-soft
6) merge the affected records back into the caller's policy list
"""

from __future__ import annotations

from .contracts import (
    DuplicateLookupError,
    DuplicateSummary,
    ImportFailure,
    ImportInProgressError,
    ImportOutcome,
    ImportStage,
    ImportTask,
    InvalidTransitionError,
    ParseError,
    ParsePolicyCsv,
    PolicyImportError,
    ProgressCallback,
    ResolutionPolicy,
    RunStatus,
    TaskOperation,
    ValidationVerdict,
)
from .execute import NOTHING_TO_IMPORT, ImportExecutor, progress_percent
from .resolve import distinct_keys, plan_tasks, resolve_duplicates
from .session import ImportSession, verdict_for

__all__ = [
    "NOTHING_TO_IMPORT",
    "DuplicateLookupError",
    "DuplicateSummary",
    "ImportExecutor",
    "ImportFailure",
    "ImportInProgressError",
    "ImportOutcome",
    "ImportSession",
    "ImportStage",
    "ImportTask",
    "InvalidTransitionError",
    "ParseError",
    "ParsePolicyCsv",
    "PolicyImportError",
    "ProgressCallback",
    "ResolutionPolicy",
    "RunStatus",
    "TaskOperation",
    "ValidationVerdict",
    "distinct_keys",
    "plan_tasks",
    "progress_percent",
    "resolve_duplicates",
    "verdict_for",
]
