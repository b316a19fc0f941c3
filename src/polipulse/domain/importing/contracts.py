"""Types shared by the parse, resolve, execute and session stages.

Keeping these explicit stops the stages from reaching into each other's state:
the resolver hands a :class:`DuplicateSummary` to the planner, the planner
hands a tuple of :class:`ImportTask` to the executor, and the executor returns
one :class:`ImportOutcome`.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from polipulse.domain.policy import CandidateRow


type ProgressCallback = Callable[[int], None]


class PolicyImportError(RuntimeError):
    """Base class for errors that end an import attempt."""


class ParseError(PolicyImportError):
    """The CSV content could not be read; no rows were produced."""


class DuplicateLookupError(PolicyImportError):
    """The batched duplicate lookup against the store failed."""


class InvalidTransitionError(PolicyImportError):
    """An import session operation was called in the wrong stage."""


class ImportInProgressError(PolicyImportError):
    """Another import run is executing on this session."""


class ParsePolicyCsv(Protocol):
    """Turn raw CSV content into candidate rows, all or nothing."""

    def __call__(self, content: str | bytes) -> tuple[CandidateRow, ...]: ...


class ResolutionPolicy(StrEnum):
    """Operator decision on how rows matching stored policies are treated."""

    INSERT_ONLY = "insert-only"
    UPDATE_EXISTING = "update-existing"
    SKIP_DUPLICATES = "skip-duplicates"


class TaskOperation(StrEnum):
    INSERT = "insert"
    UPDATE = "update"


class RunStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed-with-failures"


class ImportStage(StrEnum):
    IDLE = "idle"
    FILE_SELECTED = "file-selected"
    PARSED = "parsed"
    PREVIEWED = "previewed"
    AWAITING_RESOLUTION = "awaiting-resolution"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    EXECUTING = "executing"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class ValidationVerdict:
    origin_index: int
    reason: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.reason is None


@dataclass(frozen=True, slots=True)
class DuplicateSummary:
    """Partition of validated rows against one store snapshot.

    ``existing`` and ``incoming`` are derived from ``rows`` and
    ``existing_keys``, so every row lands in exactly one of them.
    """

    rows: tuple[CandidateRow, ...]
    existing_keys: frozenset[str] = frozenset()

    @property
    def existing(self) -> tuple[CandidateRow, ...]:
        return tuple(row for row in self.rows if row.policy_no.strip() in self.existing_keys)

    @property
    def incoming(self) -> tuple[CandidateRow, ...]:
        return tuple(
            row for row in self.rows if row.policy_no.strip() not in self.existing_keys
        )

    @property
    def requires_decision(self) -> bool:
        return any(row.policy_no.strip() in self.existing_keys for row in self.rows)

    @property
    def repeated_keys(self) -> tuple[str, ...]:
        """Policy numbers that occur on more than one row of this file."""

        counts = Counter(row.policy_no.strip() for row in self.rows if row.policy_no.strip())
        return tuple(key for key, count in counts.items() if count > 1)


@dataclass(frozen=True, slots=True)
class ImportTask:
    operation: TaskOperation
    row: CandidateRow


@dataclass(frozen=True, slots=True)
class ImportFailure:
    origin_index: int
    policy_no: str
    reason: str


@dataclass(frozen=True, slots=True)
class ImportOutcome:
    """Final tally of one import run."""

    status: RunStatus
    total_tasks: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failures: tuple[ImportFailure, ...] = field(default_factory=tuple)
    progress: int = 100
    notice: str | None = None

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def message(self) -> str:
        if self.notice is not None:
            return self.notice
        if self.failures:
            return f"Import completed with {self.failed} failed rows"
        return "CSV import completed"
