"""Import state machine driving one CSV import from file selection to outcome.

Stages::

    idle -> file-selected -> parsed -> previewed
         -> awaiting-resolution (duplicates found) -> awaiting-confirmation
         -> awaiting-confirmation (no duplicates, insert-only applied)
         -> executing -> completed

``clear()`` returns to ``idle`` from any stage except ``executing``. A finished
session never retries; the next run starts again with ``select_file()``.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from polipulse.domain.policy import CandidateRow
from polipulse.domain.validation import validate_policy

from .contracts import (
    ImportInProgressError,
    ImportStage,
    InvalidTransitionError,
    ParseError,
    ResolutionPolicy,
    RunStatus,
    ValidationVerdict,
)
from .execute import ImportExecutor
from .resolve import resolve_duplicates

if TYPE_CHECKING:
    from collections.abc import Mapping

    from polipulse.domain.policy import PolicyData, PolicyList
    from polipulse.domain.ports.store import PolicyStore

    from .contracts import DuplicateSummary, ImportOutcome, ParsePolicyCsv, ProgressCallback

log = getLogger(__name__)

_EDITABLE_STAGES = frozenset(
    {
        ImportStage.PARSED,
        ImportStage.PREVIEWED,
        ImportStage.AWAITING_RESOLUTION,
        ImportStage.AWAITING_CONFIRMATION,
    }
)


def verdict_for(row: CandidateRow) -> ValidationVerdict:
    return ValidationVerdict(origin_index=row.origin_index, reason=validate_policy(row))


class ImportSession:
    """Owns the candidate rows, verdicts and duplicate summary of one import."""

    def __init__(
        self,
        *,
        store: PolicyStore,
        parser: ParsePolicyCsv,
        policies: PolicyList | None = None,
        workers: int = 1,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.store = store
        self.parser = parser
        self.policies = policies
        self.workers = workers
        self.on_progress = on_progress
        self._stage = ImportStage.IDLE
        self._content: str | bytes | None = None
        self._file_name: str | None = None
        self._rows: dict[int, CandidateRow] = {}
        self._verdicts: dict[int, ValidationVerdict] = {}
        self._summary: DuplicateSummary | None = None
        self._policy = ResolutionPolicy.INSERT_ONLY
        self._outcome: ImportOutcome | None = None

    # ── Read-only views ────────────────────────────────────────────────

    @property
    def stage(self) -> ImportStage:
        return self._stage

    @property
    def file_name(self) -> str | None:
        return self._file_name

    @property
    def rows(self) -> tuple[CandidateRow, ...]:
        return tuple(self._rows[index] for index in sorted(self._rows))

    @property
    def verdicts(self) -> Mapping[int, ValidationVerdict]:
        return dict(self._verdicts)

    @property
    def errors(self) -> dict[int, str]:
        """Reasons of the invalid rows keyed by origin index."""

        return {
            index: verdict.reason
            for index, verdict in sorted(self._verdicts.items())
            if verdict.reason is not None
        }

    @property
    def valid_rows(self) -> tuple[CandidateRow, ...]:
        return tuple(row for row in self.rows if self._verdicts[row.origin_index].is_valid)

    @property
    def summary(self) -> DuplicateSummary | None:
        return self._summary

    @property
    def policy(self) -> ResolutionPolicy:
        return self._policy

    @property
    def outcome(self) -> ImportOutcome | None:
        return self._outcome

    # ── Transitions ────────────────────────────────────────────────────

    def select_file(self, content: str | bytes, *, name: str | None = None) -> None:
        self._require_stage(ImportStage.IDLE, ImportStage.COMPLETED)
        self._reset()
        self._outcome = None
        self._content = content
        self._file_name = name
        self._enter(ImportStage.FILE_SELECTED)

    def parse(self) -> tuple[CandidateRow, ...]:
        """Parse the selected file; on :class:`ParseError` the session returns to idle."""

        self._require_stage(ImportStage.FILE_SELECTED)
        content = self._content if self._content is not None else b""
        try:
            rows = self.parser(content)
        except ParseError:
            log.warning("Could not parse %s", self._file_name or "CSV content")
            self._reset()
            self._enter(ImportStage.IDLE)
            raise
        self._rows = {row.origin_index: row for row in rows}
        self._enter(ImportStage.PARSED)
        return self.rows

    def preview(self) -> dict[int, ValidationVerdict]:
        """Validate every row and return the verdicts keyed by origin index."""

        self._require_stage(ImportStage.PARSED, ImportStage.PREVIEWED)
        self._verdicts = {index: verdict_for(row) for index, row in self._rows.items()}
        invalid = sum(1 for verdict in self._verdicts.values() if not verdict.is_valid)
        if invalid:
            log.warning("CSV has %s invalid rows out of %s", invalid, len(self._rows))
        self._enter(ImportStage.PREVIEWED)
        return dict(self._verdicts)

    def update_row(self, origin_index: int, row: PolicyData) -> ValidationVerdict:
        """Replace one row and re-validate only that row.

        Editing after duplicates were resolved discards the summary and returns
        the session to ``previewed``.
        """

        self._require_stage(*_EDITABLE_STAGES)
        if origin_index not in self._rows:
            raise KeyError(f"No candidate row with origin index {origin_index}")
        updated = CandidateRow.from_data(row, origin_index=origin_index)
        self._rows[origin_index] = updated
        verdict = verdict_for(updated)
        if self._stage is not ImportStage.PARSED:
            self._verdicts[origin_index] = verdict
        if self._stage in {ImportStage.AWAITING_RESOLUTION, ImportStage.AWAITING_CONFIRMATION}:
            self._summary = None
            self._policy = ResolutionPolicy.INSERT_ONLY
            self._enter(ImportStage.PREVIEWED)
        log.info("Row %s updated: %s", origin_index, verdict.reason or "valid")
        return verdict

    async def prepare(self) -> DuplicateSummary:
        """Look up duplicates for the valid rows and decide the next stage."""

        self._require_stage(ImportStage.PREVIEWED)
        summary = await resolve_duplicates(self.valid_rows, self.store)
        if summary.repeated_keys:
            log.warning(
                "Policy numbers repeated within the file: %s", ", ".join(summary.repeated_keys)
            )
        self._summary = summary
        if summary.requires_decision:
            self._enter(ImportStage.AWAITING_RESOLUTION)
        else:
            self._policy = ResolutionPolicy.INSERT_ONLY
            self._enter(ImportStage.AWAITING_CONFIRMATION)
        return summary

    def choose_policy(self, policy: ResolutionPolicy | str) -> None:
        self._require_stage(ImportStage.AWAITING_RESOLUTION)
        self._policy = ResolutionPolicy(policy)
        log.info("Resolution policy chosen: %s", self._policy.value)
        self._enter(ImportStage.AWAITING_CONFIRMATION)

    async def confirm(self) -> ImportOutcome:
        """Execute the import.

        A failure before any task was submitted, such as a failed duplicate
        re-check, leaves the session awaiting confirmation. A failure once tasks
        have run ends the session in ``completed`` without an outcome.
        """

        self._require_stage(ImportStage.AWAITING_CONFIRMATION)
        self._enter(ImportStage.EXECUTING)
        executor = ImportExecutor(
            store=self.store,
            policies=self.policies,
            workers=self.workers,
            on_progress=self.on_progress,
        )
        try:
            outcome = await executor.run(self.valid_rows, self._policy)
        except BaseException:
            if executor.status is RunStatus.PENDING:
                self._enter(ImportStage.AWAITING_CONFIRMATION)
            else:
                log.error("Import aborted while %s", executor.status.value)
                self._reset()
                self._enter(ImportStage.COMPLETED)
            raise
        self._reset()
        self._outcome = outcome
        self._enter(ImportStage.COMPLETED)
        return outcome

    def clear(self) -> None:
        """Discard rows, verdicts and summary and return to idle."""

        if self._stage is ImportStage.EXECUTING:
            raise ImportInProgressError("Cannot clear while an import is executing")
        self._reset()
        self._outcome = None
        self._enter(ImportStage.IDLE)

    # ── Private helpers ────────────────────────────────────────────────

    def _reset(self) -> None:
        self._content = None
        self._file_name = None
        self._rows = {}
        self._verdicts = {}
        self._summary = None
        self._policy = ResolutionPolicy.INSERT_ONLY

    def _enter(self, stage: ImportStage) -> None:
        if stage is not self._stage:
            log.debug("Import stage %s -> %s", self._stage.value, stage.value)
        self._stage = stage

    def _require_stage(self, *allowed: ImportStage) -> None:
        if self._stage in allowed:
            return
        if self._stage is ImportStage.EXECUTING:
            raise ImportInProgressError("An import is already executing")
        expected = ", ".join(stage.value for stage in allowed)
        raise InvalidTransitionError(
            f"Operation not allowed in stage {self._stage.value} (expected {expected})"
        )
