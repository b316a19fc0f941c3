"""Application orchestration entry points.

Each function here is a synchronous boundary: it picks the configured store,
opens it for one ``asyncio.run`` and drives the domain coroutines inside it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from polipulse.adapters.csv_file import parse_policy_csv, write_template
from polipulse.adapters.postgrest import PostgrestPolicyStore
from polipulse.adapters.sqlalchemy import SqlAlchemyPolicyStore, is_started, startup
from polipulse.config import StoreBackend, get_import_config, get_store_backend
from polipulse.domain.importing import ImportSession, ImportStage, ResolutionPolicy, verdict_for
from polipulse.domain.policy import PolicyData
from polipulse.domain.records import (
    add_policy,
    delete_policy,
    load_policies,
    suggest_policy_numbers,
    update_policy,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from polipulse.domain.importing import DuplicateSummary, ImportOutcome, ProgressCallback
    from polipulse.domain.policy import CandidateRow, PolicyList, PolicyRecord
    from polipulse.domain.ports.store import ManagedPolicyStore

type ResolutionDecider = Callable[[DuplicateSummary], ResolutionPolicy | str | None]
type ImportConfirmer = Callable[[ImportSession], bool]

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ImportPreview:
    """Parsed rows of a CSV file with the reasons of the invalid ones."""

    file_name: str | None
    rows: tuple[CandidateRow, ...]
    errors: dict[int, str]

    @property
    def invalid_count(self) -> int:
        return len(self.errors)

    @property
    def valid_count(self) -> int:
        return len(self.rows) - len(self.errors)


def build_store(backend: StoreBackend | None = None) -> ManagedPolicyStore:
    """Return the record store selected by ``backend`` or ``POLIPULSE_STORE``."""

    selected = backend or get_store_backend()
    log.debug("Using %s record store", selected.value)
    if selected is StoreBackend.POSTGREST:
        return PostgrestPolicyStore()
    if not is_started():
        startup()
    return SqlAlchemyPolicyStore()


def _read_source(source: Path | str | bytes) -> tuple[str | bytes, str | None]:
    if isinstance(source, Path):
        return source.read_bytes(), source.name
    return source, None


def create_template(target: Path) -> Path:
    return write_template(target)


def preview_policy_csv(source: Path | str | bytes) -> ImportPreview:
    """Parse and validate a CSV file without touching the record store."""

    content, name = _read_source(source)
    rows = parse_policy_csv(content)
    errors = {
        verdict.origin_index: verdict.reason
        for verdict in map(verdict_for, rows)
        if verdict.reason is not None
    }
    preview = ImportPreview(file_name=name, rows=rows, errors=errors)
    log.info(
        "Previewed %s: %s rows, %s invalid",
        name or "CSV content",
        len(rows),
        preview.invalid_count,
    )
    return preview


def import_policy_csv(
    source: Path | str | bytes,
    *,
    store: ManagedPolicyStore | None = None,
    policy: ResolutionPolicy | str | None = None,
    decide: ResolutionDecider | None = None,
    confirm: ImportConfirmer | None = None,
    workers: int | None = None,
    on_progress: ProgressCallback | None = None,
    policies: PolicyList | None = None,
) -> ImportOutcome | None:
    """Run a full CSV import against the configured store.

    When duplicates are found, ``policy`` is used if given, otherwise
    ``decide`` is asked. Returns ``None`` when no policy was chosen or
    ``confirm`` declined the import.
    """

    content, name = _read_source(source)
    effective_store = store or build_store()
    effective_workers = workers if workers is not None else get_import_config().workers

    async def run() -> ImportOutcome | None:
        async with effective_store:
            session = ImportSession(
                store=effective_store,
                parser=parse_policy_csv,
                policies=policies,
                workers=effective_workers,
                on_progress=on_progress,
            )
            session.select_file(content, name=name)
            session.parse()
            session.preview()
            summary = await session.prepare()
            if session.stage is ImportStage.AWAITING_RESOLUTION:
                chosen = policy if policy is not None else (decide(summary) if decide else None)
                if chosen is None:
                    log.info(
                        "Import cancelled: %s duplicates left unresolved", len(summary.existing)
                    )
                    session.clear()
                    return None
                session.choose_policy(chosen)
            if confirm is not None and not confirm(session):
                log.info("Import cancelled before execution")
                session.clear()
                return None
            return await session.confirm()

    return asyncio.run(run())


def add_policy_record(
    values: Mapping[str, object],
    *,
    store: ManagedPolicyStore | None = None,
) -> PolicyRecord:
    effective_store = store or build_store()

    async def run() -> PolicyRecord:
        async with effective_store:
            return await add_policy(effective_store, PolicyData.from_mapping(values))

    return asyncio.run(run())


def update_policy_record(
    policy_no: str,
    values: Mapping[str, object],
    *,
    store: ManagedPolicyStore | None = None,
) -> PolicyRecord:
    effective_store = store or build_store()

    async def run() -> PolicyRecord:
        async with effective_store:
            return await update_policy(effective_store, policy_no, PolicyData.from_mapping(values))

    return asyncio.run(run())


def delete_policy_record(policy_no: str, *, store: ManagedPolicyStore | None = None) -> None:
    effective_store = store or build_store()

    async def run() -> None:
        async with effective_store:
            await delete_policy(effective_store, policy_no)

    asyncio.run(run())


def list_policy_records(*, store: ManagedPolicyStore | None = None) -> PolicyList:
    effective_store = store or build_store()

    async def run() -> PolicyList:
        async with effective_store:
            return await load_policies(effective_store)

    return asyncio.run(run())


def search_policy_numbers(
    fragment: str,
    *,
    store: ManagedPolicyStore | None = None,
) -> list[str]:
    effective_store = store or build_store()

    async def run() -> list[str]:
        async with effective_store:
            return await suggest_policy_numbers(effective_store, fragment)

    return asyncio.run(run())
