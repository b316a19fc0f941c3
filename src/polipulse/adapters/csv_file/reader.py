"""Read raw CSV content into candidate policy rows."""

from __future__ import annotations

import csv
import io
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from polipulse.domain.importing.contracts import ParseError

from .schema import PolicyCsvRow

if TYPE_CHECKING:
    from collections.abc import Iterator

    from polipulse.domain.policy import CandidateRow

log = getLogger(__name__)


def decode_content(content: str | bytes) -> str:
    """Return ``content`` as text without a leading byte-order mark."""

    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"CSV is not valid UTF-8: {exc}") from exc
        return text
    return content.removeprefix("\ufeff")


def iter_candidate_rows(content: str | bytes) -> Iterator[CandidateRow]:
    """Lazily yield candidate rows in file order, origin indices from 0.

    Blank lines are skipped. Calling again restarts from the first row. A
    structural problem raises :class:`ParseError` at the offending line.
    """

    reader = csv.DictReader(io.StringIO(decode_content(content), newline=""), strict=True)
    try:
        fieldnames = reader.fieldnames
    except csv.Error as exc:
        raise ParseError(f"CSV header could not be read: {exc}") from exc
    if not fieldnames:
        raise ParseError("CSV has no header row")
    reader.fieldnames = [name.strip() for name in fieldnames]

    origin_index = 0
    try:
        for record in reader:
            yield PolicyCsvRow.model_validate(record).to_candidate(origin_index)
            origin_index += 1
    except csv.Error as exc:
        raise ParseError(f"CSV parse error on line {reader.line_num}: {exc}") from exc
    except ValidationError as exc:
        raise ParseError(f"CSV row {origin_index} could not be read: {exc}") from exc


def parse_policy_csv(content: str | bytes) -> tuple[CandidateRow, ...]:
    """Parse the whole file; either every row is returned or :class:`ParseError` is raised."""

    rows = tuple(iter_candidate_rows(content))
    log.info("Parsed %s candidate rows", len(rows))
    return rows
