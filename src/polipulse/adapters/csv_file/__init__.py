"""Public interface for the CSV file adapter."""

from __future__ import annotations

from .reader import decode_content, iter_candidate_rows, parse_policy_csv
from .schema import PolicyCsvRow
from .template import TEMPLATE_FILENAME, TEMPLATE_SAMPLE_ROW, render_template, write_template

__all__ = [
    "TEMPLATE_FILENAME",
    "TEMPLATE_SAMPLE_ROW",
    "PolicyCsvRow",
    "decode_content",
    "iter_candidate_rows",
    "parse_policy_csv",
    "render_template",
    "write_template",
]
