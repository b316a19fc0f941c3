"""Downloadable CSV template for bulk policy imports."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Final

from polipulse.domain.policy import POLICY_FIELDS

if TYPE_CHECKING:
    from pathlib import Path

log = getLogger(__name__)

TEMPLATE_FILENAME: Final[str] = "policies_template.csv"
TEMPLATE_SAMPLE_ROW: Final[dict[str, str]] = {
    "client_name": "John Doe",
    "nominee_name": "Jane Doe",
    "dob": "1980-07-01",
    "phone_no": "9876543210",
    "email": "john@example.com",
    "address": "Mumbai",
    "client_type": "Individual",
    "business_type": "Life Insurance",
    "purchase_date": "2025-01-01",
    "policy_no": "POL12345",
    "company_name": "Acme Insurers",
    "policy_type": "Term",
    "premium": "12000",
    "renewal_date": "2026-01-01",
    "remarks": "N/A",
}


def render_template() -> str:
    """Header line plus one example row, comma separated and unquoted."""

    header = ",".join(POLICY_FIELDS)
    sample = ",".join(TEMPLATE_SAMPLE_ROW[name] for name in POLICY_FIELDS)
    return f"{header}\n{sample}"


def write_template(path: Path) -> Path:
    target = path / TEMPLATE_FILENAME if path.is_dir() else path
    target.write_text(render_template(), encoding="utf-8")
    log.info("Template written to %s", target)
    return target
