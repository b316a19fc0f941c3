"""Pydantic model describing one data line of a policy CSV file."""

from __future__ import annotations

from collections.abc import Mapping
from typing import cast

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from polipulse.domain.policy import CandidateRow, coerce_premium


class PolicyCsvRow(BaseModel):
    """Typed view of a ``csv.DictReader`` record.

    Absent cells default to ``""`` (``0`` for premium); text is trimmed and a
    premium that is blank or not a number becomes ``0``.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)

    client_name: str = ""
    nominee_name: str = ""
    dob: str = ""
    phone_no: str = ""
    email: str = ""
    address: str = ""
    client_type: str = ""
    business_type: str = ""
    purchase_date: str = ""
    policy_no: str = ""
    company_name: str = ""
    policy_type: str = ""
    premium: float = 0.0
    renewal_date: str = ""
    remarks: str = ""

    @model_validator(mode="before")
    @classmethod
    def _drop_unnamed_cells(cls, value: object) -> object:
        # DictReader files surplus cells under a ``None`` key and pads short rows with None
        if isinstance(value, Mapping):
            mapping_value = cast(Mapping[object, object], value)
            return {
                key: "" if cell is None else cell
                for key, cell in mapping_value.items()
                if isinstance(key, str)
            }
        return value

    _coerce_premium = field_validator("premium", mode="before")(coerce_premium)

    def to_candidate(self, origin_index: int) -> CandidateRow:
        return CandidateRow(origin_index=origin_index, **self.model_dump())
