"""Pydantic models describing PostgREST ``policy`` payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from polipulse.domain.policy import TEXT_FIELDS, PolicyRecord, coerce_premium


def _null_to_blank(value: object) -> object:
    if value is None:
        return ""
    return value


class PostgrestBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class PolicyPayload(PostgrestBaseModel):
    id: str | int | None = None
    client_name: str = ""
    nominee_name: str = ""
    dob: str = ""
    phone_no: str = ""
    email: str = ""
    address: str = ""
    client_type: str = ""
    business_type: str = ""
    purchase_date: str = ""
    policy_no: str
    company_name: str = ""
    policy_type: str = ""
    premium: float = 0.0
    renewal_date: str = ""
    remarks: str = ""

    _normalize_text = field_validator(*TEXT_FIELDS, mode="before")(_null_to_blank)
    _coerce_premium = field_validator("premium", mode="before")(coerce_premium)

    def to_record(self) -> PolicyRecord:
        return PolicyRecord(
            id=None if self.id is None else str(self.id),
            **self.model_dump(exclude={"id"}),
        )


class KeyPayload(PostgrestBaseModel):
    policy_no: str


class ErrorPayload(PostgrestBaseModel):
    code: str | None = None
    message: str | None = None
    details: str | None = None
    hint: str | None = None
