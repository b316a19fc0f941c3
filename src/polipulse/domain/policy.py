"""Policy value types shared by the import engine and single-record operations.

``policy_no`` is the natural key: it identifies a policy across CSV rows,
store records and the in-memory :class:`PolicyList`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Self

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

POLICY_FIELDS: Final[tuple[str, ...]] = (
    "client_name",
    "nominee_name",
    "dob",
    "phone_no",
    "email",
    "address",
    "client_type",
    "business_type",
    "purchase_date",
    "policy_no",
    "company_name",
    "policy_type",
    "premium",
    "renewal_date",
    "remarks",
)
PREMIUM_FIELD: Final[str] = "premium"
TEXT_FIELDS: Final[tuple[str, ...]] = tuple(
    name for name in POLICY_FIELDS if name != PREMIUM_FIELD
)

type StoreValue = str | float | None
type PolicyValues = dict[str, StoreValue]


def coerce_premium(value: object) -> float:
    """Return ``value`` as a float, or ``0.0`` when it is blank or not numeric."""

    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return 0.0
    return 0.0


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True, slots=True, kw_only=True)
class PolicyData:
    """The attributes of one policy, independent of where it came from."""

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

    @classmethod
    def from_mapping(cls, values: Mapping[str, object], **extra: object) -> Self:
        """Build from a loose mapping: text is trimmed, ``None`` becomes ``""``."""

        attributes: dict[str, object] = {name: _text(values.get(name)) for name in TEXT_FIELDS}
        attributes[PREMIUM_FIELD] = coerce_premium(values.get(PREMIUM_FIELD))
        return cls(**attributes, **extra)  # pyright: ignore[reportArgumentType]

    def attributes(self) -> dict[str, str | float]:
        return {name: getattr(self, name) for name in POLICY_FIELDS}

    def to_store_values(self) -> PolicyValues:
        """Values to persist; blank text is written as ``None``."""

        values: PolicyValues = {}
        for name in TEXT_FIELDS:
            text: str = getattr(self, name).strip()
            values[name] = text or None
        values[PREMIUM_FIELD] = self.premium
        return values


@dataclass(frozen=True, slots=True, kw_only=True)
class CandidateRow(PolicyData):
    """One parsed CSV line under consideration for import.

    ``origin_index`` is the 0-based position of the line among the data rows of
    the source file. It is never persisted.
    """

    origin_index: int

    @classmethod
    def from_data(cls, data: PolicyData, *, origin_index: int) -> CandidateRow:
        """Copy ``data`` with its text trimmed like a parsed CSV line."""

        return cls.from_mapping(data.attributes(), origin_index=origin_index)


@dataclass(frozen=True, slots=True, kw_only=True)
class PolicyRecord(PolicyData):
    """A policy committed to the record store."""

    id: str | None = None


class PolicyList:
    """In-memory policy list keyed by policy number.

    Order follows first insertion; merging a record whose key is already
    present replaces it in place (last write wins).
    """

    def __init__(self, records: Iterable[PolicyRecord] = ()) -> None:
        self._records: dict[str, PolicyRecord] = {}
        self.merge(records)

    def merge(self, records: Iterable[PolicyRecord]) -> None:
        for record in records:
            self._records[record.policy_no] = record

    def add(self, record: PolicyRecord) -> None:
        self._records[record.policy_no] = record

    def replace(self, policy_no: str, record: PolicyRecord) -> None:
        """Swap the record stored under ``policy_no``, keeping its position."""

        if policy_no not in self._records:
            self.add(record)
            return
        self._records = {
            (record.policy_no if key == policy_no else key): (
                record if key == policy_no else current
            )
            for key, current in self._records.items()
        }

    def remove(self, policy_no: str) -> PolicyRecord | None:
        return self._records.pop(policy_no, None)

    def get(self, policy_no: str) -> PolicyRecord | None:
        return self._records.get(policy_no)

    def keys(self) -> tuple[str, ...]:
        return tuple(self._records)

    def __iter__(self) -> Iterator[PolicyRecord]:
        return iter(tuple(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, policy_no: object) -> bool:
        return policy_no in self._records
