"""Row validation shared by the bulk import and single-record add/edit paths."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from .policy import PolicyData

# evaluated in order; the first failing check is the verdict
REQUIRED_TEXT_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("client_name", "Client name required"),
    ("policy_no", "Policy number required"),
    ("company_name", "Company name required"),
    ("business_type", "Business type required"),
    ("policy_type", "Policy type required"),
    ("purchase_date", "Purchase date required"),
    ("renewal_date", "Renewal date required"),
)
PREMIUM_REASON: Final[str] = "Premium must be > 0"


class PolicyValidationError(ValueError):
    """Raised by single-record operations when a policy fails validation."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def validate_policy(row: PolicyData) -> str | None:
    """Return the reason ``row`` is invalid, or ``None`` when it is valid.

    Only presence and the premium amount are checked; dates are opaque strings.
    """

    for name, reason in REQUIRED_TEXT_FIELDS:
        value: object = getattr(row, name)
        if value is None or not str(value).strip():
            return reason

    try:
        premium = float(row.premium)
    except (TypeError, ValueError):
        return PREMIUM_REASON
    if not math.isfinite(premium) or premium <= 0:
        return PREMIUM_REASON
    return None


def ensure_valid(row: PolicyData) -> None:
    """Raise :class:`PolicyValidationError` when ``row`` is invalid."""

    reason = validate_policy(row)
    if reason is not None:
        raise PolicyValidationError(reason)
