"""Single-record policy operations.

These share :func:`~polipulse.domain.validation.validate_policy` with the bulk
import path, so a row accepted here is accepted by an import and vice versa.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from polipulse.domain.policy import PolicyList
from polipulse.domain.ports.store import RecordNotFoundError
from polipulse.domain.validation import ensure_valid

if TYPE_CHECKING:
    from polipulse.domain.policy import PolicyData, PolicyRecord
    from polipulse.domain.ports.store import PolicyStore

log = getLogger(__name__)

DEFAULT_SUGGESTION_LIMIT = 8


async def add_policy(
    store: PolicyStore,
    data: PolicyData,
    *,
    policies: PolicyList | None = None,
) -> PolicyRecord:
    """Validate and insert one policy."""

    ensure_valid(data)
    record = await store.insert(data.to_store_values())
    if policies is not None:
        policies.add(record)
    log.info("Policy %s added", record.policy_no)
    return record


async def update_policy(
    store: PolicyStore,
    policy_no: str,
    data: PolicyData,
    *,
    policies: PolicyList | None = None,
) -> PolicyRecord:
    """Validate ``data`` and write it over the policy stored as ``policy_no``."""

    ensure_valid(data)
    record = await store.update(policy_no, data.to_store_values())
    if policies is not None:
        policies.replace(policy_no, record)
    log.info("Policy %s updated", policy_no)
    return record


async def delete_policy(
    store: PolicyStore,
    policy_no: str,
    *,
    policies: PolicyList | None = None,
) -> None:
    await store.delete(policy_no)
    if policies is not None:
        policies.remove(policy_no)
    log.info("Policy %s deleted", policy_no)


async def load_policy(store: PolicyStore, policy_no: str) -> PolicyRecord:
    records = await store.select_by_keys([policy_no])
    for record in records:
        if record.policy_no == policy_no:
            return record
    raise RecordNotFoundError(policy_no)


async def load_policies(store: PolicyStore) -> PolicyList:
    """Fetch every stored policy into a fresh in-memory list."""

    return PolicyList(await store.select_all())


async def suggest_policy_numbers(
    store: PolicyStore,
    fragment: str,
    *,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> list[str]:
    """Policy numbers containing ``fragment``; nothing for a blank fragment."""

    query = fragment.strip()
    if not query:
        return []
    return await store.search_keys(query, limit=limit)
