"""Port for the keyed policy record store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Self, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from polipulse.domain.policy import PolicyRecord, PolicyValues


class StoreError(RuntimeError):
    """Raised by store adapters when a store call fails."""


class DuplicateKeyError(StoreError):
    """Raised when a write would repeat an existing policy number."""


class RecordNotFoundError(StoreError):
    """Raised when no record matches the requested policy number."""

    def __init__(self, policy_no: str) -> None:
        super().__init__(f"No policy with number {policy_no!r}")
        self.policy_no = policy_no


@runtime_checkable
class PolicyStore(Protocol):
    """Asynchronous keyed CRUD over the ``policy`` collection.

    Every call is one suspension point; callers never assume ordering between
    calls they did not await.
    """

    async def find_by_keys(self, keys: Sequence[str]) -> list[PolicyRecord]:
        """Return the records whose policy number is in ``keys`` (one query)."""
        ...

    async def insert(self, values: PolicyValues) -> PolicyRecord: ...

    async def update(self, policy_no: str, values: PolicyValues) -> PolicyRecord: ...

    async def delete(self, policy_no: str) -> None: ...

    async def select_all(self) -> list[PolicyRecord]: ...

    async def select_by_keys(self, keys: Sequence[str]) -> list[PolicyRecord]: ...

    async def search_keys(self, fragment: str, *, limit: int = 8) -> list[str]:
        """Return policy numbers containing ``fragment`` (case-insensitive)."""
        ...


@runtime_checkable
class ManagedPolicyStore(PolicyStore, Protocol):
    """A store whose connections are held open for one ``async with`` block."""

    async def __aenter__(self) -> Self: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...
