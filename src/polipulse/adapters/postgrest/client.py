"""Record store backed by a PostgREST (Supabase-style) HTTP endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import TypeAdapter, ValidationError

from polipulse.adapters.http_resilience import ResilientClient
from polipulse.config.postgrest import get_postgrest_config
from polipulse.domain.ports.store import DuplicateKeyError, RecordNotFoundError, StoreError

from .schema import ErrorPayload, KeyPayload, PolicyPayload

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import TracebackType

    from polipulse.config.http_resilience import ResilienceConfig
    from polipulse.config.postgrest import PostgrestConfig
    from polipulse.domain.policy import PolicyRecord, PolicyValues

log = getLogger(__name__)

REST_PREFIX = "/rest/v1"
_RETURN_REPRESENTATION = {"Prefer": "return=representation"}

_POLICY_LIST = TypeAdapter(list[PolicyPayload])
_KEY_LIST = TypeAdapter(list[KeyPayload])


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def quote_filter_value(value: str) -> str:
    """Quote one value for a PostgREST ``in.(...)`` list."""

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def in_filter(keys: Sequence[str]) -> str:
    return f"in.({','.join(quote_filter_value(key) for key in keys)})"


def ilike_filter(fragment: str) -> str:
    """Case-insensitive substring pattern; literal ``%``, ``_`` and ``*`` are escaped."""

    escaped = fragment.replace("\\", "\\\\")
    for char in ("%", "_", "*"):
        escaped = escaped.replace(char, f"\\{char}")
    return f"ilike.*{escaped}*"


class PostgrestError(StoreError):
    """Raised when the PostgREST endpoint answers with an error status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class PostgrestPolicyStore:
    """:class:`~polipulse.domain.ports.store.PolicyStore` over PostgREST.

    The HTTP client lives for one ``async with`` block, so the store can be
    re-entered from separate event loops.
    """

    config: PostgrestConfig = field(default_factory=get_postgrest_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _client: ResilientClient | None = field(default=None, init=False, repr=False)

    async def __aenter__(self) -> PostgrestPolicyStore:
        if self._client is None:
            self._client = self.client_factory(self.config.resilience)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    @property
    def resource(self) -> str:
        return f"{REST_PREFIX}/{self.config.table}"

    async def find_by_keys(self, keys: Sequence[str]) -> list[PolicyRecord]:
        if not keys:
            return []
        response = await self._call(
            "GET", params={"select": "*", "policy_no": in_filter(keys)}
        )
        return self._records(response)

    async def select_by_keys(self, keys: Sequence[str]) -> list[PolicyRecord]:
        return await self.find_by_keys(keys)

    async def select_all(self) -> list[PolicyRecord]:
        response = await self._call("GET", params={"select": "*", "order": "policy_no.asc"})
        return self._records(response)

    async def insert(self, values: PolicyValues) -> PolicyRecord:
        response = await self._call("POST", json=values, headers=_RETURN_REPRESENTATION)
        records = self._records(response)
        if not records:
            raise StoreError(f"Insert of policy {values.get('policy_no')!r} returned no row")
        return records[0]

    async def update(self, policy_no: str, values: PolicyValues) -> PolicyRecord:
        response = await self._call(
            "PATCH",
            params={"policy_no": f"eq.{policy_no}"},
            json=values,
            headers=_RETURN_REPRESENTATION,
        )
        records = self._records(response)
        if not records:
            raise RecordNotFoundError(policy_no)
        return records[0]

    async def delete(self, policy_no: str) -> None:
        response = await self._call(
            "DELETE",
            params={"policy_no": f"eq.{policy_no}"},
            headers=_RETURN_REPRESENTATION,
        )
        if not self._records(response):
            raise RecordNotFoundError(policy_no)

    async def search_keys(self, fragment: str, *, limit: int = 8) -> list[str]:
        response = await self._call(
            "GET",
            params={
                "select": "policy_no",
                "policy_no": ilike_filter(fragment),
                "order": "policy_no.asc",
                "limit": str(limit),
            },
        )
        try:
            payloads = _KEY_LIST.validate_json(response.content)
        except ValidationError as exc:
            raise StoreError(f"Unexpected PostgREST payload: {exc}") from exc
        return [payload.policy_no for payload in payloads]

    async def _call(
        self,
        method: str,
        *,
        params: dict[str, str] | None = None,
        json: object = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        if self._client is None:
            raise StoreError("PostgREST store used outside of 'async with'")
        try:
            response = await self._client.request(
                method, self.resource, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            log.warning("PostgREST %s %s failed: %s", method, self.resource, exc)
            raise StoreError(f"PostgREST request failed: {exc}") from exc
        if response.is_success:
            return response
        raise self._error_for(response)

    @staticmethod
    def _records(response: httpx.Response) -> list[PolicyRecord]:
        if not response.content:
            return []
        try:
            payloads = _POLICY_LIST.validate_json(response.content)
        except ValidationError as exc:
            raise StoreError(f"Unexpected PostgREST payload: {exc}") from exc
        return [payload.to_record() for payload in payloads]

    @staticmethod
    def _error_for(response: httpx.Response) -> StoreError:
        try:
            error = ErrorPayload.model_validate_json(response.content)
            message = error.message or response.reason_phrase
        except ValidationError:
            message = response.text or response.reason_phrase
        log.debug("PostgREST answered %s: %s", response.status_code, message)
        if response.status_code == httpx.codes.CONFLICT:
            return DuplicateKeyError(message)
        return PostgrestError(
            f"PostgREST error {response.status_code}: {message}",
            status_code=response.status_code,
        )
