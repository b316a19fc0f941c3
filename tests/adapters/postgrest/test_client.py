from __future__ import annotations

import asyncio
import json
from collections.abc import Callable  # noqa: TC003

import httpx
import pytest

from polipulse.adapters.http_resilience import ResilientClient
from polipulse.adapters.postgrest import PostgrestPolicyStore, ilike_filter, in_filter
from polipulse.config import PostgrestConfig, ResilienceConfig
from polipulse.domain.ports.store import DuplicateKeyError, RecordNotFoundError, StoreError
from tests.helpers.policies import VALID_POLICY, make_policy

BASE_URL = "https://example.supabase.co"


def _config() -> PostgrestConfig:
    return PostgrestConfig(
        url=BASE_URL,
        api_key="secret",
        resilience=ResilienceConfig(
            name="postgrest",
            base_url=BASE_URL,
            default_headers={"apikey": "secret", "Authorization": "Bearer secret"},
        ),
    )


def _make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            base_url=resilience.base_url or "",
            headers=dict(resilience.default_headers or {}),
            transport=httpx.MockTransport(async_handler),
        )
        return client

    return factory


def _store(handler: Callable[[httpx.Request], httpx.Response]) -> PostgrestPolicyStore:
    return PostgrestPolicyStore(config=_config(), client_factory=_make_client_factory(handler))


def _row(policy_no: str, **overrides: object) -> dict[str, object]:
    return {**VALID_POLICY, "id": 7, "premium": 12000, "policy_no": policy_no, **overrides}


def test_filters_quote_values() -> None:
    assert in_filter(["POL1", 'A"B']) == 'in.("POL1","A\\"B")'
    assert ilike_filter("50%_") == "ilike.*50\\%\\_*"


def test_find_by_keys_uses_one_in_query() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[_row("POL1", remarks=None)])

    async def scenario() -> None:
        async with _store(handler) as store:
            records = await store.find_by_keys(["POL1", "POL2"])
        assert [record.policy_no for record in records] == ["POL1"]
        assert records[0].id == "7"
        assert records[0].remarks == ""

    asyncio.run(scenario())

    (request,) = requests
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/policy"
    assert request.url.params["policy_no"] == 'in.("POL1","POL2")'
    assert request.headers["apikey"] == "secret"
    assert request.headers["Authorization"] == "Bearer secret"


def test_insert_posts_values_and_returns_representation() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["prefer"] = request.headers.get("Prefer")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json=[_row("POL1")])

    async def scenario() -> None:
        async with _store(handler) as store:
            record = await store.insert(make_policy(policy_no="POL1").to_store_values())
        assert record.policy_no == "POL1"

    asyncio.run(scenario())

    assert seen["method"] == "POST"
    assert seen["prefer"] == "return=representation"
    body = seen["body"]
    assert isinstance(body, dict)
    assert body["remarks"] is None
    assert body["premium"] == 12000.0


def test_conflict_maps_to_duplicate_key() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={"code": "23505", "message": "duplicate key value violates unique constraint"},
        )

    async def scenario() -> None:
        async with _store(handler) as store:
            await store.insert(make_policy().to_store_values())

    with pytest.raises(DuplicateKeyError, match="duplicate key value"):
        asyncio.run(scenario())


def test_server_error_maps_to_store_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    async def scenario() -> None:
        async with _store(handler) as store:
            await store.select_all()

    with pytest.raises(StoreError, match="PostgREST error 500"):
        asyncio.run(scenario())


def test_update_and_delete_filter_by_policy_number() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "PATCH":
            return httpx.Response(200, json=[_row("POL1", client_name="New")])
        return httpx.Response(200, json=[])

    async def scenario() -> None:
        async with _store(handler) as store:
            updated = await store.update("POL1", make_policy(client_name="New").to_store_values())
            assert updated.client_name == "New"
            with pytest.raises(RecordNotFoundError):
                await store.delete("POL9")

    asyncio.run(scenario())

    assert [request.method for request in requests] == ["PATCH", "DELETE"]
    assert requests[0].url.params["policy_no"] == "eq.POL1"
    assert requests[1].url.params["policy_no"] == "eq.POL9"


def test_search_keys_uses_ilike_and_limit() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[{"policy_no": "POL1"}, {"policy_no": "pol2"}])

    async def scenario() -> list[str]:
        async with _store(handler) as store:
            return await store.search_keys("pol", limit=5)

    assert asyncio.run(scenario()) == ["POL1", "pol2"]
    assert requests[0].url.params["policy_no"] == "ilike.*pol*"
    assert requests[0].url.params["limit"] == "5"


def test_network_failure_maps_to_store_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async def scenario() -> None:
        async with _store(handler) as store:
            await store.find_by_keys(["POL1"])

    with pytest.raises(StoreError, match="PostgREST request failed"):
        asyncio.run(scenario())


def test_store_must_be_opened() -> None:
    store = _store(lambda _: httpx.Response(200, json=[]))

    with pytest.raises(StoreError, match="outside of 'async with'"):
        asyncio.run(store.select_all())
