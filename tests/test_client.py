"""Tests for the Meta API client (mock transport)."""

import httpx
import pytest
from unittest.mock import AsyncMock

from adledger.connectors.meta.client import MetaAPIError, MetaClient
from adledger.connectors.meta.rate_limiter import CallBudget


ACCOUNT_URL = "https://graph.test/v21.0/act_123"


def _client(handler, **kwargs) -> MetaClient:
    return MetaClient(
        "123",
        access_token="token",
        call_budget=CallBudget(calls_per_hour=100, sleep=AsyncMock()),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_base_delay=0,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_account_id_gets_act_prefix():
    client = _client(lambda request: httpx.Response(200, json={}))
    assert client.ad_account_id == "act_123"
    await client.close()


@pytest.mark.asyncio
async def test_pagination_follows_next():
    """Pages are fetched until paging.next runs out."""

    def handler(request):
        if request.url.params.get("after") == "p2":
            return httpx.Response(200, json={"data": [{"id": 3}]})
        return httpx.Response(
            200,
            json={
                "data": [{"id": 1}, {"id": 2}],
                "paging": {"next": "https://graph.test/v21.0/act_123/insights?after=p2"},
            },
        )

    client = _client(handler)
    rows = await client._paginated_get("https://graph.test/v21.0/act_123/insights", {"level": "ad"})
    await client.close()

    assert [r["id"] for r in rows] == [1, 2, 3]
    assert client.call_budget.total_calls == 2


@pytest.mark.asyncio
async def test_retries_server_errors_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 2:
            return httpx.Response(500, json={"error": {"message": "boom"}})
        return httpx.Response(200, json={"name": "Acct"})

    client = _client(handler)
    assert (await client._request("GET", ACCOUNT_URL))["name"] == "Acct"
    assert len(calls) == 2
    await client.close()


@pytest.mark.asyncio
async def test_client_error_raises_meta_api_error():
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Invalid parameter", "code": 100}})

    client = _client(handler)
    with pytest.raises(MetaAPIError) as exc:
        await client._request("GET", ACCOUNT_URL)
    await client.close()

    assert exc.value.status_code == 400
    assert exc.value.error_code == 100
    assert "Invalid parameter" in str(exc.value)


@pytest.mark.asyncio
async def test_rate_limited_until_retries_exhausted():
    client = _client(lambda request: httpx.Response(429), max_retries=2)
    with pytest.raises(MetaAPIError) as exc:
        await client._request("GET", ACCOUNT_URL)
    await client.close()
    assert exc.value.status_code == 429
