"""ADLEDGER — Meta API Client.

Handles authentication, retry logic, the hourly call budget, and pagination.
One client serves one ad account.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from adledger.config import settings
from adledger.connectors.meta.rate_limiter import CallBudget
from adledger.core.logging import get_logger

logger = get_logger("meta.client")

META_BASE = f"{settings.meta_base_url}/{settings.meta_api_version}"


class MetaAPIError(Exception):
    """Raised when Meta API returns an error."""

    def __init__(self, message: str, status_code: int = 0, error_code: int = 0):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class MetaClient:
    """Async HTTP client for the Meta Marketing API."""

    def __init__(
        self,
        ad_account_id: str,
        access_token: str | None = None,
        call_budget: CallBudget | None = None,
        http_client: httpx.AsyncClient | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
    ):
        account = str(ad_account_id)
        self.ad_account_id = account if account.startswith("act_") else f"act_{account}"
        self.access_token = access_token or settings.meta_access_token
        self.call_budget = call_budget or CallBudget()
        self.max_retries = max_retries or settings.meta_max_retries
        self.retry_base_delay = (
            settings.meta_retry_base_delay if retry_base_delay is None else retry_base_delay
        )
        self._client: Optional[httpx.AsyncClient] = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=settings.meta_request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_delay * (2 ** (attempt - 1))

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + call-budget handling."""
        params = dict(params or {})
        params["access_token"] = self.access_token

        client = await self._get_client()

        for attempt in range(1, self.max_retries + 1):
            await self.call_budget.acquire()
            try:
                resp = await client.request(method, url, params=params)

                # Rate limited
                if resp.status_code == 429:
                    if attempt >= self.max_retries:
                        raise MetaAPIError("Rate limited (429), retries exhausted", 429)
                    wait = self._backoff(attempt)
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{self.max_retries})",
                        extra={"status_code": 429},
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                body = (
                    e.response.json()
                    if e.response.headers.get("content-type", "").startswith(
                        "application/json"
                    )
                    else {}
                )
                error_msg = body.get("error", {}).get("message", str(e))
                error_code = body.get("error", {}).get("code", 0)

                if attempt < self.max_retries and e.response.status_code >= 500:
                    wait = self._backoff(attempt)
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s",
                        extra={"status_code": e.response.status_code},
                    )
                    await asyncio.sleep(wait)
                    continue

                raise MetaAPIError(error_msg, e.response.status_code, error_code) from e

            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    wait = self._backoff(attempt)
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise MetaAPIError(
                    f"Connection failed after {self.max_retries} retries: {e}"
                ) from e

        raise MetaAPIError("Max retries exhausted")

    # ── Pagination ──

    async def _paginated_get(
        self,
        url: str,
        params: Dict[str, Any] | None = None,
        max_pages: int = 50,
    ) -> List[Dict[str, Any]]:
        """Fetch all pages of a paginated endpoint by following paging.next."""
        all_data: List[Dict[str, Any]] = []
        params = params or {}
        current_url = url

        for page in range(max_pages):
            result = await self._request(
                "GET", current_url, params if page == 0 else None
            )
            data = result.get("data", [])
            all_data.extend(data)

            # Check for next page
            paging = result.get("paging", {})
            next_url = paging.get("next")
            if not next_url:
                break
            current_url = next_url
        else:
            logger.warning(f"Stopped paginating {url} after {max_pages} pages")

        logger.info(
            f"Fetched {len(all_data)} records from {url}",
            extra={"count": len(all_data)},
        )
        return all_data
