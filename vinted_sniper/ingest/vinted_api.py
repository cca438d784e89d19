"""Vinted catalog JSON API client."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from vinted_sniper.ingest.base import (
    RateLimitedError,
    SearchClient,
    SearchSession,
    TransientSearchError,
)

logger = logging.getLogger(__name__)

CATALOG_PATH = "/api/v2/catalog/items"


def default_headers() -> dict[str, str]:
    """Get default browser-like headers."""
    return {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "it-IT,it;q=0.9,en-US;q=0.8,en;q=0.7",
        "Cache-Control": "no-cache",
    }


def _retry_after(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


class VintedCatalogSession(SearchSession):
    """Catalog searches sharing one HTTP client (and its cookies) for a cycle."""

    def __init__(self, client: httpx.AsyncClient, per_page: int = 96):
        self.client = client
        self.per_page = per_page

    async def warm_up(self) -> None:
        """Visit the home page so the API sees a session cookie."""
        try:
            await self.client.get("/")
        except httpx.HTTPError as e:
            logger.warning(f"Session warm-up failed (continuing): {e}")

    async def search(self, term: str) -> list[dict[str, Any]]:
        params = {
            "search_text": term,
            "order": "newest_first",
            "per_page": str(self.per_page),
        }
        try:
            response = await self.client.get(CATALOG_PATH, params=params)
        except httpx.TransportError as e:
            raise TransientSearchError(
                f"Transport error searching '{term}': {type(e).__name__}"
            ) from e

        if response.status_code == 429:
            raise RateLimitedError(retry_after=_retry_after(response), source="vinted")

        if not 200 <= response.status_code < 300:
            raise TransientSearchError(
                f"Catalog search for '{term}' returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransientSearchError(f"Catalog search for '{term}' returned invalid JSON") from e

        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            logger.warning(f"Catalog response for '{term}' has no items list")
            return []

        records = [item for item in items if isinstance(item, dict)]
        logger.debug(f"Catalog search '{term}': {len(records)} items")
        return records


class VintedCatalogClient(SearchClient):
    """Search collaborator backed by the public catalog API."""

    def __init__(
        self,
        base_url: str,
        per_page: int = 96,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        warm_up: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.per_page = per_page
        self.timeout = timeout
        self._transport = transport
        self._warm_up = warm_up

    @asynccontextmanager
    async def session(self) -> AsyncIterator[VintedCatalogSession]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=default_headers(),
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            session = VintedCatalogSession(client, per_page=self.per_page)
            if self._warm_up:
                await session.warm_up()
            yield session
