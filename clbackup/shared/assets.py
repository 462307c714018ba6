from __future__ import annotations

import logging
import typing

from httpx import AsyncClient, HTTPError, InvalidURL

logger = logging.getLogger(__name__)


class AssetFetcher:
    """Downloads images referenced by a snapshot.

    Missing data is not an error for any caller, so every failure resolves to
    ``None``.
    """

    def __init__(
        self,
        client: AsyncClient | None = None,
        *,
        timeout: float = 30,
        user_agent: str | None = None,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            headers = {} if user_agent is None else {"user-agent": user_agent}
            client = AsyncClient(timeout=timeout, headers=headers, follow_redirects=True)
        self.client = client

    async def __aenter__(self) -> AssetFetcher:
        return self

    async def __aexit__(self, *exc_info: typing.Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch(self, url: str) -> bytes | None:
        try:
            res = await self.client.get(url)
        except (HTTPError, InvalidURL) as e:
            logger.debug(f"failed to fetch asset {url}: {e}")
            return None

        if res.status_code != 200:
            logger.debug(f"failed to fetch asset {url}: status {res.status_code}")
            return None
        return res.content
