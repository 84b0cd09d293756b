"""Quote of the day with a 24 hour cache and offline fallback."""

from __future__ import annotations

import logging
import random
from typing import Optional

import httpx
from pydantic import ValidationError

from fuegovibe.core.async_utils import retry_async
from fuegovibe.core.cache import RedisCache
from fuegovibe.core.config import settings
from fuegovibe.schemas.quote import FALLBACK_QUOTES, Quote, QuoteRead

logger = logging.getLogger(__name__)

CACHE_KEY = "quote:today"


def _is_transient(error: Exception) -> bool:
    # 4xx answers will not change on a second try
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return True


class QuoteService:
    """Fetches the quote of the day. Always produces a quote."""

    def __init__(
        self,
        cache: RedisCache,
        client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        ttl: Optional[int] = None,
    ) -> None:
        self._cache = cache
        self._client = client
        self._api_url = api_url or settings.QUOTE_API_URL
        self._ttl = ttl or settings.QUOTE_CACHE_TTL_SECONDS

    @retry_async(
        max_attempts=2,
        delay=0.5,
        exceptions=(httpx.TransportError, httpx.HTTPStatusError),
        should_retry=_is_transient,
    )
    async def _request(self, client: httpx.AsyncClient) -> httpx.Response:
        response = await client.get(self._api_url, timeout=settings.QUOTE_FETCH_TIMEOUT)
        response.raise_for_status()
        return response

    async def fetch_quote_of_the_day(self) -> Optional[Quote]:
        """Ask the quote API for today's quote; None when it cannot be had."""
        try:
            if self._client is not None:
                response = await self._request(self._client)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._request(client)
            quotes = [Quote.model_validate(item) for item in response.json()]
        except httpx.HTTPStatusError as e:
            logger.error(f"Quote API error: {e.response.status_code}")
            return None
        except (httpx.HTTPError, ValueError, TypeError, ValidationError) as e:
            logger.error(f"Error fetching quote: {e}")
            return None
        if not quotes:
            return None
        logger.info(f"Quote loaded: {quotes[0].quote}")
        return quotes[0]

    def load_from_cache(self) -> Optional[Quote]:
        cached = self._cache.get(CACHE_KEY)
        if not isinstance(cached, dict):
            return None
        try:
            return Quote.model_validate(cached)
        except ValidationError:
            self._cache.delete(CACHE_KEY)
            return None

    def save_to_cache(self, quote: Quote) -> None:
        self._cache.set(CACHE_KEY, quote.model_dump(by_alias=True), ttl=self._ttl)

    async def get_quote(self, force: bool = False) -> QuoteRead:
        """Serve the cached quote, or fetch a new one when missing or ``force``d.

        A forced fetch that fails keeps the cached quote rather than a fallback.
        """
        cached = self.load_from_cache()
        if cached is not None and not force:
            logger.debug("Loaded quote from cache")
            return QuoteRead(quote=cached.quote, author=cached.author, cached=True)

        quote = await self.fetch_quote_of_the_day()
        if quote is None and cached is not None:
            logger.warning("Quote refresh failed, keeping the cached quote")
            return QuoteRead(quote=cached.quote, author=cached.author, cached=True)
        if quote is None:
            fallback = random.choice(FALLBACK_QUOTES)
            return QuoteRead(quote=fallback.quote, author=fallback.author, fallback=True)

        self.save_to_cache(quote)
        return QuoteRead(quote=quote.quote, author=quote.author)
