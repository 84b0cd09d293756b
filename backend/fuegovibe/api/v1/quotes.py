from __future__ import annotations

from fastapi import APIRouter, Depends

from fuegovibe.api.deps import get_quote_service
from fuegovibe.schemas import QuoteRead
from fuegovibe.services.quotes import QuoteService

router = APIRouter()


@router.get("/today", response_model=QuoteRead, summary="Quote of the day")
async def read_quote_of_the_day(
    quotes: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    """Never fails: falls back to a built-in quote when the API is unreachable."""
    return await quotes.get_quote()


@router.post("/refresh", response_model=QuoteRead, summary="Refresh quote of the day")
async def refresh_quote_of_the_day(
    quotes: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    """Skip the cache and ask the quote API again."""
    return await quotes.get_quote(force=True)
