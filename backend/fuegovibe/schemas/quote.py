from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Quote(BaseModel):
    """Quote of the day as returned by ZenQuotes (``q``, ``a``, ``h`` keys)."""

    model_config = ConfigDict(populate_by_name=True)

    quote: str = Field(alias="q")
    author: str = Field(alias="a")
    html: Optional[str] = Field(default=None, alias="h")


class QuoteRead(BaseModel):
    quote: str
    author: str
    cached: bool = False
    fallback: bool = False


FALLBACK_QUOTES = [
    Quote(quote="The only limit to our realization of tomorrow is our doubts of today.", author="Franklin D. Roosevelt"),
    Quote(quote="Believe you can and you're halfway there.", author="Theodore Roosevelt"),
    Quote(quote="Success is not final, failure is not fatal: it is the courage to continue that counts.", author="Winston Churchill"),
    Quote(quote="The future belongs to those who believe in the beauty of their dreams.", author="Eleanor Roosevelt"),
    Quote(quote="It always seems impossible until it's done.", author="Nelson Mandela"),
    Quote(quote="Don't watch the clock; do what it does. Keep going.", author="Sam Levenson"),
    Quote(quote="The only way to do great work is to love what you do.", author="Steve Jobs"),
    Quote(quote="If you can dream it, you can do it.", author="Walt Disney"),
    Quote(quote="Start where you are. Use what you have. Do what you can.", author="Arthur Ashe"),
    Quote(quote="The secret of getting ahead is getting started.", author="Mark Twain"),
]
