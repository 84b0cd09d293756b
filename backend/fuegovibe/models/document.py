from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from fuegovibe.models.event import utcnow


class StoredDocument(SQLModel, table=True):
    """One document of a collection, persisted as a JSON blob."""

    __tablename__ = "documents"

    collection: str = Field(primary_key=True, max_length=64)
    id: str = Field(primary_key=True, max_length=64)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = utcnow()
