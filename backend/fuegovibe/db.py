from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from fuegovibe.core.config import settings


def build_engine(database_url: str | None = None) -> Engine:
    url = database_url or settings.DATABASE_URL
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(url, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    """Create database tables in environments without migrations."""
    # Registers the documents table on SQLModel.metadata
    from fuegovibe.models import StoredDocument  # noqa: F401

    SQLModel.metadata.create_all(bind=engine)
