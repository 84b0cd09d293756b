from functools import lru_cache
from typing import Annotated, List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    PROJECT_NAME: str = "FuegoVibe API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./fuegovibe.db"
    # "sql" keeps documents in DATABASE_URL, "memory" keeps them in-process
    STORE_BACKEND: Literal["sql", "memory"] = "sql"
    EVENTS_COLLECTION: str = "events"
    USERS_COLLECTION: str = "users"

    # Tokens are issued by the identity provider and signed with this key
    SECRET_KEY: str = "changeme"
    JWT_ALGORITHM: str = "HS256"
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Redis configuration
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CACHE_URL: str = "redis://localhost:6379/1"  # Separate DB for cache
    CHANGE_FEED_CHANNEL: str = "document-changes"
    CHANGE_FEED_ENABLED: bool = True

    # Emails provisioned with the admin role on first sign-in
    ADMIN_EMAILS: Annotated[List[str], NoDecode] = []

    QUOTE_API_URL: str = "https://zenquotes.io/api/today"
    QUOTE_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    QUOTE_FETCH_TIMEOUT: float = 5.0

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: List[str] | str) -> List[str]:
        """Allow both comma-separated strings and list inputs."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("ADMIN_EMAILS", mode="before")
    @classmethod
    def assemble_admin_emails(cls, value: List[str] | str) -> List[str]:
        if isinstance(value, str):
            value = value.split(",")
        return [email.strip().lower() for email in value if email.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
