"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Backend gateway (hosted auth, tables, storage, realtime)
    gateway_url: str = Field(validation_alias="SUPABASE_URL")
    gateway_anon_key: str = Field(validation_alias="SUPABASE_ANON_KEY")
    # Empty secret means tokens are verified by asking the gateway
    gateway_jwt_secret: str = Field(default="", validation_alias="SUPABASE_JWT_SECRET")
    storage_bucket: str = Field(default="summaries", validation_alias="STORAGE_BUCKET")

    # URL of this application's own route layer, used by the client core
    api_url: str = Field(default="http://localhost:8000", validation_alias="API_URL")
    request_timeout: float = Field(default=30.0, validation_alias="REQUEST_TIMEOUT")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    # Redis - for caching token lookups
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    # Client query cache
    list_stale_seconds: float = Field(default=120, validation_alias="LIST_STALE_SECONDS")
    list_gc_seconds: float = Field(default=300, validation_alias="LIST_GC_SECONDS")
    detail_stale_seconds: float = Field(default=300, validation_alias="DETAIL_STALE_SECONDS")
    detail_gc_seconds: float = Field(default=600, validation_alias="DETAIL_GC_SECONDS")
    query_retries: int = Field(default=2, ge=0, validation_alias="QUERY_RETRIES")

    # Uploads and pagination
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES",
    )
    default_page_size: int = Field(default=10, validation_alias="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(default=100, validation_alias="MAX_PAGE_SIZE")

    @model_validator(mode="after")
    def validate_gateway_url(self) -> "Settings":
        """Reject gateway URLs that are not plain http(s) endpoints."""
        parsed = urlparse(self.gateway_url)
        if parsed.scheme not in {"http", "https"} or not parsed.hostname:
            raise ValueError(
                f"SUPABASE_URL must be an http(s) URL, got '{self.gateway_url}'.",
            )
        self.gateway_url = self.gateway_url.rstrip("/")
        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def realtime_url(self) -> str:
        """Base URL of the gateway's realtime service; the client derives the websocket address."""
        return f"{self.gateway_url}/realtime/v1"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
