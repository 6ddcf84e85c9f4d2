import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    api_base_url: str = Field("http://127.0.0.1:8000", alias="QUIZSYNC_API_BASE_URL")
    http_timeout_seconds: float = Field(10.0, alias="QUIZSYNC_HTTP_TIMEOUT_SECONDS")
    cache_path: Optional[str] = Field(None, alias="QUIZSYNC_CACHE_PATH")
    refresh_min_interval_ms: int = Field(5000, alias="QUIZSYNC_REFRESH_MIN_INTERVAL_MS")
    result_ttl_days: int = Field(30, alias="QUIZSYNC_RESULT_TTL_DAYS")
    database_url: Optional[str] = Field(None, alias="QUIZSYNC_DATABASE_URL")
    database_pool_size: int = Field(10, alias="QUIZSYNC_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="QUIZSYNC_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="QUIZSYNC_DATABASE_ECHO")
    database_auto_create: bool = Field(False, alias="QUIZSYNC_DATABASE_AUTO_CREATE")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def result_ttl_ms(self) -> int:
        return self.result_ttl_days * 24 * 60 * 60 * 1000


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid quizsync configuration: {exc}") from exc
