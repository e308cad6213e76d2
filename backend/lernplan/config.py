import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="LERNPLAN_DATABASE_URL")
    database_pool_size: int = Field(10, alias="LERNPLAN_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="LERNPLAN_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="LERNPLAN_DATABASE_ECHO")
    persistence_mode: Literal["database", "memory"] = Field("memory", alias="LERNPLAN_PERSISTENCE_MODE")
    draft_debounce_seconds: float = Field(0.5, alias="LERNPLAN_DRAFT_DEBOUNCE_SECONDS", ge=0.0)
    plan_api_url: str = Field("http://127.0.0.1:3010/api/wizard/complete", alias="LERNPLAN_PLAN_API_URL")
    plan_api_timeout_seconds: float = Field(15.0, alias="LERNPLAN_PLAN_API_TIMEOUT_SECONDS", gt=0.0)
    debug_assertions: bool = Field(False, alias="LERNPLAN_DEBUG_ASSERTIONS")

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
