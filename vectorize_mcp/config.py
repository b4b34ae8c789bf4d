from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


def _s(v: Optional[str]) -> Optional[str]:
    """Strip whitespace from optional strings."""
    if v is None:
        return None
    vv = str(v).strip()
    return vv if vv else None


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    # -----------------
    # Vectorize credentials
    # -----------------
    org_id: Optional[str] = Field(default=None, alias="VECTORIZE_ORG_ID")
    token: Optional[str] = Field(default=None, alias="VECTORIZE_TOKEN", repr=False)

    # When set, `pipelineId` becomes optional on the retrieve and deep-research tools.
    default_pipeline_id: Optional[str] = Field(default=None, alias="VECTORIZE_PIPELINE_ID")

    api_base_url: str = Field(default="https://api.vectorize.io/v1", alias="VECTORIZE_API_BASE_URL")
    http_timeout_s: float = Field(default=60.0, gt=0, alias="VECTORIZE_HTTP_TIMEOUT_S")

    # -----------------
    # Job polling (extraction / deep research)
    # -----------------
    poll_interval_s: float = Field(default=1.0, gt=0, alias="VECTORIZE_POLL_INTERVAL_S")
    poll_max_attempts: int = Field(default=600, ge=1, alias="VECTORIZE_POLL_MAX_ATTEMPTS")
    # Optional absolute bound on a single poll loop, in addition to poll_max_attempts.
    poll_timeout_s: Optional[float] = Field(default=None, gt=0, alias="VECTORIZE_POLL_TIMEOUT_S")

    # -----------------
    # Extraction
    # -----------------
    extraction_chunk_size: int = Field(default=512, ge=1, alias="VECTORIZE_EXTRACTION_CHUNK_SIZE")
    upload_file_name: str = Field(default="My File", alias="VECTORIZE_UPLOAD_FILE_NAME")

    # -----------------
    # Server
    # -----------------
    host: str = Field(default="0.0.0.0", alias="MCP_SERVER_HOST")
    port: int = Field(default=8765, alias="MCP_SERVER_PORT")

    # Allowed: CRITICAL, ERROR, WARNING, INFO, DEBUG, NOTSET
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Uvicorn log level (optional). If unset/blank, defaults to LOG_LEVEL (lower-cased).
    uvicorn_log_level: Optional[str] = Field(default=None, alias="UVICORN_LOG_LEVEL")

    @field_validator("org_id", "token", "default_pipeline_id", "poll_timeout_s", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _s(v)
        return v

    @model_validator(mode="after")
    def _validate(self) -> "Settings":
        missing = []
        if not self.org_id:
            missing.append("VECTORIZE_ORG_ID")
        if not self.token:
            missing.append("VECTORIZE_TOKEN")
        if missing:
            raise ValueError(f"missing required environment variables: {', '.join(missing)}")

        self.api_base_url = (self.api_base_url or "").strip().rstrip("/")
        if not self.api_base_url:
            raise ValueError("VECTORIZE_API_BASE_URL must not be empty")

        lvl = (self.log_level or "INFO").strip().upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}
        if lvl not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(allowed)} (got {self.log_level!r})")
        self.log_level = lvl

        # uvicorn expects lower-case names.
        if self.uvicorn_log_level and str(self.uvicorn_log_level).strip():
            self.uvicorn_log_level = str(self.uvicorn_log_level).strip().lower()
        else:
            self.uvicorn_log_level = lvl.lower()
        return self


def load_settings(**overrides: Any) -> Settings:
    """Build Settings from the environment (plus explicit overrides).

    Raises ConfigurationError instead of pydantic's ValidationError so the entry point
    can fail fast with a readable message.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'settings'}: {err.get('msg')}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
