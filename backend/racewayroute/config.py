"""Application configuration and settings management."""

import json
from typing import Any, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Routing defaults shared by Settings and RoutingOptions
DEFAULT_FILL_LIMIT = 0.4
DEFAULT_PROXIMITY_THRESHOLD = 72.0
DEFAULT_FIELD_PENALTY = 3.0
DEFAULT_SHARED_PENALTY = 0.5


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="RACEWAY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Raceway Route API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Level of the racewayroute package logger.")
    frontend_allowed_origins: Tuple[str, ...] = Field(
        default=("*",),
        description="Permitted web origins for browser clients (CORS).",
    )

    fill_limit: float = Field(default=DEFAULT_FILL_LIMIT, ge=0.0, le=1.0, description="Fraction of raceway cross-section usable by cables.")
    proximity_threshold: float = Field(
        default=DEFAULT_PROXIMITY_THRESHOLD,
        ge=0.0,
        description="Max Manhattan offset for snapping a cable endpoint onto a raceway.",
    )
    field_penalty: float = Field(default=DEFAULT_FIELD_PENALTY, ge=0.0, description="Cost multiplier for free-air routing.")
    shared_penalty: float = Field(
        default=DEFAULT_SHARED_PENALTY,
        ge=0.0,
        description="Extra multiplier on the field penalty for field moves already used by earlier cables.",
    )
    max_field_edge: Optional[float] = Field(default=None, ge=0.0)
    max_field_neighbors: Optional[int] = Field(default=None, ge=1)
    include_ductbank_outlines: bool = False
    max_finished_jobs: int = Field(default=32, ge=0, description="Finished batch jobs kept for polling before the oldest are dropped.")

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> Tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
