"""Process settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "SITECOMPARE_"}

    log_level: str = "INFO"
    log_json: bool = False
    output_dir: str = "~/.sitecompare/runs"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
