"""
Matcher settings (Pydantic v2).

Settings come from matcher_config.yml (or the file named by MATCHER_CONFIG). When the default
file is used, a few environment variables override it so that secrets and the database URL
never need to live in the YAML. An explicit config path is taken as-is.
"""

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, field_validator

DEFAULT_DATABASE_URL = "postgresql+psycopg2://localhost/product_match"
DEFAULT_CONFIG_ENV_VAR = "MATCHER_CONFIG"
DEFAULT_CONFIG_FILENAME = "matcher_config.yml"
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024

# environment variable -> Settings field, applied only to the default config
ENV_OVERRIDES: dict[str, str] = {
    "DATABASE_URL": "database_url",
    "VISION_API_KEY": "vision_api_key",
    "VISION_API_BASE": "vision_api_base",
    "MATCHER_LOG_LEVEL": "log_level",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """Database, AI backend and identification limits for the matcher."""

    model_config = {"extra": "ignore"}

    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "WARNING"
    forensics_dir: str = "logs/forensics"

    # "mock" or "http" (any OpenAI-compatible endpoint)
    vision_analyzer: str = "mock"
    embedding_generator: str = "mock"
    vision_api_base: str = "https://api.openai.com/v1"
    vision_api_key: str | None = None
    vision_model: str = "gpt-4o"
    embedding_model: str = "text-embedding-3-small"
    request_timeout_seconds: float = 120.0

    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    detection_concurrency: int = 4

    @field_validator("vision_api_key", mode="before")
    @classmethod
    def blank_api_key_is_none(cls, v: Any) -> str | None:
        if v is None or str(v).strip() == "":
            return None
        return str(v).strip()

    @field_validator("log_level", mode="before")
    @classmethod
    def known_log_level(cls, v: Any) -> str:
        level = str(v).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("detection_concurrency", mode="after")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        return max(1, v)


_config: Settings | None = None


class ConfigLoader:
    """Reads Settings from YAML; `env` defaults to os.environ."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _overrides(self) -> dict[str, str]:
        return {field: self._env[var] for var, field in ENV_OVERRIDES.items() if self._env.get(var)}

    def _read_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
        return data

    def load_from_yaml(self, path: Path, apply_env_override: bool) -> Settings:
        data = self._read_yaml(Path(path))
        if apply_env_override:
            data.update(self._overrides())
        return Settings.model_validate(data)

    def load_default(self) -> Settings:
        """MATCHER_CONFIG or ./matcher_config.yml when present, else built-in defaults; env overrides win."""
        path = Path(self._env.get(DEFAULT_CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILENAME)
        if path.exists():
            return self.load_from_yaml(path, apply_env_override=True)
        return Settings.model_validate(self._overrides())


def get_config(config_path: str | Path | None = None) -> Settings:
    """
    Cached Settings.

    An explicit config_path is loaded without env overrides and replaces the cache.
    """
    global _config
    if config_path is not None:
        _config = ConfigLoader().load_from_yaml(Path(config_path), apply_env_override=False)
    elif _config is None:
        _config = ConfigLoader().load_default()
    return _config


def reset_config() -> None:
    global _config
    _config = None
