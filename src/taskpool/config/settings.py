"""
config/settings.py — taskpool Runtime Settings

Settings come from config.yaml, then .env, then TASKPOOL_* environment
variables, each layer overriding the one before. Values are checked by
pydantic at load time.

  - PoolConfig accepts any integer concurrency; non-positive values stall
    dispatch instead of failing validation
  - LoggingConfig validates the level name
  - validate_all() performs cross-field startup validation and raises
    ConfigError with a numbered list of every problem found
  - load_settings() reads the file named by --config, else $TASKPOOL_CONFIG,
    else config/config.yaml
"""

from __future__ import annotations

import os
import threading as _threading
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class SubmitFailurePolicy(str, Enum):
    """What happens to a chunk whose hand-off failed."""
    DISCARD = "discard"
    RETAIN = "retain"
    RETRY = "retry"


class PoolConfig(BaseModel):
    concurrency: int = 3
    maintain_order: bool = False
    immediately: bool = False
    auto_submit: bool = False
    auto_schedule: bool = True
    submit_failure_policy: SubmitFailurePolicy = SubmitFailurePolicy.DISCARD
    submit_max_attempts: int = 3

    @field_validator("submit_failure_policy", mode="before")
    @classmethod
    def _lower_policy(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @field_validator("submit_max_attempts")
    @classmethod
    def _positive_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("pool.submit_max_attempts must be >= 1")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = True
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    taskpool runtime settings.

    Priority (highest to lowest):
      1. Environment variables (TASKPOOL_POOL__CONCURRENCY=8)
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    pool: PoolConfig = Field(default_factory=PoolConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML values arrive as init kwargs; keep them below the environment.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("pool", mode="before")
    @classmethod
    def _coerce_pool(cls, v: Any) -> Any:
        return PoolConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches combinations that are individually valid but almost
        certainly a mistake.
        """
        errors: list[str] = []

        # ── Dispatch that can never start ────────────────────────────────────
        if self.pool.concurrency < 1:
            errors.append(
                f"pool.concurrency is {self.pool.concurrency}; no task will ever "
                f"start. Use a value >= 1."
            )

        # ── Log directory is usable ──────────────────────────────────────────
        if not self.logging.log_dir.strip():
            errors.append("logging.log_dir must not be empty.")

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\ntaskpool startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your environment "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()

_KNOWN_SECTIONS = {"pool", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. TASKPOOL_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("TASKPOOL_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    instance = Settings(**init_kwargs)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading it from the default config
    path on first use.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            yaml_data = _load_yaml(_resolve_config_path(None))
            _singleton = Settings(**{k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS})
    return _singleton
