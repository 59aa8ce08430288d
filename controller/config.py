"""Controller configuration settings."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings

from common.exceptions import ConfigurationError
from common.models.config import (
    CheckMode,
    RunConfig,
    RunMode,
    ScenarioProfile,
    default_profile,
    default_stages,
    default_thresholds,
)
from common.utils import deep_merge, load_yaml

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "reviewload"

    # Target
    base_url: str = Field(
        default="http://localhost:8080",
        validation_alias=AliasChoices("reviewload_base_url", "base_url"),
    )
    smoke: bool = Field(
        default=False,
        validation_alias=AliasChoices("reviewload_smoke", "smoke"),
    )
    profile: Optional[ScenarioProfile] = None
    check_mode: CheckMode = CheckMode.STRICT

    # Timing
    request_timeout: float = 30.0  # seconds
    control_interval: float = 0.5  # seconds
    report_interval: float = 10.0  # seconds
    step_delay: float = 0.5  # seconds
    iteration_delay: float = 2.0  # seconds

    # Control API, disabled unless a port is set
    control_host: str = "127.0.0.1"
    control_port: Optional[int] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_prefix = "REVIEWLOAD_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def mode(self) -> RunMode:
        return RunMode.SMOKE if self.smoke else RunMode.FULL


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def init_settings(**kwargs) -> Settings:
    """Initialize settings with custom values."""
    global _settings
    _settings = Settings(**kwargs)
    return _settings


def load_run_file(path: str | Path) -> dict:
    """Load a YAML run file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Run file not found: {path}")

    try:
        data = load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Run file {path} must contain a mapping")
    return data


def build_run_config(
    settings: Settings,
    config_file: Optional[str | Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> RunConfig:
    """Resolve the immutable run configuration.

    Precedence, lowest first: environment settings, the YAML run file, then
    explicit overrides (CLI flags). Stages, thresholds and profile default to
    those of the resolved mode.
    """
    file_data = load_run_file(config_file) if config_file else {}
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    try:
        mode = RunMode(overrides.get("mode") or file_data.get("mode") or settings.mode)
    except ValueError as e:
        raise ConfigurationError(f"Invalid mode: {e}") from e

    data: dict[str, Any] = {
        "base_url": settings.base_url,
        "mode": mode,
        "check_mode": settings.check_mode,
        "stages": default_stages(mode),
        "thresholds": default_thresholds(mode),
        "pacing": {
            "step_delay": settings.step_delay,
            "iteration_delay": settings.iteration_delay,
        },
        "control_interval": settings.control_interval,
        "report_interval": settings.report_interval,
        "request_timeout": settings.request_timeout,
    }
    if settings.profile is not None:
        data["profile"] = settings.profile

    data = deep_merge(data, file_data)
    data = deep_merge(data, overrides)
    # A threshold set replaces the mode defaults instead of merging into them.
    for source in (file_data, overrides):
        if "thresholds" in source:
            data["thresholds"] = source["thresholds"]
    data["mode"] = mode
    data.setdefault("profile", default_profile(mode))

    try:
        config = RunConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid run configuration: {e}") from e

    logger.debug(f"Resolved run configuration: {config.model_dump(mode='json')}")
    return config
