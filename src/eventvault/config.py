"""
EventVault configuration — timings and bands for the sync engine.

Loaded from ``<home>/config.yaml``. A missing or unreadable file
falls back to defaults with a warning.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from . import EVENTVAULT_HOME

logger = logging.getLogger("eventvault.config")

CONFIG_FILENAME = "config.yaml"


class EventVaultConfig(BaseModel):
    """Tunables for uploads, sessions and the local store."""

    completion_display_seconds: float = Field(
        default=5.0, description="How long a complete upload stays visible"
    )
    stabilization_delay: float = Field(
        default=0.8, description="Hold before flipping an upload to complete"
    )
    session_timeout: float = Field(
        default=3.0, description="Identity bootstrap safety timeout"
    )
    upload_retry_attempts: int = Field(default=0, ge=0)
    upload_retry_backoff: float = Field(default=0.5, ge=0)
    upload_band_end: int = Field(default=85, ge=1, le=100)
    finalize_band_end: int = Field(default=98, ge=1, le=100)
    store_path: Optional[Path] = None


def resolve_home(home: Optional[Path] = None) -> Path:
    return Path(home or EVENTVAULT_HOME).expanduser()


def load_config(home: Optional[Path] = None) -> EventVaultConfig:
    """Load configuration from ``<home>/config.yaml``.

    Args:
        home: EventVault home directory. Defaults to EVENTVAULT_HOME.

    Returns:
        EventVaultConfig from disk, or defaults.
    """
    config_file = resolve_home(home) / CONFIG_FILENAME
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return EventVaultConfig(**data)
        except (yaml.YAMLError, ValueError) as exc:
            logger.warning("Failed to load config: %s, using defaults", exc)
    return EventVaultConfig()


def save_config(config: EventVaultConfig, home: Optional[Path] = None) -> Path:
    """Persist configuration as YAML and return the file path."""
    home_path = resolve_home(home)
    home_path.mkdir(parents=True, exist_ok=True)
    config_file = home_path / CONFIG_FILENAME
    data = config.model_dump(mode="json", exclude_none=True)
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file
