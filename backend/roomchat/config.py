"""roomchat application configuration.

Loads settings from ``roomchat.settings.yaml`` and then applies environment
variable overrides, so a container can be configured without a settings file:

  * ``ROOMCHAT_DB_PATH`` — DuckDB file path (or ``:memory:``)
  * ``PORT``             — listen port
  * ``CLIENT_ORIGINS``   — comma-separated allowed origins (``CLIENT_ORIGIN`` also accepted)
  * ``LOG_LEVEL``        — root log level
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomchat.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _split_origins(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(o).strip() for o in value if str(o).strip()]


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 4000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _parse_origins(cls, value: Any) -> List[str]:
        return _split_origins(value)

    def origin_allowed(self, origin: Optional[str]) -> bool:
        """Requests without an Origin header (non-browser clients) are allowed."""
        if not origin or "*" in self.allowed_origins:
            return True
        return origin in self.allowed_origins


class DatabaseSettings(BaseModel):
    path: str = "roomchat.duckdb"


class RealtimeSettings(BaseModel):
    # A bound connection may only act as the username it claimed at connect time.
    bind_sender_to_claim: bool = True


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    env = os.environ

    db_path = env.get("ROOMCHAT_DB_PATH")
    if db_path:
        data.setdefault("database", {})["path"] = db_path

    port = env.get("PORT")
    if port:
        data.setdefault("server", {})["port"] = port

    origins = env.get("CLIENT_ORIGINS") or env.get("CLIENT_ORIGIN")
    if origins:
        data.setdefault("server", {})["allowed_origins"] = origins

    level = env.get("LOG_LEVEL")
    if level:
        data.setdefault("logging", {})["level"] = level

    return data


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load settings from YAML and merge environment overrides."""
    data = _apply_env_overrides(_load_yaml(path or SETTINGS_FILE))
    settings = AppSettings(**data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, origins=%s)",
        settings.server.host,
        settings.server.port,
        settings.database.path,
        settings.server.allowed_origins,
    )
    return settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    global _config
    _config = None
