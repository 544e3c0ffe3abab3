"""
TaskPilot Configuration.

Settings are resolved in three layers:
1. Code defaults (always present)
2. YAML file (config/taskpilot.yaml, optional)
3. Environment variables (TASKPILOT_*, .env is loaded first)
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/taskpilot.yaml"
ENV_PREFIX = "TASKPILOT_"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the orchestrator, server and mock capabilities."""

    # Persistence
    database_url: str = "sqlite:///.data/taskpilot.db"

    # LLM
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o"
    llm_temperature: float = 0.2
    llm_summaries: bool = False

    # Execution (seconds)
    execution_start_delay_seconds: float = 1.0
    service_delay_min_seconds: float = 2.0
    service_delay_max_seconds: float = 5.0
    service_success_rate: float = 0.9

    # WebSocket housekeeping (seconds)
    ws_cleanup_interval_seconds: float = 30.0
    ws_inactive_timeout_seconds: float = 300.0

    # Server
    default_user_id: str = "local-user"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Build settings from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def with_env(self, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Return a copy with TASKPILOT_* environment overrides applied."""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}

        for f in fields(self):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            overrides[f.name] = _coerce(raw, type(getattr(self, f.name)))

        return replace(self, **overrides) if overrides else self


def _coerce(raw: str, target: type) -> Any:
    """Convert an environment string to the type of the default value."""
    if target is bool:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if target is int:
        return int(raw)
    if target is float:
        return float(raw)
    return raw


def _load_yaml(config_path: str) -> Dict[str, Any]:
    """Load the YAML config file, returning {} when absent or unreadable."""
    if not Path(config_path).exists():
        return {}

    try:
        with open(config_path) as f:
            file_config = yaml.safe_load(f) or {}
    except Exception as e:
        logger.warning(f"Failed to load config: {e}, using defaults")
        return {}

    if not isinstance(file_config, dict):
        logger.warning(f"Ignoring config {config_path}: expected a mapping")
        return {}

    # Handle nested config (taskpilot: {...})
    if "taskpilot" in file_config and isinstance(file_config["taskpilot"], dict):
        file_config = file_config["taskpilot"]

    return file_config


def load_settings(config_path: str = DEFAULT_CONFIG_PATH) -> Settings:
    """Load settings from defaults, YAML file and environment."""
    load_dotenv()

    settings = Settings.from_dict(_load_yaml(config_path)).with_env()
    logger.debug(f"Settings loaded: {settings}")
    return settings
