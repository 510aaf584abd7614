"""
HEARTH Configuration

Settings come from the environment, optionally seeded from a .env file.

    HEARTH_DATA_DIR               local cache directory (default ~/.hearth)
    HEARTH_REMOTE_URL             REST document service; empty = embedded store
    HEARTH_REMOTE_TOKEN           bearer token for the service
    HEARTH_REMOTE_TIMEOUT         per-request timeout, seconds (default 10)
    HEARTH_POLL_INTERVAL          subscription poll interval, seconds (default 5)
    HEARTH_REMINDER_LEAD_MINUTES  minutes before an event to remind (default 15)
    HEARTH_SPEAK_REMINDERS        speak fired reminders aloud (default false)
    HEARTH_LOG_LEVEL              logging level name (default INFO)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".hearth"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigError(ValueError):
    """Raised when a configuration value cannot be parsed"""
    pass


@dataclass
class HearthConfig:
    """Resolved engine settings"""
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)
    remote_url: str = ""
    remote_token: str = ""
    remote_timeout: float = 10.0
    poll_interval: float = 5.0
    reminder_lead_minutes: int = 15
    speak_reminders: bool = False
    log_level: str = "INFO"

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "cache"

    @property
    def uses_http_remote(self) -> bool:
        return bool(self.remote_url)


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{name} cannot be negative, got {raw!r}")
    return value


def config_from_env(env: Mapping[str, str]) -> HearthConfig:
    """
    Build a config from an environment mapping.

    Raises:
        ConfigError: If a value is invalid
    """
    log_level = env.get("HEARTH_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    if log_level not in _LOG_LEVELS:
        raise ConfigError(f"HEARTH_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}")

    data_dir = env.get("HEARTH_DATA_DIR", "").strip()

    return HearthConfig(
        data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
        remote_url=env.get("HEARTH_REMOTE_URL", "").strip(),
        remote_token=env.get("HEARTH_REMOTE_TOKEN", "").strip(),
        remote_timeout=_number(env, "HEARTH_REMOTE_TIMEOUT", 10.0, float),
        poll_interval=_number(env, "HEARTH_POLL_INTERVAL", 5.0, float),
        reminder_lead_minutes=_number(env, "HEARTH_REMINDER_LEAD_MINUTES", 15, int),
        speak_reminders=env.get("HEARTH_SPEAK_REMINDERS", "").strip().lower() in _TRUE_VALUES,
        log_level=log_level,
    )


def load_config(env_file: Optional[Path] = None) -> HearthConfig:
    """
    Load .env (if present) into the environment, then read settings.

    Args:
        env_file: Explicit .env path (default: search from the working directory)

    Raises:
        ConfigError: If a value is invalid
    """
    if env_file is not None:
        loaded = load_dotenv(env_file)
    else:
        loaded = load_dotenv()
    if loaded:
        logger.debug(f"Loaded environment from {env_file or '.env'}")

    config = config_from_env(os.environ)
    logger.info(
        f"Config: data_dir={config.data_dir}, "
        f"remote={'http' if config.uses_http_remote else 'embedded'}"
    )
    return config
