"""
Till Platform Configuration
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from .utils.logging_config import get_logger

logger = get_logger('config')

# Local paths (relative to the user's home)
TILL_HOME = ".till"
TILL_CONFIG_DIR = f"{TILL_HOME}/config"
SETTINGS_FILE_NAME = "platform.yaml"
SETTINGS_ENV_VAR = "TILL_PLATFORM_CONFIG"

# Port allocation
DEFAULT_PORT_BASE = 8000
DEFAULT_AI_PORT_BASE = 45000
PORT_RANGE_SIZE = 100
MAX_RANGE_ATTEMPTS = 100
MIN_PORT = 1
MAX_PORT = 65535

# Manually entered base ports must leave room for a full range
MANUAL_PORT_MIN = 1024
MANUAL_PORT_MAX = 65435

# Conflicts shown before eliding the rest
CONFLICT_DISPLAY_LIMIT = 10

# Process termination
POLL_INTERVAL_MS = 100
DEFAULT_KILL_TIMEOUT_MS = 3000

# External commands
COMMAND_TIMEOUT_SECONDS = 30

# Scheduling
DEFAULT_SCHEDULE_HOUR = 3
DEFAULT_SCHEDULE_MINUTE = 0
DEFAULT_WATCH_HOURS = 24
LAUNCHD_LABEL_PREFIX = "com.till"
JOB_PREFIX = "till"
LAUNCHD_USER_DIR = "Library/LaunchAgents"
LAUNCHD_SYSTEM_DIR = "/Library/LaunchDaemons"
SYSTEMD_USER_DIR = ".config/systemd/user"
SYSTEMD_SYSTEM_DIR = "/etc/systemd/system"
DIR_MODE = 0o755


@dataclass
class Settings:
    """Tunable values, overridable from the settings YAML file."""
    port_base: int = DEFAULT_PORT_BASE
    ai_port_base: int = DEFAULT_AI_PORT_BASE
    range_size: int = PORT_RANGE_SIZE
    max_range_attempts: int = MAX_RANGE_ATTEMPTS
    kill_timeout_ms: int = DEFAULT_KILL_TIMEOUT_MS
    poll_interval_ms: int = POLL_INTERVAL_MS
    command_timeout_seconds: float = COMMAND_TIMEOUT_SECONDS
    conflict_display_limit: int = CONFLICT_DISPLAY_LIMIT


_settings: Optional[Settings] = None


def default_settings_path() -> Path:
    """Settings file location, honoring the environment override."""
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / TILL_CONFIG_DIR / SETTINGS_FILE_NAME


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load settings, applying overrides from a YAML file when present.

    Args:
        path: Settings file. Defaults to default_settings_path().

    Returns:
        Settings with any valid overrides applied.
    """
    settings = Settings()
    path = Path(path) if path is not None else default_settings_path()

    if not path.is_file():
        logger.debug(f"No settings file at {path}, using defaults")
        return settings

    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read settings from {path}: {e}")
        return settings

    if data is None:
        return settings
    if not isinstance(data, dict):
        logger.warning(f"Settings file {path} is not a mapping, ignoring it")
        return settings

    known = {f.name for f in fields(Settings)}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Unknown setting '{key}' in {path}")
            continue
        caster = float if key == 'command_timeout_seconds' else int
        try:
            setattr(settings, key, caster(value))
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for '{key}' in {path}: {value!r}")

    logger.info(f"Loaded settings from {path}")
    return settings


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings():
    """Forget cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
