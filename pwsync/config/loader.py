"""
Config Loader — Build SyncSettings from a YAML file and env vars.

Sources, lowest priority first:
1. Built-in defaults (platform-detected passwd file, .local/.tmp suffixes)
2. YAML file: explicit path, else PWSYNC_CONFIG
3. Individual env vars

## Usage

    # pwsync.yaml
    passwd_path: /etc/shadow
    retry:
      max_attempts: 10
      delay_seconds: 1.0

    export PWSYNC_CONFIG=/etc/pwsync.yaml
    export PWSYNC_RETRY_ATTEMPTS=5

The file is optional; without it, defaults plus env vars apply.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from ..models.settings import SyncSettings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PWSYNC_CONFIG"

# env var -> (section, key); section None means top level
ENV_OVERRIDES = {
    "PWSYNC_PASSWD_FILE": (None, "passwd_path"),
    "PWSYNC_LOCAL_SUFFIX": (None, "local_suffix"),
    "PWSYNC_TMP_SUFFIX": (None, "tmp_suffix"),
    "PWSYNC_STAGING_MODE": (None, "staging_mode"),
    "PWSYNC_RETRY_ATTEMPTS": ("retry", "max_attempts"),
    "PWSYNC_RETRY_DELAY": ("retry", "delay_seconds"),
}


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping; an empty file is an empty mapping."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Can't read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def parse_mode(value: Any) -> int:
    """Accept 384, "0600" or "600" and return the permission bits."""
    if isinstance(value, int):
        return value
    try:
        return int(str(value), 8)
    except ValueError as e:
        raise ConfigurationError(f"staging_mode must be octal, got {value!r}") from e


def _apply_env(data: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay individual env vars onto the file data."""
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        target = data.setdefault(section, {}) if section else data
        if not isinstance(target, dict):
            raise ConfigurationError(f"'{section}' in config file must be a mapping")
        target[key] = value
        logger.debug(f"{env_var} overrides {key}")
    return data


def load_settings(config_file: Optional[Path] = None) -> SyncSettings:
    """
    Resolve the effective settings.

    Args:
        config_file: YAML file to read; falls back to $PWSYNC_CONFIG

    Returns:
        Validated SyncSettings

    Raises:
        ConfigurationError: Unreadable file, bad YAML or invalid values
    """
    data: Dict[str, Any] = {}

    if config_file is None and os.environ.get(CONFIG_ENV_VAR):
        config_file = Path(os.environ[CONFIG_ENV_VAR])
    if config_file is not None:
        data = load_yaml(Path(config_file))
        logger.debug(f"Loaded configuration from {config_file}")

    data = _apply_env(data)

    if data.get("staging_mode") is not None:
        data["staging_mode"] = parse_mode(data["staging_mode"])

    try:
        return SyncSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def settings_to_dict(settings: SyncSettings) -> Dict[str, Any]:
    """Plain-data view of the settings, including derived paths."""
    return {
        "passwd_path": str(settings.passwd_path),
        "mirror_path": str(settings.mirror_path),
        "staging_path": str(settings.staging_path),
        "local_suffix": settings.local_suffix,
        "tmp_suffix": settings.tmp_suffix,
        "staging_mode": f"{settings.effective_staging_mode:04o}",
        "retry": settings.retry.model_dump(),
    }
