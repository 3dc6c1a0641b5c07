"""Settings loading.

Sources, lowest priority first:
1. JSON settings file (``appsettings.json`` in the working directory by default)
2. ``.env`` file, loaded into the environment by python-dotenv
3. Environment variables (``GRAPH_*``)
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from graphfetch.clients.base import GRAPH_BASE_URL
from graphfetch.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "appsettings.json"

# settings-file key -> (environment variable, field name)
_SETTINGS_KEYS = {
    "applicationId": ("GRAPH_APPLICATION_ID", "application_id"),
    "tenantId": ("GRAPH_TENANT_ID", "tenant_id"),
    "baseUrl": ("GRAPH_BASE_URL", "base_url"),
    "pageSize": ("GRAPH_PAGE_SIZE", "page_size"),
    "maxWorkers": ("GRAPH_MAX_WORKERS", "max_workers"),
    "maxRetries": ("GRAPH_MAX_RETRIES", "max_retries"),
    "defaultRetryDelay": ("GRAPH_DEFAULT_RETRY_DELAY", "default_retry_delay"),
    "maxTotalDelay": ("GRAPH_MAX_TOTAL_DELAY", "max_total_delay"),
    "maxRetryDelay": ("GRAPH_MAX_RETRY_DELAY", "max_retry_delay"),
    "requestTimeout": ("GRAPH_REQUEST_TIMEOUT", "request_timeout"),
    "useDeviceFlow": ("GRAPH_USE_DEVICE_FLOW", "use_device_flow"),
}


@dataclass
class AppSettings:
    """Runtime settings for a fetch run."""

    application_id: str = ""
    tenant_id: str = ""
    base_url: str = GRAPH_BASE_URL
    page_size: int = 100
    max_workers: Optional[int] = None
    max_retries: int = 5
    default_retry_delay: float = 2
    max_total_delay: Optional[float] = None
    max_retry_delay: float = 300
    request_timeout: float = 30
    use_device_flow: bool = False

    def validate(self) -> "AppSettings":
        """Raise ConfigError if any setting is missing or out of range."""
        missing = [
            key for key, value in (
                ("applicationId", self.application_id),
                ("tenantId", self.tenant_id),
            )
            if not value or not str(value).strip()
        ]
        if missing:
            raise ConfigError(f"Missing required setting(s): {', '.join(missing)}")

        if not 1 <= self.page_size <= 1000:
            raise ConfigError("pageSize must be between 1 and 1000")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError("maxWorkers must be at least 1")
        if self.max_retries < 0:
            raise ConfigError("maxRetries must not be negative")
        if self.default_retry_delay <= 0:
            raise ConfigError("defaultRetryDelay must be positive")
        if self.max_total_delay is not None and self.max_total_delay <= 0:
            raise ConfigError("maxTotalDelay must be positive")
        if self.max_retry_delay <= 0:
            raise ConfigError("maxRetryDelay must be positive")
        if self.request_timeout <= 0:
            raise ConfigError("requestTimeout must be positive")
        return self


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
) -> AppSettings:
    """Load and validate settings.

    Args:
        path: Settings file; a missing default file is allowed, a missing
            explicit one is not
        env_file: Optional .env path (python-dotenv searches upwards if None)

    Raises:
        ConfigError: Unreadable file, bad values, or missing ids
    """
    load_dotenv(dotenv_path=env_file)

    raw: dict = {}
    settings_path = Path(path) if path is not None else Path(DEFAULT_SETTINGS_FILE)
    if settings_path.exists():
        raw.update(_read_settings_file(settings_path))
    elif path is not None:
        raise ConfigError(f"Settings file not found: {settings_path}")
    else:
        logger.debug(f"No settings file at {settings_path}, using environment only")

    for key, (env_var, _) in _SETTINGS_KEYS.items():
        value = os.getenv(env_var)
        if value is not None and value != "":
            raw[key] = value

    settings = AppSettings(**{
        field_name: _coerce(key, raw[key])
        for key, (_, field_name) in _SETTINGS_KEYS.items()
        if key in raw and raw[key] is not None
    })
    return settings.validate()


def _read_settings_file(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Invalid settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")

    logger.info(f"Loaded settings from {path}")
    return data


def _coerce(key: str, value):
    """Convert raw file/env values to the field's type."""
    try:
        if key in ("pageSize", "maxWorkers", "maxRetries"):
            return int(value)
        if key in ("defaultRetryDelay", "maxTotalDelay", "maxRetryDelay", "requestTimeout"):
            return float(value)
        if key == "useDeviceFlow":
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in ("1", "true", "yes", "on")
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e
    return str(value)
