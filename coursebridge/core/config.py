"""coursebridge configuration loader.

Loads the YAML configuration file, overlays the process environment
(optionally seeded from a `.env` file) and produces an immutable
BridgeSettings value for the signing and transport layers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

logger = logging.getLogger("coursebridge.config")

DEFAULT_SERVICE_NAME = "course-builder-service"
DEFAULT_HUB_IDENTITY = "coordinator"
DEFAULT_ROUTE = "/api/fill-content-metrics/"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_PRIVATE_KEY_PATH = "course-builder-private-key.pem"
DEFAULT_HUB_PUBLIC_KEY_PATH = "keys/coordinator-public-key.pem"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# env var -> dotted YAML key
_ENV_OVERRIDES: dict[str, str] = {
    "COORDINATOR_URL": "coordinator.url",
    "COORDINATOR_ROUTE": "coordinator.route",
    "COORDINATOR_IDENTITY": "coordinator.identity",
    "COORDINATOR_TIMEOUT_SECONDS": "coordinator.timeout_seconds",
    "COORDINATOR_PUBLIC_KEY": "coordinator.public_key",
    "COORDINATOR_PUBLIC_KEY_PATH": "coordinator.public_key_path",
    "SERVICE_NAME": "service.name",
    "PRIVATE_KEY": "service.private_key",
    "PRIVATE_KEY_PATH": "service.private_key_path",
    "COURSEBRIDGE_LOG_LEVEL": "service.log_level",
    "COURSEBRIDGE_SORT_KEYS": "service.canonical_sort_keys",
    "COURSEBRIDGE_LOG_DIR": "service.log_dir",
    "SERVICE_ENDPOINT": "registration.endpoint",
    "SERVICE_VERSION": "registration.version",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BridgeSettings:
    """Resolved, read-only settings for one process."""

    service_name: str = DEFAULT_SERVICE_NAME
    hub_url: str = ""
    hub_route: str = DEFAULT_ROUTE
    hub_identity: str = DEFAULT_HUB_IDENTITY
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    private_key: Optional[str] = None
    private_key_path: Optional[Path] = None
    hub_public_key: Optional[str] = None
    hub_public_key_path: Optional[Path] = None
    log_level: str = "INFO"
    canonical_sort_keys: bool = False
    log_dir: Optional[Path] = None

    @property
    def endpoint(self) -> str:
        """Full routing URL, or an empty string when no hub URL is set."""
        if not self.hub_url:
            return ""
        return self.hub_url.rstrip("/") + "/" + self.hub_route.lstrip("/")


class BridgeConfig:
    """Configuration manager.

    Values are looked up by dotted key ('coordinator.url'). Environment
    variables listed in _ENV_OVERRIDES win over the YAML file.
    """

    def __init__(
        self,
        config_path: str | Path = "config/default.yaml",
        env: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[str | Path] = None,
    ) -> None:
        """Load configuration.

        Args:
            config_path: Path to the YAML configuration file.
            env: Environment mapping. Defaults to os.environ.
            dotenv_path: Optional .env file loaded into os.environ first
                (existing variables are not overridden).
        """
        self._config_path = Path(config_path)
        if dotenv_path is not None:
            load_dotenv(dotenv_path, override=False)
        self._env = env if env is not None else os.environ
        self._data: dict[str, Any] = {}
        self._load()

    @property
    def base_dir(self) -> Path:
        """Project root that relative key paths resolve against."""
        parent = self._config_path.resolve().parent
        return parent.parent if parent.name == "config" else parent

    def _load(self) -> None:
        """Load the YAML config file into _data."""
        if not self._config_path.exists():
            logger.warning("Config file not found: %s", self._config_path)
            self._data = {}
            return
        raw = self._config_path.read_text(encoding="utf-8")
        self._data = yaml.safe_load(raw) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a value by dotted key, environment first.

        Args:
            key: Dotted key path (e.g. 'coordinator.timeout_seconds').
            default: Fallback value if the key is not set anywhere.
        """
        for env_name, dotted in _ENV_OVERRIDES.items():
            if dotted == key:
                value = self._env.get(env_name)
                if value not in (None, ""):
                    return value
        current: Any = self._data
        for part in key.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return default if current is None else current

    def _path(self, key: str, default: str) -> Path:
        path = Path(str(self.get(key, default)))
        return path if path.is_absolute() else self.base_dir / path

    def settings(self) -> BridgeSettings:
        """Build the immutable settings snapshot.

        Raises:
            ValueError: If the configuration does not validate.
        """
        self.validate()
        return BridgeSettings(
            service_name=str(self.get("service.name", DEFAULT_SERVICE_NAME)),
            hub_url=str(self.get("coordinator.url", "") or ""),
            hub_route=str(self.get("coordinator.route", DEFAULT_ROUTE)),
            hub_identity=str(self.get("coordinator.identity", DEFAULT_HUB_IDENTITY)),
            timeout_seconds=float(self.get("coordinator.timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            private_key=self.get("service.private_key") or None,
            private_key_path=self._path("service.private_key_path", DEFAULT_PRIVATE_KEY_PATH),
            hub_public_key=self.get("coordinator.public_key") or None,
            hub_public_key_path=self._path(
                "coordinator.public_key_path", DEFAULT_HUB_PUBLIC_KEY_PATH
            ),
            log_level=str(self.get("service.log_level", "INFO")).upper(),
            canonical_sort_keys=_as_bool(self.get("service.canonical_sort_keys", False)),
            log_dir=self._path("service.log_dir", "") if self.get("service.log_dir") else None,
        )

    def validate(self) -> bool:
        """Validate the current configuration.

        A missing hub URL is not an error here: it only fails the send
        (ConfigurationError), so key tooling still works without it.

        Raises:
            ValueError: If a value is present but invalid.
        """
        name = self.get("service.name", DEFAULT_SERVICE_NAME)
        if not str(name).strip():
            raise ValueError("service.name must not be empty")

        log_level = str(self.get("service.log_level", "INFO")).upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {log_level!r}")

        raw_timeout = self.get("coordinator.timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        try:
            timeout = float(raw_timeout)
        except (TypeError, ValueError):
            raise ValueError(f"coordinator.timeout_seconds must be a number, got {raw_timeout!r}")
        if timeout <= 0:
            raise ValueError("coordinator.timeout_seconds must be positive")

        url = self.get("coordinator.url", "")
        if url:
            parsed = urlparse(str(url))
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"Invalid coordinator.url: {url!r}")

        return True


def load_settings(
    config_path: str | Path = "config/default.yaml",
    dotenv_path: Optional[str | Path] = ".env",
) -> BridgeSettings:
    """Convenience wrapper: .env + YAML + environment -> BridgeSettings."""
    return BridgeConfig(config_path=config_path, dotenv_path=dotenv_path).settings()
