# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.settings",
#   "purpose": "Typed configuration for HTTP, watch policy, logging, and service credentials",
#   "sections": [
#     {"id": "httpsettings", "name": "HttpSettings", "anchor": "class-httpsettings", "kind": "class"},
#     {"id": "watchsettings", "name": "WatchSettings", "anchor": "class-watchsettings", "kind": "class"},
#     {"id": "loggingsettings", "name": "LoggingSettings", "anchor": "class-loggingsettings", "kind": "class"},
#     {"id": "codemagicsettings", "name": "CodemagicSettings", "anchor": "class-codemagicsettings", "kind": "class"},
#     {"id": "githubsettings", "name": "GitHubSettings", "anchor": "class-githubsettings", "kind": "class"},
#     {"id": "jobwatchsettings", "name": "JobWatchSettings", "anchor": "class-jobwatchsettings", "kind": "class"},
#     {"id": "load-raw-yaml", "name": "load_raw_yaml", "anchor": "function-load-raw-yaml", "kind": "function"},
#     {"id": "get-settings", "name": "get_settings", "anchor": "function-get-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the job watcher.

Settings are assembled from three layers, lowest precedence first: field
defaults, an optional YAML file, and ``JOBWATCH_*`` environment variables.
Nested sections use ``__`` as the delimiter, so ``JOBWATCH_WATCH__INTERVAL=30``
overrides ``watch.interval``. Credentials are held as :class:`SecretStr` and
never rendered by :meth:`JobWatchSettings.redacted`.

Example:
    >>> settings = load_settings()
    >>> settings.watch.interval
    60.0
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .errors import ConfigurationError

CONFIG_ENV_VAR = "JOBWATCH_CONFIG"

logger = logging.getLogger(__name__)


class HttpSettings(BaseModel):
    """HTTPX client settings: timeouts, pooling, and user agent."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    timeout_connect: float = Field(default=5.0, gt=0.0, le=60.0, description="Connect timeout in seconds")
    timeout_read: float = Field(default=30.0, gt=0.0, le=300.0, description="Read timeout in seconds")
    timeout_write: float = Field(default=15.0, gt=0.0, le=300.0, description="Write timeout in seconds")
    timeout_pool: float = Field(default=5.0, gt=0.0, le=60.0, description="Acquire-from-pool timeout")
    connect_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Transport-level retries for failed TCP connects",
    )
    max_connections: int = Field(default=10, ge=1, le=256)
    trust_env: bool = Field(default=True, description="Honor HTTP(S)_PROXY and NO_PROXY")
    user_agent: str = Field(
        default="BuildRelay-JobWatch (+https://github.com/AppFlowy-IO/AppFlowy)",
        description="User-Agent header value",
    )


class WatchSettings(BaseModel):
    """Polling policy applied by :meth:`RemoteJobWatcher.watch`."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    interval: float = Field(default=60.0, gt=0.0, description="Seconds between status queries")
    timeout: float = Field(
        default=3 * 3600.0,
        gt=0.0,
        description="Seconds before a watch gives up and leaves the job unresolved",
    )
    retry_budget: int = Field(
        default=5,
        ge=0,
        le=1000,
        description="Consecutive transient poll failures tolerated before the watch fails",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    emit_json_logs: bool = Field(default=False, description="Emit JSON lines instead of plain text")
    file: Optional[Path] = Field(default=None, description="Optional rotating log file")
    max_log_size_mb: float = Field(default=5.0, gt=0.0)
    backup_count: int = Field(default=3, ge=0)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        upper = str(v).upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}, got '{v}'")
        return upper

    def level_int(self) -> int:
        return getattr(logging, self.level)


class CodemagicSettings(BaseModel):
    """Codemagic REST API access."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    base_url: str = Field(default="https://api.codemagic.io")
    web_url: str = Field(default="https://codemagic.io", description="Used to build result URLs")
    api_token: Optional[SecretStr] = Field(default=None, description="x-auth-token value")
    app_id: Optional[str] = Field(default=None, description="Codemagic application id")
    workflows: Tuple[str, ...] = Field(default=("ios-workflow", "android-workflow"))


class GitHubSettings(BaseModel):
    """GitHub Actions workflow-dispatch access."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    api_url: str = Field(default="https://api.github.com")
    token: Optional[SecretStr] = Field(default=None, description="Bearer token with actions:write")
    owner: Optional[str] = Field(default=None)
    repo: Optional[str] = Field(default=None)
    workflow_ref: str = Field(default="main", description="Ref holding the dispatched workflow file")
    source_repo: Optional[str] = Field(
        default=None,
        description="Repository the dispatched build checks out (forwarded as the 'repo' input)",
    )
    api_version: str = Field(default="2022-11-28")
    run_lookup_attempts: int = Field(default=10, ge=1, le=100)
    run_lookup_delay: float = Field(default=3.0, ge=0.0, le=60.0)


class JobWatchSettings(BaseSettings):
    """Root settings object for the job watcher."""

    model_config = SettingsConfigDict(
        env_prefix="JOBWATCH_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    http: HttpSettings = Field(default_factory=HttpSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    codemagic: CodemagicSettings = Field(default_factory=CodemagicSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values loaded from the YAML file.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)

    def config_hash(self) -> str:
        """Compute a deterministic hash of non-secret configuration for log provenance."""

        config_str = json.dumps(self.redacted(), sort_keys=True, default=str)
        return hashlib.sha256(config_str.encode("utf-8")).hexdigest()[:16]

    def redacted(self) -> Dict[str, Any]:
        """Return a JSON-friendly dump with secrets masked."""

        data = self.model_dump(mode="json")
        for section, key in (("codemagic", "api_token"), ("github", "token")):
            if data[section].get(key):
                data[section][key] = "***masked***"
        return data


def normalize_config_path(config_path: Path) -> Path:
    """Return a user-supplied configuration path with ``~`` and symlinks resolved."""

    expanded = Path(config_path).expanduser()
    try:
        return expanded.resolve(strict=False)
    except (OSError, RuntimeError):  # pragma: no cover - only triggered on rare filesystems
        return expanded


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    normalized_path = normalize_config_path(config_path)

    if not normalized_path.exists():
        raise ConfigurationError(f"Configuration file not found: {normalized_path}")

    try:
        with normalized_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Configuration file '{normalized_path}' contains invalid YAML"
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration file must contain a mapping at the root")
    return data


def load_settings(config_path: Optional[Path] = None) -> JobWatchSettings:
    """Build settings from defaults, an optional YAML file, and the environment."""

    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(env_path) if env_path else None

    raw: Mapping[str, object] = load_raw_yaml(config_path) if config_path else {}
    try:
        settings = JobWatchSettings(**dict(raw))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    logger.debug(
        "Settings loaded",
        extra={"stage": "config", "extra_fields": {"config_hash": settings.config_hash()}},
    )
    return settings


_SETTINGS_LOCK = threading.RLock()
_SETTINGS: Optional[JobWatchSettings] = None


def get_settings(config_path: Optional[Path] = None) -> JobWatchSettings:
    """Return the process-wide settings, loading them on first use.

    Passing ``config_path`` always reloads and replaces the cached instance.
    """

    global _SETTINGS
    with _SETTINGS_LOCK:
        if _SETTINGS is None or config_path is not None:
            _SETTINGS = load_settings(config_path)
        return _SETTINGS


def reset_settings() -> None:
    """Drop the cached settings (test isolation)."""

    global _SETTINGS
    with _SETTINGS_LOCK:
        _SETTINGS = None


__all__ = [
    "CONFIG_ENV_VAR",
    "HttpSettings",
    "WatchSettings",
    "LoggingSettings",
    "CodemagicSettings",
    "GitHubSettings",
    "JobWatchSettings",
    "normalize_config_path",
    "load_raw_yaml",
    "load_settings",
    "get_settings",
    "reset_settings",
]
