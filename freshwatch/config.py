"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


# Minimum interval between checks in seconds.
MIN_CHECK_INTERVAL = 1

DEFAULT_USER_AGENT = "FreshWatch/0.1"


class StorageKeys:
    """Key names used in the persistent key-value store."""

    STORED_VERSION = "site_version"
    AUTO_REFRESH = "auto_refresh"
    UPDATE_LOG = "update_log"
    ERROR_LOG = "error_log"
    LAST_CHECK = "last_check_time"


@dataclass(frozen=True)
class DetectorConfig:
    """Configuration for the update detector loop.

    The version document is fetched from ``site_url`` + ``version_path``.
    """

    site_url: str
    version_path: str = "/version.json"
    interval: int = 60  # seconds between checks
    timeout: int = 10  # transport timeout for the metadata fetch
    check_on_startup: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if not self.site_url:
            raise ConfigError("Site URL cannot be empty")
        if not self.site_url.startswith(("http://", "https://")):
            raise ConfigError(f"Site URL must start with http:// or https://, got '{self.site_url}'")
        if not self.version_path.startswith("/"):
            raise ConfigError(f"Version path must start with '/', got '{self.version_path}'")
        if self.interval < MIN_CHECK_INTERVAL:
            raise ConfigError(
                f"Check interval must be at least {MIN_CHECK_INTERVAL} second(s) (got {self.interval})"
            )
        if self.timeout < 1:
            raise ConfigError(f"Timeout must be at least 1 second (got {self.timeout})")
        if not self.user_agent:
            raise ConfigError("User-Agent cannot be empty")

    @property
    def version_url(self) -> str:
        """Full URL of the version metadata document."""
        return self.site_url.rstrip("/") + self.version_path


def _get_default_storage_path() -> str:
    """Get the default state database path using XDG-compliant directory.

    Returns ~/.local/share/freshwatch/state.db which is the standard
    location for user-specific data files on Linux/macOS.
    """
    home = Path.home()
    return str(home / ".local" / "share" / "freshwatch" / "state.db")


def _get_default_cache_dir() -> str:
    """Get the default cache directory (~/.cache/freshwatch)."""
    return str(Path.home() / ".cache" / "freshwatch")


DEFAULT_STORAGE_PATH = _get_default_storage_path()
DEFAULT_CACHE_DIR = _get_default_cache_dir()


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for the persistent key-value store."""

    path: str = DEFAULT_STORAGE_PATH


@dataclass(frozen=True)
class AuditConfig:
    """Capacity bounds for the audit log lists."""

    max_updates: int = 50
    max_errors: int = 20

    def __post_init__(self) -> None:
        if self.max_updates < 1:
            raise ConfigError(f"Audit max_updates must be at least 1 (got {self.max_updates})")
        if self.max_errors < 1:
            raise ConfigError(f"Audit max_errors must be at least 1 (got {self.max_errors})")


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for client-held cache buckets.

    Each subdirectory of ``directory`` is one named cache bucket.
    Set ``directory`` to None to disable cache invalidation.
    """

    directory: str | None = DEFAULT_CACHE_DIR


@dataclass(frozen=True)
class RefreshConfig:
    """Configuration for the reload step of a refresh."""

    reload_command: str | None = None  # shell-style command, run without a shell
    reload_delay: float = 0.5  # seconds to wait before issuing the reload
    reload_timeout: int = 30

    def __post_init__(self) -> None:
        if self.reload_command is not None and not self.reload_command.strip():
            raise ConfigError("Reload command cannot be empty")
        if self.reload_delay < 0:
            raise ConfigError(f"Reload delay must be non-negative (got {self.reload_delay})")
        if self.reload_timeout < 1:
            raise ConfigError(f"Reload timeout must be at least 1 second (got {self.reload_timeout})")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    detector: DetectorConfig
    storage: StorageConfig = field(default_factory=StorageConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)


def _parse_detector_config(data: dict | None) -> DetectorConfig:
    """Parse detector configuration section."""
    if data is None:
        raise ConfigError("Configuration must contain a 'detector' section")
    if not isinstance(data, dict):
        raise ConfigError("'detector' section must be a dictionary")

    site_url = data.get("site_url")
    if site_url is None:
        raise ConfigError("'detector' section is missing 'site_url' field")

    return DetectorConfig(
        site_url=str(site_url),
        version_path=str(data.get("version_path", "/version.json")),
        interval=int(data.get("interval", 60)),
        timeout=int(data.get("timeout", 10)),
        check_on_startup=bool(data.get("check_on_startup", True)),
        user_agent=str(data.get("user_agent", DEFAULT_USER_AGENT)),
    )


def _parse_storage_config(data: dict | None) -> StorageConfig:
    """Parse storage configuration section."""
    if data is None:
        return StorageConfig()
    if not isinstance(data, dict):
        raise ConfigError("'storage' section must be a dictionary")

    return StorageConfig(path=os.path.expanduser(str(data.get("path", DEFAULT_STORAGE_PATH))))


def _parse_audit_config(data: dict | None) -> AuditConfig:
    """Parse audit configuration section."""
    if data is None:
        return AuditConfig()
    if not isinstance(data, dict):
        raise ConfigError("'audit' section must be a dictionary")

    return AuditConfig(
        max_updates=int(data.get("max_updates", 50)),
        max_errors=int(data.get("max_errors", 20)),
    )


def _parse_cache_config(data: dict | None) -> CacheConfig:
    """Parse cache configuration section."""
    if data is None:
        return CacheConfig()
    if not isinstance(data, dict):
        raise ConfigError("'cache' section must be a dictionary")

    directory = data.get("directory", DEFAULT_CACHE_DIR)
    return CacheConfig(directory=os.path.expanduser(str(directory)) if directory is not None else None)


def _parse_refresh_config(data: dict | None) -> RefreshConfig:
    """Parse refresh configuration section."""
    if data is None:
        return RefreshConfig()
    if not isinstance(data, dict):
        raise ConfigError("'refresh' section must be a dictionary")

    reload_command = data.get("reload_command")

    return RefreshConfig(
        reload_command=str(reload_command) if reload_command is not None else None,
        reload_delay=float(data.get("reload_delay", 0.5)),
        reload_timeout=int(data.get("reload_timeout", 30)),
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - FRESHWATCH_SITE_URL: Override detector.site_url
    - FRESHWATCH_INTERVAL: Override detector.interval
    - FRESHWATCH_STORAGE_PATH: Override storage.path
    - FRESHWATCH_CACHE_DIR: Override cache.directory
    """
    for section in ("detector", "storage", "cache"):
        if config_data.get(section) is None:
            config_data[section] = {}

    site_url = os.environ.get("FRESHWATCH_SITE_URL")
    if site_url is not None:
        config_data["detector"]["site_url"] = site_url

    interval = os.environ.get("FRESHWATCH_INTERVAL")
    if interval is not None:
        try:
            config_data["detector"]["interval"] = int(interval)
        except ValueError:
            raise ConfigError(f"FRESHWATCH_INTERVAL must be an integer, got '{interval}'")

    storage_path = os.environ.get("FRESHWATCH_STORAGE_PATH")
    if storage_path is not None:
        config_data["storage"]["path"] = storage_path

    cache_dir = os.environ.get("FRESHWATCH_CACHE_DIR")
    if cache_dir is not None:
        config_data["cache"]["directory"] = cache_dir

    return config_data


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    for section in ("detector", "storage", "cache"):
        if section in data and data[section] is not None and not isinstance(data[section], dict):
            raise ConfigError(f"'{section}' section must be a dictionary")

    data = _apply_env_overrides(data)

    try:
        return Config(
            detector=_parse_detector_config(data.get("detector")),
            storage=_parse_storage_config(data.get("storage")),
            audit=_parse_audit_config(data.get("audit")),
            cache=_parse_cache_config(data.get("cache")),
            refresh=_parse_refresh_config(data.get("refresh")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")
