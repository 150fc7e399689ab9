"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores API environments (endpoint and credentials) and batch defaults.

Security:
- Config file permissions: 0600 (owner read/write only)
- Secret keys are never logged
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for newer Python versions
    try:
        import tomllib as tomli  # type: ignore[import,no-redef]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

import tomlkit

from cloudstack_cli.errors import ConfigError

logger = logging.getLogger(__name__)


def _number_setting(
    data: dict[str, Any], key: str, kinds: tuple[type, ...], minimum: float
) -> Any:
    """Return an optional numeric setting.

    Raises:
        ConfigError: If the value is not a number of the given kinds or is below minimum
    """
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, kinds) or value < minimum:
        raise ConfigError(f"Invalid {key} {value!r}: expected a number >= {minimum}")
    return value


@dataclass
class EnvironmentConfig:
    """Connection settings of one control-plane environment."""

    url: str
    api_key: str
    secret_key: str
    timeout: int = 60

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "api_key": self.api_key,
            "secret_key": self.secret_key,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "EnvironmentConfig":
        missing = [key for key in ("url", "api_key", "secret_key") if not data.get(key)]
        if missing:
            raise ConfigError(f"Environment '{name}' is missing: {', '.join(missing)}")
        timeout = _number_setting(data, "timeout", (int,), 1)
        return cls(
            url=data["url"],
            api_key=data["api_key"],
            secret_key=data["secret_key"],
            timeout=60 if timeout is None else timeout,
        )


@dataclass
class CloudStackConfig:
    """cloudstack-cli configuration data."""

    default_environment: str | None = None
    concurrency: int | None = None
    poll_interval: float | None = None
    environments: dict[str, EnvironmentConfig] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data: dict[str, Any] = {
            "default_environment": self.default_environment,
            "concurrency": self.concurrency,
            "poll_interval": self.poll_interval,
        }
        data = {k: v for k, v in data.items() if v is not None}
        if self.environments:
            data["environments"] = {
                name: env.to_dict() for name, env in self.environments.items()
            }
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CloudStackConfig":
        """Create from dictionary.

        Raises:
            ConfigError: If a batch default or an environment is malformed
        """
        environments = {
            name: EnvironmentConfig.from_dict(name, values)
            for name, values in (data.get("environments") or {}).items()
        }
        return cls(
            default_environment=data.get("default_environment"),
            concurrency=_number_setting(data, "concurrency", (int,), 1),
            poll_interval=_number_setting(data, "poll_interval", (int, float), 0),
            environments=environments,
        )


class ConfigManager:
    """Manage the cloudstack-cli configuration file.

    Configuration is stored at ~/.cloudstack-cli/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".cloudstack-cli"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    # Environment variables that define an ad-hoc environment without a config file
    ENV_URL = "CLOUDSTACK_API_URL"
    ENV_API_KEY = "CLOUDSTACK_API_KEY"
    ENV_SECRET_KEY = "CLOUDSTACK_SECRET_KEY"

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If a custom path is given and does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions.

        Raises:
            ConfigError: If directory creation fails
        """
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
            logger.debug(f"Config directory ready: {cls.DEFAULT_CONFIG_DIR}")
            return cls.DEFAULT_CONFIG_DIR
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> CloudStackConfig:
        """Load configuration from file.

        Returns:
            CloudStackConfig object (defaults if the file does not exist)

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return CloudStackConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)

            logger.debug(f"Loaded config from: {config_path}")
        except (OSError, tomli.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        return CloudStackConfig.from_dict(data)

    @classmethod
    def save_config(cls, config: CloudStackConfig, custom_path: str | None = None) -> None:
        """Save configuration to file.

        Writes to a temporary file with 0600 permissions and renames it over
        the target, preserving comments of an existing file.

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = Path(custom_path).expanduser().resolve()
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.ensure_config_dir()
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()
            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")

        except OSError as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def add_environment(
        cls,
        name: str,
        environment: EnvironmentConfig,
        make_default: bool = False,
        custom_path: str | None = None,
    ) -> CloudStackConfig:
        """Add or replace an environment and save the configuration."""
        config = CloudStackConfig()
        if cls._config_exists(custom_path):
            config = cls.load_config(custom_path)
        config.environments[name] = environment
        if make_default or not config.default_environment:
            config.default_environment = name
        cls.save_config(config, custom_path)
        return config

    @classmethod
    def get_environment(
        cls, name: str | None = None, custom_path: str | None = None
    ) -> EnvironmentConfig:
        """Get connection settings with CLI override.

        Resolution order: the named environment, the default environment of
        the config file, then the CLOUDSTACK_API_* environment variables.

        Raises:
            ConfigError: If no usable environment is configured
        """
        config = cls.load_config(custom_path)
        env_name = name or config.default_environment

        if env_name:
            if env_name not in config.environments:
                available = ", ".join(sorted(config.environments)) or "none"
                raise ConfigError(
                    f"Environment '{env_name}' not found. Available environments: {available}"
                )
            return config.environments[env_name]

        url = os.getenv(cls.ENV_URL)
        api_key = os.getenv(cls.ENV_API_KEY)
        secret_key = os.getenv(cls.ENV_SECRET_KEY)
        if url and api_key and secret_key:
            return EnvironmentConfig(url=url, api_key=api_key, secret_key=secret_key)

        raise ConfigError(
            "No environment configured. Run 'cs environment add NAME' or set "
            f"{cls.ENV_URL}, {cls.ENV_API_KEY} and {cls.ENV_SECRET_KEY}."
        )

    @classmethod
    def _config_exists(cls, custom_path: str | None) -> bool:
        if custom_path:
            return Path(custom_path).expanduser().exists()
        return cls.DEFAULT_CONFIG_FILE.exists()


__all__ = ["CloudStackConfig", "ConfigManager", "EnvironmentConfig"]
