"""
CGPlayer Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import yaml

logger = logging.getLogger(__name__)


# Audio outputs that can be selected by name
VALID_BACKENDS = {"silent", "local"}

# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

DEFAULT_QUEUE_FILE = Path.home() / ".cgplayer" / "queue.json"

# Environment variable mappings
ENV_MAPPINGS = {
    # API
    "CGPLAYER_API_URL": ("api", "base_url"),
    "CGPLAYER_TOKEN": ("api", "token"),
    "CGPLAYER_EMAIL": ("api", "email"),
    "CGPLAYER_PASSWORD": ("api", "password"),
    # Player
    "CGPLAYER_BACKEND": ("player", "backend"),
    "CGPLAYER_AUDIO_DEVICE": ("player", "device"),
    "CGPLAYER_VOLUME": ("player", "volume"),
    "CGPLAYER_AUTOPLAY": ("player", "autoplay"),
    # Storage
    "CGPLAYER_QUEUE_FILE": ("storage", "queue_file"),
    # Control server
    "CGPLAYER_CONTROL_PORT": ("server", "port"),
    "CGPLAYER_BIND": ("server", "bind_address"),
    # Logging
    "CGPLAYER_LOG_LEVEL": ("logging", "level"),
}


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class ApiConfig:
    """CGPlayerWeb API connection."""

    base_url: str = "http://localhost:3001"
    token: str = ""
    email: str = ""
    password: str = ""
    timeout: float = 10.0


@dataclass
class PlayerConfig:
    """Playback configuration."""

    backend: str = "silent"
    device: str = "default"  # local backend only
    blocksize: int = 2048  # local backend only
    volume: float = 1.0
    autoplay: bool = True
    previous_restart_threshold: float = 3.0


@dataclass
class StorageConfig:
    """Queue persistence configuration."""

    queue_file: Path = field(default_factory=lambda: DEFAULT_QUEUE_FILE)
    persist_queue: bool = True


@dataclass
class ServerConfig:
    """Control server configuration."""

    enabled: bool = True
    port: int = 8790
    bind_address: str = "127.0.0.1"
    state_interval: float = 5.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class Config:
    """Complete CGPlayer configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_url(url: str) -> bool:
    """Validate an http(s) base URL."""
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_port(port: int) -> bool:
    """Validate port number."""
    return 1 <= port <= 65535


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    # API
    if not validate_url(config.api.base_url):
        errors.append(f"Invalid API URL: {config.api.base_url}")
    if bool(config.api.email) != bool(config.api.password):
        errors.append("API email and password must be given together")
    if config.api.timeout <= 0:
        errors.append(f"Invalid API timeout: {config.api.timeout}")

    # Player
    if config.player.backend not in VALID_BACKENDS:
        errors.append(
            f"Invalid backend: {config.player.backend}. "
            f"Valid values: {sorted(VALID_BACKENDS)}"
        )
    if not 0.0 <= config.player.volume <= 1.0:
        errors.append(f"Invalid volume: {config.player.volume}. Must be between 0 and 1")
    if config.player.blocksize <= 0:
        errors.append(f"Invalid blocksize: {config.player.blocksize}")
    if config.player.previous_restart_threshold < 0:
        errors.append(
            f"Invalid previous_restart_threshold: {config.player.previous_restart_threshold}"
        )

    # Control server
    if config.server.enabled and not validate_port(config.server.port):
        errors.append(f"Invalid control port: {config.server.port}")
    if config.server.state_interval <= 0:
        errors.append(f"Invalid state interval: {config.server.state_interval}")

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        if env_var == "CGPLAYER_CONTROL_PORT":
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        elif env_var == "CGPLAYER_VOLUME":
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Invalid number for {env_var}: {value}")
                continue
        elif env_var == "CGPLAYER_AUTOPLAY":
            value = _parse_bool(value)

        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def dict_to_config(d: dict) -> Config:
    """Convert a dictionary to Config dataclass."""
    config = Config()

    if "api" in d:
        a = d["api"]
        config.api.base_url = str(a.get("base_url", config.api.base_url)).rstrip("/")
        config.api.token = a.get("token", config.api.token) or ""
        config.api.email = a.get("email", config.api.email) or ""
        config.api.password = a.get("password", config.api.password) or ""
        config.api.timeout = float(a.get("timeout", config.api.timeout))

    if "player" in d:
        p = d["player"]
        config.player.backend = p.get("backend", config.player.backend)
        config.player.device = str(p.get("device", config.player.device))
        config.player.blocksize = int(p.get("blocksize", config.player.blocksize))
        config.player.volume = float(p.get("volume", config.player.volume))
        config.player.autoplay = bool(p.get("autoplay", config.player.autoplay))
        config.player.previous_restart_threshold = float(
            p.get("previous_restart_threshold", config.player.previous_restart_threshold)
        )

    if "storage" in d:
        s = d["storage"]
        if s.get("queue_file"):
            config.storage.queue_file = Path(s["queue_file"]).expanduser()
        config.storage.persist_queue = bool(
            s.get("persist_queue", config.storage.persist_queue)
        )

    if "server" in d:
        srv = d["server"]
        config.server.enabled = bool(srv.get("enabled", config.server.enabled))
        config.server.port = srv.get("port", config.server.port)
        config.server.bind_address = srv.get("bind_address", config.server.bind_address)
        config.server.state_interval = float(
            srv.get("state_interval", config.server.state_interval)
        )

    if "logging" in d:
        config.logging.level = d["logging"].get("level", config.logging.level)

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Path to YAML config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    configs = []

    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    try:
        config = dict_to_config(merged)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")

    validate_config(config)

    return config
