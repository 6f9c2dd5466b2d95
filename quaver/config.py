"""
Quaver Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (JSON)
4. Default values

The daemon rewrites the file on shutdown to remember the last volume level.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/quaver/conf.json")

# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

# Block size bounds for the output stream (frames)
MIN_BUFFER_SIZE = 64
MAX_BUFFER_SIZE = 16384

# Longest path an AF_UNIX socket address can hold on Linux
MAX_SOCKET_PATH = 107

# Keys written back to the config file; runtime paths stay out of it
PERSISTED_KEYS = (
    "volume_level",
    "log_level",
    "sample_rate",
    "playlist_dir",
    "log_file",
    "audio_device",
    "buffer_size",
)

# Environment variable mappings
ENV_MAPPINGS = {
    "QUAVER_LOG_LEVEL": "log_level",
    "QUAVER_LOG_FILE": "log_file",
    "QUAVER_SAMPLE_RATE": "sample_rate",
    "QUAVER_PLAYLIST_DIR": "playlist_dir",
    "QUAVER_AUDIO_DEVICE": "audio_device",
    "QUAVER_BUFFER_SIZE": "buffer_size",
    "QUAVER_SOCKET_PATH": "socket_path",
    "QUAVER_LOCK_FILE": "lock_file",
}

_INT_ENV_VARS = ("QUAVER_SAMPLE_RATE", "QUAVER_BUFFER_SIZE")


class ConfigError(Exception):
    """Configuration error."""

    pass


def _runtime_path(name: str) -> str:
    return os.path.join(tempfile.gettempdir(), name)


@dataclass
class Config:
    """Complete Quaver configuration."""

    volume_level: float = 16.0  # User scale, 0..24
    log_level: str = "debug"
    sample_rate: int = 44100
    playlist_dir: str = "Quaver"  # Relative to the home directory
    log_file: str = "~/.cache/quaver/quaver.log"  # Empty logs to stdout
    audio_device: str = "default"
    buffer_size: int = 2048
    socket_path: str = field(default_factory=lambda: _runtime_path("quaver.sock"))
    lock_file: str = field(default_factory=lambda: _runtime_path("quaver.lock"))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    if not _is_number(config.volume_level):
        errors.append(f"Invalid volume_level: {config.volume_level!r}")

    if not isinstance(config.log_level, str) or config.log_level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.log_level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if not _is_int(config.sample_rate) or config.sample_rate <= 0:
        errors.append(f"Invalid sample_rate: {config.sample_rate}")

    if not _is_int(config.buffer_size) or not (
        MIN_BUFFER_SIZE <= config.buffer_size <= MAX_BUFFER_SIZE
    ):
        errors.append(
            f"Invalid buffer_size: {config.buffer_size}. "
            f"Must be between {MIN_BUFFER_SIZE} and {MAX_BUFFER_SIZE}"
        )

    if not isinstance(config.playlist_dir, str) or not config.playlist_dir:
        errors.append("playlist_dir must not be empty")

    if not isinstance(config.audio_device, str) or not config.audio_device:
        errors.append("audio_device must not be empty")

    if not isinstance(config.log_file, str):
        errors.append(f"Invalid log_file: {config.log_file!r}")

    if not config.socket_path:
        errors.append("socket_path must not be empty")
    elif len(config.socket_path) > MAX_SOCKET_PATH:
        errors.append(f"socket_path is too long ({len(config.socket_path)} > {MAX_SOCKET_PATH})")

    if not config.lock_file:
        errors.append("lock_file must not be empty")

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_json_config(path: Path) -> dict:
    """
    Load configuration from JSON file.

    Args:
        path: Path to JSON file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error parsing JSON config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, key in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue
        if env_var in _INT_ENV_VARS:
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        result[key] = value

    return result


def merge_configs(*configs: dict) -> dict:
    """
    Merge flat configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        result.update(config)
    return result


def dict_to_config(d: dict) -> Config:
    """Convert a dictionary to Config dataclass."""
    config = Config()

    config.volume_level = d.get("volume_level", config.volume_level)
    config.log_level = d.get("log_level", config.log_level)
    config.sample_rate = d.get("sample_rate", config.sample_rate)
    config.playlist_dir = d.get("playlist_dir", config.playlist_dir)
    config.log_file = d.get("log_file", config.log_file)
    config.audio_device = d.get("audio_device", config.audio_device)
    config.buffer_size = d.get("buffer_size", config.buffer_size)
    config.socket_path = d.get("socket_path", config.socket_path)
    config.lock_file = d.get("lock_file", config.lock_file)

    unknown = set(d) - set(PERSISTED_KEYS) - {"socket_path", "lock_file"}
    if unknown:
        logger.debug(f"Ignoring unknown config keys: {sorted(unknown)}")

    return config


def config_to_dict(config: Config) -> dict:
    """Convert the persisted part of a Config to a dictionary."""
    return {key: getattr(config, key) for key in PERSISTED_KEYS}


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
        config_path: Path to JSON config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    # Start with empty dict (defaults come from dataclasses)
    configs = []

    # 1. Load from file (lowest priority of explicit configs)
    if config_path:
        file_config = load_json_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    # 2. Load from environment
    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    # 3. Load from CLI (highest priority)
    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    # Merge all configs
    merged = merge_configs(*configs) if configs else {}

    # Convert to Config object (fills in defaults)
    config = dict_to_config(merged)

    # Validate
    validate_config(config)

    return config


def _write_json(path: Path, data: dict) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
    except OSError as e:
        raise ConfigError(f"Error writing config file: {e}")


def write_config(config: Config, path: Path) -> None:
    """
    Persist the file-backed settings of ``config`` to ``path``.

    Raises:
        ConfigError: If the file cannot be written
    """
    _write_json(path, config_to_dict(config))
    logger.debug(f"Wrote config to {path}")


def load_or_create_config(
    config_path: Path,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration, writing a default config file first if none exists.

    A default file that cannot be written is reported and otherwise ignored.

    Raises:
        ConfigError: If the existing configuration is invalid
    """
    if not config_path.exists():
        logger.debug(f"Create new config file: {config_path}")
        try:
            write_config(Config(), config_path)
        except ConfigError as e:
            logger.warning(f"Unable to create default config file: {e}")

    return load_config(config_path, cli_args)


def update_config_file(config_path: Path, **values: Any) -> None:
    """
    Rewrite selected keys of the config file, keeping the others as stored.

    Overrides from the environment or the command line never reach the file.

    Raises:
        ConfigError: If the file cannot be read or written
    """
    _write_json(config_path, merge_configs(load_json_config(config_path), values))
    logger.debug(f"Updated {sorted(values)} in {config_path}")
