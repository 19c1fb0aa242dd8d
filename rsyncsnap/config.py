"""Configuration management for rsyncsnap.

This module provides dataclasses for configuration and functions for
parsing/formatting configuration files. TOML is the native format; JSON
files (selected by a ``.json`` suffix) use the same keys.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import json
import os
import tomllib

from rsyncsnap.destination import is_remote_path
from rsyncsnap.errors import ConfigInvalid


class ConfigurationError(Exception):
    """Raised when configuration file is missing or malformed."""
    pass


class ValidationError(Exception):
    """Raised when configuration values have invalid types."""
    pass


# Bounds for cleanup_at_percent
MIN_CLEANUP_PERCENT = 50
MAX_CLEANUP_PERCENT = 95

DEFAULT_KEEP = 30
DEFAULT_CLEANUP_PERCENT = 95

DEFAULT_LOG_FILE = Path.home() / ".local/log/rsyncsnap.log"
DEFAULT_LOCK_PATH = Path.home() / ".cache/rsyncsnap/backup.lock"


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"  # "DEBUG", "INFO", "WARNING", "ERROR"
    log_file: Path = field(default_factory=lambda: DEFAULT_LOG_FILE)


@dataclass
class Configuration:
    """Main configuration for rsyncsnap.

    source and destination stay strings because either may be a remote
    ``user@host:path`` address that isn't a local path.
    """
    source: str
    destination: str
    keep: int = DEFAULT_KEEP
    cleanup_at_percent: int = DEFAULT_CLEANUP_PERCENT
    exclude_list: Optional[Path] = None
    lock_path: Path = field(default_factory=lambda: DEFAULT_LOCK_PATH)
    dry_run: bool = False
    force_system_rsync: bool = False
    show_progress: bool = True
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Default config file path
DEFAULT_CONFIG_PATH = Path.home() / ".config/rsyncsnap/config.toml"

# Required keys in configuration
REQUIRED_KEYS = ["source", "destination"]


def validate_config(config: Configuration) -> None:
    """
    Check configuration values against their bounds.

    Runs before anything touches the filesystem.

    Raises:
        ConfigInvalid: If a value is out of bounds
    """
    if not config.source:
        raise ConfigInvalid("Source path cannot be empty")
    if not config.destination:
        raise ConfigInvalid("Destination path cannot be empty")
    if config.keep < 1:
        raise ConfigInvalid("keep must be at least 1")
    if not MIN_CLEANUP_PERCENT <= config.cleanup_at_percent <= MAX_CLEANUP_PERCENT:
        raise ConfigInvalid(
            f"cleanup_at_percent must be between "
            f"{MIN_CLEANUP_PERCENT}-{MAX_CLEANUP_PERCENT}"
        )


def _validate_type(value: Any, expected_type: type, key: str) -> None:
    """Validate that a value has the expected type."""
    # bool is a subclass of int; don't accept true/false for numbers
    if expected_type is int and isinstance(value, bool):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected int, got bool"
        )
    if not isinstance(value, expected_type):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected {expected_type.__name__}, "
            f"got {type(value).__name__}"
        )


def _expand_path(value: str) -> str:
    """Expand ~ in local paths; remote addresses are returned untouched."""
    if is_remote_path(value):
        return value
    return os.path.expanduser(value)


def _parse_logging_config(data: Dict[str, Any], main_data: Dict[str, Any]) -> LoggingConfig:
    """Parse logging configuration from dict.

    log_file may sit in the [logging] table or beside the main keys.
    """
    logging_data = data.get("logging", {})
    _validate_type(logging_data, dict, "logging")

    level = logging_data.get("level", "INFO")
    _validate_type(level, str, "logging.level")

    log_file = logging_data.get("log_file", main_data.get("log_file", str(DEFAULT_LOG_FILE)))
    _validate_type(log_file, str, "logging.log_file")

    return LoggingConfig(
        level=level,
        log_file=Path(os.path.expanduser(log_file)),
    )


def _build_configuration(data: Dict[str, Any]) -> Configuration:
    """Build a Configuration from a parsed document."""
    # Main section may be nested under [backup] or at root
    main_data = data.get("backup", data)
    _validate_type(main_data, dict, "backup")

    for key in REQUIRED_KEYS:
        if key not in main_data:
            raise ConfigurationError(f"Missing required configuration key: '{key}'")

    source = main_data["source"]
    _validate_type(source, str, "source")

    destination = main_data["destination"]
    _validate_type(destination, str, "destination")

    keep = main_data.get("keep", DEFAULT_KEEP)
    _validate_type(keep, int, "keep")

    cleanup_at_percent = main_data.get("cleanup_at_percent", DEFAULT_CLEANUP_PERCENT)
    _validate_type(cleanup_at_percent, int, "cleanup_at_percent")

    exclude_list = main_data.get("exclude_list")
    if exclude_list is not None:
        _validate_type(exclude_list, str, "exclude_list")

    lock_file = main_data.get("lock_file", str(DEFAULT_LOCK_PATH))
    _validate_type(lock_file, str, "lock_file")

    flags = {}
    for key, default in (
        ("dry_run", False),
        ("force_system_rsync", False),
        ("show_progress", True),
    ):
        value = main_data.get(key, default)
        _validate_type(value, bool, key)
        flags[key] = value

    return Configuration(
        source=_expand_path(source),
        destination=_expand_path(destination),
        keep=keep,
        cleanup_at_percent=cleanup_at_percent,
        exclude_list=Path(os.path.expanduser(exclude_list)) if exclude_list else None,
        lock_path=Path(os.path.expanduser(lock_file)),
        logging=_parse_logging_config(data, main_data),
        **flags,
    )


def parse_config_string(content: str, fmt: str = "toml") -> Configuration:
    """
    Parse a configuration document into a Configuration object.

    Args:
        content: Document text
        fmt: "toml" or "json"

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If the document is malformed or a required key is missing
        ValidationError: If value has wrong type
    """
    if fmt == "json":
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError("Invalid JSON format: expected an object")
    else:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML format: {e}")

    return _build_configuration(data)


def parse_config(config_path: Optional[Path] = None) -> Configuration:
    """
    Parse a configuration file into a Configuration object.

    Args:
        config_path: Path to config file. Defaults to ~/.config/rsyncsnap/config.toml

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If file doesn't exist or required key missing
        ValidationError: If value has wrong type
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}"
        )

    try:
        content = config_path.read_text()
    except PermissionError:
        raise ConfigurationError(
            f"Permission denied reading configuration file: {config_path}"
        )
    except OSError as e:
        raise ConfigurationError(
            f"Error reading configuration file {config_path}: {e}"
        )

    fmt = "json" if config_path.suffix.lower() == ".json" else "toml"
    return parse_config_string(content, fmt=fmt)


def _escape_toml_string(s: str) -> str:
    """Escape a string for TOML basic string format."""
    # Must escape backslashes first, then quotes
    return s.replace("\\", "\\\\").replace('"', '\\"')


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def format_config(config: Configuration) -> str:
    """
    Format Configuration object back to TOML string.

    Args:
        config: Configuration object to format

    Returns:
        TOML formatted string
    """
    lines = []

    lines.append("[backup]")
    lines.append(f'source = "{_escape_toml_string(config.source)}"')
    lines.append(f'destination = "{_escape_toml_string(config.destination)}"')
    lines.append(f"keep = {config.keep}")
    lines.append(f"cleanup_at_percent = {config.cleanup_at_percent}")
    if config.exclude_list is not None:
        lines.append(f'exclude_list = "{_escape_toml_string(str(config.exclude_list))}"')
    lines.append(f'lock_file = "{_escape_toml_string(str(config.lock_path))}"')
    lines.append(f"dry_run = {_toml_bool(config.dry_run)}")
    lines.append(f"force_system_rsync = {_toml_bool(config.force_system_rsync)}")
    lines.append(f"show_progress = {_toml_bool(config.show_progress)}")
    lines.append("")

    lines.append("[logging]")
    lines.append(f'level = "{_escape_toml_string(config.logging.level)}"')
    lines.append(f'log_file = "{_escape_toml_string(str(config.logging.log_file))}"')

    return "\n".join(lines)


def create_default_config() -> str:
    """
    Generate default configuration TOML for `rsyncsnap init`.

    Returns:
        TOML formatted string with default configuration
    """
    return '''# rsyncsnap configuration file

[backup]
# Directory to back up; its contents are copied into each snapshot.
# May be a remote "user@host:/path" address.
source = "/Volumes/external-0"

# Directory holding the snapshots and the "latest" link
destination = "/Volumes/backup-0/backups"

# Number of snapshots to keep
keep = 30

# Refuse to run when the destination disk is this full (50-95)
cleanup_at_percent = 95

# rsync exclude file (optional)
exclude_list = "/Volumes/external-0/.backup-exclude.list"

# Lock directory; remove it by hand if a crashed run left it behind
lock_file = "~/.cache/rsyncsnap/backup.lock"

dry_run = false

# Use /usr/bin/rsync even when a newer rsync is installed
force_system_rsync = false

show_progress = true

[logging]
# Log level: DEBUG, INFO, WARNING, ERROR
level = "INFO"
log_file = "~/.local/log/rsyncsnap.log"
'''
