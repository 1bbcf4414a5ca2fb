"""
Configuration for the canvas command line tools.

Settings live in a small YAML file (canvas.yaml by default):

    file_pattern: "*.queue.md"
    backup: false
    autolink_folders: false
    log_level: WARNING

Every key is optional. A missing file gives the defaults; an unreadable or
malformed file is reported as a warning and also gives the defaults.
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG_NAME = "canvas.yaml"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class CanvasConfig:
    """Settings for the canvas CLI."""
    file_pattern: str = "*.queue.md"  # glob used when a command is given a directory
    backup: bool = False  # keep <file>.bak before migrating in place
    autolink_folders: bool = False  # fill folderLink from content while migrating
    log_level: str = "WARNING"


def load_config(
    config_path: Optional[Path] = None,
    logger: Optional[logging.Logger] = None
) -> CanvasConfig:
    """
    Load CLI settings from a YAML file.

    Args:
        config_path: Path to the YAML file (default: ./canvas.yaml)
        logger: Optional logger for reporting problems

    Returns:
        CanvasConfig
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_NAME)

    if not config_path.exists():
        return CanvasConfig()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config file {config_path}: {e}")
        return CanvasConfig()

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {config_path}: expected a mapping")
        return CanvasConfig()

    config = CanvasConfig()
    for option in fields(CanvasConfig):
        if option.name not in data:
            continue
        value = data[option.name]
        default = getattr(config, option.name)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                logger.warning(f"Config {option.name} should be true/false, got {value!r}")
                continue
        elif not isinstance(value, str):
            logger.warning(f"Config {option.name} should be a string, got {value!r}")
            continue
        setattr(config, option.name, value)

    unknown = set(data) - {option.name for option in fields(CanvasConfig)}
    if unknown:
        logger.warning(f"Unknown config keys in {config_path}: {', '.join(sorted(map(str, unknown)))}")

    config.log_level = config.log_level.upper()
    if config.log_level not in LOG_LEVELS:
        logger.warning(f"Unknown log_level {config.log_level!r}, using WARNING")
        config.log_level = "WARNING"

    return config
