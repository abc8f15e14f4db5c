"""Configuration module for loading and managing application settings"""
from pathlib import Path
from typing import Dict, Any, Optional, Union

from .lib.load_settings_conf import (
    DEFAULTS,
    SettingsError,
    load_settings_conf,
    parse_endpoints,
    validate_settings,
)

__all__ = [
    'DEFAULTS',
    'SettingsError',
    'load_config',
    'load_settings_conf',
    'parse_endpoints',
    'validate_settings',
]


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load and validate configuration.

    Args:
        config_path: Optional path to config file. If not provided,
                    will look for settings.conf in current directory.

    Returns:
        Validated settings dictionary
    """
    try:
        return validate_settings(load_settings_conf(config_path or "."))
    except SettingsError as e:
        # Re-raise the error but provide more context
        raise SettingsError(
            f"Configuration Error\n"
            "=================\n\n"
            f"{str(e)}\n\n"
            "Please ensure settings.conf is properly configured.\n"
            "Run `python -m config` to generate examples/settings.conf.example."
        ) from e
