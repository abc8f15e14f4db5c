"""Settings configuration loader module.

This module handles loading and parsing of the main settings.conf file which contains
the database URL, the pixel map contract address and the RPC endpoint list used by
the indexer.

The settings file uses INI format with a [DEFAULT] section containing key-value pairs.

Required settings:
    contract_address: Address of the pixel map contract

Example settings.conf:
    [DEFAULT]
    db_url = postgresql://postgres@localhost:5432/moonplace
    contract_address = 0x...
    rpc_endpoints =
        https://nova.arbitrum.io/rpc
        https://arbitrum-nova.drpc.org

Raises:
    SettingsError: If the settings file is missing, invalid, or missing required settings
"""
import re
from configparser import ConfigParser
from pathlib import Path
from typing import Dict, Any, List, Union

from eth_utils import to_checksum_address

ADDRESS_PATTERN = re.compile(r'0x[a-fA-F0-9]{40}')


class ConfigValidationError:
    """Helper class to format configuration validation errors"""
    def __init__(self):
        self.missing: List[str] = []
        self.invalid_values: List[str] = []
        self.missing_sections: List[str] = []

    def has_errors(self) -> bool:
        """Check if any errors exist"""
        return bool(self.missing or self.invalid_values or self.missing_sections)

    def format_message(self) -> str:
        """Format error message in a clean, readable way"""
        messages = []

        if self.missing_sections:
            messages.append("Missing required sections:")
            messages.extend(f"  - {item}" for item in self.missing_sections)

        if self.missing:
            if messages:
                messages.append("")
            messages.append("Missing required settings:")
            messages.extend(f"  - {item}" for item in self.missing)

        if self.invalid_values:
            if messages:
                messages.append("")
            messages.append("Invalid values:")
            messages.extend(f"  - {item}" for item in self.invalid_values)

        return "\n".join(messages)


class SettingsError(Exception):
    """Raised when there are issues loading or parsing the settings configuration."""
    pass


# Default settings
DEFAULTS = {
    'db_url': 'postgresql://postgres@localhost:5432/moonplace',
    'rpc_endpoints': ','.join([
        'https://nova.arbitrum.io/rpc',
        'https://arbitrum-nova.drpc.org',
        'https://arbitrum-nova.public.blastapi.io',
        'https://rpc.ankr.com/arbitrumnova',
    ]),
    'rpc_timeout': '30',  # Seconds per HTTP request
    'chain_id': '42170',  # Arbitrum Nova
    'genesis_block': '1954820',  # First block with pixel map events
    'batch_size': '10',  # Blocks per eth_getLogs call
    'max_retries': '3',  # Attempts per endpoint before rotating
    'initial_retry_delay': '1.0',
    'max_retry_delay': '30.0',
    'min_switch_interval': '60.0',  # Cooldown between endpoint rotations
    'poll_interval': '15',  # Seconds between scan passes
    'record_unauthorized_updates': 'true',
    'stop_on_range_failure': 'false',
    'log_level': 'INFO',
}

REQUIRED_SETTINGS = ['contract_address']

INT_SETTINGS = {
    'rpc_timeout': 1,
    'chain_id': 1,
    'genesis_block': 0,
    'batch_size': 1,
    'max_retries': 1,
    'poll_interval': 1,
}

FLOAT_SETTINGS = {
    'initial_retry_delay': 0.0,
    'max_retry_delay': 0.0,
    'min_switch_interval': 0.0,
}

BOOL_SETTINGS = ['record_unauthorized_updates', 'stop_on_range_failure']

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def load_settings_conf(settings_path: Union[str, Path] = ".", filename: str = 'settings.conf') -> Dict[str, Any]:
    """Load and parse settings.conf file with strict validation

    Args:
        settings_path: Directory containing settings.conf, or the file itself
        filename: Name of the settings file inside ``settings_path``

    Returns:
        Dictionary containing parsed settings, defaults filled in, values still strings

    Raises:
        SettingsError: If file not found, parsing fails, or validation fails
    """
    config_path = Path(settings_path)
    if config_path.is_dir():
        config_path = config_path / filename

    if not config_path.exists():
        raise SettingsError(
            f"Settings file not found at: {config_path}\n"
            "Please create settings.conf based on examples/settings.conf.example"
        )

    try:
        parser = ConfigParser(defaults=DEFAULTS, interpolation=None)
        parser.read(config_path)

        errors = ConfigValidationError()

        # Get settings from DEFAULT section
        settings = dict(parser['DEFAULT'])

        missing = [key for key in REQUIRED_SETTINGS if not settings.get(key)]
        if missing:
            errors.missing.extend(missing)

        if errors.has_errors():
            raise SettingsError(
                "Settings Configuration Validation Failed\n\n" +
                errors.format_message()
            )

        return settings

    except Exception as e:
        if isinstance(e, SettingsError):
            raise
        raise SettingsError(f"Error parsing settings.conf: {str(e)}")


def parse_endpoints(value: str) -> List[str]:
    """Split a comma or newline separated endpoint list, keeping priority order."""
    endpoints = []
    for item in re.split(r'[,\s]+', value or ''):
        item = item.strip()
        if item and item not in endpoints:
            endpoints.append(item)
    return endpoints


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('1', 'true', 'yes', 'on'):
        return True
    if text in ('0', 'false', 'no', 'off'):
        return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def validate_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Validate loaded settings.

    Args:
        settings: Dictionary of settings to validate

    Returns:
        Validated and processed settings

    Raises:
        SettingsError: If validation fails
    """
    errors = ConfigValidationError()
    settings = {**DEFAULTS, **settings}

    for key, minimum in INT_SETTINGS.items():
        try:
            settings[key] = int(settings[key])
            if settings[key] < minimum:
                errors.invalid_values.append(f"{key} must be at least {minimum}")
        except (TypeError, ValueError):
            errors.invalid_values.append(f"{key} must be an integer, got {settings[key]!r}")

    for key, minimum in FLOAT_SETTINGS.items():
        try:
            settings[key] = float(settings[key])
            if settings[key] < minimum:
                errors.invalid_values.append(f"{key} must be at least {minimum}")
        except (TypeError, ValueError):
            errors.invalid_values.append(f"{key} must be a number, got {settings[key]!r}")

    for key in BOOL_SETTINGS:
        try:
            settings[key] = _parse_bool(key, settings[key])
        except ValueError as e:
            errors.invalid_values.append(str(e))

    if isinstance(settings['rpc_endpoints'], str):
        settings['rpc_endpoints'] = parse_endpoints(settings['rpc_endpoints'])
    if not settings['rpc_endpoints']:
        errors.invalid_values.append("rpc_endpoints must list at least one endpoint")

    contract_address = (settings.get('contract_address') or '').strip()
    if not contract_address:
        errors.missing.append('contract_address')
    elif not ADDRESS_PATTERN.fullmatch(contract_address):
        errors.invalid_values.append(f"contract_address is not a valid address: {contract_address}")
    else:
        contract_address = to_checksum_address(contract_address)
    settings['contract_address'] = contract_address

    settings['log_level'] = str(settings['log_level']).upper()
    if settings['log_level'] not in LOG_LEVELS:
        errors.invalid_values.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    for key in ('log_file', 'abi_path'):
        if not settings.get(key):
            settings[key] = None

    if settings['abi_path'] and not Path(settings['abi_path']).exists():
        errors.invalid_values.append(f"abi_path: file does not exist: {settings['abi_path']}")

    if errors.has_errors():
        raise SettingsError(
            "Invalid settings configuration\n\n" + errors.format_message()
        )

    return settings
