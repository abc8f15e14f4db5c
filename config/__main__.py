"""Command line interface for testing configuration loading"""
import sys
from pathlib import Path

from . import DEFAULTS, SettingsError, load_config

EXAMPLE_SETTINGS = """[DEFAULT]
# PostgreSQL connection URL
db_url = {db_url}

# Pixel map contract on Arbitrum Nova
contract_address = 0x0000000000000000000000000000000000000000

# RPC endpoints in priority order, comma or newline separated
rpc_endpoints =
{endpoints}

rpc_timeout = {rpc_timeout}
chain_id = {chain_id}
genesis_block = {genesis_block}

# Blocks per eth_getLogs request
batch_size = {batch_size}

# Failover tuning
max_retries = {max_retries}
initial_retry_delay = {initial_retry_delay}
max_retry_delay = {max_retry_delay}
min_switch_interval = {min_switch_interval}

# Seconds between scan passes
poll_interval = {poll_interval}

# Append content history even when the updater is not the current owner
record_unauthorized_updates = {record_unauthorized_updates}

# Stop a scan pass at the first failed block range
stop_on_range_failure = {stop_on_range_failure}

log_level = {log_level}
# log_file = indexer.log
"""


def write_example(examples_dir: Path = Path("examples")) -> Path:
    """Write examples/settings.conf.example populated with the defaults"""
    examples_dir.mkdir(exist_ok=True)
    values = dict(DEFAULTS)
    values['endpoints'] = "\n".join(
        f"    {url}" for url in DEFAULTS['rpc_endpoints'].split(',')
    )
    path = examples_dir / "settings.conf.example"
    with open(path, "w") as f:
        f.write(EXAMPLE_SETTINGS.format(**values))
    return path


def main():
    """Display loaded configuration"""
    config_path = sys.argv[1] if len(sys.argv) > 1 else None

    try:
        settings = load_config(config_path)
        print("\nSettings Configuration:")
        print("-" * 50)
        for key, value in settings.items():
            print(f"{key}: {value}")
    except SettingsError as e:
        print(f"\n{e}")

    path = write_example()
    print(f"\nWrote example configuration to {path}")


if __name__ == "__main__":
    main()
