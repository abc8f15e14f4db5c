"""Command line interface for testing RPC provider failover"""
import argparse
import asyncio

from config import SettingsError, load_config
from . import FailoverExhaustedError, NoProviderError, ProviderPool


async def test_rpc(config_path=None):
    """Check every configured endpoint and the pool's view of the chain"""
    try:
        settings = load_config(config_path)
    except SettingsError as e:
        print(f"\n{e}")
        return

    try:
        pool = ProviderPool.from_settings(settings)
    except NoProviderError as e:
        print(f"\nNo usable RPC provider: {e}")
        return

    print("\nProvider pool:")
    print("-" * 50)
    for key, value in pool.stats().items():
        print(f"{key}: {value}")

    try:
        print("\n1. Testing chain id:")
        chain_id = await pool.get_chain_id()
        expected = settings['chain_id']
        if chain_id == expected:
            print(f"  Success! Connected to chain {chain_id}")
        else:
            print(f"  Warning: chain id {chain_id} does not match configured {expected}")

        print("\n2. Testing block number:")
        head = await pool.get_block_number()
        print(f"  Success! Current block height: {head}")

        print("\n3. Testing block lookup:")
        block = await pool.get_block(head)
        print(f"  Success! Block timestamp: {block['timestamp']}")

    except FailoverExhaustedError as e:
        print(f"\nAll RPC endpoints failed:")
        print(f"  {str(e)}")

    except Exception as e:
        print(f"\nUnexpected error: {str(e)}")

    print("\nEndpoint checks:")
    print("-" * 50)
    for index in range(pool.endpoint_count):
        url = pool.current_endpoint
        try:
            head = pool.get_provider().eth.block_number
            print(f"  [{index + 1}] {url}: block {head}")
        except Exception as e:
            print(f"  [{index + 1}] {url}: FAILED ({e})")
        pool.force_switch()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Test RPC provider failover")
    parser.add_argument('--config', help="Path to settings.conf")
    args = parser.parse_args()
    asyncio.run(test_rpc(args.config))
