import argparse
import asyncio
import logging
import signal
import sys

from config import SettingsError, load_config
from database import init_db, close as db_close
from events import load_abi
from rpc import ProviderPool
from scanner import BlockScanner
from scanner.resync import resync_token_uris

logger = logging.getLogger(__name__)

# Scanner instance for graceful shutdown
scanner = None


def setup_logging(level: str = 'INFO', log_file: str = None) -> None:
    """Configure root logging, optionally mirroring to a file."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )
    # web3 and urllib3 are chatty at INFO
    logging.getLogger('web3').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def handle_shutdown(signum, frame=None):
    """Handle shutdown signals gracefully."""
    logger.info("Shutdown signal received. Cleaning up...")
    if scanner is not None:
        scanner.stop()


def register_shutdown_handlers(loop) -> None:
    """Stop the scanner on SIGINT/SIGTERM, waking the event loop right away."""
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, handle_shutdown, signum)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(signum, handle_shutdown)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Index pixel map contract events into PostgreSQL")
    parser.add_argument('--config', help="Path to settings.conf (default: ./settings.conf)")
    parser.add_argument('--once', action='store_true', help="Run a single scan pass and exit")
    parser.add_argument('--resync-uris', action='store_true',
                        help="Re-read every tokenURI from the contract and fix stale rows, then exit")
    parser.add_argument('--reset-db', action='store_true',
                        help="Drop and recreate all tables before starting")
    return parser.parse_args(argv)


async def main(argv=None):
    """Main application entry point."""
    global scanner

    args = parse_args(argv)

    try:
        settings = load_config(args.config)
    except SettingsError as e:
        print(e, file=sys.stderr)
        return 1

    setup_logging(settings['log_level'], settings['log_file'])

    abi = load_abi(settings['abi_path']) if settings['abi_path'] else None

    try:
        logger.info("Initializing database...")
        pool = await init_db(settings['db_url'], force_recreate=args.reset_db)

        rpc_pool = ProviderPool.from_settings(settings)
        logger.info(f"Using {rpc_pool.endpoint_count} RPC endpoints, primary {rpc_pool.current_endpoint}")

        if args.resync_uris:
            await resync_token_uris(pool, rpc_pool, settings['contract_address'], abi=abi)
            return 0

        scanner = BlockScanner.from_settings(pool, rpc_pool, settings, abi=abi)

        if args.once:
            summary = await scanner.run_once()
            return 1 if summary.aborted else 0

        register_shutdown_handlers(asyncio.get_running_loop())

        await scanner.start(settings['poll_interval'])
        return 0

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise

    finally:
        await db_close()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass
