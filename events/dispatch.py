"""Route decoded events to their state mutator"""
import logging

from .handlers import (
    UriFetcher,
    handle_buy,
    handle_named,
    handle_ownership_transferred,
    handle_transfer,
    handle_update,
)
from .types import DecodedEvent, DecodeFailure, EventKind

logger = logging.getLogger(__name__)


async def process_event(conn, event: DecodedEvent, timestamp: float, fetch_uri: UriFetcher,
                        record_unauthorized_updates: bool = True) -> None:
    """Apply one decoded event to the mirror tables.

    Args:
        conn: Connection holding the block range transaction
        event: Result of EventDecoder.decode()
        timestamp: Block time in seconds since the epoch
        fetch_uri: Coroutine returning the current tokenURI for (x, y)
        record_unauthorized_updates: Append content history for updates by non-owners

    Raises:
        asyncpg.PostgresError: Persistence failed, the block range must be rolled back
    """
    meta = event.meta
    tx_hash = meta.transaction_hash
    block = meta.block_number

    try:
        if event.kind is EventKind.BUY:
            await handle_buy(conn, fetch_uri, event.buyer, event.x, event.y, timestamp, tx_hash, block)

        elif event.kind is EventKind.BATCH_BUY:
            for x, y in event.coordinates:
                await handle_buy(conn, fetch_uri, event.buyer, x, y, timestamp, tx_hash, block)

        elif event.kind is EventKind.TRANSFER:
            await handle_transfer(
                conn, fetch_uri, event.from_address, event.to_address,
                event.x, event.y, timestamp, tx_hash, block
            )

        elif event.kind is EventKind.UPDATE:
            await handle_update(
                conn, event.updater, event.x, event.y, event.uri, timestamp, tx_hash, block,
                record_unauthorized=record_unauthorized_updates
            )

        elif event.kind is EventKind.NAMED:
            await handle_named(conn, event.user, event.name, timestamp, tx_hash, block)

        elif event.kind is EventKind.OWNERSHIP_TRANSFERRED:
            await handle_ownership_transferred(event.previous_owner, event.new_owner, tx_hash)

        elif isinstance(event, DecodeFailure):
            logger.warning(f"Skipping undecodable {meta.event_name} event in tx {tx_hash}")

        else:
            logger.debug(f"No handler for {meta.event_name} event in tx {tx_hash}")

    except Exception as e:
        logger.error(
            f"Error processing {meta.event_name} event in tx {tx_hash} "
            f"(block {block}, log {meta.log_index}): {e}"
        )
        raise
