"""State mutators for each pixel map event kind.

Every handler runs on the connection (and inside the transaction) of the
block range being indexed. Database errors propagate so the caller can roll
the range back; anomalies in the chain data itself (a transfer of a cell we
never saw minted, an update from someone other than the owner) are logged
and tolerated.
"""
import logging
import re
from typing import Awaitable, Callable, Optional

import asyncpg

from .abi import ZERO_ADDRESS

logger = logging.getLogger(__name__)

UriFetcher = Callable[[int, int], Awaitable[str]]

ADDRESS_PATTERN = re.compile(r'0x[a-fA-F0-9]{40}')

UPSERT_CELL_SQL = '''
    INSERT INTO pixel_blocks (x, y, uri, current_owner, timestamp)
    VALUES ($1, $2, $3, $4, to_timestamp($5))
    ON CONFLICT (x, y) DO UPDATE SET
        uri = EXCLUDED.uri,
        current_owner = EXCLUDED.current_owner,
        timestamp = EXCLUDED.timestamp
'''

# Mints keep a previously indexed uri when the contract returns an empty one
UPSERT_MINTED_CELL_SQL = '''
    INSERT INTO pixel_blocks (x, y, uri, current_owner, timestamp)
    VALUES ($1, $2, $3, $4, to_timestamp($5))
    ON CONFLICT (x, y) DO UPDATE SET
        uri = COALESCE(NULLIF(EXCLUDED.uri, ''), pixel_blocks.uri),
        current_owner = EXCLUDED.current_owner,
        timestamp = EXCLUDED.timestamp
'''

TRANSFER_CELL_SQL = '''
    UPDATE pixel_blocks
    SET current_owner = $3, timestamp = to_timestamp($4)
    WHERE x = $1 AND y = $2
'''

UPDATE_CELL_URI_SQL = '''
    UPDATE pixel_blocks
    SET uri = $3, timestamp = to_timestamp($4)
    WHERE x = $1 AND y = $2 AND current_owner = $5
'''

INSERT_OWNER_SQL = '''
    INSERT INTO pixel_block_owners (x, y, owner, timestamp, transaction_hash, block_number)
    VALUES ($1, $2, $3, to_timestamp($4), $5, $6)
'''

INSERT_URI_HISTORY_SQL = '''
    INSERT INTO pixel_block_uri_history (x, y, uri, owner, timestamp, transaction_hash, block_number)
    VALUES ($1, $2, $3, $4, to_timestamp($5), $6, $7)
'''

UPSERT_USER_SQL = '''
    INSERT INTO users (address, user_name)
    VALUES ($1, $2)
    ON CONFLICT (address) DO UPDATE SET
        user_name = EXCLUDED.user_name
'''

INSERT_NAME_HISTORY_SQL = '''
    INSERT INTO user_name_history (user_address, user_name, timestamp, transaction_hash, block_number)
    VALUES ($1, $2, to_timestamp($3), $4, $5)
'''


def affected_rows(status: str) -> int:
    """Row count from an asyncpg status string such as ``UPDATE 1``"""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


async def _append_history(conn, query: str, *args, description: str) -> bool:
    """Insert a history row, tolerating a missing parent cell.

    The insert runs in a savepoint so a foreign key violation only discards
    this row, not the surrounding block range.
    """
    try:
        async with conn.transaction():
            await conn.execute(query, *args)
        return True
    except asyncpg.exceptions.ForeignKeyViolationError as e:
        logger.warning(f"Skipped {description}, cell was never indexed: {e}")
        return False


async def handle_buy(conn, fetch_uri: UriFetcher, buyer: str, x: int, y: int,
                     timestamp: float, transaction_hash: str, block_number: int) -> None:
    uri = await fetch_uri(x, y)

    await conn.execute(UPSERT_CELL_SQL, x, y, uri, buyer, timestamp)
    await conn.execute(INSERT_OWNER_SQL, x, y, buyer, timestamp, transaction_hash, block_number)

    logger.info(f"Processed Buy: ({x}, {y}) by {buyer} in block {block_number}")


async def handle_transfer(conn, fetch_uri: UriFetcher, from_address: str, to_address: str,
                          x: int, y: int, timestamp: float, transaction_hash: str,
                          block_number: int) -> None:
    if from_address.lower() == ZERO_ADDRESS:
        uri = await fetch_uri(x, y)
        await conn.execute(UPSERT_MINTED_CELL_SQL, x, y, uri, to_address, timestamp)
        await conn.execute(INSERT_OWNER_SQL, x, y, to_address, timestamp, transaction_hash, block_number)
        logger.info(f"Processed mint: ({x}, {y}) to {to_address} in block {block_number}")
        return

    status = await conn.execute(TRANSFER_CELL_SQL, x, y, to_address, timestamp)
    if affected_rows(status) == 0:
        logger.warning(
            f"Transfer of ({x}, {y}) in tx {transaction_hash} matched no indexed cell"
        )

    await _append_history(
        conn, INSERT_OWNER_SQL, x, y, to_address, timestamp, transaction_hash, block_number,
        description=f"ownership record for ({x}, {y}) in tx {transaction_hash}"
    )
    logger.info(f"Processed Transfer: ({x}, {y}) {from_address} -> {to_address}")


async def handle_update(conn, updater: str, x: int, y: int, uri: str, timestamp: float,
                        transaction_hash: str, block_number: int,
                        record_unauthorized: bool = True) -> None:
    status = await conn.execute(UPDATE_CELL_URI_SQL, x, y, uri, timestamp, updater)
    updated = affected_rows(status) > 0

    if not updated:
        logger.warning(
            f"Update of ({x}, {y}) in tx {transaction_hash} by {updater} "
            "matched no cell owned by the updater"
        )
        if not record_unauthorized:
            return

    await _append_history(
        conn, INSERT_URI_HISTORY_SQL, x, y, uri, updater, timestamp, transaction_hash, block_number,
        description=f"content record for ({x}, {y}) in tx {transaction_hash}"
    )
    logger.info(f"Processed Update: ({x}, {y}) uri={uri}")


async def handle_named(conn, user: str, name: Optional[str], timestamp: float,
                       transaction_hash: str, block_number: int) -> None:
    if not isinstance(user, str) or not ADDRESS_PATTERN.fullmatch(user):
        logger.warning(f"Skipping Named event in tx {transaction_hash}, invalid address {user!r}")
        return

    await conn.execute(UPSERT_USER_SQL, user, name)
    await conn.execute(INSERT_NAME_HISTORY_SQL, user, name, timestamp, transaction_hash, block_number)

    logger.info(f"Processed Named: {user} -> {name}")


async def handle_ownership_transferred(previous_owner: Optional[str], new_owner: Optional[str],
                                       transaction_hash: str) -> None:
    logger.info(
        f"Contract ownership transferred from {previous_owner} to {new_owner} in tx {transaction_hash}"
    )
