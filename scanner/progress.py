"""Resume point for the block scanner, derived from the events table"""
import logging

logger = logging.getLogger(__name__)

GENESIS_BLOCK = 1954820

LAST_BLOCK_SQL = 'SELECT MAX(block_number) FROM events'


async def get_resume_block(pool, genesis_block: int = GENESIS_BLOCK) -> int:
    """Return the last block whose events are fully indexed.

    Scanning restarts at the returned block plus one. Falls back to the block
    before genesis when nothing is indexed yet or the lookup fails.
    """
    default = genesis_block - 1
    try:
        async with pool.acquire() as conn:
            last_block = await conn.fetchval(LAST_BLOCK_SQL)
    except Exception as e:
        logger.error(f"Could not read last processed block, starting from {default}: {e}")
        return default

    if last_block is None:
        logger.info(f"No events indexed yet, starting from block {default}")
        return default

    return int(last_block)
