"""Re-read every cell's tokenURI from the contract and repair stale rows.

Content changes normally arrive as Update events. This pass catches cells
whose stored uri drifted anyway, for example after a missed or undecodable
event. It only touches ``pixel_blocks.uri`` and never writes to the events
table.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from eth_utils import to_checksum_address

from events import GRID_SIZE, PIXELMAP_ABI, coordinates_for
from events.handlers import affected_rows
from rpc import FailoverExhaustedError

logger = logging.getLogger(__name__)

RESYNC_URI_SQL = '''
    UPDATE pixel_blocks
    SET uri = $3
    WHERE x = $1 AND y = $2 AND uri IS DISTINCT FROM $3
'''

NOT_MINTED_MARKERS = ('nonexistent token', 'invalid token', 'erc721: invalid token id', 'uri query for nonexistent')


def _is_not_minted(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in NOT_MINTED_MARKERS)


async def resync_token_uris(
    db_pool,
    rpc_pool,
    contract_address: str,
    abi: Optional[List[Dict[str, Any]]] = None,
    batch_size: int = 50,
    delay: float = 0.5,
    sleep: Callable[[float], Any] = asyncio.sleep
) -> Dict[str, int]:
    """Fetch tokenURI for all 10 000 cells and update rows that differ.

    Args:
        db_pool: asyncpg pool
        rpc_pool: ProviderPool used for the contract calls
        contract_address: Pixel map contract address
        abi: Contract ABI, defaults to the bundled pixel map ABI
        batch_size: Tokens fetched before each database write
        delay: Pause between batches, in seconds

    Returns:
        Counts of ``updated``, ``unchanged``, ``not_minted`` and ``errors``
    """
    contract_address = to_checksum_address(contract_address)
    abi = abi or PIXELMAP_ABI
    counts = {'updated': 0, 'unchanged': 0, 'not_minted': 0, 'errors': 0}
    total = GRID_SIZE * GRID_SIZE

    logger.info(f"Resyncing token URIs for {total} cells")

    for batch_start in range(0, total, batch_size):
        uris = []
        for token_id in range(batch_start, min(batch_start + batch_size, total)):
            try:
                uri = await rpc_pool.call_contract(contract_address, abi, 'tokenURI', token_id)
            except FailoverExhaustedError:
                raise
            except Exception as e:
                if _is_not_minted(e):
                    counts['not_minted'] += 1
                else:
                    counts['errors'] += 1
                    logger.error(f"Error fetching token URI for token {token_id}: {e}")
                continue
            x, y = coordinates_for(token_id)
            uris.append((x, y, uri or ''))

        if uris:
            async with db_pool.acquire() as conn:
                async with conn.transaction():
                    for x, y, uri in uris:
                        status = await conn.execute(RESYNC_URI_SQL, x, y, uri)
                        if affected_rows(status):
                            counts['updated'] += 1
                            logger.info(f"Updated uri for ({x}, {y}): {uri}")
                        else:
                            counts['unchanged'] += 1

        done = min(batch_start + batch_size, total)
        if done % 1000 == 0 or done == total:
            logger.info(f"Resync progress: {done}/{total} tokens")

        if delay and done < total:
            await sleep(delay)

    logger.info(
        f"Resync complete: {counts['updated']} updated, {counts['unchanged']} unchanged, "
        f"{counts['not_minted']} not minted, {counts['errors']} errors"
    )
    return counts
