"""Scanner module for indexing pixel map contract events.

This module walks the chain from the last indexed block to the current head in
fixed size block ranges, and for each range:
- Fetches the contract's logs through the RPC provider pool
- Resolves block timestamps
- Records every log in the events table and applies it to the mirror tables,
  all in one database transaction per range
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_utils import to_checksum_address

from events import EventDecoder, PIXELMAP_ABI, process_event, token_id_for
from events.types import DecodedEvent
from rpc import FailoverExhaustedError
from .progress import GENESIS_BLOCK, get_resume_block

logger = logging.getLogger(__name__)

INSERT_EVENT_SQL = '''
    INSERT INTO events (block_number, transaction_hash, log_index, event_type, args, timestamp)
    VALUES ($1, $2, $3, $4, $5::jsonb, to_timestamp($6))
    ON CONFLICT (transaction_hash, log_index) DO NOTHING
    RETURNING id
'''


class RangeOutcome(str, Enum):
    COMMITTED = "committed"
    EMPTY = "empty"
    FETCH_FAILED = "fetch_failed"
    ROLLED_BACK = "rolled_back"


@dataclass
class ScanSummary:
    """What one scan pass did"""
    resume_block: int
    head_block: Optional[int] = None
    ranges: int = 0
    committed: int = 0
    empty: int = 0
    failed: int = 0
    events: int = 0
    aborted: bool = False


class BlockScanner:
    """Index pixel map events from the chain into the database."""

    def __init__(
        self,
        db_pool,
        rpc_pool,
        contract_address: str,
        genesis_block: int = GENESIS_BLOCK,
        batch_size: int = 10,
        abi: Optional[List[Dict[str, Any]]] = None,
        record_unauthorized_updates: bool = True,
        stop_on_range_failure: bool = False,
        clock: Callable[[], float] = time.time
    ):
        """Initialize the block scanner.

        Args:
            db_pool: asyncpg pool for the mirror database
            rpc_pool: ProviderPool used for every chain call
            contract_address: Pixel map contract address
            genesis_block: First block that can contain contract events
            batch_size: Number of blocks per eth_getLogs request
            abi: Contract ABI, defaults to the bundled pixel map ABI
            record_unauthorized_updates: Append content history for updates by non-owners
            stop_on_range_failure: End the pass at the first range that fails
            clock: Wall clock used when a block timestamp can't be fetched
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.db_pool = db_pool
        self.rpc_pool = rpc_pool
        self.contract_address = to_checksum_address(contract_address)
        self.genesis_block = genesis_block
        self.batch_size = batch_size
        self.abi = abi or PIXELMAP_ABI
        self.decoder = EventDecoder(self.abi)
        self.record_unauthorized_updates = record_unauthorized_updates
        self.stop_on_range_failure = stop_on_range_failure
        self._clock = clock
        self.running = False
        self._stop_event: Optional[asyncio.Event] = None

    @classmethod
    def from_settings(cls, db_pool, rpc_pool, settings: Dict[str, Any], abi=None) -> 'BlockScanner':
        return cls(
            db_pool,
            rpc_pool,
            settings['contract_address'],
            genesis_block=settings.get('genesis_block', GENESIS_BLOCK),
            batch_size=settings.get('batch_size', 10),
            abi=abi,
            record_unauthorized_updates=settings.get('record_unauthorized_updates', True),
            stop_on_range_failure=settings.get('stop_on_range_failure', False),
        )

    async def fetch_token_uri(self, x: int, y: int) -> str:
        """Current tokenURI of cell (x, y), or an empty string if it can't be read."""
        token_id = token_id_for(x, y)
        try:
            uri = await self.rpc_pool.call_contract(self.contract_address, self.abi, 'tokenURI', token_id)
            return uri or ''
        except Exception as e:
            logger.error(f"Error fetching token URI for ({x}, {y}) token {token_id}: {e}")
            return ''

    async def _block_timestamps(self, logs: List[Any]) -> Dict[int, float]:
        timestamps = {}
        for block_number in sorted({log.get('blockNumber') for log in logs} - {None}):
            try:
                block = await self.rpc_pool.get_block(block_number)
                timestamps[block_number] = float(block['timestamp'])
            except Exception as e:
                now = self._clock()
                logger.warning(
                    f"Could not fetch timestamp for block {block_number}, using current time: {e}"
                )
                timestamps[block_number] = float(now)
        return timestamps

    async def _store_event(self, conn, event: DecodedEvent, timestamp: float) -> bool:
        """Record the event in the events table.

        Returns:
            False if the event was already recorded by an earlier pass
        """
        meta = event.meta
        if meta.transaction_hash is None or meta.log_index is None or meta.block_number is None:
            raise ValueError(
                f"Log is missing its position (block={meta.block_number}, "
                f"tx={meta.transaction_hash}, log={meta.log_index})"
            )

        event_id = await conn.fetchval(
            INSERT_EVENT_SQL,
            meta.block_number,
            meta.transaction_hash,
            meta.log_index,
            meta.event_name,
            json.dumps(event.to_args()),
            timestamp
        )
        return event_id is not None

    async def process_range(self, start: int, end: int) -> Tuple[RangeOutcome, int]:
        """Fetch and apply all contract events in blocks ``start..end``.

        Returns:
            The outcome and the number of newly applied events

        Raises:
            FailoverExhaustedError: No RPC endpoint could serve the log request
        """
        try:
            logs = await self.rpc_pool.get_logs(self.contract_address, start, end)
        except FailoverExhaustedError:
            raise
        except Exception as e:
            logger.error(f"Error fetching events for blocks {start}-{end}: {e}")
            return RangeOutcome.FETCH_FAILED, 0

        if not logs:
            logger.debug(f"No events in blocks {start}-{end}")
            return RangeOutcome.EMPTY, 0

        logger.info(f"Found {len(logs)} events in blocks {start}-{end}")
        timestamps = await self._block_timestamps(logs)

        applied = 0
        first = None
        try:
            async with self.db_pool.acquire() as conn:
                async with conn.transaction():
                    for raw_log in logs:
                        event = self.decoder.decode(raw_log)
                        if first is None:
                            first = event.meta
                        timestamp = timestamps.get(event.meta.block_number) or float(self._clock())

                        if not await self._store_event(conn, event, timestamp):
                            logger.debug(
                                f"Skipping already indexed event {event.meta.transaction_hash}:"
                                f"{event.meta.log_index}"
                            )
                            continue

                        await process_event(
                            conn, event, timestamp, self.fetch_token_uri,
                            record_unauthorized_updates=self.record_unauthorized_updates
                        )
                        applied += 1

        except Exception as e:
            detail = ""
            if first is not None:
                detail = (
                    f" (first event {first.event_name} in tx {first.transaction_hash}, "
                    f"block {first.block_number}, log {first.log_index})"
                )
            logger.error(f"Rolled back blocks {start}-{end}{detail}: {e}")
            return RangeOutcome.ROLLED_BACK, 0

        logger.info(f"Committed {applied} events from blocks {start}-{end}")
        return RangeOutcome.COMMITTED, applied

    async def run_once(self) -> ScanSummary:
        """Scan from the last indexed block to the current head once."""
        resume = await get_resume_block(self.db_pool, self.genesis_block)
        summary = ScanSummary(resume_block=resume)

        try:
            head = await self.rpc_pool.get_block_number()
        except FailoverExhaustedError as e:
            logger.error(f"Could not fetch current block number: {e}")
            summary.aborted = True
            return summary
        summary.head_block = head

        if head <= resume:
            logger.debug(f"Already at head block {head}")
            return summary

        logger.info(f"Scanning blocks {resume + 1} to {head}")

        for start in range(resume + 1, head + 1, self.batch_size):
            if self._stop_event is not None and self._stop_event.is_set():
                summary.aborted = True
                break

            end = min(start + self.batch_size - 1, head)
            summary.ranges += 1

            try:
                outcome, applied = await self.process_range(start, end)
            except FailoverExhaustedError as e:
                logger.error(f"Stopping scan at blocks {start}-{end}, all RPC endpoints failed: {e}")
                summary.failed += 1
                summary.aborted = True
                break

            summary.events += applied
            if outcome is RangeOutcome.COMMITTED:
                summary.committed += 1
            elif outcome is RangeOutcome.EMPTY:
                summary.empty += 1
            else:
                summary.failed += 1
                if self.stop_on_range_failure:
                    logger.warning(f"Stopping scan after failed range {start}-{end}")
                    summary.aborted = True
                    break

        logger.info(
            f"Scan pass finished at block {head}: {summary.committed} ranges committed, "
            f"{summary.failed} failed, {summary.events} events applied"
        )
        return summary

    async def start(self, poll_interval: float = 15) -> None:
        """Run scan passes every ``poll_interval`` seconds until stop() is called."""
        self.running = True
        self._stop_event = asyncio.Event()
        logger.info(
            f"Starting block scanner for {self.contract_address}, polling every {poll_interval}s"
        )

        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Scan pass failed: {e}")

            if not self.running:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Block scanner stopped")

    def stop(self) -> None:
        """Stop the scanner after the block range in progress."""
        logger.info("Stopping block scanner...")
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()


__all__ = [
    'BlockScanner',
    'RangeOutcome',
    'ScanSummary',
    'GENESIS_BLOCK',
    'get_resume_block',
]
