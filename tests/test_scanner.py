"""Tests for the block scanner."""

import json
import logging

import asyncpg
import pytest

from events.handlers import INSERT_NAME_HISTORY_SQL
from fakes import ALICE, BOB, CONTRACT, FakeRpcPool, buy_log, mint_log, named_log, token_uri_map, update_log
from rpc import FailoverExhaustedError
from scanner import BlockScanner, RangeOutcome

GENESIS = 100


def make_scanner(db_pool, rpc_pool, **kwargs):
    kwargs.setdefault('genesis_block', GENESIS)
    kwargs.setdefault('batch_size', 10)
    return BlockScanner(db_pool, rpc_pool, CONTRACT, **kwargs)


@pytest.mark.asyncio
async def test_single_buy_end_to_end(db_pool, state):
    rpc_pool = FakeRpcPool(
        head=105,
        logs=[buy_log(ALICE, 5, 10, block=103)],
        uris=token_uri_map({(5, 10): 'ipfs://U'})
    )
    scanner = make_scanner(db_pool, rpc_pool)

    summary = await scanner.run_once()

    assert rpc_pool.get_logs_calls == [(100, 105)]
    assert summary.committed == 1
    assert summary.events == 1
    assert state.cells[(5, 10)] == {
        'uri': 'ipfs://U', 'current_owner': ALICE, 'timestamp': 1_700_000_103.0
    }
    assert len(state.owners) == 1

    [row] = state.events
    assert row['block_number'] == 103
    assert row['event_type'] == 'Buy'
    assert json.loads(row['args']) == {'buyer': ALICE, 'x': 5, 'y': 10}


@pytest.mark.asyncio
async def test_ranges_are_split_by_batch_size(db_pool):
    rpc_pool = FakeRpcPool(head=125)
    scanner = make_scanner(db_pool, rpc_pool)

    summary = await scanner.run_once()

    assert rpc_pool.get_logs_calls == [(100, 109), (110, 119), (120, 125)]
    assert summary.empty == 3


@pytest.mark.asyncio
async def test_empty_ranges_persist_nothing(db_pool, state):
    scanner = make_scanner(db_pool, FakeRpcPool(head=119))

    await scanner.run_once()

    assert state.events == []
    assert state.commits == 0


@pytest.mark.asyncio
async def test_resumes_after_last_indexed_block(db_pool, state):
    state.events.append({
        'id': 1, 'block_number': 500, 'transaction_hash': '0x01', 'log_index': 0,
        'event_type': 'Buy', 'args': '{}', 'timestamp': 0.0,
    })
    rpc_pool = FakeRpcPool(head=505)

    await make_scanner(db_pool, rpc_pool).run_once()

    assert rpc_pool.get_logs_calls == [(501, 505)]


@pytest.mark.asyncio
async def test_nothing_to_do_at_head(db_pool, state):
    rpc_pool = FakeRpcPool(head=GENESIS - 1)
    summary = await make_scanner(db_pool, rpc_pool).run_once()

    assert rpc_pool.get_logs_calls == []
    assert summary.ranges == 0


@pytest.mark.asyncio
async def test_reprocessing_a_range_is_idempotent(db_pool, state):
    rpc_pool = FakeRpcPool(head=110, logs=[
        mint_log(ALICE, 1, 1, block=101, log_index=0),
        update_log(ALICE, 1, 1, 'ipfs://x', block=101, log_index=1),
    ])
    scanner = make_scanner(db_pool, rpc_pool)

    assert await scanner.process_range(100, 109) == (RangeOutcome.COMMITTED, 2)
    assert await scanner.process_range(100, 109) == (RangeOutcome.COMMITTED, 0)

    assert len(state.events) == 2
    assert len(state.owners) == 1
    assert len(state.uri_history) == 1


@pytest.mark.asyncio
async def test_persistence_failure_rolls_back_whole_range(db_pool, state, caplog):
    rpc_pool = FakeRpcPool(head=125, logs=[
        buy_log(ALICE, 1, 1, block=101, log_index=0),
        named_log(ALICE, 'alice', block=102, log_index=0),
        buy_log(BOB, 2, 2, block=111, log_index=0),
    ])
    state.fail_on[INSERT_NAME_HISTORY_SQL] = asyncpg.exceptions.NotNullViolationError('boom')
    scanner = make_scanner(db_pool, rpc_pool)

    with caplog.at_level(logging.ERROR):
        summary = await scanner.run_once()

    assert summary.failed == 1
    assert summary.committed == 1
    assert (1, 1) not in state.cells
    assert (2, 2) in state.cells
    assert [row['block_number'] for row in state.events] == [111]
    assert 'Rolled back blocks 100-109' in caplog.text
    assert 'first event Buy' in caplog.text


@pytest.mark.asyncio
async def test_fetch_failure_skips_range(db_pool, state):
    rpc_pool = FakeRpcPool(head=115, logs=[buy_log(BOB, 2, 2, block=112)])
    rpc_pool.log_errors[(100, 109)] = ValueError('query returned more than 10000 results')

    summary = await make_scanner(db_pool, rpc_pool).run_once()

    assert rpc_pool.get_logs_calls == [(100, 109), (110, 115)]
    assert summary.failed == 1
    assert (2, 2) in state.cells


@pytest.mark.asyncio
async def test_stop_on_range_failure(db_pool, state):
    rpc_pool = FakeRpcPool(head=115, logs=[buy_log(BOB, 2, 2, block=112)])
    rpc_pool.log_errors[(100, 109)] = ValueError('bad range')

    summary = await make_scanner(db_pool, rpc_pool, stop_on_range_failure=True).run_once()

    assert rpc_pool.get_logs_calls == [(100, 109)]
    assert summary.aborted
    assert state.cells == {}


@pytest.mark.asyncio
async def test_exhausted_failover_ends_pass(db_pool, state):
    rpc_pool = FakeRpcPool(head=125)
    rpc_pool.log_errors[(110, 119)] = FailoverExhaustedError('queryEvents(110-119)', 9)

    summary = await make_scanner(db_pool, rpc_pool).run_once()

    assert rpc_pool.get_logs_calls == [(100, 109), (110, 119)]
    assert summary.aborted


@pytest.mark.asyncio
async def test_head_lookup_failure_ends_pass(db_pool):
    rpc_pool = FakeRpcPool(head=FailoverExhaustedError('getBlockNumber', 9))

    summary = await make_scanner(db_pool, rpc_pool).run_once()

    assert summary.aborted
    assert summary.head_block is None
    assert rpc_pool.get_logs_calls == []


@pytest.mark.asyncio
async def test_block_timestamp_failure_uses_wall_clock(db_pool, state):
    rpc_pool = FakeRpcPool(head=105, logs=[buy_log(ALICE, 1, 1, block=103)])
    rpc_pool.block_errors.add(103)

    await make_scanner(db_pool, rpc_pool, clock=lambda: 1234.0).run_once()

    assert state.events[0]['timestamp'] == 1234.0
    assert state.cells[(1, 1)]['timestamp'] == 1234.0


@pytest.mark.asyncio
async def test_decode_failure_does_not_fail_range(db_pool, state):
    rpc_pool = FakeRpcPool(head=105, logs=[
        buy_log(ALICE, 150, 1, block=101, log_index=0),
        buy_log(BOB, 3, 3, block=101, log_index=1),
    ])

    summary = await make_scanner(db_pool, rpc_pool).run_once()

    assert summary.committed == 1
    assert len(state.events) == 2
    assert list(state.cells) == [(3, 3)]


@pytest.mark.asyncio
async def test_log_without_position_rolls_back_range(db_pool, state):
    log = buy_log(ALICE, 1, 1, block=101)
    del log['logIndex']
    rpc_pool = FakeRpcPool(head=105, logs=[log])

    outcome, applied = await make_scanner(db_pool, rpc_pool).process_range(100, 105)

    assert outcome is RangeOutcome.ROLLED_BACK
    assert state.events == []


@pytest.mark.asyncio
async def test_token_uri_failure_falls_back_to_empty(db_pool, state):
    rpc_pool = FakeRpcPool(head=105, logs=[buy_log(ALICE, 1, 1, block=101)],
                           missing_uri=ValueError('execution reverted'))

    await make_scanner(db_pool, rpc_pool).run_once()

    assert state.cells[(1, 1)]['uri'] == ''


@pytest.mark.asyncio
async def test_events_applied_in_provider_order(db_pool, state):
    rpc_pool = FakeRpcPool(head=105, logs=[
        buy_log(ALICE, 1, 1, block=101, log_index=0),
        update_log(ALICE, 1, 1, 'first', block=101, log_index=1),
        update_log(ALICE, 1, 1, 'second', block=102, log_index=0),
    ])

    await make_scanner(db_pool, rpc_pool).run_once()

    assert state.cells[(1, 1)]['uri'] == 'second'
    assert [row['uri'] for row in state.uri_history] == ['first', 'second']


@pytest.mark.asyncio
async def test_stop_ends_polling_loop(db_pool):
    rpc_pool = FakeRpcPool(head=105)
    scanner = make_scanner(db_pool, rpc_pool)

    async def stop_after_first_pass():
        summary = await BlockScanner.run_once(scanner)
        scanner.stop()
        return summary

    scanner.run_once = stop_after_first_pass
    await scanner.start(poll_interval=60)

    assert not scanner.running
    assert rpc_pool.get_logs_calls == [(100, 105)]
