"""Tests for the resume point lookup."""

import asyncpg
import pytest

from scanner.progress import GENESIS_BLOCK, LAST_BLOCK_SQL, get_resume_block


@pytest.mark.asyncio
async def test_empty_table_resumes_before_genesis(db_pool):
    assert await get_resume_block(db_pool) == 1954819
    assert GENESIS_BLOCK - 1 == 1954819


@pytest.mark.asyncio
async def test_resumes_at_highest_indexed_block(db_pool, state):
    for block in (1954900, 1955123, 1955001):
        state.events.append({'block_number': block, 'transaction_hash': f'0x{block}', 'log_index': 0})

    assert await get_resume_block(db_pool) == 1955123


@pytest.mark.asyncio
async def test_query_failure_falls_back_to_genesis(db_pool, state):
    state.fail_on[LAST_BLOCK_SQL] = asyncpg.exceptions.UndefinedTableError('relation "events" does not exist')

    assert await get_resume_block(db_pool, genesis_block=500) == 499
