"""Tests for the entry point's shutdown wiring."""

import asyncio
import signal
from unittest.mock import MagicMock, patch

import pytest

import main
from fakes import CONTRACT, FakeRpcPool
from scanner import BlockScanner


def test_shutdown_handlers_registered_on_loop():
    loop = MagicMock()

    main.register_shutdown_handlers(loop)

    loop.add_signal_handler.assert_any_call(signal.SIGINT, main.handle_shutdown, signal.SIGINT)
    loop.add_signal_handler.assert_any_call(signal.SIGTERM, main.handle_shutdown, signal.SIGTERM)


def test_falls_back_to_signal_module_without_loop_support():
    loop = MagicMock()
    loop.add_signal_handler.side_effect = NotImplementedError

    with patch.object(main.signal, 'signal') as signal_mock:
        main.register_shutdown_handlers(loop)

    signal_mock.assert_any_call(signal.SIGINT, main.handle_shutdown)
    signal_mock.assert_any_call(signal.SIGTERM, main.handle_shutdown)


@pytest.mark.asyncio
async def test_shutdown_interrupts_poll_wait(db_pool):
    rpc_pool = FakeRpcPool(head=105)
    scanner = BlockScanner(db_pool, rpc_pool, CONTRACT, genesis_block=100)

    with patch.object(main, 'scanner', scanner):
        task = asyncio.ensure_future(scanner.start(poll_interval=60))
        while not rpc_pool.get_logs_calls:
            await asyncio.sleep(0)

        main.handle_shutdown(signal.SIGTERM)
        await asyncio.wait_for(task, timeout=2)

    assert not scanner.running
    assert rpc_pool.get_logs_calls == [(100, 105)]
