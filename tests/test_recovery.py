"""Tests for CrashRecoveryHandler."""
import asyncio
import signal

import pytest
from unittest.mock import AsyncMock, patch

from wauploader.errors import StoreError
from wauploader.orchestrator.recovery import CrashRecoveryHandler


def test_first_request_wins():
    recovery = CrashRecoveryHandler(signals=())
    assert recovery.shutting_down is False

    assert recovery.request_shutdown("received SIGINT") is True
    assert recovery.request_shutdown("received SIGTERM") is False

    assert recovery.shutting_down is True
    assert recovery.reason == "received SIGINT"


@pytest.mark.asyncio
async def test_final_flush_runs_once():
    recovery = CrashRecoveryHandler(signals=())
    flush = AsyncMock()

    assert await recovery.final_flush(flush) is True
    assert await recovery.final_flush(flush) is False

    flush.assert_awaited_once()
    assert recovery.flushed is True


@pytest.mark.asyncio
async def test_final_flush_store_error_logged(caplog):
    recovery = CrashRecoveryHandler(signals=())

    assert await recovery.final_flush(AsyncMock(side_effect=StoreError("sheet gone"))) is False
    assert "Final flush failed" in caplog.text


@pytest.mark.asyncio
async def test_installs_and_removes_loop_handlers():
    loop = asyncio.get_running_loop()
    with patch.object(loop, "add_signal_handler") as add, \
            patch.object(loop, "remove_signal_handler") as remove, \
            patch("wauploader.orchestrator.recovery.signal.signal") as restore:
        async with CrashRecoveryHandler() as recovery:
            assert add.call_count == 2
            installed = {call.args[0] for call in add.call_args_list}
            assert installed == {signal.SIGINT, signal.SIGTERM}

            # loop passes the signal to the callback
            callback, sig = add.call_args_list[0].args[1:]
            callback(sig)
            assert recovery.shutting_down is True

        assert remove.call_count == 2
        assert restore.call_count <= 2


@pytest.mark.asyncio
async def test_unsupported_loop_is_tolerated():
    loop = asyncio.get_running_loop()
    with patch.object(loop, "add_signal_handler", side_effect=NotImplementedError), \
            patch.object(loop, "remove_signal_handler") as remove:
        async with CrashRecoveryHandler() as recovery:
            recovery.request_shutdown()

    remove.assert_not_called()
