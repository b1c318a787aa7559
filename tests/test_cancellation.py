import asyncio

import pytest

from restock_monitor.cancellation import CancelToken
from restock_monitor.exceptions import MonitorCancelled


@pytest.mark.asyncio
async def test_first_reason_is_kept():
    token = CancelToken('t')
    token.cancel('matched')
    token.cancel('operator stop')

    assert token.cancelled
    assert token.reason == 'matched'
    with pytest.raises(MonitorCancelled):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_sleep_reports_cancellation():
    token = CancelToken('t')
    assert await token.sleep(0.01) is True

    asyncio.get_running_loop().call_later(0.01, token.cancel, 'stop')
    assert await asyncio.wait_for(token.sleep(10), timeout=1) is False


@pytest.mark.asyncio
async def test_run_returns_result():
    async def work():
        return 42

    assert await CancelToken('t').run(work()) == 42


@pytest.mark.asyncio
async def test_run_cancels_inner_task():
    token = CancelToken('t')
    finished = asyncio.Event()

    async def work():
        try:
            await asyncio.sleep(10)
        finally:
            finished.set()

    asyncio.get_running_loop().call_later(0.01, token.cancel, 'stop')
    with pytest.raises(MonitorCancelled):
        await token.run(work())
    assert finished.is_set()


@pytest.mark.asyncio
async def test_run_timeout():
    with pytest.raises(asyncio.TimeoutError):
        await CancelToken('t').run(asyncio.sleep(10), timeout=0.01)
