"""
Tests for the poll loop: matching, error backoff and cancellation
"""
import asyncio
from datetime import datetime

import pytest

from restock_monitor.cancellation import CancelToken
from restock_monitor.exceptions import FetchTimeout
from restock_monitor.models import Criteria
from restock_monitor.monitoring import Backoff, MonitorSession, PollLoop, PollState

from fakes import snapshot

MID_MINUTE = datetime(2024, 5, 1, 12, 30, 30)
MINUTE_START = datetime(2024, 5, 1, 12, 30, 2)


class ScriptedFeed:
    """Returns (or raises) the scripted items in order, repeating the last"""

    def __init__(self, *items):
        self.items = list(items)
        self.calls = 0

    async def fetch_snapshot(self):
        self.calls += 1
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, BaseException):
            raise item
        return item


class HangingFeed:
    async def fetch_snapshot(self):
        await asyncio.Event().wait()


def make_loop(feed, keywords=('dunk',), sizes=(), base_delay=0.01, clock=MID_MINUTE, max_cycles=None):
    session = MonitorSession(criteria=Criteria.build(list(keywords), list(sizes)),
                             cancel_token=CancelToken('test'), poll_interval=base_delay)
    backoff = Backoff(base_delay=base_delay, low_delay=base_delay / 2, low_window=5)
    return PollLoop(feed, session, backoff, clock=lambda: clock, max_cycles=max_cycles)


@pytest.mark.asyncio
async def test_restock_matches_exactly_once():
    sold_out = snapshot((1, 'Dunk Low', [(11, False, '10')]))
    restocked = snapshot((1, 'Dunk Low', [(11, True, '10')]))
    feed = ScriptedFeed(sold_out, restocked)
    loop = make_loop(feed)

    result = await loop.run()

    assert result.variant.id == '11'
    assert result.cycle == 2
    assert loop.state == PollState.MATCHED
    assert loop.cancel_token.cancelled
    assert feed.calls == 2
    with pytest.raises(RuntimeError):
        await loop.run()
    assert feed.calls == 2


@pytest.mark.asyncio
async def test_unchanged_feed_uses_aligned_delay():
    sold_out = snapshot((1, 'Dunk Low', [(11, False, '10')]))
    loop = make_loop(ScriptedFeed(sold_out), base_delay=3.0, clock=MINUTE_START)

    result, delay = await loop.run_cycle()
    assert result is None
    assert delay == 1.5
    assert loop.session.last_snapshot == sold_out

    result, delay = await loop.run_cycle()
    assert result is None
    assert delay == 1.5


@pytest.mark.asyncio
async def test_fetch_error_waits_base_delay():
    loop = make_loop(ScriptedFeed(FetchTimeout('slow')), base_delay=3.0, clock=MINUTE_START)

    result, delay = await loop.run_cycle()

    assert result is None
    assert delay == 3.0
    assert loop.session.fetch_errors == 1
    assert loop.session.last_snapshot is None


@pytest.mark.asyncio
async def test_loop_survives_fetch_errors():
    restocked = snapshot((1, 'Dunk Low', [(11, True, '10')]))
    loop = make_loop(ScriptedFeed(FetchTimeout('slow'), FetchTimeout('slow'), restocked))

    result = await loop.run()

    assert result.variant.id == '11'
    assert loop.session.fetch_errors == 2


@pytest.mark.asyncio
async def test_cancel_before_run():
    loop = make_loop(ScriptedFeed(snapshot()))
    loop.cancel('operator stop')

    assert await loop.run() is None
    assert loop.state == PollState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_interrupts_inflight_fetch():
    loop = make_loop(HangingFeed())
    asyncio.get_running_loop().call_later(0.02, loop.cancel, 'operator stop')

    result = await asyncio.wait_for(loop.run(), timeout=2)

    assert result is None
    assert loop.state == PollState.CANCELLED
    assert loop.cancel_token.reason == 'operator stop'


@pytest.mark.asyncio
async def test_max_cycles_stops_the_loop():
    loop = make_loop(ScriptedFeed(snapshot((1, 'Dunk Low', [(11, False, '10')]))), max_cycles=3)

    assert await loop.run() is None
    assert loop.session.cycles == 3
    assert loop.state == PollState.CANCELLED


@pytest.mark.asyncio
async def test_match_result_carries_the_owning_product():
    restocked = snapshot(
        (1, 'Nike Dunk Low Panda', [(11, True, '10')]),
        (2, 'Air Jordan 1 High', [(11, True, '10')]),
    )
    loop = make_loop(ScriptedFeed(restocked), keywords=('jordan',))

    result = await loop.run()

    assert result.product.id == '2'
    assert result.product.name == 'Air Jordan 1 High'
