"""
Tests for the challenge bridge: correlation, timeouts, solver failures
"""
import asyncio

import pytest

from restock_monitor.cancellation import CancelToken
from restock_monitor.exceptions import ChallengeUnresolved
from restock_monitor.models import ChallengeDescriptor, ChallengeKind
from restock_monitor.purchasing import ChallengeBridge, NoSolverChannel, QueueSolverChannel


def descriptor(sitekey='site-key', url='https://shop.test/checkouts/abc', context=None):
    kind = ChallengeKind.CHECKPOINT if context else ChallengeKind.INTERACTIVE
    return ChallengeDescriptor(kind=kind, sitekey=sitekey, origin_url=url, context=context)


def test_outbound_message_shape():
    message = ChallengeBridge.build_message('req-1', descriptor(context='s-value'))

    assert message == {
        'type': 'solve_challenge',
        'id': 'req-1',
        'kind': 'checkpoint',
        'item': {'sitekey': 'site-key', 'siteURL': 'https://shop.test/checkouts/abc', 's': 's-value'},
    }
    assert 's' not in ChallengeBridge.build_message('req-2', descriptor())['item']


@pytest.mark.asyncio
async def test_replies_are_correlated_by_id():
    channel = QueueSolverChannel()
    bridge = ChallengeBridge(channel, timeout=2)

    async def solver():
        first = await channel.outbound.get()
        second = await channel.outbound.get()
        # answer out of order
        for message in (second, first):
            channel.reply({'id': message['id'], 'token': f"token-for-{message['item']['sitekey']}"})

    solver_task = asyncio.ensure_future(solver())
    tokens = await asyncio.gather(
        bridge.solve(descriptor(sitekey='a')),
        bridge.solve(descriptor(sitekey='b')),
    )
    await solver_task

    assert tokens == ['token-for-a', 'token-for-b']
    assert bridge._pending == {}


@pytest.mark.asyncio
async def test_unknown_reply_is_dropped():
    bridge = ChallengeBridge(QueueSolverChannel(), timeout=1)

    bridge.deliver({'id': 'nobody', 'token': 'x'})
    bridge.deliver('garbage')

    assert bridge._pending == {}


@pytest.mark.asyncio
async def test_solver_timeout():
    bridge = ChallengeBridge(QueueSolverChannel(), timeout=0.05)

    with pytest.raises(ChallengeUnresolved, match='timed out'):
        await bridge.solve(descriptor())
    assert bridge._pending == {}


@pytest.mark.asyncio
async def test_solver_error_reply():
    channel = QueueSolverChannel()
    bridge = ChallengeBridge(channel, timeout=1)

    async def solver():
        message = await channel.outbound.get()
        channel.reply({'id': message['id'], 'error': 'unsolvable'})

    asyncio.ensure_future(solver())
    with pytest.raises(ChallengeUnresolved, match='unsolvable'):
        await bridge.solve(descriptor())


@pytest.mark.asyncio
async def test_no_solver_configured_fails_immediately():
    bridge = ChallengeBridge(NoSolverChannel(), timeout=30)

    with pytest.raises(ChallengeUnresolved, match='no solver configured'):
        await asyncio.wait_for(bridge.solve(descriptor()), timeout=1)


@pytest.mark.asyncio
async def test_cancellation_aborts_solve():
    bridge = ChallengeBridge(QueueSolverChannel(), timeout=30)
    token = CancelToken('checkout')
    asyncio.get_running_loop().call_later(0.02, token.cancel, 'operator stop')

    with pytest.raises(ChallengeUnresolved, match='cancelled'):
        await asyncio.wait_for(bridge.solve(descriptor(), token), timeout=1)
