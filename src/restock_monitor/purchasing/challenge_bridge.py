#!/usr/bin/env python3
"""
Challenge bridge - hands challenge descriptors to an external solver

The solver is reached over a message channel. Every outbound message carries
a request id and replies are matched back by that id, so one bridge can be
shared by concurrent checkout sessions without cross-delivering tokens.

Outbound: {"type": "solve_challenge", "id": ..., "item": {"sitekey", "siteURL", "s"}}
Inbound:  {"id": ..., "token": ...}  or  {"id": ..., "error": ...}
"""
import asyncio
import logging
import uuid
from typing import Callable, Dict, Optional

import aiohttp

from ..cancellation import CancelToken
from ..exceptions import ChallengeUnresolved, MonitorCancelled
from ..models import ChallengeDescriptor

Deliver = Callable[[Dict], None]


class SolverChannel:
    """Transport to the solver; replies come back through the attached callback"""

    def __init__(self):
        self.deliver: Optional[Deliver] = None

    def attach(self, deliver: Deliver):
        self.deliver = deliver

    async def send(self, message: Dict):
        raise NotImplementedError


class QueueSolverChannel(SolverChannel):
    """In-process channel: messages land on `outbound` for a solver task to consume"""

    def __init__(self, maxsize: int = 0):
        super().__init__()
        self.outbound: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def send(self, message: Dict):
        await self.outbound.put(message)

    def reply(self, message: Dict):
        self.deliver(message)


class HttpSolverChannel(SolverChannel):
    """Posts each message to a solver service and delivers its JSON reply"""

    def __init__(self, url: str, timeout: float = 120):
        super().__init__()
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.logger = logging.getLogger(__name__)

    async def send(self, message: Dict):
        request_id = message['id']
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, json=message) as response:
                    if response.status != 200:
                        self.deliver({'id': request_id, 'error': f'HTTP {response.status}'})
                        return
                    reply = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.deliver({'id': request_id, 'error': f'{e.__class__.__name__}: {e}'})
            return

        if not isinstance(reply, dict):
            self.deliver({'id': request_id, 'error': 'solver reply is not an object'})
            return
        reply.setdefault('id', request_id)
        self.deliver(reply)


class NoSolverChannel(SolverChannel):
    """Used when no solver is configured; every request fails at once"""

    async def send(self, message: Dict):
        self.deliver({'id': message['id'], 'error': 'no solver configured'})


class ChallengeBridge:
    """solve(descriptor) -> token, with timeout and cancellation"""

    def __init__(self, channel: SolverChannel, timeout: float = 120):
        self.channel = channel
        self.timeout = timeout
        self._pending: Dict[str, asyncio.Future] = {}
        self.logger = logging.getLogger(__name__)
        channel.attach(self.deliver)

    @staticmethod
    def build_message(request_id: str, descriptor: ChallengeDescriptor) -> Dict:
        item = {'sitekey': descriptor.sitekey, 'siteURL': descriptor.origin_url}
        if descriptor.context:
            item['s'] = descriptor.context
        return {'type': 'solve_challenge', 'id': request_id, 'kind': descriptor.kind.value, 'item': item}

    def deliver(self, message: Dict):
        """Resolve the pending request named by message['id']"""
        request_id = message.get('id') if isinstance(message, dict) else None
        future = self._pending.get(request_id)
        if future is None or future.done():
            self.logger.warning(f"Dropping solver reply for unknown request {request_id}")
            return
        token = message.get('token')
        if token:
            future.set_result(token)
        else:
            future.set_exception(ChallengeUnresolved(
                f"Solver failed: {message.get('error', 'empty token')}", {'request_id': request_id}
            ))

    async def _request(self, request_id: str, descriptor: ChallengeDescriptor) -> str:
        await self.channel.send(self.build_message(request_id, descriptor))
        return await self._pending[request_id]

    async def solve(self, descriptor: ChallengeDescriptor,
                    cancel_token: Optional[CancelToken] = None) -> str:
        """Return a solution token or raise ChallengeUnresolved"""
        request_id = uuid.uuid4().hex
        self._pending[request_id] = asyncio.get_running_loop().create_future()
        self.logger.info(f"Requesting {descriptor.kind.value} solve {request_id[:8]} for {descriptor.origin_url}")
        try:
            if cancel_token is not None:
                token = await cancel_token.run(self._request(request_id, descriptor), timeout=self.timeout)
            else:
                token = await asyncio.wait_for(self._request(request_id, descriptor), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ChallengeUnresolved(f"Solver timed out after {self.timeout}s",
                                      {'request_id': request_id}) from e
        except MonitorCancelled as e:
            raise ChallengeUnresolved("Solve cancelled", {'request_id': request_id}) from e
        finally:
            future = self._pending.pop(request_id, None)
            if future is not None and not future.done():
                future.cancel()

        self.logger.info(f"Solver responded to {request_id[:8]}")
        return token
