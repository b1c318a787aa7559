#!/usr/bin/env python3
"""
Cancel token passed into every long-running operation
"""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .exceptions import MonitorCancelled

T = TypeVar('T')


class CancelToken:
    """Explicit cancellation signal owned by one monitoring/checkout session"""

    def __init__(self, name: str = 'session'):
        self.name = name
        self.reason: Optional[str] = None
        self._event = asyncio.Event()
        self.logger = logging.getLogger(__name__)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = 'cancelled'):
        """Signal cancellation; only the first reason is kept"""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        self.logger.debug(f"[{self.name}] cancel requested: {reason}")

    def raise_if_cancelled(self):
        if self.cancelled:
            raise MonitorCancelled(details={'session': self.name, 'reason': self.reason})

    async def wait(self):
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns False when woken by cancellation"""
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, seconds))
        except asyncio.TimeoutError:
            return True
        return False

    async def run(self, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Await `awaitable`, aborting it if the token fires first.

        Raises MonitorCancelled on cancellation and asyncio.TimeoutError when
        `timeout` elapses; the inner task is cancelled in both cases.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.logger.debug(f"[{self.name}] aborted task raised {e!r}")
        if self.cancelled:
            raise MonitorCancelled(details={'session': self.name, 'reason': self.reason})
        raise asyncio.TimeoutError()
