#!/usr/bin/env python3
"""
Checkpoint watcher

Runs beside the checkout flow once checkout has been requested. It polls the
checkpoint page and, as soon as the store serves one, posts a single
CheckpointMessage (token + captcha details) to the checkout flow's queue.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from ..cancellation import CancelToken
from ..models import ChallengeDescriptor, ChallengeKind
from ..store_session import HTML_ACCEPT, PATHS, StoreSession, url_has_path
from .page_parsing import extract_checkpoint_captcha, extract_token


@dataclass(frozen=True)
class CheckpointMessage:
    session_id: str
    token: Optional[str]
    descriptor: Optional[ChallengeDescriptor]
    url: str


def parse_checkpoint(session_id: str, url: str, body: str) -> CheckpointMessage:
    token = extract_token(body)
    captcha = extract_checkpoint_captcha(body)
    descriptor = None
    if captcha is not None:
        sitekey, s_value = captcha
        descriptor = ChallengeDescriptor(
            kind=ChallengeKind.CHECKPOINT, sitekey=sitekey, origin_url=url, context=s_value
        )
    return CheckpointMessage(session_id=session_id, token=token, descriptor=descriptor, url=url)


class CheckpointWatcher:
    """Polls /checkpoint and reports the first checkpoint page it sees"""

    def __init__(self, store: StoreSession, session_id: str, channel: asyncio.Queue,
                 cancel_token: CancelToken, poll_interval: float = 1.0):
        self.store = store
        self.session_id = session_id
        self.channel = channel
        self.cancel_token = cancel_token
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(__name__)
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.ensure_future(self.watch())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.logger.warning(f"Checkpoint watcher stopped with {e!r}")
        self._task = None

    async def watch(self):
        while not self.cancel_token.cancelled:
            message = await self.check_once()
            if message is not None:
                self.logger.info("Checkpoint page found, handing details to checkout")
                await self.channel.put(message)
                return
            if not await self.cancel_token.sleep(self.poll_interval):
                return

    async def check_once(self) -> Optional[CheckpointMessage]:
        try:
            page = await self.store.get(PATHS.checkpoint, headers={'accept': HTML_ACCEPT})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Checkpoint poll failed: {e}")
            return None
        if page.status != 200 or not url_has_path(page.url, PATHS.checkpoint):
            return None
        return parse_checkpoint(self.session_id, page.url, page.text)
