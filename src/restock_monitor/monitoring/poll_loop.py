#!/usr/bin/env python3
"""
Poll loop - fetch, diff, match, sleep, until a candidate shows up

One PollLoop owns one MonitorSession; several targets run several loops
side by side with nothing shared between them.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from ..cancellation import CancelToken
from ..exceptions import MonitorCancelled, TransientFetchError
from ..models import Criteria, Product, Snapshot, Variant
from . import diff_engine, matcher
from .feed_client import FeedClient
from .scheduler import Backoff


class PollState(Enum):
    IDLE = 'idle'
    POLLING = 'polling'
    MATCHED = 'matched'
    CANCELLED = 'cancelled'


@dataclass
class MonitorSession:
    """State for one monitored target; written only by its PollLoop"""
    criteria: Criteria
    cancel_token: CancelToken
    poll_interval: float
    last_snapshot: Optional[Snapshot] = None
    cycles: int = 0
    fetch_errors: int = 0
    started_at: datetime = field(default_factory=datetime.now)


@dataclass
class MatchResult:
    product: Product
    variant: Variant
    cycle: int


class PollLoop:
    """Repeating fetch/diff/match cycle for a single target"""

    def __init__(self, feed: FeedClient, session: MonitorSession, backoff: Backoff,
                 clock: Callable[[], datetime] = datetime.now,
                 max_cycles: Optional[int] = None):
        self.feed = feed
        self.session = session
        self.backoff = backoff
        self.clock = clock
        self.max_cycles = max_cycles
        self.state = PollState.IDLE
        self.logger = logging.getLogger(__name__)

    @property
    def cancel_token(self) -> CancelToken:
        return self.session.cancel_token

    def cancel(self, reason: str = 'operator stop'):
        self.cancel_token.cancel(reason)
        if self.state != PollState.MATCHED:
            self.state = PollState.CANCELLED

    async def run(self) -> Optional[MatchResult]:
        """Poll until a match (returned) or cancellation (None)"""
        if self.state != PollState.IDLE:
            raise RuntimeError(f"PollLoop already {self.state.value}")
        self.state = PollState.POLLING
        self.logger.info(
            f"Monitoring started - keywords={list(self.session.criteria.keywords)} "
            f"sizes={list(self.session.criteria.sizes)}"
        )

        while True:
            if self.cancel_token.cancelled:
                self.state = PollState.CANCELLED
                self.logger.info(f"Monitoring cancelled: {self.cancel_token.reason}")
                return None
            if self.max_cycles is not None and self.session.cycles >= self.max_cycles:
                self.cancel(f'max cycles ({self.max_cycles}) reached')
                return None

            try:
                result, delay = await self.run_cycle()
            except MonitorCancelled:
                self.state = PollState.CANCELLED
                self.logger.info(f"Monitoring cancelled mid-cycle: {self.cancel_token.reason}")
                return None

            if result is not None:
                return result

            self.session.poll_interval = delay
            self.logger.debug(f"Next poll is in {delay:.2f}s")
            await self.cancel_token.sleep(delay)

    async def run_cycle(self):
        """One cycle; returns (MatchResult or None, delay before the next cycle)"""
        self.session.cycles += 1
        cycle = self.session.cycles

        try:
            snapshot = await self.cancel_token.run(self.feed.fetch_snapshot())
        except TransientFetchError as e:
            self.session.fetch_errors += 1
            self.logger.warning(f"Cycle {cycle}: feed fetch failed ({e.__class__.__name__}: {e})")
            return None, self.backoff.after_error()

        diff_start = time.perf_counter()
        changes = diff_engine.diff(self.session.last_snapshot, snapshot)
        self.logger.debug(f"Feed diff took {(time.perf_counter() - diff_start) * 1000:.1f}ms")
        if not changes:
            self.logger.debug(f"Cycle {cycle}: feed unchanged")
            return None, self.backoff.aligned(self.clock())

        self.logger.info(f"Cycle {cycle}: feed changed ({len(changes)} availability changes)")
        self.session.last_snapshot = snapshot

        search_start = time.perf_counter()
        found = matcher.match(snapshot, self.session.criteria, changes)
        self.logger.debug(f"Search took {(time.perf_counter() - search_start) * 1000:.1f}ms")
        if found is None:
            self.logger.info(f"Cycle {cycle}: not found")
            return None, self.backoff.aligned(self.clock())

        # stop scheduling before anything else can observe the candidate
        self.cancel_token.cancel('candidate matched')
        self.state = PollState.MATCHED
        product, variant = found
        self.logger.warning(
            f"MATCHED: {product.name} variant {variant.id} {list(variant.options)} on cycle {cycle}"
        )
        return MatchResult(product=product, variant=variant, cycle=cycle), 0.0
