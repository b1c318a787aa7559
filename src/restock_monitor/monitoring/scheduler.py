#!/usr/bin/env python3
"""
Clock-aligned poll scheduling

Drops tend to land on the hour or on the minute, so the delay is clamped to
hit the top of the next hour exactly, and tightened for a few seconds after
each minute boundary. Neither rule applies after a fetch error.
"""
from datetime import datetime, timedelta
from typing import Optional


def next_delay(now: datetime, base_delay: float, low_delay: float = 1.0,
               low_window: int = 5) -> float:
    """Seconds until the next poll, evaluated against a fixed `now`"""
    next_poll = now + timedelta(seconds=base_delay)
    top_of_now = now.replace(minute=0, second=0, microsecond=0)
    if next_poll - top_of_now >= timedelta(hours=1):
        top_of_next_hour = top_of_now + timedelta(hours=1)
        return (top_of_next_hour - now).total_seconds()

    if now.second <= low_window:
        return low_delay

    return base_delay


class Backoff:
    """Poll delay policy configured from settings['polling']"""

    def __init__(self, base_delay: float = 3.0, low_delay: float = 1.0, low_window: int = 5):
        self.base_delay = base_delay
        self.low_delay = low_delay
        self.low_window = low_window

    @classmethod
    def from_settings(cls, polling: dict) -> 'Backoff':
        return cls(
            base_delay=float(polling.get('base_delay_seconds', 3.0)),
            low_delay=float(polling.get('low_delay_seconds', 1.0)),
            low_window=int(polling.get('low_window_seconds', 5)),
        )

    def aligned(self, now: Optional[datetime] = None) -> float:
        return next_delay(now or datetime.now(), self.base_delay, self.low_delay, self.low_window)

    def after_error(self) -> float:
        """Fetch failures always wait the plain base delay"""
        return self.base_delay
