"""
Feed monitoring: fetch, diff, match and clock-aligned scheduling
"""

from .feed_client import FeedClient, CacheBuster, check_snapshot
from .diff_engine import diff
from .matcher import match
from .scheduler import Backoff, next_delay
from .poll_loop import PollLoop, PollState, MonitorSession, MatchResult

__all__ = [
    'FeedClient', 'CacheBuster', 'check_snapshot', 'diff', 'match', 'Backoff',
    'next_delay', 'PollLoop', 'PollState', 'MonitorSession', 'MatchResult',
]
