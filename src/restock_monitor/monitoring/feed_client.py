#!/usr/bin/env python3
"""
Feed client - fetches products.json snapshots from a storefront
"""
import asyncio
import logging
import threading
import time
from typing import Optional

import aiohttp
import requests

from ..exceptions import FetchTimeout, MalformedResponse, Unavailable
from ..models import Snapshot
from ..store_session import PATHS, StoreSession, USER_AGENTS


class CacheBuster:
    """Monotonically increasing millisecond token for the `limit` param"""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(int(time.time() * 1000), self._last + 1)
            return self._last


_oneshot_buster = CacheBuster()


def parse_snapshot(data, source: str = '') -> Snapshot:
    try:
        return Snapshot.from_feed(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedResponse(f"Feed body is not a product list: {e}", {'url': source}) from e


class FeedClient:
    """Stateless wrapper around the products.json endpoint"""

    def __init__(self, store: StoreSession, cache_buster: Optional[CacheBuster] = None):
        self.store = store
        self.cache_buster = cache_buster or CacheBuster()
        self.logger = logging.getLogger(__name__)

    async def fetch_snapshot(self) -> Snapshot:
        """Fetch one snapshot.

        Raises Unavailable, FetchTimeout or MalformedResponse; all of them are
        TransientFetchError and the poll loop retries on its next cycle.
        """
        params = {'limit': str(self.cache_buster.next())}
        headers = {'accept': 'application/json'}
        try:
            response = await self.store.get(PATHS.products, params=params, headers=headers)
        except asyncio.TimeoutError as e:
            raise FetchTimeout("Feed request timed out", {'store': self.store.store_url}) from e
        except aiohttp.ClientError as e:
            raise Unavailable(f"Feed request failed: {e}", {'store': self.store.store_url}) from e
        except UnicodeDecodeError as e:
            raise MalformedResponse(f"Feed body could not be decoded: {e.reason}",
                                    {'store': self.store.store_url}) from e

        if response.status == 429:
            raise Unavailable("Rate limited by store", response.summary())
        if not response.ok:
            raise MalformedResponse(f"Feed returned HTTP {response.status}", response.summary())

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponse("Feed body is not JSON", response.summary()) from e
        return parse_snapshot(data, response.url)


def check_snapshot(store_url: str, timeout: float = 10) -> Snapshot:
    """One synchronous feed fetch, used by the `check` command"""
    url = f"{store_url.rstrip('/')}{PATHS.products}"
    params = {'limit': str(_oneshot_buster.next())}
    headers = {'accept': 'application/json', 'user-agent': USER_AGENTS[0]}
    try:
        response = requests.get(url, params=params, headers=headers, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise FetchTimeout(f"Timeout after {timeout} seconds", {'url': url}) from e
    except requests.exceptions.RequestException as e:
        raise Unavailable(f"Connection error: {e}", {'url': url}) from e

    if response.status_code != 200:
        raise MalformedResponse(f"HTTP {response.status_code}", {'url': url})
    try:
        data = response.json()
    except ValueError as e:
        raise MalformedResponse("Feed body is not JSON", {'url': url}) from e
    return parse_snapshot(data, url)
