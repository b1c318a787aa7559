#!/usr/bin/env python3
"""
HTTP boundary for one storefront

Every request the monitor and checkout make goes through StoreSession, which
follows redirects and hands back an immutable PageResponse so the state
machines never touch aiohttp objects directly.
"""
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urljoin, urlparse

import aiohttp

USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:131.0) Gecko/20100101 Firefox/131.0',
]


@dataclass(frozen=True)
class StorePaths:
    """Storefront paths used by the monitor and checkout"""
    products: str = '/products.json'
    cart: str = '/cart'
    cart_clear: str = '/cart/clear.js'
    cart_add: str = '/cart/add.js'
    checkout: str = '/checkout'
    checkouts: str = '/checkouts'
    queue: str = '/throttle/queue'
    checkpoint: str = '/checkpoint'


PATHS = StorePaths()


def url_has_path(url: str, path: str) -> bool:
    """True when `path` appears as whole segments in the URL's path"""
    url_path = urlparse(url).path.rstrip('/') + '/'
    return path.rstrip('/') + '/' in url_path


HTML_ACCEPT = ('text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,'
               'image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.9')


@dataclass(frozen=True)
class PageResponse:
    """Status, final URL (after redirects) and body of one response"""
    status: int
    url: str
    text: str = ''

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Parse the body as JSON; raises ValueError on bad bodies"""
        return json.loads(self.text)

    def summary(self) -> Dict:
        return {'status': self.status, 'url': self.url, 'length': len(self.text)}


class StoreSession:
    """Cookie-carrying aiohttp session bound to one store"""

    def __init__(self, store_url: str, timeout: float = 10,
                 session: Optional[aiohttp.ClientSession] = None):
        self.store_url = store_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.logger = logging.getLogger(__name__)
        self._session = session
        self._owns_session = session is None
        self.user_agent = random.choice(USER_AGENTS)

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers=self.get_headers(),
                cookie_jar=aiohttp.CookieJar(),
            )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def get_headers(self) -> Dict[str, str]:
        """Browser-like default headers"""
        return {
            'accept-language': 'en-US,en;q=0.9',
            'cache-control': 'no-cache',
            'pragma': 'no-cache',
            'origin': self.store_url,
            'referer': f'{self.store_url}/',
            'user-agent': self.user_agent,
        }

    def url_for(self, path: str) -> str:
        return urljoin(self.store_url + '/', path.lstrip('/'))

    async def request(self, method: str, path: str, **kwargs) -> PageResponse:
        """Issue a request and read the whole body.

        Undecodable bytes are replaced, so a bad body reaches the caller as
        unparseable text. aiohttp.ClientError and asyncio.TimeoutError
        propagate to the caller.
        """
        if self._session is None:
            raise RuntimeError("StoreSession used outside 'async with'")
        url = self.url_for(path)
        async with self._session.request(method, url, allow_redirects=True, **kwargs) as response:
            text = await response.text(errors='replace')
            page = PageResponse(status=response.status, url=str(response.url), text=text)
        self.logger.debug(f"{method} {path} -> {page.status} {page.url}")
        return page

    async def get(self, path: str, **kwargs) -> PageResponse:
        return await self.request('GET', path, **kwargs)

    async def post(self, path: str, **kwargs) -> PageResponse:
        return await self.request('POST', path, **kwargs)
