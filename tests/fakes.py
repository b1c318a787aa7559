"""
Scripted StoreSession stand-in, hooks, bridge and feed builders used across the tests
"""
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse
from unittest.mock import AsyncMock

from restock_monitor.models import Snapshot
from restock_monitor.store_session import PageResponse

STORE = 'https://shop.test'


def page(path: str, status: int = 200, text: str = '') -> PageResponse:
    url = path if path.startswith('http') else STORE + path
    return PageResponse(status=status, url=url, text=text)


def feed(*products) -> Dict:
    """products.json body; each product is (id, title, [(variant_id, available, size), ...])"""
    return {
        'products': [
            {
                'id': pid,
                'title': title,
                'handle': title.lower().replace(' ', '-'),
                'variants': [
                    {'id': vid, 'available': available, 'option1': size, 'title': size, 'price': '110.00'}
                    for vid, available, size in variants
                ],
            }
            for pid, title, variants in products
        ]
    }


def snapshot(*products) -> Snapshot:
    return Snapshot.from_feed(feed(*products))


class FakeStore:
    """Scripted store; each route replays its responses and repeats the last one"""

    def __init__(self, store_url: str = STORE):
        self.store_url = store_url
        self.routes: Dict[tuple, List] = {}
        self.calls: List[tuple] = []

    def add(self, method: str, path: str, *responses):
        self.routes.setdefault((method, path), []).extend(responses)
        return self

    def url_for(self, path: str) -> str:
        return urljoin(self.store_url + '/', path.lstrip('/'))

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.calls if m == method and p == path)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def request(self, method: str, path: str, **kwargs) -> PageResponse:
        if path.startswith('http'):
            path = urlparse(path).path
        self.calls.append((method, path, kwargs))
        queue = self.routes.get((method, path))
        if not queue:
            return page(path, status=404)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def get(self, path: str, **kwargs) -> PageResponse:
        return await self.request('GET', path, **kwargs)

    async def post(self, path: str, **kwargs) -> PageResponse:
        return await self.request('POST', path, **kwargs)


class RecordingHooks:
    def __init__(self):
        self.continue_states: List[bool] = []
        self.hand_offs: List[tuple] = []

    async def set_continue_enabled(self, enabled: bool):
        self.continue_states.append(enabled)

    async def hand_off(self, url: str, success: bool):
        self.hand_offs.append((url, success))


class FakeBridge:
    def __init__(self, token: Optional[str] = 'solved-token', error: Optional[Exception] = None):
        self.solve = AsyncMock(return_value=token, side_effect=error)
