#!/usr/bin/env python3
"""
Cart controller - clear-then-verify hygiene and add-then-verify carting
"""
import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, Optional

import aiohttp

from ..exceptions import AddToCartFailure, HygieneFailure
from ..models import CartedItem, CartState
from ..store_session import PATHS, StoreSession

PropertiesProvider = Callable[[], Awaitable[Dict]]


async def no_properties() -> Dict:
    return {}


class CartController:
    """Owns the cart state of one store session"""

    def __init__(self, store: StoreSession,
                 properties_provider: Optional[PropertiesProvider] = None):
        self.store = store
        self.properties_provider = properties_provider or no_properties
        self.state = CartState.UNKNOWN
        self.logger = logging.getLogger(__name__)
        self.purchase_log = logging.getLogger('purchases')

    async def ensure_empty_cart(self) -> bool:
        """Clear the cart and verify item_count == 0"""
        self.state = CartState.UNKNOWN
        try:
            response = await self.store.post(PATHS.cart_clear, headers={'accept': 'application/json'})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.warning(f"Cart clear request failed: {e}")
            return False

        if not response.ok:
            self.logger.warning(f"Cart clear returned HTTP {response.status}")
            return False
        try:
            body = response.json()
        except ValueError:
            self.logger.warning("Cart clear body is not JSON")
            return False
        if not isinstance(body, dict) or body.get('item_count') != 0:
            self.logger.warning(f"Cart not empty after clear: item_count={body.get('item_count') if isinstance(body, dict) else None}")
            return False

        self.state = CartState.EMPTY_VERIFIED
        self.logger.info("Cart cleared and verified empty")
        return True

    async def add_variant(self, variant_id: str) -> Optional[CartedItem]:
        """POST one unit of `variant_id` to add.js; None unless confirmed"""
        if self.state != CartState.EMPTY_VERIFIED:
            self.logger.warning(f"Refusing to cart {variant_id}: cart state is {self.state.value}")
            return None

        self.logger.info(f"Attempting to cart variant {variant_id}")
        properties = await self.properties_provider()
        body = {
            'form_type': 'product',
            'utf_8': '✓',
            'quantity': 1,
            'id': str(variant_id),
            'properties': properties,
        }
        headers = {
            'X-Requested-With': 'XMLHttpRequest',
            'Content-Type': 'application/json',
            'accept': 'application/json',
        }
        # the request went out, so the cart may now hold something
        self.state = CartState.UNKNOWN
        try:
            response = await self.store.post(PATHS.cart_add, data=json.dumps(body), headers=headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.warning(f"Add to cart request failed: {e}")
            return None

        if not response.ok:
            self.logger.warning(f"Add to cart returned HTTP {response.status}")
            return None
        try:
            payload = response.json()
        except ValueError:
            self.logger.warning("Add to cart body is not JSON")
            return None
        title = payload.get('product_title') if isinstance(payload, dict) else None
        if not title:
            self.logger.warning("Variant was not found - add.js body has no product_title")
            return None

        self.state = CartState.POPULATED
        item = CartedItem(product_title=title, variant_id=str(variant_id), carted=True)
        self.purchase_log.info(f"CARTED: {title} (variant {variant_id})")
        return item

    async def prepare_and_add(self, variant_id: str) -> CartedItem:
        """Hygiene pass then add; raises HygieneFailure / AddToCartFailure"""
        if not await self.ensure_empty_cart():
            raise HygieneFailure("Cart did not verify empty", {'variant_id': variant_id})
        item = await self.add_variant(variant_id)
        if item is None or not item.carted:
            raise AddToCartFailure("Add to cart was not confirmed", {'variant_id': variant_id})
        return item
