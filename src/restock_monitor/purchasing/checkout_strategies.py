"""
Checkout initiation strategies, selected by store id

Most stores go straight to GET /checkout. Some (Kith, for one) only hand out a
checkout after the cart form is posted with checkout_clicked set.
"""
import logging
from typing import Dict, Optional

from ..store_session import HTML_ACCEPT, PATHS, PageResponse, StoreSession

CART_CHECKOUT_BODY = 'updates%5B%5D=1&attributes%5Bcheckout_clicked%5D=true&checkout='

logger = logging.getLogger(__name__)


class CheckoutInitiation:
    name = 'base'

    async def initiate(self, store: StoreSession) -> PageResponse:
        raise NotImplementedError


class GetCheckout(CheckoutInitiation):
    """GET /checkout and follow redirects"""
    name = 'default'

    async def initiate(self, store: StoreSession) -> PageResponse:
        return await store.get(PATHS.checkout, headers={'accept': HTML_ACCEPT})


class CartPostCheckout(CheckoutInitiation):
    """POST the cart form with checkout_clicked before the checkout will load"""
    name = 'cart_post'

    async def initiate(self, store: StoreSession) -> PageResponse:
        headers = {
            'accept': HTML_ACCEPT,
            'content-type': 'application/x-www-form-urlencoded',
        }
        return await store.post(PATHS.cart, data=CART_CHECKOUT_BODY, headers=headers)


STRATEGIES = {
    GetCheckout.name: GetCheckout,
    CartPostCheckout.name: CartPostCheckout,
}


def strategy_for(store_id: str, store_strategies: Optional[Dict[str, str]] = None) -> CheckoutInitiation:
    """Pick the initiation strategy for `store_id`.

    `store_strategies` maps store ids to strategy names; a store id that
    contains a mapped key (e.g. "kith-eu" for "kith") also picks it up.
    """
    store_id = (store_id or '').lower()
    mapping = {k.lower(): v for k, v in (store_strategies or {}).items()}
    name = mapping.get(store_id)
    if name is None:
        name = next((v for k, v in mapping.items() if k and k in store_id), GetCheckout.name)
    if name not in STRATEGIES:
        logger.warning(f"Unknown checkout strategy '{name}' for {store_id}, using default")
        name = GetCheckout.name
    return STRATEGIES[name]()
