#!/usr/bin/env python3
"""
Data model shared by the monitor and purchasing sides
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse


@dataclass(frozen=True)
class Variant:
    """A single purchasable SKU"""
    id: str
    available: bool
    options: Tuple[str, ...] = ()
    title: str = ''
    price: Optional[str] = None


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    variants: Tuple[Variant, ...] = ()
    handle: str = ''


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time capture of the store feed, compared by value"""
    products: Tuple[Product, ...] = ()

    @classmethod
    def from_feed(cls, data: Dict) -> 'Snapshot':
        """Build a snapshot from a products.json body.

        Raises KeyError/TypeError/ValueError on bodies that are not a feed;
        the feed client maps those to MalformedResponse.
        """
        products = []
        for raw_product in data['products']:
            variants = []
            for raw_variant in raw_product.get('variants') or []:
                options = tuple(
                    str(raw_variant[key])
                    for key in ('option1', 'option2', 'option3')
                    if raw_variant.get(key) is not None
                )
                variants.append(Variant(
                    id=str(raw_variant['id']),
                    available=bool(raw_variant.get('available', False)),
                    options=options,
                    title=str(raw_variant.get('title') or ''),
                    price=raw_variant.get('price'),
                ))
            products.append(Product(
                id=str(raw_product['id']),
                name=str(raw_product.get('title') or ''),
                variants=tuple(variants),
                handle=str(raw_product.get('handle') or ''),
            ))
        return cls(products=tuple(products))

    def variant_count(self) -> int:
        return sum(len(p.variants) for p in self.products)

    def available_variants(self) -> List[Tuple[Product, Variant]]:
        return [(p, v) for p in self.products for v in p.variants if v.available]


@dataclass(frozen=True)
class DiffEntry:
    product_id: str
    variant_id: str
    previous: Optional[bool]  # None when the variant was not in the previous snapshot
    current: bool

    @property
    def became_available(self) -> bool:
        return self.current and self.previous is not True


def _product_handle(keyword: str) -> Optional[str]:
    """Extract the handle from a .../products/<handle> URL keyword"""
    if '/products/' not in keyword:
        return None
    path = urlparse(keyword).path if '://' in keyword else keyword
    handle = path.split('/products/', 1)[1].strip('/').split('/')[0]
    return handle.lower() or None


@dataclass(frozen=True)
class Criteria:
    """Operator search criteria, fixed for the whole session"""
    keywords: Tuple[str, ...] = ()
    sizes: Tuple[str, ...] = ()

    @classmethod
    def build(cls, keywords=None, sizes=None) -> 'Criteria':
        return cls(
            keywords=tuple(k.strip() for k in (keywords or []) if k and k.strip()),
            sizes=tuple(s.strip() for s in (sizes or []) if s and s.strip()),
        )

    @property
    def handles(self) -> Tuple[str, ...]:
        return tuple(h for h in (_product_handle(k) for k in self.keywords) if h)

    @property
    def name_keywords(self) -> Tuple[str, ...]:
        return tuple(k.lower() for k in self.keywords if _product_handle(k) is None)


class CartState(Enum):
    EMPTY_VERIFIED = 'empty_verified'
    POPULATED = 'populated'
    UNKNOWN = 'unknown'


@dataclass
class CartedItem:
    product_title: str
    variant_id: str
    carted: bool = False


class ChallengeKind(Enum):
    INTERACTIVE = 'interactive'
    CHECKPOINT = 'checkpoint'


@dataclass(frozen=True)
class ChallengeDescriptor:
    kind: ChallengeKind
    sitekey: str
    origin_url: str
    context: Optional[str] = None  # the checkpoint's "s" value, when present


class CheckoutState(Enum):
    CART_READY = 'cart_ready'
    CHECKOUT_REQUESTED = 'checkout_requested'
    CHALLENGE_GATE = 'challenge_gate'
    AWAITING_NEXT_STEP = 'awaiting_next_step'
    CHECKPOINT_CHALLENGE = 'checkpoint_challenge'
    SUBMITTED = 'submitted'
    SUCCESS = 'success'
    FAILED = 'failed'

    @property
    def terminal(self) -> bool:
        return self in (CheckoutState.SUCCESS, CheckoutState.FAILED)


OUT_OF_STOCK = 'out_of_stock'  # outcome reason when checkout shows stock problems


@dataclass
class CheckoutOutcome:
    """Terminal result of one checkout attempt"""
    success: bool
    url: str
    reason: str = ''

    @classmethod
    def succeeded(cls, final_url: str) -> 'CheckoutOutcome':
        return cls(success=True, url=final_url, reason='submitted')

    @classmethod
    def failed(cls, last_known_url: str, reason: str) -> 'CheckoutOutcome':
        return cls(success=False, url=last_known_url, reason=reason)

    @property
    def out_of_stock(self) -> bool:
        return not self.success and self.reason == OUT_OF_STOCK


@dataclass
class TargetConfig:
    """One monitored store/product from the config file"""
    name: str
    store_url: str
    store_id: str = 'default'
    keywords: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    enabled: bool = True

    @property
    def criteria(self) -> Criteria:
        return Criteria.build(self.keywords, self.sizes)
