"""
Keyword + size matching against a snapshot
"""
import logging
from typing import List, Optional, Sequence, Tuple

from ..models import Criteria, DiffEntry, Product, Snapshot, Variant

logger = logging.getLogger(__name__)


def product_matches(product: Product, criteria: Criteria) -> bool:
    """Name contains any keyword (case-insensitive), or handle matches a product URL keyword"""
    if not criteria.keywords:
        return True
    if product.handle and product.handle.lower() in criteria.handles:
        return True
    name = product.name.lower()
    return any(keyword in name for keyword in criteria.name_keywords)


def _normalize(value: str) -> str:
    return value.strip().lower()


def candidates(snapshot: Snapshot, criteria: Criteria,
               changes: Optional[Sequence[DiffEntry]] = None) -> List[Tuple[Product, Variant]]:
    """Available variants eligible for matching, in snapshot order"""
    fresh = None
    if changes is not None:
        fresh = {(c.product_id, c.variant_id) for c in changes if c.became_available}

    result = []
    for product in snapshot.products:
        if not product_matches(product, criteria):
            continue
        for variant in product.variants:
            if not variant.available:
                continue
            if fresh is not None and (product.id, variant.id) not in fresh:
                continue
            result.append((product, variant))
    return result


def match(snapshot: Snapshot, criteria: Criteria,
          changes: Optional[Sequence[DiffEntry]] = None) -> Optional[Tuple[Product, Variant]]:
    """Pick at most one (product, variant) pair.

    Preferred sizes are tried in the operator's declared order, so when
    several preferred sizes are available the first preference wins. With
    no preferred size available the first candidate in snapshot order is
    returned.
    """
    pool = candidates(snapshot, criteria, changes)
    if not pool:
        return None

    for size in criteria.sizes:
        wanted = _normalize(size)
        for product, variant in pool:
            if any(_normalize(option) == wanted for option in variant.options):
                logger.debug(f"Preferred size {size} matched {product.name} / {variant.id}")
                return product, variant

    product, variant = pool[0]
    logger.debug(f"No preferred size available, using first variant {variant.id} of {product.name}")
    return product, variant
