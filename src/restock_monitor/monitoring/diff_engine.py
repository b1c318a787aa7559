"""
Snapshot diffing: availability changes between two feed snapshots
"""
from typing import Dict, List, Optional, Tuple

from ..models import DiffEntry, Snapshot, Variant

VariantKey = Tuple[str, str]


def _index(snapshot: Optional[Snapshot]) -> Dict[VariantKey, Variant]:
    if snapshot is None:
        return {}
    return {(p.id, v.id): v for p in snapshot.products for v in p.variants}


def diff(previous: Optional[Snapshot], current: Snapshot) -> List[DiffEntry]:
    """Return availability changes from `previous` to `current`.

    With no previous snapshot every variant is reported as new
    (previous=None). Variants missing from `current` are reported as
    going unavailable. Linear in the number of variants.
    """
    prev = _index(previous)
    changes = []
    seen = set()

    for product in current.products:
        for variant in product.variants:
            key = (product.id, variant.id)
            seen.add(key)
            old = prev.get(key)
            if old is None:
                changes.append(DiffEntry(product.id, variant.id, None, variant.available))
            elif old.available != variant.available:
                changes.append(DiffEntry(product.id, variant.id, old.available, variant.available))

    if previous is not None:
        for product in previous.products:
            for variant in product.variants:
                key = (product.id, variant.id)
                if key not in seen:
                    seen.add(key)
                    if variant.available:
                        changes.append(DiffEntry(product.id, variant.id, True, False))

    return changes
