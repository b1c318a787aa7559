"""
Bounded retry counter for backward checkout transitions
"""
import logging
from collections import Counter
from typing import Dict, Optional

from ..exceptions import LoopGuardExceeded

CART_BOUNCE = 'cart_bounce'            # CHECKOUT_REQUESTED -> CART_READY
STALE_CHECKPOINT = 'stale_checkpoint'  # SUBMITTED -> CHECKOUT_REQUESTED


class LoopGuard:
    """Counts retries per edge; each edge gets its own limit"""

    def __init__(self, max_retries: int = 1, limits: Optional[Dict[str, int]] = None):
        self.max_retries = max_retries
        self.limits = dict(limits or {})
        self.attempts = Counter()
        self.logger = logging.getLogger(__name__)

    def limit(self, edge: str) -> int:
        return self.limits.get(edge, self.max_retries)

    def allow(self, edge: str) -> bool:
        """Record one backward transition on `edge`; False once over the limit"""
        self.attempts[edge] += 1
        allowed = self.attempts[edge] <= self.limit(edge)
        self.logger.debug(f"Loop guard {edge}: attempt {self.attempts[edge]}/{self.limit(edge)}"
                          f" {'allowed' if allowed else 'refused'}")
        return allowed

    def check(self, edge: str):
        """Like allow() but raises LoopGuardExceeded when refused"""
        if not self.allow(edge):
            raise LoopGuardExceeded(edge, self.attempts[edge], self.limit(edge))

    def remaining(self, edge: str) -> int:
        return max(0, self.limit(edge) - self.attempts[edge])
