"""
Exceptions for the restock monitor.

Exception Hierarchy:
    RestockMonitorError (base)
    ├── ConfigError             - config file missing/invalid (startup failure)
    ├── MonitorCancelled        - session cancellation observed
    ├── TransientFetchError     - feed poll failed, retried next cycle
    │   ├── Unavailable
    │   ├── FetchTimeout
    │   └── MalformedResponse
    ├── HygieneFailure          - cart did not verify empty (aborts the candidate)
    ├── AddToCartFailure        - add.js confirmation missing (aborts the candidate)
    ├── ChallengeUnresolved     - solver failed or timed out (terminal for checkout)
    ├── OutOfStock              - checkout reported stock problems (terminal, runner may resume monitoring)
    ├── LoopGuardExceeded       - bounded retries exhausted (terminal for checkout)
    └── ProtocolMismatch        - unexpected response shape (terminal for checkout)

Poll-cycle errors are absorbed by the poll loop; checkout errors are turned
into a Failed outcome by the checkout state machine.
"""

from typing import Optional, Dict, Any


class RestockMonitorError(Exception):
    """Base exception for all restock monitor errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(RestockMonitorError):
    """Config file could not be loaded or is missing required fields"""


class MonitorCancelled(RestockMonitorError):
    """The owning session's cancel token fired"""

    def __init__(self, message: str = "Monitoring cancelled", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


# =============================================================================
# POLLING ERRORS - absorbed, next cycle is scheduled at the base delay
# =============================================================================

class TransientFetchError(RestockMonitorError):
    """Feed request failed in a way the next cycle may not"""


class Unavailable(TransientFetchError):
    """Store could not be reached"""


class FetchTimeout(TransientFetchError):
    """Feed request timed out"""


class MalformedResponse(TransientFetchError):
    """Store answered but the body is not a usable feed"""


# =============================================================================
# CART ERRORS - abort the current candidate only
# =============================================================================

class HygieneFailure(RestockMonitorError):
    """Cart clear did not verify as empty"""


class AddToCartFailure(RestockMonitorError):
    """add.js did not confirm the variant was carted"""


# =============================================================================
# CHECKOUT ERRORS - terminal for the current checkout attempt
# =============================================================================

class ChallengeUnresolved(RestockMonitorError):
    """Challenge solver failed, timed out or was cancelled"""


class LoopGuardExceeded(RestockMonitorError):
    """A backward transition was taken more times than allowed"""

    def __init__(self, edge: str, attempts: int, limit: int):
        super().__init__(
            f"Loop guard exceeded on '{edge}'",
            {'edge': edge, 'attempts': attempts, 'limit': limit}
        )
        self.edge = edge


class ProtocolMismatch(RestockMonitorError):
    """Checkout step returned a response shape we cannot continue from"""


class OutOfStock(RestockMonitorError):
    """Checkout landed on the stock problems page; the carted variant sold out"""
