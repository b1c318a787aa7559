"""
Shopify Restock Monitor

Watches a storefront product feed, detects restocks, carts the matched
variant and drives the checkout protocol through to the queue/checkout page.
"""

__version__ = "0.3.0"
