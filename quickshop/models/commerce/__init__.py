"""Storefront records the billing engine reads.

These tables belong to the storefront subsystem; billing only queries them
and deactivates stores whose trial ran out.
"""

from .order import FinancialStatus, Order
from .plugin import PluginSubscriptionStatus, StorePlugin
from .store import Store

__all__ = [
  "FinancialStatus",
  "Order",
  "PluginSubscriptionStatus",
  "Store",
  "StorePlugin",
]
