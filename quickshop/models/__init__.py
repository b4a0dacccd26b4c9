"""Database models.

Importing this package registers every table on ``Base.metadata``.
"""

from .billing import (
  BillingAuditLog,
  BillingEventType,
  BillingInvoice,
  BillingInvoiceItem,
  InvoiceSequence,
  InvoiceStatus,
  InvoiceType,
  PlatformSetting,
  PluginPricing,
  StoreSubscription,
  SubscriptionPlan,
  SubscriptionStatus,
  TransactionFeeRecord,
)
from .commerce import FinancialStatus, Order, PluginSubscriptionStatus, Store, StorePlugin

__all__ = [
  "BillingAuditLog",
  "BillingEventType",
  "BillingInvoice",
  "BillingInvoiceItem",
  "FinancialStatus",
  "InvoiceSequence",
  "InvoiceStatus",
  "InvoiceType",
  "Order",
  "PlatformSetting",
  "PluginPricing",
  "PluginSubscriptionStatus",
  "Store",
  "StorePlugin",
  "StoreSubscription",
  "SubscriptionPlan",
  "SubscriptionStatus",
  "TransactionFeeRecord",
]
