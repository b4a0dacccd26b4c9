"""Platform billing models.

Subscriptions, invoices and fee records the billing engine owns. Storefront
tables it only reads live in ``quickshop.models.commerce``.
"""

from .audit_log import BillingAuditLog, BillingEventType
from .invoice import (
  BillingInvoice,
  BillingInvoiceItem,
  InvoiceSequence,
  InvoiceStatus,
  InvoiceType,
)
from .platform_setting import PlatformSetting
from .plugin_pricing import PluginPricing
from .subscription import (
  SUBSCRIPTION_TRANSITIONS,
  StoreSubscription,
  SubscriptionPlan,
  SubscriptionStatus,
)
from .transaction_fee import TransactionFeeRecord

__all__ = [
  "BillingAuditLog",
  "BillingEventType",
  "BillingInvoice",
  "BillingInvoiceItem",
  "InvoiceSequence",
  "InvoiceStatus",
  "InvoiceType",
  "PlatformSetting",
  "PluginPricing",
  "StoreSubscription",
  "SUBSCRIPTION_TRANSITIONS",
  "SubscriptionPlan",
  "SubscriptionStatus",
  "TransactionFeeRecord",
]
