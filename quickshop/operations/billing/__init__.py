"""
Platform billing operations.

Pricing, invoicing, subscription lifecycle and the scheduled settlement
cycles that charge stores through the payment gateway.
"""

from .checkout import (
  CallbackOutcome,
  GatewayCallback,
  handle_subscription_callback,
  initiate_subscription_checkout,
  parse_gateway_callback,
)
from .invoice_ledger import (
  BillingSummary,
  InvoiceAmounts,
  InvoiceLedger,
  InvoiceLineItem,
  idempotency_key_for,
)
from .orchestrator import BillingOrchestrator, BillingRunSummary, StoreOutcome
from .payment_gateway import (
  ChargeResult,
  CustomerProfile,
  GatewayLineItem,
  PaymentGateway,
  PaymentPage,
  PayPlusGateway,
  TokenStatus,
  get_payment_gateway,
  verify_callback_signature,
)
from .pricing import (
  PluginCharge,
  PricingService,
  SubscriptionCharge,
  TransactionFee,
  is_chargeable,
  plugin_fees,
  round2,
  subscription_price,
  transaction_fee,
)
from .settings_store import SettingsStore
from .subscription_service import ActivationResult, CardInfo, SubscriptionService
from .trial_reconciliation import ReconciliationResult, TrialReconciliationEngine

__all__ = [
  "ActivationResult",
  "BillingOrchestrator",
  "BillingRunSummary",
  "BillingSummary",
  "CallbackOutcome",
  "CardInfo",
  "ChargeResult",
  "CustomerProfile",
  "GatewayCallback",
  "GatewayLineItem",
  "InvoiceAmounts",
  "InvoiceLedger",
  "InvoiceLineItem",
  "PaymentGateway",
  "PaymentPage",
  "PayPlusGateway",
  "PluginCharge",
  "PricingService",
  "ReconciliationResult",
  "SettingsStore",
  "StoreOutcome",
  "SubscriptionCharge",
  "SubscriptionService",
  "TokenStatus",
  "TransactionFee",
  "TrialReconciliationEngine",
  "get_payment_gateway",
  "handle_subscription_callback",
  "idempotency_key_for",
  "initiate_subscription_checkout",
  "is_chargeable",
  "parse_gateway_callback",
  "plugin_fees",
  "round2",
  "subscription_price",
  "transaction_fee",
  "verify_callback_signature",
]
