"""
Subscription checkout and gateway callback handling.

Checkout sends the store owner to a hosted payment page that charges the
first month and stores a card token. The gateway then posts a signed
callback; a successful one activates the subscription and records the paid
subscription invoice for the first period.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ...config import env
from ...config.billing import BillingConfig
from ...exceptions import CallbackPayloadError, SubscriptionNotFoundError, UnknownPlanError
from ...logger import billing_logger as logger
from ...models.billing import BillingAuditLog, BillingEventType, InvoiceType
from ...models.commerce import Store
from .invoice_ledger import InvoiceAmounts, InvoiceLineItem
from .payment_gateway import (
  ChargeResult,
  CustomerProfile,
  GatewayLineItem,
  PaymentGateway,
  PaymentPage,
  get_payment_gateway,
)
from .pricing import PricingService, round2
from .settings_store import SettingsStore
from .subscription_service import CardInfo, SubscriptionService

SUBSCRIPTION_PAYMENT_TYPE = "subscription"
SUCCESS_STATUS_CODES = ("000", "0")


def initiate_subscription_checkout(
  session: Session,
  store_id: str,
  plan: str,
  customer: CustomerProfile,
  success_url: str,
  failure_url: str,
  callback_url: Optional[str] = None,
  settings: Optional[SettingsStore] = None,
  gateway: Optional[PaymentGateway] = None,
) -> PaymentPage:
  """
  Create the hosted payment page for a store's first subscription payment.

  Raises:
      UnknownPlanError: ``plan`` is not a paid plan
      SubscriptionNotFoundError: The store does not exist
      PaymentGatewayError: The page could not be created
  """
  if plan not in BillingConfig.get_paid_plans():
    raise UnknownPlanError(plan)

  settings = settings or SettingsStore()
  gateway = gateway or get_payment_gateway()

  subscription = SubscriptionService(session, settings=settings, gateway=gateway).get_or_create(
    store_id
  )
  charge = PricingService(settings, session).subscription_charge(plan, subscription)
  plan_name = BillingConfig.get_plan_display_name(plan)

  metadata = {
    "type": SUBSCRIPTION_PAYMENT_TYPE,
    "storeId": store_id,
    "plan": plan,
    "amount": str(charge.total),
    "basePrice": str(charge.base),
    "vatAmount": str(charge.vat),
  }

  page = gateway.initiate_payment(
    amount=charge.total,
    line_items=[GatewayLineItem(name=f"{plan_name} monthly subscription", price=charge.total)],
    success_url=success_url,
    failure_url=failure_url,
    callback_url=callback_url or env.billing_callback_url(),
    metadata=metadata,
    customer=customer,
    description=f"{plan_name} monthly subscription",
  )

  logger.info(
    f"Initiated {plan} checkout for store {store_id}",
    extra={"store_id": store_id, "action": "checkout_initiated", "amount": str(charge.total)},
  )
  return page


@dataclass
class GatewayCallback:
  """Normalized payment-page callback."""

  format: str
  status_code: Optional[str]
  transaction_ref: Optional[str] = None
  customer_ref: Optional[str] = None
  token_ref: Optional[str] = None
  last_four: Optional[str] = None
  brand: Optional[str] = None
  expiry: Optional[str] = None
  invoice_number: Optional[str] = None
  invoice_url: Optional[str] = None
  metadata: Dict[str, Any] = field(default_factory=dict)

  @property
  def is_success(self) -> bool:
    return self.status_code in SUCCESS_STATUS_CODES


@dataclass
class CallbackOutcome:
  success: bool
  message: str
  store_id: Optional[str] = None
  invoice_number: Optional[str] = None


def _parse_metadata(more_info_1: Optional[str], more_info: Optional[str]) -> Dict[str, Any]:
  raw = more_info_1
  if not raw and more_info and more_info.strip().startswith("{"):
    # Legacy pages put the JSON in more_info
    raw = more_info
  if not raw:
    raise CallbackPayloadError("no JSON metadata in more_info_1 or more_info")

  try:
    metadata = json.loads(raw)
  except ValueError as e:
    raise CallbackPayloadError("metadata is not valid JSON") from e

  if not isinstance(metadata, dict) or not metadata.get("storeId") or not metadata.get("plan"):
    raise CallbackPayloadError("metadata is missing storeId or plan")
  return metadata


def parse_gateway_callback(payload: Dict[str, Any]) -> GatewayCallback:
  """
  Normalize the nested and the flat callback formats.

  Raises:
      CallbackPayloadError: The payload carries no usable metadata
  """
  if not isinstance(payload, dict):
    raise CallbackPayloadError("payload is not a JSON object")

  transaction = payload.get("transaction")
  if isinstance(transaction, dict):
    data = payload.get("data") or {}
    card = data.get("card_information") or {}
    expiry = None
    if card.get("expiry_month") or card.get("expiry_year"):
      expiry = f"{card.get('expiry_month') or ''}/{card.get('expiry_year') or ''}"
    return GatewayCallback(
      format="nested",
      status_code=transaction.get("status_code"),
      transaction_ref=transaction.get("uid"),
      customer_ref=data.get("customer_uid"),
      token_ref=card.get("token"),
      last_four=card.get("four_digits"),
      brand=f"brand_{card['brand_id']}" if card.get("brand_id") else None,
      expiry=expiry,
      invoice_number=payload.get("invoice_number"),
      invoice_url=payload.get("invoice_link"),
      metadata=_parse_metadata(transaction.get("more_info_1"), transaction.get("more_info")),
    )

  expiry = None
  if payload.get("expiry_month") or payload.get("expiry_year"):
    expiry = f"{payload.get('expiry_month') or ''}/{payload.get('expiry_year') or ''}"
  return GatewayCallback(
    format="flat",
    status_code=payload.get("status_code"),
    transaction_ref=payload.get("transaction_uid"),
    customer_ref=payload.get("customer_uid"),
    token_ref=payload.get("token_uid"),
    last_four=payload.get("four_digits"),
    brand=payload.get("brand_name"),
    expiry=expiry,
    invoice_number=payload.get("invoice_number"),
    invoice_url=payload.get("invoice_link"),
    metadata=_parse_metadata(payload.get("more_info_1"), payload.get("more_info")),
  )


def handle_subscription_callback(
  session: Session,
  callback: GatewayCallback,
  settings: Optional[SettingsStore] = None,
  gateway: Optional[PaymentGateway] = None,
) -> CallbackOutcome:
  """
  Apply a verified subscription payment callback.

  Activation is a no-op for a store that already left the trial, in which
  case no invoice is written, so a repeated callback changes nothing.

  Raises:
      CallbackPayloadError: Not a subscription payment, or the token is missing
      SubscriptionNotFoundError: The store does not exist
  """
  metadata = callback.metadata
  store_id = metadata["storeId"]
  plan = metadata["plan"]

  if metadata.get("type") != SUBSCRIPTION_PAYMENT_TYPE:
    raise CallbackPayloadError(f"unknown payment type {metadata.get('type')!r}")
  if Store.get_by_id(store_id, session) is None:
    raise SubscriptionNotFoundError(store_id)

  BillingAuditLog.log_event(
    session=session,
    event_type=BillingEventType.CALLBACK_RECEIVED,
    description=f"Payment page callback ({callback.format}) status {callback.status_code}",
    actor_type="payplus_callback",
    store_id=store_id,
    event_data={
      "status_code": callback.status_code,
      "transaction_uid": callback.transaction_ref,
      "plan": plan,
    },
  )

  if not callback.is_success:
    logger.info(
      f"Payment page for store {store_id} was not successful: {callback.status_code}",
      extra={"store_id": store_id, "action": "callback_payment_failed"},
    )
    return CallbackOutcome(False, "Payment was not successful", store_id=store_id)

  if not callback.customer_ref or not callback.token_ref:
    raise CallbackPayloadError("missing customer_uid or token")

  settings = settings or SettingsStore()
  service = SubscriptionService(session, settings=settings, gateway=gateway)
  activation = service.activate(
    store_id,
    plan,
    customer_ref=callback.customer_ref,
    token_ref=callback.token_ref,
    card_info=CardInfo(
      last_four=callback.last_four, brand=callback.brand, expiry=callback.expiry
    ),
  )
  if not activation.activated:
    return CallbackOutcome(True, "Subscription already processed", store_id=store_id)

  subscription = activation.subscription
  base, vat = _paid_amounts(metadata, service.pricing, plan, subscription)
  plan_name = BillingConfig.get_plan_display_name(plan)

  invoice = service.ledger.record_invoice(
    store_id=store_id,
    subscription_id=subscription.id,
    invoice_type=InvoiceType.SUBSCRIPTION,
    amounts=InvoiceAmounts(subtotal=base, vat_rate=service.pricing.vat_rate(), vat_amount=vat),
    period_start=subscription.current_period_start,
    period_end=subscription.current_period_end,
    charge_result=ChargeResult(
      success=True,
      transaction_ref=callback.transaction_ref,
      invoice_number=callback.invoice_number,
      invoice_url=callback.invoice_url,
    ),
    description=f"{plan_name} monthly subscription",
    items=[
      InvoiceLineItem(
        description=f"{plan_name} monthly subscription",
        unit_price=base,
        reference_type="subscription",
        reference_id=plan,
      )
    ],
  )

  return CallbackOutcome(
    True, "Subscription activated", store_id=store_id, invoice_number=invoice.invoice_number
  )


def _paid_amounts(metadata, pricing: PricingService, plan: str, subscription):
  """Amounts the payment page charged, falling back to current pricing."""
  if metadata.get("basePrice") is not None and metadata.get("vatAmount") is not None:
    return round2(Decimal(str(metadata["basePrice"]))), round2(
      Decimal(str(metadata["vatAmount"]))
    )
  charge = pricing.subscription_charge(plan, subscription)
  return charge.base, charge.vat
