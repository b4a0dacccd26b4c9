"""
Invoice ledger.

Allocates invoice numbers, persists invoices with their line items and
guards against billing a period that is already paid. Invoices are always
written after the gateway was contacted so they reflect the real outcome;
failed charges keep their invoice (and number) for the next retry.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ...config.constants import (
  INVOICE_NUMBER_PREFIX,
  INVOICE_SEQUENCE_DIGITS,
  RECENT_INVOICES_LIMIT,
)
from ...exceptions import InvoiceAlreadyPaidError, InvoiceTotalsMismatchError
from ...logger import billing_logger as logger, log_billing_event
from ...models.billing import (
  BillingAuditLog,
  BillingEventType,
  BillingInvoice,
  BillingInvoiceItem,
  InvoiceSequence,
  InvoiceStatus,
  InvoiceType,
  PluginPricing,
  StoreSubscription,
  TransactionFeeRecord,
)
from ...models.commerce import Order, StorePlugin
from ...utils.dates import utcnow
from .payment_gateway import ChargeResult
from .pricing import round2


@dataclass(frozen=True)
class InvoiceAmounts:
  """Invoice money; the total is always subtotal plus VAT."""

  subtotal: Decimal
  vat_rate: Decimal
  vat_amount: Decimal

  @property
  def total(self) -> Decimal:
    return self.subtotal + self.vat_amount


@dataclass(frozen=True)
class InvoiceLineItem:
  description: str
  unit_price: Decimal
  quantity: int = 1
  reference_type: Optional[str] = None
  reference_id: Optional[str] = None

  @property
  def total_price(self) -> Decimal:
    return round2(Decimal(str(self.unit_price)) * self.quantity)


@dataclass
class BillingSummary:
  """Billing overview of one store."""

  store_id: str
  subscription_status: Optional[str]
  plan: Optional[str]
  current_period_end: Optional[datetime]
  recent_invoices: List[BillingInvoice] = field(default_factory=list)
  outstanding_transaction_fees: Decimal = Decimal("0.00")
  outstanding_plugin_fees: Decimal = Decimal("0.00")
  unbilled_transactions_amount: Decimal = Decimal("0.00")
  active_plugins: List[dict] = field(default_factory=list)


def format_invoice_number(year: int, sequence: int) -> str:
  return f"{INVOICE_NUMBER_PREFIX}-{year}-{sequence:0{INVOICE_SEQUENCE_DIGITS}d}"


def parse_invoice_sequence(invoice_number: Optional[str]) -> int:
  """Sequence part of an invoice number, 0 when it cannot be parsed."""
  if not invoice_number:
    return 0
  try:
    return int(invoice_number.rsplit("-", 1)[1])
  except (IndexError, ValueError):
    return 0


def idempotency_key_for(
  store_id: str, invoice_type: str, period_start: datetime, period_end: datetime
) -> str:
  """Stable key identifying one billing period of a store."""
  raw = f"{store_id}|{invoice_type}|{period_start.isoformat()}|{period_end.isoformat()}"
  return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class InvoiceLedger:
  """Invoice persistence bound to the caller's session and transaction."""

  def __init__(self, session: Session):
    self.session = session

  def next_invoice_number(self, year: Optional[int] = None) -> str:
    """
    Allocate the next invoice number of a year.

    Numbers come from the ``invoice_sequences`` counter, whose row stays
    locked until the caller's transaction ends. The counter of a new year is
    seeded from the highest number already issued that year.
    """
    year = year or utcnow().year
    seed = parse_invoice_sequence(
      BillingInvoice.get_max_number_for_year(year, self.session)
    )
    sequence = InvoiceSequence.next_value(year, self.session, seed=seed)
    return format_invoice_number(year, sequence)

  def ensure_not_paid(
    self,
    store_id: str,
    invoice_type: str,
    period_start: datetime,
    period_end: datetime,
  ) -> Optional[BillingInvoice]:
    """
    Reject a period that already has a paid invoice.

    Returns:
        The unpaid invoice of the period, if any

    Raises:
        InvoiceAlreadyPaidError: The period is already paid
    """
    existing = BillingInvoice.get_for_period(
      store_id, invoice_type, period_start, period_end, self.session
    )
    if existing is not None and existing.is_paid():
      raise InvoiceAlreadyPaidError(
        store_id,
        invoice_type,
        period_start,
        period_end,
        invoice_number=existing.invoice_number,
      )
    return existing

  def record_invoice(
    self,
    store_id: str,
    subscription_id: Optional[str],
    invoice_type: InvoiceType | str,
    amounts: InvoiceAmounts,
    period_start: datetime,
    period_end: datetime,
    charge_result: ChargeResult,
    description: str,
    idempotency_key: Optional[str] = None,
    items: Optional[Sequence[InvoiceLineItem]] = None,
  ) -> BillingInvoice:
    """
    Persist the outcome of a charge attempt as an invoice.

    A failed or pending invoice for the same period is reused with its
    number and an incremented attempt count.

    Raises:
        InvoiceAlreadyPaidError: The period is already paid
        InvoiceTotalsMismatchError: Line items do not add up to the subtotal
    """
    invoice_type = InvoiceType(invoice_type).value
    now = utcnow()

    invoice = self.ensure_not_paid(store_id, invoice_type, period_start, period_end)
    if invoice is None:
      invoice = BillingInvoice(
        invoice_number=self.next_invoice_number(now.year),
        store_id=store_id,
        type=invoice_type,
        period_start=period_start,
        period_end=period_end,
        charge_attempts=0,
      )
      self.session.add(invoice)

    invoice.subscription_id = subscription_id
    invoice.subtotal = amounts.subtotal
    invoice.vat_rate = amounts.vat_rate
    invoice.vat_amount = amounts.vat_amount
    invoice.total_amount = amounts.total
    invoice.description = description
    invoice.idempotency_key = idempotency_key or idempotency_key_for(
      store_id, invoice_type, period_start, period_end
    )
    invoice.charge_attempts = (invoice.charge_attempts or 0) + 1
    invoice.last_charge_attempt = now
    invoice.issued_at = invoice.issued_at or now

    if charge_result.success:
      invoice.status = InvoiceStatus.PAID.value
      invoice.paid_at = now
      invoice.gateway_transaction_ref = charge_result.transaction_ref
      invoice.gateway_invoice_number = charge_result.invoice_number
      invoice.gateway_invoice_url = charge_result.invoice_url
      invoice.last_charge_error = None
    else:
      invoice.status = InvoiceStatus.FAILED.value
      invoice.last_charge_error = charge_result.error or "Unknown error"

    if items:
      invoice.items.clear()
      self.record_line_items(invoice, items)

    self.session.flush()

    BillingAuditLog.log_event(
      session=self.session,
      event_type=(
        BillingEventType.PAYMENT_SUCCEEDED
        if charge_result.success
        else BillingEventType.PAYMENT_FAILED
      ),
      description=f"Invoice {invoice.invoice_number} {invoice.status}",
      store_id=store_id,
      subscription_id=subscription_id,
      invoice_id=invoice.id,
      event_data={
        "type": invoice_type,
        "total": str(invoice.total_amount),
        "attempt": invoice.charge_attempts,
        "error": invoice.last_charge_error,
      },
    )
    log_billing_event(
      logger,
      action=f"{invoice_type}_invoice_recorded",
      store_id=store_id,
      success=charge_result.success,
      amount=invoice.total_amount,
      metadata={
        "invoice_number": invoice.invoice_number,
        "attempt": invoice.charge_attempts,
        "error": invoice.last_charge_error,
      },
    )

    return invoice

  def record_line_items(
    self, invoice: BillingInvoice, items: Sequence[InvoiceLineItem]
  ) -> List[BillingInvoiceItem]:
    """
    Attach line items to an invoice.

    Raises:
        InvoiceTotalsMismatchError: Item totals do not sum to the subtotal
    """
    items_total = sum((item.total_price for item in items), Decimal("0"))
    subtotal = round2(invoice.subtotal)
    if round2(items_total) != subtotal:
      raise InvoiceTotalsMismatchError(invoice.invoice_number, subtotal, items_total)

    rows = []
    for item in items:
      row = BillingInvoiceItem(
        description=item.description,
        quantity=item.quantity,
        unit_price=round2(item.unit_price),
        total_price=item.total_price,
        reference_type=item.reference_type,
        reference_id=item.reference_id,
      )
      invoice.items.append(row)
      rows.append(row)

    return rows

  def cancel_invoice(self, invoice: BillingInvoice, reason: str) -> BillingInvoice:
    """Cancel an unpaid invoice so its period is no longer retried."""
    if invoice.status == InvoiceStatus.PAID.value:
      raise InvoiceAlreadyPaidError(
        invoice.store_id,
        invoice.type,
        invoice.period_start,
        invoice.period_end,
        invoice_number=invoice.invoice_number,
      )

    invoice.status = InvoiceStatus.CANCELLED.value
    invoice.last_charge_error = reason
    self.session.flush()

    BillingAuditLog.log_event(
      session=self.session,
      event_type=BillingEventType.INVOICE_CANCELLED,
      description=f"Invoice {invoice.invoice_number} cancelled: {reason}",
      store_id=invoice.store_id,
      subscription_id=invoice.subscription_id,
      invoice_id=invoice.id,
      event_data={"type": invoice.type, "reason": reason},
    )
    logger.info(
      f"Cancelled invoice {invoice.invoice_number}: {reason}",
      extra={"store_id": invoice.store_id, "action": "invoice_cancelled"},
    )
    return invoice

  def get_store_billing_summary(self, store_id: str) -> BillingSummary:
    """Recent invoices, outstanding fees and active plugins of a store."""
    subscription = StoreSubscription.get_by_store_id(store_id, self.session)

    summary = BillingSummary(
      store_id=store_id,
      subscription_status=subscription.status if subscription else None,
      plan=subscription.plan if subscription else None,
      current_period_end=subscription.current_period_end if subscription else None,
      recent_invoices=BillingInvoice.get_recent_for_store(
        store_id, self.session, limit=RECENT_INVOICES_LIMIT
      ),
    )

    outstanding = BillingInvoice.get_outstanding(
      store_id,
      [InvoiceType.TRANSACTION_FEE.value, InvoiceType.PLUGIN.value],
      self.session,
    )
    for invoice in outstanding:
      amount = Decimal(str(invoice.total_amount))
      if invoice.type == InvoiceType.TRANSACTION_FEE.value:
        summary.outstanding_transaction_fees += amount
      else:
        summary.outstanding_plugin_fees += amount

    if subscription is not None:
      window_start = (
        TransactionFeeRecord.get_latest_period_end(store_id, self.session)
        or subscription.activated_at
        or subscription.created_at
      )
      unbilled = Order.get_paid_orders(
        store_id,
        window_start,
        utcnow(),
        self.session,
        exclude_ids=TransactionFeeRecord.get_billed_order_ids(store_id, self.session),
      )
      summary.unbilled_transactions_amount = round2(Order.sum_totals(unbilled))

    plugins = (
      self.session.query(StorePlugin.plugin_slug, PluginPricing.monthly_price)
      .outerjoin(PluginPricing, PluginPricing.plugin_slug == StorePlugin.plugin_slug)
      .filter(StorePlugin.store_id == store_id, StorePlugin.is_active.is_(True))
      .order_by(StorePlugin.plugin_slug)
      .all()
    )
    summary.active_plugins = [
      {"slug": slug, "monthly_price": Decimal(str(price or 0))}
      for slug, price in plugins
    ]

    return summary
