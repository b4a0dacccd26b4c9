"""
Transaction fee settlement and trial reconciliation.

``settle_transaction_fees`` charges the platform fee on a store's paid
orders inside a window and is shared by the scheduled fee job and the
one-off reconciliation that runs when a trial converts to a paid plan.

Reconciliation is best-effort: any failure is captured in the returned
``ReconciliationResult`` and the audit log, never raised to ``activate()``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ...exceptions import PaymentMethodMissingError
from ...logger import billing_logger as logger, log_error
from ...models.billing import (
  BillingAuditLog,
  BillingEventType,
  BillingInvoice,
  InvoiceType,
  StoreSubscription,
  TransactionFeeRecord,
)
from ...models.commerce import Order
from .invoice_ledger import (
  InvoiceAmounts,
  InvoiceLedger,
  InvoiceLineItem,
  idempotency_key_for,
)
from .payment_gateway import GatewayLineItem, PaymentGateway
from .pricing import PricingService, TransactionFee, is_chargeable, round2

SETTLEMENT_SKIPPED = "skipped"
SETTLEMENT_PAID = "paid"
SETTLEMENT_FAILED = "failed"


@dataclass
class FeeSettlement:
  """Outcome of charging the transaction fees of one window."""

  status: str
  window_start: datetime
  window_end: datetime
  transactions_amount: Decimal = Decimal("0.00")
  order_ids: List[str] = field(default_factory=list)
  fee: Optional[TransactionFee] = None
  invoice: Optional[BillingInvoice] = None
  record: Optional[TransactionFeeRecord] = None
  error: Optional[str] = None

  @property
  def success(self) -> bool:
    return self.status == SETTLEMENT_PAID


@dataclass
class ReconciliationResult:
  """Outcome of settling the fees accrued during a trial."""

  status: str
  window_start: Optional[datetime] = None
  window_end: Optional[datetime] = None
  transactions_amount: Decimal = Decimal("0.00")
  order_count: int = 0
  total_fee: Decimal = Decimal("0.00")
  invoice_number: Optional[str] = None
  error: Optional[str] = None


def settle_transaction_fees(
  session: Session,
  pricing: PricingService,
  gateway: PaymentGateway,
  ledger: InvoiceLedger,
  subscription: StoreSubscription,
  window_start: datetime,
  window_end: datetime,
) -> FeeSettlement:
  """
  Charge the fee on paid orders with ``window_start <= paid_at < window_end``.

  Orders already listed in a fee record are excluded. Nothing is charged or
  recorded when the fee is below the minimum charge.

  Raises:
      PaymentMethodMissingError: A fee is due but no card token is stored
      InvoiceAlreadyPaidError: The window is already paid
  """
  store_id = subscription.store_id
  orders = Order.get_paid_orders(
    store_id,
    window_start,
    window_end,
    session,
    exclude_ids=TransactionFeeRecord.get_billed_order_ids(store_id, session),
  )
  settlement = FeeSettlement(
    status=SETTLEMENT_SKIPPED,
    window_start=window_start,
    window_end=window_end,
    transactions_amount=round2(Order.sum_totals(orders)),
    order_ids=[order.id for order in orders],
  )
  if not orders:
    return settlement

  fee = pricing.transaction_fee_charge(settlement.transactions_amount, subscription)
  settlement.fee = fee
  if not is_chargeable(fee.total_fee):
    logger.debug(
      f"Transaction fee {fee.total_fee} below minimum charge for store {store_id}"
    )
    return settlement

  if not subscription.has_payment_method():
    raise PaymentMethodMissingError(store_id)

  invoice_type = InvoiceType.TRANSACTION_FEE.value
  ledger.ensure_not_paid(store_id, invoice_type, window_start, window_end)
  idempotency_key = idempotency_key_for(store_id, invoice_type, window_start, window_end)

  rate_display = f"{fee.applied_rate * 100:.1f}%"
  description = (
    f"Transaction fees {window_start:%Y-%m-%d} - {window_end:%Y-%m-%d} "
    f"({len(orders)} orders)"
  )

  charge = gateway.charge_with_token(
    token_ref=subscription.gateway_token_ref,
    customer_ref=subscription.gateway_customer_ref,
    amount=fee.total_fee,
    line_items=[GatewayLineItem(name=f"Transaction fees ({rate_display})", price=fee.total_fee)],
    description=description,
    idempotency_key=idempotency_key,
  )

  settlement.invoice = ledger.record_invoice(
    store_id=store_id,
    subscription_id=subscription.id,
    invoice_type=invoice_type,
    amounts=InvoiceAmounts(
      subtotal=fee.fee_amount,
      vat_rate=pricing.vat_rate(),
      vat_amount=fee.vat_amount,
    ),
    period_start=window_start,
    period_end=window_end,
    charge_result=charge,
    description=description,
    idempotency_key=idempotency_key,
    items=[
      InvoiceLineItem(
        description=(
          f"Transaction fees ({rate_display} of {settlement.transactions_amount})"
        ),
        unit_price=fee.fee_amount,
        reference_type="transaction_fee",
        reference_id=f"{window_start.isoformat()}_{window_end.isoformat()}",
      )
    ],
  )

  if not charge.success:
    settlement.status = SETTLEMENT_FAILED
    settlement.error = charge.error
    return settlement

  record = TransactionFeeRecord(
    store_id=store_id,
    period_start=window_start,
    period_end=window_end,
    total_transactions_amount=settlement.transactions_amount,
    total_transactions_count=len(orders),
    fee_rate=fee.applied_rate,
    fee_amount=fee.fee_amount,
    invoice_id=settlement.invoice.id,
    order_ids=settlement.order_ids,
  )
  session.add(record)
  session.flush()

  settlement.record = record
  settlement.status = SETTLEMENT_PAID
  return settlement


class TrialReconciliationEngine:
  """Settles the transaction fees a store accrued during its trial."""

  def __init__(
    self,
    session: Session,
    pricing: PricingService,
    gateway: PaymentGateway,
    ledger: Optional[InvoiceLedger] = None,
  ):
    self.session = session
    self.pricing = pricing
    self.gateway = gateway
    self.ledger = ledger or InvoiceLedger(session)

  def reconcile(self, subscription: StoreSubscription, now: datetime) -> ReconciliationResult:
    """
    Charge the fees of paid orders in ``[subscription.created_at, now)``.

    Runs inside a savepoint; a failure rolls back only the reconciliation's
    own writes and is reported through the result.
    """
    store_id = subscription.store_id
    window_start = subscription.created_at
    result = ReconciliationResult(
      status=SETTLEMENT_SKIPPED, window_start=window_start, window_end=now
    )

    try:
      with self.session.begin_nested():
        settlement = settle_transaction_fees(
          self.session,
          self.pricing,
          self.gateway,
          self.ledger,
          subscription,
          window_start,
          now,
        )
    except Exception as e:
      log_error(
        logger,
        e,
        component="trial_reconciliation",
        action="reconcile",
        error_category="billing",
        store_id=store_id,
      )
      result.status = SETTLEMENT_FAILED
      result.error = str(e)
      BillingAuditLog.log_event(
        session=self.session,
        event_type=BillingEventType.TRIAL_FEES_FAILED,
        description=f"Trial fee reconciliation failed: {e}",
        store_id=store_id,
        subscription_id=subscription.id,
        event_data={"error": str(e)},
      )
      return result

    result.transactions_amount = settlement.transactions_amount
    result.order_count = len(settlement.order_ids)
    if settlement.fee is not None and settlement.invoice is not None:
      result.total_fee = settlement.fee.total_fee
    if settlement.invoice is not None:
      result.invoice_number = settlement.invoice.invoice_number

    if settlement.status == SETTLEMENT_SKIPPED:
      logger.info(
        f"No trial fees to charge for store {store_id}",
        extra={"store_id": store_id, "action": "trial_reconciliation_skipped"},
      )
      return result

    result.status = "charged" if settlement.success else SETTLEMENT_FAILED
    result.error = settlement.error

    BillingAuditLog.log_event(
      session=self.session,
      event_type=(
        BillingEventType.TRIAL_FEES_RECONCILED
        if settlement.success
        else BillingEventType.TRIAL_FEES_FAILED
      ),
      description=(
        f"Trial fees {result.total_fee} for {result.order_count} orders: {result.status}"
      ),
      store_id=store_id,
      subscription_id=subscription.id,
      invoice_id=settlement.invoice.id if settlement.invoice else None,
      event_data={
        "transactions_amount": str(result.transactions_amount),
        "total_fee": str(result.total_fee),
        "error": result.error,
      },
    )
    return result
