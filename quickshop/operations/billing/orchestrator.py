"""
Billing orchestrator.

Scheduled settlement cycles across all stores. Each job exposes a "find
due" query and a "process one store" operation; ``run_*`` drives them one
store at a time. A store is processed under a row lock on its subscription
and committed on its own, so a failure never affects other stores.

Charges always happen before the invoice is written, and every invoice is
keyed by (store, type, period) so a re-run cannot bill a period twice.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from ...config.billing import BillingConfig
from ...exceptions import InvoiceAlreadyPaidError, PaymentMethodMissingError
from ...logger import billing_logger as logger, log_billing_event, log_error
from ...models.billing import (
  BillingInvoice,
  InvoiceType,
  PluginPricing,
  StoreSubscription,
  SubscriptionPlan,
  TransactionFeeRecord,
)
from ...models.billing.subscription import BILLABLE_STATUSES
from ...models.commerce import StorePlugin
from ...utils.dates import add_months, utcnow
from .invoice_ledger import (
  InvoiceAmounts,
  InvoiceLedger,
  InvoiceLineItem,
  idempotency_key_for,
)
from .payment_gateway import GatewayLineItem, PaymentGateway, get_payment_gateway
from .pricing import PricingService, is_chargeable
from .settings_store import SettingsStore
from .subscription_service import SubscriptionService
from .trial_reconciliation import (
  SETTLEMENT_PAID,
  SETTLEMENT_SKIPPED,
  FeeSettlement,
  settle_transaction_fees,
)

JOB_RENEWAL = "subscription_renewal"
JOB_TRANSACTION_FEES = "transaction_fees"
JOB_PLUGIN_FEES = "plugin_fees"
JOB_TRIAL_EXPIRY = "trial_expiry"

OUTCOME_CHARGED = "charged"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_EXPIRED = "expired"
OUTCOME_ERROR = "error"


@dataclass
class StoreOutcome:
  """Result of processing one store in a billing job."""

  store_id: str
  status: str
  amount: Decimal = Decimal("0.00")
  invoice_number: Optional[str] = None
  reason: Optional[str] = None


@dataclass
class BillingRunSummary:
  """Aggregated results of one billing job run."""

  job: str
  processed: int = 0
  charged: int = 0
  failed: int = 0
  skipped: int = 0
  expired: int = 0
  errors: int = 0
  total_charged: Decimal = Decimal("0.00")
  duration_ms: float = 0.0
  outcomes: List[StoreOutcome] = field(default_factory=list)

  def add(self, outcome: StoreOutcome) -> None:
    self.processed += 1
    self.outcomes.append(outcome)
    if outcome.status == OUTCOME_CHARGED:
      self.charged += 1
      self.total_charged += outcome.amount
    elif outcome.status == OUTCOME_FAILED:
      self.failed += 1
    elif outcome.status == OUTCOME_EXPIRED:
      self.expired += 1
    elif outcome.status == OUTCOME_ERROR:
      self.errors += 1
    else:
      self.skipped += 1

  def to_dict(self) -> dict:
    return {
      "job": self.job,
      "processed": self.processed,
      "charged": self.charged,
      "failed": self.failed,
      "skipped": self.skipped,
      "expired": self.expired,
      "errors": self.errors,
      "total_charged": str(self.total_charged),
      "duration_ms": round(self.duration_ms, 2),
    }


class BillingOrchestrator:
  """Finds due stores and settles renewals, transaction fees and plugin fees."""

  def __init__(
    self,
    session: Session,
    settings: Optional[SettingsStore] = None,
    gateway: Optional[PaymentGateway] = None,
    clock: Callable[[], datetime] = utcnow,
  ):
    self.session = session
    self.settings = settings or SettingsStore()
    self._gateway = gateway
    self.clock = clock
    self.pricing = PricingService(self.settings, session)
    self.ledger = InvoiceLedger(session)
    self.subscriptions = SubscriptionService(
      session,
      settings=self.settings,
      gateway=gateway,
      ledger=self.ledger,
      clock=clock,
    )

  @property
  def gateway(self) -> PaymentGateway:
    """Gateway client, opened on the first charge."""
    if self._gateway is None:
      self._gateway = get_payment_gateway()
    return self._gateway

  # -- find due ---------------------------------------------------------------

  def find_due_renewals(self) -> List[str]:
    return [
      subscription.store_id
      for subscription in StoreSubscription.get_due_for_renewal(self.clock(), self.session)
    ]

  def find_due_transaction_fees(self) -> List[str]:
    return [subscription.store_id for subscription in StoreSubscription.get_billable(self.session)]

  def find_due_plugin_fees(self) -> List[str]:
    billable = {
      subscription.store_id for subscription in StoreSubscription.get_billable(self.session)
    }
    return [
      store_id
      for store_id in StorePlugin.get_store_ids_with_due_plugins(self.clock(), self.session)
      if store_id in billable
    ]

  def find_expired_trials(self) -> List[str]:
    return [
      subscription.store_id
      for subscription in StoreSubscription.get_expired_trials(self.clock(), self.session)
    ]

  # -- process one store ------------------------------------------------------

  def _lock_billable(self, store_id: str) -> Optional[StoreSubscription]:
    subscription = StoreSubscription.get_for_update(store_id, self.session)
    if subscription is None or subscription.status not in BILLABLE_STATUSES:
      return None
    return subscription

  def process_renewal(self, store_id: str) -> StoreOutcome:
    """Charge the next month of a paid plan whose period has ended."""
    now = self.clock()
    subscription = self._lock_billable(store_id)
    if (
      subscription is None
      or subscription.plan == SubscriptionPlan.TRIAL.value
      or subscription.current_period_end is None
      or subscription.current_period_end > now
    ):
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="not due")

    if not subscription.has_payment_method():
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="no payment method")

    invoice_type = InvoiceType.SUBSCRIPTION.value
    period_start = subscription.current_period_end
    period_end = add_months(period_start)
    try:
      self.ledger.ensure_not_paid(store_id, invoice_type, period_start, period_end)
    except InvoiceAlreadyPaidError as e:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason=e.message)

    charge = self.pricing.subscription_charge(subscription.plan, subscription)
    plan_name = BillingConfig.get_plan_display_name(subscription.plan)
    description = f"{plan_name} subscription renewal {period_start:%Y-%m-%d} - {period_end:%Y-%m-%d}"
    idempotency_key = idempotency_key_for(store_id, invoice_type, period_start, period_end)

    result = self.gateway.charge_with_token(
      token_ref=subscription.gateway_token_ref,
      customer_ref=subscription.gateway_customer_ref,
      amount=charge.total,
      line_items=[GatewayLineItem(name=f"{plan_name} monthly subscription", price=charge.total)],
      description=description,
      idempotency_key=idempotency_key,
    )
    invoice = self.ledger.record_invoice(
      store_id=store_id,
      subscription_id=subscription.id,
      invoice_type=invoice_type,
      amounts=InvoiceAmounts(
        subtotal=charge.base, vat_rate=self.pricing.vat_rate(), vat_amount=charge.vat
      ),
      period_start=period_start,
      period_end=period_end,
      charge_result=result,
      description=description,
      idempotency_key=idempotency_key,
      items=[
        InvoiceLineItem(
          description=f"{plan_name} monthly subscription",
          unit_price=charge.base,
          reference_type="subscription",
          reference_id=subscription.plan,
        )
      ],
    )

    if not result.success:
      self.subscriptions.mark_past_due(store_id, reason=result.error)
      return StoreOutcome(
        store_id, OUTCOME_FAILED, invoice.total_amount, invoice.invoice_number, result.error
      )

    self.subscriptions.advance_period(subscription)
    self.subscriptions.restore_active(store_id)
    return StoreOutcome(store_id, OUTCOME_CHARGED, invoice.total_amount, invoice.invoice_number)

  def process_transaction_fees(self, store_id: str) -> StoreOutcome:
    """Charge the fee on orders paid since the store's fee watermark."""
    now = self.clock()
    subscription = self._lock_billable(store_id)
    if subscription is None:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="not billable")

    window_start = (
      TransactionFeeRecord.get_latest_period_end(store_id, self.session)
      or subscription.activated_at
      or subscription.created_at
    )
    window_end = now
    failed = BillingInvoice.get_latest_failed(
      store_id, InvoiceType.TRANSACTION_FEE.value, self.session
    )
    if failed is not None and failed.period_start != window_start:
      failed = None
    if failed is not None:
      # Retry the failed window as-is so it keeps its invoice and key
      window_end = failed.period_end

    if window_end <= window_start:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="empty window")

    try:
      settlement = self._settle_fees(subscription, window_start, window_end)
      if settlement.status == SETTLEMENT_SKIPPED and failed is not None:
        # The failed window no longer reaches the minimum charge
        self.ledger.cancel_invoice(failed, reason="fees below minimum charge on retry")
        settlement = self._settle_fees(subscription, window_start, now)
    except (PaymentMethodMissingError, InvoiceAlreadyPaidError) as e:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason=e.message)

    if settlement.status == SETTLEMENT_SKIPPED:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="below minimum charge")

    invoice = settlement.invoice
    if settlement.status != SETTLEMENT_PAID:
      self.subscriptions.mark_past_due(store_id, reason=settlement.error)
      return StoreOutcome(
        store_id, OUTCOME_FAILED, invoice.total_amount, invoice.invoice_number, settlement.error
      )

    self.subscriptions.restore_active(store_id)
    return StoreOutcome(store_id, OUTCOME_CHARGED, invoice.total_amount, invoice.invoice_number)

  def _settle_fees(
    self, subscription: StoreSubscription, window_start: datetime, window_end: datetime
  ) -> FeeSettlement:
    return settle_transaction_fees(
      self.session,
      self.pricing,
      self.gateway,
      self.ledger,
      subscription,
      window_start,
      window_end,
    )

  def process_plugin_fees(self, store_id: str) -> StoreOutcome:
    """Charge all due plugins of a store as one combined monthly charge."""
    now = self.clock()
    subscription = self._lock_billable(store_id)
    if subscription is None:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="not billable")

    due = StorePlugin.get_due_for_billing(store_id, now, self.session)
    prices = PluginPricing.get_price_map([plugin.plugin_slug for plugin in due], self.session)
    plugins = [plugin for plugin in due if plugin.plugin_slug in prices]
    if not plugins:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="no plugins due")

    charge = self.pricing.plugin_charge(prices[plugin.plugin_slug] for plugin in plugins)
    if not is_chargeable(charge.total):
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="below minimum charge")

    if not subscription.has_payment_method():
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="no payment method")

    for plugin in plugins:
      if plugin.next_billing_date is None:
        # Pin the first period so a failed charge is retried under the same key
        plugin.next_billing_date = now

    invoice_type = InvoiceType.PLUGIN.value
    period_start = min(plugin.next_billing_date for plugin in plugins)
    period_end = add_months(period_start)
    try:
      self.ledger.ensure_not_paid(store_id, invoice_type, period_start, period_end)
    except InvoiceAlreadyPaidError as e:
      return StoreOutcome(store_id, OUTCOME_SKIPPED, reason=e.message)

    description = f"Plugins - {len(plugins)} active plugins"
    idempotency_key = idempotency_key_for(store_id, invoice_type, period_start, period_end)

    result = self.gateway.charge_with_token(
      token_ref=subscription.gateway_token_ref,
      customer_ref=subscription.gateway_customer_ref,
      amount=charge.total,
      line_items=[GatewayLineItem(name=description, price=charge.total)],
      description=description,
      idempotency_key=idempotency_key,
    )
    invoice = self.ledger.record_invoice(
      store_id=store_id,
      subscription_id=subscription.id,
      invoice_type=invoice_type,
      amounts=InvoiceAmounts(
        subtotal=charge.subtotal, vat_rate=self.pricing.vat_rate(), vat_amount=charge.vat
      ),
      period_start=period_start,
      period_end=period_end,
      charge_result=result,
      description=description,
      idempotency_key=idempotency_key,
      items=[
        InvoiceLineItem(
          description=f"Plugin: {plugin.plugin_slug}",
          unit_price=prices[plugin.plugin_slug],
          reference_type="plugin",
          reference_id=plugin.plugin_slug,
        )
        for plugin in plugins
      ],
    )

    if not result.success:
      self.subscriptions.mark_past_due(store_id, reason=result.error)
      return StoreOutcome(
        store_id, OUTCOME_FAILED, invoice.total_amount, invoice.invoice_number, result.error
      )

    for plugin in plugins:
      plugin.last_billing_date = now
      plugin.next_billing_date = add_months(plugin.next_billing_date)
    self.session.flush()

    self.subscriptions.restore_active(store_id)
    return StoreOutcome(store_id, OUTCOME_CHARGED, invoice.total_amount, invoice.invoice_number)

  def process_trial_expiry(self, store_id: str) -> StoreOutcome:
    if self.subscriptions.expire(store_id):
      return StoreOutcome(store_id, OUTCOME_EXPIRED)
    return StoreOutcome(store_id, OUTCOME_SKIPPED, reason="trial not expired")

  # -- batch runs -------------------------------------------------------------

  def _run(
    self,
    job: str,
    store_ids: Iterable[str],
    process: Callable[[str], StoreOutcome],
  ) -> BillingRunSummary:
    summary = BillingRunSummary(job=job)
    start_time = time.time()

    for store_id in store_ids:
      try:
        outcome = process(store_id)
        self.session.commit()
      except Exception as e:
        self.session.rollback()
        log_error(
          logger,
          e,
          component="billing_orchestrator",
          action=job,
          error_category="billing",
          store_id=store_id,
        )
        outcome = StoreOutcome(store_id, OUTCOME_ERROR, reason=str(e))

      summary.add(outcome)
      if outcome.status in (OUTCOME_CHARGED, OUTCOME_FAILED):
        log_billing_event(
          logger,
          action=job,
          store_id=store_id,
          success=outcome.status == OUTCOME_CHARGED,
          amount=outcome.amount,
          metadata={"invoice_number": outcome.invoice_number, "reason": outcome.reason},
        )

    summary.duration_ms = (time.time() - start_time) * 1000
    logger.info(
      f"Billing job {job} finished: {summary.charged} charged, {summary.failed} failed, "
      f"{summary.skipped} skipped, {summary.errors} errors",
      extra={"job": job, "duration_ms": summary.duration_ms, "metadata": summary.to_dict()},
    )
    return summary

  def run_renewals(self, store_ids: Optional[Iterable[str]] = None) -> BillingRunSummary:
    store_ids = self.find_due_renewals() if store_ids is None else store_ids
    return self._run(JOB_RENEWAL, store_ids, self.process_renewal)

  def run_transaction_fees(self, store_ids: Optional[Iterable[str]] = None) -> BillingRunSummary:
    store_ids = self.find_due_transaction_fees() if store_ids is None else store_ids
    return self._run(JOB_TRANSACTION_FEES, store_ids, self.process_transaction_fees)

  def run_plugin_fees(self, store_ids: Optional[Iterable[str]] = None) -> BillingRunSummary:
    store_ids = self.find_due_plugin_fees() if store_ids is None else store_ids
    return self._run(JOB_PLUGIN_FEES, store_ids, self.process_plugin_fees)

  def run_trial_expiry(self, store_ids: Optional[Iterable[str]] = None) -> BillingRunSummary:
    store_ids = self.find_expired_trials() if store_ids is None else store_ids
    return self._run(JOB_TRIAL_EXPIRY, store_ids, self.process_trial_expiry)
