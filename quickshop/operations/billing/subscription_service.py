"""
Store subscription lifecycle.

Transitions follow ``SUBSCRIPTION_TRANSITIONS``. A transition requested from
a state that has no such edge is a no-op returning ``False`` so overlapping
or retried batch runs stay idempotent. Every applied transition writes a
billing audit log row.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...config.billing import BillingConfig
from ...exceptions import SubscriptionNotFoundError, UnknownPlanError
from ...logger import billing_logger as logger, log_billing_event
from ...models.billing import (
  BillingAuditLog,
  BillingEventType,
  StoreSubscription,
  SubscriptionStatus,
)
from ...models.commerce import Store
from ...utils.dates import add_months, utcnow
from .invoice_ledger import InvoiceLedger
from .payment_gateway import PaymentGateway, get_payment_gateway
from .pricing import PricingService
from .settings_store import SettingsStore
from .trial_reconciliation import ReconciliationResult, TrialReconciliationEngine


@dataclass(frozen=True)
class CardInfo:
  last_four: Optional[str] = None
  brand: Optional[str] = None
  expiry: Optional[str] = None


@dataclass
class ActivationResult:
  """Outcome of converting a trial to a paid plan."""

  activated: bool
  subscription: Optional[StoreSubscription] = None
  reconciliation: Optional[ReconciliationResult] = None


class SubscriptionService:
  """Owns the per-store subscription record and its transitions."""

  def __init__(
    self,
    session: Session,
    settings: Optional[SettingsStore] = None,
    gateway: Optional[PaymentGateway] = None,
    ledger: Optional[InvoiceLedger] = None,
    clock: Callable[[], datetime] = utcnow,
  ):
    self.session = session
    self.settings = settings or SettingsStore()
    self.pricing = PricingService(self.settings, session)
    self._gateway = gateway
    self.ledger = ledger or InvoiceLedger(session)
    self.clock = clock

  @property
  def gateway(self) -> PaymentGateway:
    if self._gateway is None:
      self._gateway = get_payment_gateway()
    return self._gateway

  def get_or_create(self, store_id: str) -> StoreSubscription:
    """
    Get a store's subscription, creating its trial on first access.

    Raises:
        SubscriptionNotFoundError: The store does not exist
    """
    subscription = StoreSubscription.get_by_store_id(store_id, self.session)
    if subscription is not None:
      return subscription

    if Store.get_by_id(store_id, self.session) is None:
      raise SubscriptionNotFoundError(store_id)

    subscription = StoreSubscription.create_trial(
      store_id, self.pricing.trial_days(), self.session, now=self.clock()
    )
    BillingAuditLog.log_event(
      session=self.session,
      event_type=BillingEventType.SUBSCRIPTION_CREATED,
      description=f"Trial subscription created, ends {subscription.trial_ends_at:%Y-%m-%d}",
      store_id=store_id,
      subscription_id=subscription.id,
    )
    return subscription

  def _lock(self, store_id: str) -> StoreSubscription:
    self.session.flush()
    subscription = StoreSubscription.get_for_update(store_id, self.session)
    if subscription is None:
      subscription = self.get_or_create(store_id)
    return subscription

  def _transition(
    self,
    subscription: StoreSubscription,
    target: SubscriptionStatus,
    event_type: BillingEventType,
    description: str,
    event_data: Optional[dict] = None,
  ) -> bool:
    if not subscription.can_transition_to(target):
      logger.debug(
        f"Ignoring {subscription.status} -> {target.value} for store {subscription.store_id}",
        extra={"store_id": subscription.store_id, "action": "transition_ignored"},
      )
      return False

    previous = subscription.status
    subscription.status = target.value
    self.session.flush()

    BillingAuditLog.log_event(
      session=self.session,
      event_type=event_type,
      description=description,
      store_id=subscription.store_id,
      subscription_id=subscription.id,
      event_data={"from": previous, "to": target.value, **(event_data or {})},
    )
    log_billing_event(
      logger,
      action=event_type.value,
      store_id=subscription.store_id,
      metadata={"from": previous, "to": target.value},
    )
    return True

  def activate(
    self,
    store_id: str,
    plan: str,
    customer_ref: Optional[str],
    token_ref: str,
    card_info: Optional[CardInfo] = None,
    billing_email: Optional[str] = None,
    billing_name: Optional[str] = None,
  ) -> ActivationResult:
    """
    Convert a trial into a paid plan and settle the trial's fees.

    Raises:
        UnknownPlanError: ``plan`` is not a paid plan
    """
    if plan not in BillingConfig.get_paid_plans():
      raise UnknownPlanError(plan)

    subscription = self._lock(store_id)
    now = self.clock()
    period_end = add_months(now)

    if not self._transition(
      subscription,
      SubscriptionStatus.ACTIVE,
      BillingEventType.SUBSCRIPTION_ACTIVATED,
      f"Subscription activated on {plan}",
      {"plan": plan},
    ):
      return ActivationResult(activated=False, subscription=subscription)

    card_info = card_info or CardInfo()
    subscription.plan = plan
    subscription.activated_at = now
    subscription.current_period_start = now
    subscription.current_period_end = period_end
    subscription.gateway_customer_ref = customer_ref
    subscription.gateway_token_ref = token_ref
    subscription.card_last_four = card_info.last_four
    subscription.card_brand = card_info.brand
    subscription.card_expiry = card_info.expiry
    if billing_email:
      subscription.billing_email = billing_email
    if billing_name:
      subscription.billing_name = billing_name

    store = Store.get_by_id(store_id, self.session)
    if store is not None:
      store.plan = plan
      store.plan_expires_at = period_end
    self.session.flush()

    reconciliation = TrialReconciliationEngine(
      self.session, self.pricing, self.gateway, self.ledger
    ).reconcile(subscription, now)

    return ActivationResult(
      activated=True, subscription=subscription, reconciliation=reconciliation
    )

  def mark_past_due(self, store_id: str, reason: Optional[str] = None) -> bool:
    subscription = self._lock(store_id)
    return self._transition(
      subscription,
      SubscriptionStatus.PAST_DUE,
      BillingEventType.SUBSCRIPTION_PAST_DUE,
      f"Subscription past due: {reason or 'charge failed'}",
      {"reason": reason},
    )

  def restore_active(self, store_id: str) -> bool:
    subscription = self._lock(store_id)
    return self._transition(
      subscription,
      SubscriptionStatus.ACTIVE,
      BillingEventType.SUBSCRIPTION_RESTORED,
      "Subscription restored after a successful charge",
    )

  def expire(self, store_id: str) -> bool:
    """Expire an unconverted trial and take the storefront offline."""
    subscription = self._lock(store_id)
    now = self.clock()
    if subscription.trial_ends_at is None or now <= subscription.trial_ends_at:
      logger.debug(f"Trial of store {store_id} has not ended, not expiring")
      return False

    if not self._transition(
      subscription,
      SubscriptionStatus.EXPIRED,
      BillingEventType.SUBSCRIPTION_EXPIRED,
      f"Trial ended {subscription.trial_ends_at:%Y-%m-%d} without activation",
    ):
      return False

    store = Store.get_by_id(store_id, self.session)
    if store is not None:
      store.deactivate(self.session)
    return True

  def cancel(self, store_id: str, reason: Optional[str] = None) -> bool:
    subscription = self._lock(store_id)
    if not self._transition(
      subscription,
      SubscriptionStatus.CANCELLED,
      BillingEventType.SUBSCRIPTION_CANCELLED,
      f"Subscription cancelled: {reason or 'no reason given'}",
      {"reason": reason},
    ):
      return False

    subscription.cancelled_at = self.clock()
    subscription.cancellation_reason = reason
    self.session.flush()
    return True

  def advance_period(self, subscription: StoreSubscription) -> StoreSubscription:
    """Move the billing period forward exactly one calendar month."""
    start = subscription.current_period_end or self.clock()
    subscription.current_period_start = start
    subscription.current_period_end = add_months(start)

    store = Store.get_by_id(subscription.store_id, self.session)
    if store is not None:
      store.plan_expires_at = subscription.current_period_end

    self.session.flush()

    BillingAuditLog.log_event(
      session=self.session,
      event_type=BillingEventType.SUBSCRIPTION_RENEWED,
      description=f"Period advanced to {subscription.current_period_end:%Y-%m-%d}",
      store_id=subscription.store_id,
      subscription_id=subscription.id,
    )
    return subscription
