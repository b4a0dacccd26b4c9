"""Store subscription model - one platform subscription per store."""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Session

from ...database import Base
from ...logger import get_logger
from ...utils.ulid import generate_prefixed_ulid

logger = get_logger(__name__)


class SubscriptionPlan(str, Enum):
  """Platform plans a store can be on."""

  TRIAL = "trial"
  PLAN_A = "plan_a"
  PLAN_B = "plan_b"


class SubscriptionStatus(str, Enum):
  """Subscription status states."""

  TRIAL = "trial"
  ACTIVE = "active"
  PAST_DUE = "past_due"
  CANCELLED = "cancelled"
  EXPIRED = "expired"


# Every status change must follow one of these edges.
SUBSCRIPTION_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
  SubscriptionStatus.TRIAL: frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED}
  ),
  SubscriptionStatus.ACTIVE: frozenset(
    {SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELLED}
  ),
  SubscriptionStatus.PAST_DUE: frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}
  ),
  SubscriptionStatus.CANCELLED: frozenset(),
  SubscriptionStatus.EXPIRED: frozenset(),
}

BILLABLE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value)


class StoreSubscription(Base):
  """Platform subscription of a single store.

  Created lazily in ``trial`` the first time billing touches a store and
  never deleted; the lifecycle ends in ``cancelled`` or ``expired``.
  """

  __tablename__ = "store_subscriptions"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("bsub"))

  store_id = Column(String, ForeignKey("stores.id"), unique=True, nullable=False)

  plan = Column(String, default=SubscriptionPlan.TRIAL.value, nullable=False)
  status = Column(String, default=SubscriptionStatus.TRIAL.value, nullable=False)

  trial_ends_at = Column(DateTime, nullable=True)
  activated_at = Column(DateTime, nullable=True)
  current_period_start = Column(DateTime, nullable=True)
  current_period_end = Column(DateTime, nullable=True)

  gateway_customer_ref = Column(String, nullable=True)
  gateway_token_ref = Column(String, nullable=True)
  card_last_four = Column(String(4), nullable=True)
  card_brand = Column(String, nullable=True)
  card_expiry = Column(String, nullable=True)

  billing_email = Column(String, nullable=True)
  billing_name = Column(String, nullable=True)

  custom_monthly_price = Column(Numeric(12, 2), nullable=True)
  custom_fee_rate = Column(Numeric(6, 4), nullable=True)

  cancelled_at = Column(DateTime, nullable=True)
  cancellation_reason = Column(String, nullable=True)

  created_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )
  updated_at = Column(
    DateTime,
    default=lambda: datetime.now(UTC).replace(tzinfo=None),
    onupdate=lambda: datetime.now(UTC).replace(tzinfo=None),
    nullable=False,
  )

  __table_args__ = (
    Index("idx_store_sub_status", "status"),
    Index("idx_store_sub_period_end", "status", "current_period_end"),
    Index("idx_store_sub_trial_ends", "status", "trial_ends_at"),
  )

  def __repr__(self) -> str:
    return f"<StoreSubscription {self.store_id} plan={self.plan} status={self.status}>"

  @classmethod
  def create_trial(
    cls,
    store_id: str,
    trial_days: int,
    session: Session,
    now: Optional[datetime] = None,
  ) -> "StoreSubscription":
    """Create the trial subscription of a store."""
    now = now or datetime.now(UTC).replace(tzinfo=None)

    subscription = cls(
      store_id=store_id,
      plan=SubscriptionPlan.TRIAL.value,
      status=SubscriptionStatus.TRIAL.value,
      trial_ends_at=now + timedelta(days=trial_days),
      created_at=now,
    )

    session.add(subscription)
    session.flush()

    logger.info(
      f"Created trial subscription {subscription.id} for store {store_id}",
      extra={"store_id": store_id, "subscription_id": subscription.id},
    )

    return subscription

  @classmethod
  def get_by_store_id(
    cls, store_id: str, session: Session
  ) -> Optional["StoreSubscription"]:
    return session.query(cls).filter(cls.store_id == store_id).first()

  @classmethod
  def get_for_update(
    cls, store_id: str, session: Session
  ) -> Optional["StoreSubscription"]:
    """Load a store's subscription holding a row lock until the transaction ends."""
    return (
      session.query(cls)
      .filter(cls.store_id == store_id)
      .with_for_update()
      .first()
    )

  @classmethod
  def get_due_for_renewal(
    cls, now: datetime, session: Session
  ) -> list["StoreSubscription"]:
    """Paid subscriptions whose current period has ended."""
    return (
      session.query(cls)
      .filter(
        cls.status.in_(BILLABLE_STATUSES),
        cls.plan != SubscriptionPlan.TRIAL.value,
        cls.current_period_end.isnot(None),
        cls.current_period_end <= now,
      )
      .order_by(cls.current_period_end, cls.store_id)
      .all()
    )

  @classmethod
  def get_billable(cls, session: Session) -> list["StoreSubscription"]:
    """Subscriptions that accrue transaction and plugin fees."""
    return (
      session.query(cls)
      .filter(cls.status.in_(BILLABLE_STATUSES))
      .order_by(cls.store_id)
      .all()
    )

  @classmethod
  def get_expired_trials(
    cls, now: datetime, session: Session
  ) -> list["StoreSubscription"]:
    return (
      session.query(cls)
      .filter(
        cls.status == SubscriptionStatus.TRIAL.value,
        cls.trial_ends_at.isnot(None),
        cls.trial_ends_at < now,
      )
      .order_by(cls.trial_ends_at, cls.store_id)
      .all()
    )

  @property
  def status_enum(self) -> SubscriptionStatus:
    return SubscriptionStatus(self.status)

  def can_transition_to(self, target: SubscriptionStatus) -> bool:
    return target in SUBSCRIPTION_TRANSITIONS[self.status_enum]

  def has_payment_method(self) -> bool:
    return bool(self.gateway_token_ref)

  def is_active(self) -> bool:
    return self.status == SubscriptionStatus.ACTIVE.value
