"""Billing audit log - audit trail for subscription, charge and callback events."""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Session

from ...database import Base
from ...logger import get_logger
from ...utils.ulid import generate_prefixed_ulid

logger = get_logger(__name__)


class BillingEventType(str, Enum):
  """Types of billing audit events."""

  SUBSCRIPTION_CREATED = "subscription_created"
  SUBSCRIPTION_ACTIVATED = "subscription_activated"
  SUBSCRIPTION_PAST_DUE = "subscription_past_due"
  SUBSCRIPTION_RESTORED = "subscription_restored"
  SUBSCRIPTION_CANCELLED = "subscription_cancelled"
  SUBSCRIPTION_EXPIRED = "subscription_expired"
  SUBSCRIPTION_RENEWED = "subscription_renewed"

  INVOICE_GENERATED = "invoice_generated"
  INVOICE_CANCELLED = "invoice_cancelled"

  PAYMENT_SUCCEEDED = "payment_succeeded"
  PAYMENT_FAILED = "payment_failed"

  TRIAL_FEES_RECONCILED = "trial_fees_reconciled"
  TRIAL_FEES_FAILED = "trial_fees_failed"

  CALLBACK_RECEIVED = "callback_received"
  CALLBACK_REJECTED = "callback_rejected"

  SETTING_UPDATED = "setting_updated"


class BillingAuditLog(Base):
  """Audit log for billing events.

  Every subscription transition, charge outcome and rejected gateway callback
  writes one row so a store's billing history can be reconstructed.
  """

  __tablename__ = "billing_audit_logs"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("baud"))

  event_type = Column(String, nullable=False)
  event_timestamp = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )

  store_id = Column(String, ForeignKey("stores.id"), nullable=True)
  subscription_id = Column(String, ForeignKey("store_subscriptions.id"), nullable=True)
  invoice_id = Column(String, ForeignKey("platform_invoices.id"), nullable=True)

  event_data = Column(JSON, nullable=True)
  description = Column(String, nullable=False)

  actor_type = Column(String, nullable=False)

  __table_args__ = (
    Index("idx_billing_audit_store", "store_id"),
    Index("idx_billing_audit_subscription", "subscription_id"),
    Index("idx_billing_audit_invoice", "invoice_id"),
    Index("idx_billing_audit_event_type", "event_type"),
    Index("idx_billing_audit_timestamp", "event_timestamp"),
  )

  def __repr__(self) -> str:
    return f"<BillingAuditLog {self.event_type} at {self.event_timestamp}>"

  @classmethod
  def log_event(
    cls,
    session: Session,
    event_type: BillingEventType | str,
    description: str,
    actor_type: str = "system",
    store_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
    invoice_id: Optional[str] = None,
    event_data: Optional[dict] = None,
  ) -> "BillingAuditLog":
    """Add an audit log entry to the caller's transaction."""
    event_type_str = (
      event_type.value if isinstance(event_type, BillingEventType) else event_type
    )
    audit_log = cls(
      event_type=event_type_str,
      description=description,
      actor_type=actor_type,
      store_id=store_id,
      subscription_id=subscription_id,
      invoice_id=invoice_id,
      event_data=event_data,
    )

    session.add(audit_log)
    session.flush()

    logger.info(
      f"Billing audit log: {event_type_str}",
      extra={
        "action": event_type_str,
        "store_id": store_id,
        "subscription_id": subscription_id,
        "invoice_id": invoice_id,
      },
    )

    return audit_log

  @classmethod
  def get_store_history(
    cls,
    session: Session,
    store_id: str,
    event_type: Optional[BillingEventType] = None,
    limit: int = 100,
  ) -> list["BillingAuditLog"]:
    """Get audit history for a store, newest first."""
    query = session.query(cls).filter(cls.store_id == store_id)

    if event_type:
      query = query.filter(cls.event_type == event_type.value)

    return query.order_by(cls.event_timestamp.desc()).limit(limit).all()

  @classmethod
  def get_invoice_history(
    cls,
    session: Session,
    invoice_id: str,
  ) -> list["BillingAuditLog"]:
    return (
      session.query(cls)
      .filter(cls.invoice_id == invoice_id)
      .order_by(cls.event_timestamp.desc())
      .all()
    )
