"""Installed store plugins, as read by plugin-fee billing."""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import (
  Boolean,
  Column,
  DateTime,
  ForeignKey,
  Index,
  String,
  UniqueConstraint,
  or_,
)
from sqlalchemy.orm import Session

from ...database import Base
from ...utils.ulid import generate_prefixed_ulid


class PluginSubscriptionStatus(str, Enum):
  """Billing state of an installed plugin."""

  TRIAL = "trial"
  ACTIVE = "active"
  CANCELLED = "cancelled"
  EXPIRED = "expired"


class StorePlugin(Base):
  """A plugin installed on a store."""

  __tablename__ = "store_plugins"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("spl"))
  store_id = Column(String, ForeignKey("stores.id"), nullable=False)
  plugin_slug = Column(String, nullable=False)

  is_active = Column(Boolean, default=True, nullable=False)
  subscription_status = Column(
    String, default=PluginSubscriptionStatus.ACTIVE.value, nullable=False
  )

  trial_ends_at = Column(DateTime, nullable=True)
  last_billing_date = Column(DateTime, nullable=True)
  next_billing_date = Column(DateTime, nullable=True)

  installed_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )
  updated_at = Column(
    DateTime,
    default=lambda: datetime.now(UTC).replace(tzinfo=None),
    onupdate=lambda: datetime.now(UTC).replace(tzinfo=None),
    nullable=False,
  )

  __table_args__ = (
    UniqueConstraint("store_id", "plugin_slug", name="uq_store_plugin"),
    Index("idx_store_plugins_active", "store_id", "is_active"),
  )

  def __repr__(self) -> str:
    return f"<StorePlugin {self.store_id}:{self.plugin_slug} {self.subscription_status}>"

  @classmethod
  def _due_filter(cls, query, now: datetime):
    return query.filter(
      cls.is_active.is_(True),
      cls.subscription_status == PluginSubscriptionStatus.ACTIVE.value,
      or_(cls.next_billing_date.is_(None), cls.next_billing_date <= now),
    )

  @classmethod
  def get_due_for_billing(
    cls, store_id: str, now: datetime, session: Session
  ) -> list["StorePlugin"]:
    """Active subscribed plugins of a store whose billing date has come."""
    query = session.query(cls).filter(cls.store_id == store_id)
    return cls._due_filter(query, now).order_by(cls.plugin_slug).all()

  @classmethod
  def get_store_ids_with_due_plugins(cls, now: datetime, session: Session) -> list[str]:
    query = session.query(cls.store_id).distinct()
    return [row[0] for row in cls._due_filter(query, now).order_by(cls.store_id)]
