"""Store record - the tenant that rents a storefront.

Owned by the storefront subsystem; billing only reads it and flips
``is_active`` when a trial expires.
"""

from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Index, String
from sqlalchemy.orm import Session

from ...database import Base
from ...logger import get_logger
from ...utils.ulid import generate_prefixed_ulid

logger = get_logger(__name__)


class Store(Base):
  """Tenant storefront."""

  __tablename__ = "stores"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("st"))
  name = Column(String, nullable=False)
  slug = Column(String, unique=True, nullable=False)
  owner_email = Column(String, nullable=True)

  plan = Column(String, default="trial", nullable=False)
  plan_expires_at = Column(DateTime, nullable=True)
  is_active = Column(Boolean, default=True, nullable=False)

  created_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )
  updated_at = Column(
    DateTime,
    default=lambda: datetime.now(UTC).replace(tzinfo=None),
    onupdate=lambda: datetime.now(UTC).replace(tzinfo=None),
    nullable=False,
  )

  __table_args__ = (Index("idx_stores_active", "is_active"),)

  def __repr__(self) -> str:
    return f"<Store {self.slug} plan={self.plan} active={self.is_active}>"

  @classmethod
  def get_by_id(cls, store_id: str, session: Session) -> Optional["Store"]:
    return session.query(cls).filter(cls.id == store_id).first()

  def deactivate(self, session: Session) -> None:
    """Take the public storefront offline."""
    self.is_active = False
    session.flush()

    logger.info(f"Deactivated store {self.id}", extra={"store_id": self.id})
