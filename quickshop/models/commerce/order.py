"""Storefront orders, as read by transaction-fee billing."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Session

from ...database import Base
from ...utils.ulid import generate_prefixed_ulid


class FinancialStatus(str, Enum):
  """Payment state of an order."""

  PENDING = "pending"
  PAID = "paid"
  PARTIALLY_REFUNDED = "partially_refunded"
  REFUNDED = "refunded"
  VOIDED = "voided"


class Order(Base):
  """Customer order placed on a store."""

  __tablename__ = "orders"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("ord"))
  store_id = Column(String, ForeignKey("stores.id"), nullable=False)

  total = Column(Numeric(12, 2), nullable=False)
  financial_status = Column(
    String, default=FinancialStatus.PENDING.value, nullable=False
  )
  paid_at = Column(DateTime, nullable=True)

  created_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )

  __table_args__ = (
    Index("idx_orders_store_paid", "store_id", "financial_status", "paid_at"),
  )

  def __repr__(self) -> str:
    return f"<Order {self.id} total={self.total} {self.financial_status}>"

  @classmethod
  def get_paid_orders(
    cls,
    store_id: str,
    window_start: datetime,
    window_end: datetime,
    session: Session,
    exclude_ids: Optional[Iterable[str]] = None,
  ) -> list["Order"]:
    """Paid orders of a store with ``window_start <= paid_at < window_end``."""
    query = session.query(cls).filter(
      cls.store_id == store_id,
      cls.financial_status == FinancialStatus.PAID.value,
      cls.paid_at >= window_start,
      cls.paid_at < window_end,
    )

    excluded = list(exclude_ids or [])
    if excluded:
      query = query.filter(cls.id.notin_(excluded))

    return query.order_by(cls.paid_at, cls.id).all()

  @staticmethod
  def sum_totals(orders: Iterable["Order"]) -> Decimal:
    return sum((Decimal(str(order.total)) for order in orders), Decimal("0"))
