"""Transaction fee records - which orders were billed in which fee period."""

from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import (
  JSON,
  Column,
  DateTime,
  ForeignKey,
  Index,
  Integer,
  Numeric,
  String,
  UniqueConstraint,
)
from sqlalchemy.orm import Session

from ...database import Base
from ...logger import get_logger
from ...utils.ulid import generate_prefixed_ulid

logger = get_logger(__name__)


class TransactionFeeRecord(Base):
  """Settled transaction-fee period of a store.

  ``order_ids`` lists exactly the orders the fee was computed from. An order
  id appears in at most one record per store, and the latest ``period_end``
  is the watermark the next fee window starts from.
  """

  __tablename__ = "store_transaction_fees"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("btf"))

  store_id = Column(String, ForeignKey("stores.id"), nullable=False)

  period_start = Column(DateTime, nullable=False)
  period_end = Column(DateTime, nullable=False)

  total_transactions_amount = Column(Numeric(12, 2), nullable=False)
  total_transactions_count = Column(Integer, nullable=False)
  fee_rate = Column(Numeric(6, 4), nullable=False)
  fee_amount = Column(Numeric(12, 2), nullable=False)

  invoice_id = Column(String, ForeignKey("platform_invoices.id"), nullable=True)
  order_ids = Column(JSON, default=list, nullable=False)

  calculated_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )

  __table_args__ = (
    UniqueConstraint(
      "store_id", "period_start", "period_end", name="uq_store_transaction_fee_period"
    ),
    Index("idx_store_transaction_fee_end", "store_id", "period_end"),
  )

  def __repr__(self) -> str:
    return f"<TransactionFeeRecord {self.store_id} {self.period_start}-{self.period_end} fee={self.fee_amount}>"

  @classmethod
  def get_latest_period_end(cls, store_id: str, session: Session) -> Optional[datetime]:
    """Watermark of the last settled fee period."""
    latest = (
      session.query(cls)
      .filter(cls.store_id == store_id)
      .order_by(cls.period_end.desc())
      .first()
    )
    return latest.period_end if latest else None

  @classmethod
  def get_billed_order_ids(cls, store_id: str, session: Session) -> set[str]:
    """Every order id already covered by a fee record of the store."""
    billed: set[str] = set()
    for (order_ids,) in session.query(cls.order_ids).filter(cls.store_id == store_id):
      billed.update(order_ids or [])
    return billed

  @classmethod
  def get_for_store(cls, store_id: str, session: Session) -> list["TransactionFeeRecord"]:
    return (
      session.query(cls)
      .filter(cls.store_id == store_id)
      .order_by(cls.period_start)
      .all()
    )
