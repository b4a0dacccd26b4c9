"""Platform invoice models - invoices issued to stores for platform charges."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import (
  Column,
  DateTime,
  ForeignKey,
  Index,
  Integer,
  Numeric,
  String,
  UniqueConstraint,
  func,
  select,
  update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, relationship

from ...database import Base
from ...logger import get_logger
from ...utils.ulid import generate_prefixed_ulid

logger = get_logger(__name__)

SEQUENCE_INSERT_ATTEMPTS = 3


class InvoiceType(str, Enum):
  """What an invoice bills for."""

  SUBSCRIPTION = "subscription"
  TRANSACTION_FEE = "transaction_fee"
  PLUGIN = "plugin"


class InvoiceStatus(str, Enum):
  """Invoice status states."""

  DRAFT = "draft"
  PENDING = "pending"
  PAID = "paid"
  FAILED = "failed"
  CANCELLED = "cancelled"


OUTSTANDING_STATUSES = (InvoiceStatus.PENDING.value, InvoiceStatus.FAILED.value)


class BillingInvoice(Base):
  """Invoice for one billing event of a store.

  At most one invoice exists per (store, type, period). A failed charge still
  produces an invoice, and retries of the same period reuse it.
  """

  __tablename__ = "platform_invoices"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("binv"))

  invoice_number = Column(String, unique=True, nullable=False)

  store_id = Column(String, ForeignKey("stores.id"), nullable=False)
  subscription_id = Column(String, ForeignKey("store_subscriptions.id"), nullable=True)

  type = Column(String, nullable=False)
  status = Column(String, default=InvoiceStatus.DRAFT.value, nullable=False)

  subtotal = Column(Numeric(12, 2), nullable=False)
  vat_rate = Column(Numeric(6, 4), nullable=False)
  vat_amount = Column(Numeric(12, 2), nullable=False)
  total_amount = Column(Numeric(12, 2), nullable=False)

  period_start = Column(DateTime, nullable=False)
  period_end = Column(DateTime, nullable=False)

  description = Column(String, nullable=True)
  idempotency_key = Column(String, nullable=True)

  gateway_transaction_ref = Column(String, nullable=True)
  gateway_invoice_number = Column(String, nullable=True)
  gateway_invoice_url = Column(String, nullable=True)

  charge_attempts = Column(Integer, default=0, nullable=False)
  last_charge_attempt = Column(DateTime, nullable=True)
  last_charge_error = Column(String, nullable=True)

  issued_at = Column(DateTime, nullable=True)
  paid_at = Column(DateTime, nullable=True)

  created_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )
  updated_at = Column(
    DateTime,
    default=lambda: datetime.now(UTC).replace(tzinfo=None),
    onupdate=lambda: datetime.now(UTC).replace(tzinfo=None),
    nullable=False,
  )

  items = relationship(
    "BillingInvoiceItem",
    back_populates="invoice",
    cascade="all, delete-orphan",
    order_by="BillingInvoiceItem.created_at",
  )

  __table_args__ = (
    UniqueConstraint(
      "store_id", "type", "period_start", "period_end", name="uq_platform_invoice_period"
    ),
    Index("idx_platform_invoice_store", "store_id", "created_at"),
    Index("idx_platform_invoice_status", "status"),
  )

  def __repr__(self) -> str:
    return f"<BillingInvoice {self.invoice_number} {self.status} total={self.total_amount}>"

  @classmethod
  def get_by_number(
    cls, invoice_number: str, session: Session
  ) -> Optional["BillingInvoice"]:
    return session.query(cls).filter(cls.invoice_number == invoice_number).first()

  @classmethod
  def get_for_period(
    cls,
    store_id: str,
    invoice_type: str,
    period_start: datetime,
    period_end: datetime,
    session: Session,
  ) -> Optional["BillingInvoice"]:
    """Get the invoice billing a store's period, if one exists."""
    return (
      session.query(cls)
      .filter(
        cls.store_id == store_id,
        cls.type == invoice_type,
        cls.period_start == period_start,
        cls.period_end == period_end,
      )
      .first()
    )

  @classmethod
  def get_latest_failed(
    cls, store_id: str, invoice_type: str, session: Session
  ) -> Optional["BillingInvoice"]:
    return (
      session.query(cls)
      .filter(
        cls.store_id == store_id,
        cls.type == invoice_type,
        cls.status == InvoiceStatus.FAILED.value,
      )
      .order_by(cls.period_end.desc())
      .first()
    )

  @classmethod
  def get_recent_for_store(
    cls, store_id: str, session: Session, limit: int = 10
  ) -> list["BillingInvoice"]:
    return (
      session.query(cls)
      .filter(cls.store_id == store_id)
      .order_by(cls.created_at.desc(), cls.invoice_number.desc())
      .limit(limit)
      .all()
    )

  @classmethod
  def get_outstanding(
    cls, store_id: str, invoice_types: Iterable[str], session: Session
  ) -> list["BillingInvoice"]:
    """Pending or failed invoices of the given types."""
    return (
      session.query(cls)
      .filter(
        cls.store_id == store_id,
        cls.type.in_(list(invoice_types)),
        cls.status.in_(OUTSTANDING_STATUSES),
      )
      .order_by(cls.period_start)
      .all()
    )

  @classmethod
  def get_max_number_for_year(cls, year: int, session: Session) -> Optional[str]:
    return session.execute(
      select(func.max(cls.invoice_number)).where(
        cls.invoice_number.like(f"%-{year}-%")
      )
    ).scalar()

  def is_paid(self) -> bool:
    return self.status == InvoiceStatus.PAID.value

  def items_total(self) -> Decimal:
    return sum((Decimal(str(item.total_price)) for item in self.items), Decimal("0"))


class BillingInvoiceItem(Base):
  """Line item on a platform invoice."""

  __tablename__ = "platform_invoice_items"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("bli"))

  invoice_id = Column(
    String, ForeignKey("platform_invoices.id", ondelete="CASCADE"), nullable=False
  )

  description = Column(String, nullable=False)
  quantity = Column(Integer, default=1, nullable=False)
  unit_price = Column(Numeric(12, 2), nullable=False)
  total_price = Column(Numeric(12, 2), nullable=False)

  # What the line bills for, e.g. ("plugin", "whatsapp") or ("fee_period", key)
  reference_type = Column(String, nullable=True)
  reference_id = Column(String, nullable=True)

  created_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )

  invoice = relationship("BillingInvoice", back_populates="items")

  __table_args__ = (Index("idx_platform_invoice_item_invoice", "invoice_id"),)

  def __repr__(self) -> str:
    return f"<BillingInvoiceItem {self.description} {self.quantity} x {self.unit_price}>"


class InvoiceSequence(Base):
  """Per-year counter backing invoice numbers."""

  __tablename__ = "invoice_sequences"

  year = Column(Integer, primary_key=True, autoincrement=False)
  last_value = Column(Integer, nullable=False, default=0)

  def __repr__(self) -> str:
    return f"<InvoiceSequence {self.year}={self.last_value}>"

  @classmethod
  def next_value(cls, year: int, session: Session, seed: int = 0) -> int:
    """Atomically increment and return the counter of ``year``.

    The UPDATE holds the row lock until the caller's transaction ends, so
    concurrent callers serialize on it. A missing row is created from
    ``seed`` inside a savepoint; losing the insert race retries the UPDATE.
    """
    for _ in range(SEQUENCE_INSERT_ATTEMPTS):
      result = session.execute(
        update(cls)
        .where(cls.year == year)
        .values(last_value=cls.last_value + 1)
        .execution_options(synchronize_session=False)
      )
      if result.rowcount:
        return session.execute(
          select(cls.last_value).where(cls.year == year)
        ).scalar_one()

      try:
        with session.begin_nested():
          session.add(cls(year=year, last_value=seed + 1))
        return seed + 1
      except IntegrityError:
        logger.debug(f"Invoice sequence row for {year} created concurrently, retrying")

    raise RuntimeError(f"Could not allocate an invoice number for {year}")
