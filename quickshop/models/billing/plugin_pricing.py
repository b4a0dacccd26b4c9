"""Plugin pricing - monthly price of each billable plugin."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Session

from ...database import Base
from ...utils.ulid import generate_prefixed_ulid


class PluginPricing(Base):
  """Monthly price and trial length of a plugin."""

  __tablename__ = "plugin_pricing"

  id = Column(String, primary_key=True, default=lambda: generate_prefixed_ulid("bpp"))

  plugin_slug = Column(String, unique=True, nullable=False)
  monthly_price = Column(Numeric(12, 2), nullable=False)
  trial_days = Column(Integer, default=0, nullable=False)
  is_active = Column(Boolean, default=True, nullable=False)

  created_at = Column(
    DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
  )

  def __repr__(self) -> str:
    return f"<PluginPricing {self.plugin_slug} {self.monthly_price}/month>"

  @classmethod
  def get_by_slug(cls, plugin_slug: str, session: Session) -> Optional["PluginPricing"]:
    return (
      session.query(cls)
      .filter(cls.plugin_slug == plugin_slug, cls.is_active.is_(True))
      .first()
    )

  @classmethod
  def get_price_map(cls, plugin_slugs: list[str], session: Session) -> dict[str, Decimal]:
    """Monthly price of each active priced plugin among ``plugin_slugs``."""
    if not plugin_slugs:
      return {}
    rows = (
      session.query(cls)
      .filter(cls.plugin_slug.in_(plugin_slugs), cls.is_active.is_(True))
      .all()
    )
    return {row.plugin_slug: Decimal(str(row.monthly_price)) for row in rows}
