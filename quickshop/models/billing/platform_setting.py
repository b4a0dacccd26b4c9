"""Platform settings - admin-editable pricing and fee configuration."""

from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.orm import Session

from ...database import Base
from ...logger import get_logger

logger = get_logger(__name__)


class PlatformSetting(Base):
  """Key/value platform setting holding a JSON scalar."""

  __tablename__ = "platform_settings"

  key = Column(String, primary_key=True)
  value = Column(JSON, nullable=False)
  category = Column(String, default="general", nullable=False)
  description = Column(String, nullable=True)

  updated_by = Column(String, nullable=True)
  updated_at = Column(
    DateTime,
    default=lambda: datetime.now(UTC).replace(tzinfo=None),
    onupdate=lambda: datetime.now(UTC).replace(tzinfo=None),
    nullable=False,
  )

  def __repr__(self) -> str:
    return f"<PlatformSetting {self.key}={self.value!r}>"

  @classmethod
  def get_all_values(cls, session: Session) -> dict[str, Any]:
    return {setting.key: setting.value for setting in session.query(cls).all()}

  @classmethod
  def upsert(
    cls,
    key: str,
    value: Any,
    session: Session,
    category: Optional[str] = None,
    description: Optional[str] = None,
    updated_by: Optional[str] = None,
  ) -> "PlatformSetting":
    """Create or update a setting."""
    setting = session.get(cls, key)
    if setting is None:
      setting = cls(key=key, category=category or "general")
      session.add(setting)

    setting.value = value
    if category:
      setting.category = category
    if description:
      setting.description = description
    setting.updated_by = updated_by
    setting.updated_at = datetime.now(UTC).replace(tzinfo=None)

    session.flush()

    logger.info(
      f"Updated platform setting {key}",
      extra={"action": "setting_updated", "metadata": {"key": key, "by": updated_by}},
    )

    return setting
