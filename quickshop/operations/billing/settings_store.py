"""
Platform settings store.

Read-through cache over the ``platform_settings`` table. Reads are served
from memory for a fixed TTL; every write invalidates the cache so an admin
price change is visible on the very next read. If the table cannot be read
the store degrades to the defaults in ``quickshop.config.billing``.
"""

import threading
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import env
from ...config.billing import BillingConfig, DEFAULT_PLATFORM_SETTINGS
from ...database import create_session
from ...exceptions import SettingsError
from ...logger import billing_logger as logger
from ...models.billing import BillingAuditLog, BillingEventType, PlatformSetting


class SettingsStore:
  """Cached key/value platform configuration."""

  def __init__(
    self,
    session_factory: Callable[[], Session] = create_session,
    ttl: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
  ):
    self._session_factory = session_factory
    self.ttl = env.SETTINGS_CACHE_TTL if ttl is None else ttl
    self._clock = clock
    self._lock = threading.Lock()
    self._values: Optional[Dict[str, Any]] = None
    self._loaded_at: float = 0.0

  def _is_fresh(self) -> bool:
    return self._values is not None and (self._clock() - self._loaded_at) < self.ttl

  def _load(self, session: Session) -> Dict[str, Any]:
    values = BillingConfig.get_all_defaults()
    values.update(PlatformSetting.get_all_values(session))
    return values

  def get_all(self, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get every platform setting, merged over the defaults.

    Args:
        session: Session to read through on a cache miss. A short-lived
            session is opened when omitted.
    """
    with self._lock:
      if self._is_fresh():
        return dict(self._values)

    try:
      if session is not None:
        values = self._load(session)
      else:
        own_session = self._session_factory()
        try:
          values = self._load(own_session)
        finally:
          own_session.close()
    except SQLAlchemyError as e:
      logger.warning(
        f"Failed to load platform settings, using defaults: {e}",
        extra={"action": "settings_load_failed"},
      )
      return BillingConfig.get_all_defaults()

    with self._lock:
      self._values = values
      self._loaded_at = self._clock()

    logger.debug(f"Loaded {len(values)} platform settings")
    return dict(values)

  def get(self, key: str, session: Optional[Session] = None) -> Any:
    values = self.get_all(session)
    if key not in values:
      raise SettingsError("unknown setting", key=key)
    return values[key]

  def get_decimal(self, key: str, session: Optional[Session] = None) -> Decimal:
    value = self.get(key, session)
    try:
      return Decimal(str(value))
    except ArithmeticError as e:
      raise SettingsError(f"value {value!r} is not numeric", key=key) from e

  def get_int(self, key: str, session: Optional[Session] = None) -> int:
    return int(self.get_decimal(key, session))

  def set(
    self,
    key: str,
    value: Any,
    session: Session,
    updated_by: Optional[str] = None,
  ) -> PlatformSetting:
    """
    Write a setting in the caller's transaction.

    The cache is cleared now and again when that transaction commits or
    rolls back; a read taken before the commit is never kept.
    """
    default = DEFAULT_PLATFORM_SETTINGS.get(key, {})
    if isinstance(value, Decimal):
      value = str(value)

    event.listen(session, "after_commit", self._invalidate_on_end, once=True)
    event.listen(session, "after_rollback", self._invalidate_on_end, once=True)

    try:
      setting = PlatformSetting.upsert(
        key,
        value,
        session,
        category=default.get("category"),
        description=default.get("description"),
        updated_by=updated_by,
      )
      BillingAuditLog.log_event(
        session=session,
        event_type=BillingEventType.SETTING_UPDATED,
        description=f"Platform setting {key} updated",
        actor_type="admin" if updated_by else "system",
        event_data={"key": key, "value": value, "updated_by": updated_by},
      )
    except SQLAlchemyError as e:
      raise SettingsError(f"could not save: {e}", key=key) from e
    finally:
      self.invalidate()

    return setting

  def _invalidate_on_end(self, session: Session) -> None:
    self.invalidate()

  def invalidate(self) -> None:
    with self._lock:
      self._values = None
      self._loaded_at = 0.0
