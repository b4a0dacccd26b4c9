"""Date helpers for billing periods.

All billing timestamps are stored as naive UTC datetimes.
"""

from datetime import UTC, datetime

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
  """Current time as a naive UTC datetime, matching the stored columns."""
  return datetime.now(UTC).replace(tzinfo=None)


def add_months(value: datetime, months: int = 1) -> datetime:
  """Add calendar months, clamping to the last day of shorter months."""
  return value + relativedelta(months=months)
