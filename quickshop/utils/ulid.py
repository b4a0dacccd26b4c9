"""
ULID (Universally Unique Lexicographically Sortable Identifier) utilities.

Billing tables use prefixed ULIDs so identifiers are time-ordered and show
their record type at a glance (``binv_…`` for invoices, ``bsub_…`` for
subscriptions).
"""

from ulid import ULID


def generate_prefixed_ulid(prefix: str) -> str:
  """
  Generate a prefixed ULID for better readability and type identification.

  Args:
      prefix: A short prefix to identify the record type

  Returns:
      A prefixed ULID string.
      Example: "binv_01ARZ3NDEKTSV4RRFFQ69G5FAV"
  """
  return f"{prefix}_{ULID()}"
