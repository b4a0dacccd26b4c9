"""
Static constants configuration.

Operational constants (timeouts, pool sizes, cache TTLs) and fixed billing
rules that do not change between environments.
"""

from decimal import Decimal

# =============================================================================
# OPERATIONAL CONSTANTS
# =============================================================================

# Default Timeouts (seconds)
DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_CONNECTION_TIMEOUT = 10

# Cache TTL Values (seconds)
CACHE_TTL_SHORT = 300  # 5 minutes
CACHE_TTL_LONG = 3600  # 1 hour

# Database Pool Configuration
DEFAULT_POOL_SIZE = 20
DEFAULT_MAX_OVERFLOW = 40
DEFAULT_POOL_TIMEOUT = 30
DEFAULT_POOL_RECYCLE = 3600  # 1 hour

# =============================================================================
# BILLING RULES
# =============================================================================

# Charges below this amount (VAT included) are not sent to the gateway
MINIMUM_CHARGE_AMOUNT = Decimal("1.00")

# Platform invoice numbering: QS-<year>-<6 digit sequence>
INVOICE_NUMBER_PREFIX = "QS"
INVOICE_SEQUENCE_DIGITS = 6

# Gateway currency for every platform charge
BILLING_CURRENCY = "ILS"

# Settings cache TTL for platform pricing reads
SETTINGS_CACHE_TTL = CACHE_TTL_SHORT

# Invoices returned by the billing summary
RECENT_INVOICES_LIMIT = 10
