"""Dagster resources for QuickShop billing.

- DatabaseResource: PostgreSQL sessions
- PaymentGatewayResource: PayPlus client for token charges
"""

from quickshop.dagster.resources.database import DatabaseResource
from quickshop.dagster.resources.payment_gateway import PaymentGatewayResource

__all__ = [
  "DatabaseResource",
  "PaymentGatewayResource",
]
