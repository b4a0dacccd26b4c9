"""
Billing configuration module.

Default platform pricing, setting keys and plan metadata.
"""

from .core import (
  DEFAULT_PLATFORM_SETTINGS,
  SUBSCRIPTION_PLAN_A_PRICE,
  SUBSCRIPTION_PLAN_B_PRICE,
  SUBSCRIPTION_TRIAL_DAYS,
  TRANSACTION_FEE_RATE,
  VAT_RATE,
  BillingConfig,
)

__all__ = [
  "DEFAULT_PLATFORM_SETTINGS",
  "SUBSCRIPTION_PLAN_A_PRICE",
  "SUBSCRIPTION_PLAN_B_PRICE",
  "SUBSCRIPTION_TRIAL_DAYS",
  "TRANSACTION_FEE_RATE",
  "VAT_RATE",
  "BillingConfig",
]
