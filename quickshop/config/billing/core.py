"""
Core billing configuration - platform plans, fee rates and setting keys.

These values are the fallback used when the platform_settings table cannot
be read. Admin-edited values in the database always take precedence.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

# Persisted platform setting keys
SUBSCRIPTION_PLAN_A_PRICE = "subscription_plan_a_price"
SUBSCRIPTION_PLAN_B_PRICE = "subscription_plan_b_price"
SUBSCRIPTION_TRIAL_DAYS = "subscription_trial_days"
TRANSACTION_FEE_RATE = "transaction_fee_rate"
VAT_RATE = "vat_rate"

# Default platform settings (prices before VAT)
DEFAULT_PLATFORM_SETTINGS: Dict[str, Dict[str, Any]] = {
  SUBSCRIPTION_PLAN_A_PRICE: {
    "value": 299,
    "category": "subscription",
    "description": "Monthly price of the branding plan (plan A), before VAT",
  },
  SUBSCRIPTION_PLAN_B_PRICE: {
    "value": 399,
    "category": "subscription",
    "description": "Monthly price of the full store plan (plan B), before VAT",
  },
  SUBSCRIPTION_TRIAL_DAYS: {
    "value": 7,
    "category": "subscription",
    "description": "Length of the free trial for new stores",
  },
  TRANSACTION_FEE_RATE: {
    "value": "0.005",
    "category": "fees",
    "description": "Share of each paid order charged as a platform fee",
  },
  VAT_RATE: {
    "value": "0.18",
    "category": "fees",
    "description": "VAT applied on subscription, plugin and fee charges",
  },
}

# Display names used on invoices and payment pages
PLAN_DISPLAY_NAMES: Dict[str, str] = {
  "plan_a": "QuickShop Branding",
  "plan_b": "QuickShop Store",
}

PLAN_PRICE_KEYS: Dict[str, str] = {
  "plan_a": SUBSCRIPTION_PLAN_A_PRICE,
  "plan_b": SUBSCRIPTION_PLAN_B_PRICE,
}


class BillingConfig:
  """
  Single source of truth for default billing configuration.

  Provides the hard-coded fallback values the settings store degrades to
  and the plan metadata shared by checkout and invoicing.
  """

  @classmethod
  def get_default(cls, key: str) -> Any:
    """Get the default value of a platform setting key."""
    setting = DEFAULT_PLATFORM_SETTINGS.get(key)
    if setting is None:
      raise KeyError(f"Unknown platform setting: {key}")
    return setting["value"]

  @classmethod
  def get_default_decimal(cls, key: str) -> Decimal:
    return Decimal(str(cls.get_default(key)))

  @classmethod
  def get_plan_price_key(cls, plan: str) -> Optional[str]:
    """Get the setting key holding the monthly price of a paid plan."""
    return PLAN_PRICE_KEYS.get(plan)

  @classmethod
  def get_plan_display_name(cls, plan: str) -> str:
    return PLAN_DISPLAY_NAMES.get(plan, plan)

  @classmethod
  def get_paid_plans(cls) -> List[str]:
    return list(PLAN_PRICE_KEYS.keys())

  @classmethod
  def get_all_defaults(cls) -> Dict[str, Any]:
    return {key: setting["value"] for key, setting in DEFAULT_PLATFORM_SETTINGS.items()}
