"""Dagster jobs for QuickShop.

Billing jobs settle platform charges on a schedule:
- Subscription renewals (daily)
- Transaction fees (1st and 15th of the month)
- Plugin fees (daily)
- Trial expiry (hourly)
"""

from quickshop.dagster.jobs.billing import (
  plugin_fee_billing_job,
  plugin_fee_billing_schedule,
  subscription_renewal_job,
  subscription_renewal_schedule,
  transaction_fee_billing_job,
  transaction_fee_billing_schedule,
  trial_expiry_job,
  trial_expiry_schedule,
)

__all__ = [
  "plugin_fee_billing_job",
  "plugin_fee_billing_schedule",
  "subscription_renewal_job",
  "subscription_renewal_schedule",
  "transaction_fee_billing_job",
  "transaction_fee_billing_schedule",
  "trial_expiry_job",
  "trial_expiry_schedule",
]
