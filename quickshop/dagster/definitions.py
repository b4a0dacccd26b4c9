"""Dagster definitions for QuickShop platform billing.

Entry point for the Dagster webserver and daemon:

  dagster dev -m quickshop.dagster
"""

from dagster import Definitions

from quickshop.dagster.jobs import (
  plugin_fee_billing_job,
  plugin_fee_billing_schedule,
  subscription_renewal_job,
  subscription_renewal_schedule,
  transaction_fee_billing_job,
  transaction_fee_billing_schedule,
  trial_expiry_job,
  trial_expiry_schedule,
)
from quickshop.dagster.resources import DatabaseResource, PaymentGatewayResource

# ============================================================================
# Resource Configuration
# ============================================================================

# Unset fields fall back to DATABASE_URL and the PAYPLUS_* environment settings
resources = {
  "db": DatabaseResource(),
  "payment_gateway": PaymentGatewayResource(),
}

# ============================================================================
# Jobs Registry
# ============================================================================

all_jobs = [
  subscription_renewal_job,
  transaction_fee_billing_job,
  plugin_fee_billing_job,
  trial_expiry_job,
]

# ============================================================================
# Schedules Registry
# ============================================================================

all_schedules = [
  subscription_renewal_schedule,
  transaction_fee_billing_schedule,
  plugin_fee_billing_schedule,
  trial_expiry_schedule,
]

# ============================================================================
# Definitions Export
# ============================================================================

defs = Definitions(
  jobs=all_jobs,
  schedules=all_schedules,
  resources=resources,
)
