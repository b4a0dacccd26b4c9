"""Dagster billing jobs.

Scheduled settlement cycles for the platform billing engine: subscription
renewals, transaction fees, plugin fees and trial expiry. Each job is a
"find" op listing the due stores followed by a "process" op that settles
them one store at a time through the billing orchestrator.
"""

from typing import Any, Optional

from dagster import (
  DefaultScheduleStatus,
  OpExecutionContext,
  ScheduleDefinition,
  job,
  op,
)

from quickshop.config import env
from quickshop.dagster.resources import DatabaseResource, PaymentGatewayResource
from quickshop.operations.billing import BillingOrchestrator, PaymentGateway, SettingsStore
from quickshop.operations.billing.orchestrator import OUTCOME_ERROR, OUTCOME_FAILED
from quickshop.utils.dates import utcnow

# ============================================================================
# Environment-based Schedule Status
# ============================================================================

# Billing schedules default to STOPPED. Enable via BILLING_SCHEDULES_ENABLED=true.
BILLING_SCHEDULE_STATUS = (
  DefaultScheduleStatus.RUNNING
  if env.BILLING_SCHEDULES_ENABLED
  else DefaultScheduleStatus.STOPPED
)


def _build_orchestrator(
  session, gateway: Optional[PaymentGateway] = None
) -> BillingOrchestrator:
  return BillingOrchestrator(session, settings=SettingsStore(), gateway=gateway)


def _find(context: OpExecutionContext, db: DatabaseResource, finder: str) -> list[str]:
  if not env.BILLING_ENABLED:
    context.log.info("Billing is disabled, nothing to do")
    return []

  with db.get_session() as session:
    store_ids = getattr(_build_orchestrator(session), finder)()

  context.log.info(f"Found {len(store_ids)} stores for {finder}")
  return store_ids


def _process(
  context: OpExecutionContext,
  db: DatabaseResource,
  payment_gateway: PaymentGatewayResource,
  store_ids: list[str],
  runner: str,
) -> dict[str, Any]:
  if not store_ids:
    context.log.info("No stores due")
    return {"processed": 0, "timestamp": utcnow().isoformat()}

  with payment_gateway.get_gateway() as gateway, db.get_session() as session:
    orchestrator = _build_orchestrator(session, gateway)
    summary = getattr(orchestrator, runner)(store_ids)

  for outcome in summary.outcomes:
    if outcome.status in (OUTCOME_FAILED, OUTCOME_ERROR):
      context.log.warning(
        f"Store {outcome.store_id}: {outcome.status} ({outcome.reason})"
      )

  result = summary.to_dict()
  result["timestamp"] = utcnow().isoformat()
  context.log.info(
    f"{summary.job}: {summary.charged} charged, {summary.failed} failed, "
    f"{summary.skipped} skipped, {summary.errors} errors"
  )
  return result


# ============================================================================
# Subscription Renewal
# ============================================================================


@op
def find_stores_due_for_renewal(
  context: OpExecutionContext, db: DatabaseResource
) -> list[str]:
  """Paid subscriptions whose current period has ended."""
  return _find(context, db, "find_due_renewals")


@op
def process_subscription_renewals(
  context: OpExecutionContext,
  db: DatabaseResource,
  payment_gateway: PaymentGatewayResource,
  store_ids: list[str],
) -> dict[str, Any]:
  """Charge the next month of each due subscription."""
  return _process(context, db, payment_gateway, store_ids, "run_renewals")


@job
def subscription_renewal_job():
  """Daily subscription renewal job."""
  process_subscription_renewals(find_stores_due_for_renewal())


# ============================================================================
# Transaction Fees
# ============================================================================


@op
def find_stores_due_for_transaction_fees(
  context: OpExecutionContext, db: DatabaseResource
) -> list[str]:
  """Active and past-due stores; each is billed from its fee watermark."""
  return _find(context, db, "find_due_transaction_fees")


@op
def process_transaction_fees(
  context: OpExecutionContext,
  db: DatabaseResource,
  payment_gateway: PaymentGatewayResource,
  store_ids: list[str],
) -> dict[str, Any]:
  return _process(context, db, payment_gateway, store_ids, "run_transaction_fees")


@job
def transaction_fee_billing_job():
  """Twice-monthly transaction fee settlement job."""
  process_transaction_fees(find_stores_due_for_transaction_fees())


# ============================================================================
# Plugin Fees
# ============================================================================


@op
def find_stores_due_for_plugin_fees(
  context: OpExecutionContext, db: DatabaseResource
) -> list[str]:
  return _find(context, db, "find_due_plugin_fees")


@op
def process_plugin_fees(
  context: OpExecutionContext,
  db: DatabaseResource,
  payment_gateway: PaymentGatewayResource,
  store_ids: list[str],
) -> dict[str, Any]:
  """Charge the due plugins of each store as one combined charge."""
  return _process(context, db, payment_gateway, store_ids, "run_plugin_fees")


@job
def plugin_fee_billing_job():
  """Daily plugin fee billing job."""
  process_plugin_fees(find_stores_due_for_plugin_fees())


# ============================================================================
# Trial Expiry
# ============================================================================


@op
def find_expired_trials(
  context: OpExecutionContext, db: DatabaseResource
) -> list[str]:
  return _find(context, db, "find_expired_trials")


@op
def process_trial_expirations(
  context: OpExecutionContext,
  db: DatabaseResource,
  payment_gateway: PaymentGatewayResource,
  store_ids: list[str],
) -> dict[str, Any]:
  """Expire unconverted trials and deactivate their storefronts."""
  return _process(context, db, payment_gateway, store_ids, "run_trial_expiry")


@job
def trial_expiry_job():
  """Hourly trial expiry job."""
  process_trial_expirations(find_expired_trials())


# ============================================================================
# Schedules
# ============================================================================

subscription_renewal_schedule = ScheduleDefinition(
  job=subscription_renewal_job,
  cron_schedule="0 3 * * *",  # Daily at 3 AM UTC
  default_status=BILLING_SCHEDULE_STATUS,
)

transaction_fee_billing_schedule = ScheduleDefinition(
  job=transaction_fee_billing_job,
  cron_schedule="0 4 1,15 * *",  # 1st and 15th of the month at 4 AM UTC
  default_status=BILLING_SCHEDULE_STATUS,
)

plugin_fee_billing_schedule = ScheduleDefinition(
  job=plugin_fee_billing_job,
  cron_schedule="30 3 * * *",  # Daily at 3:30 AM UTC
  default_status=BILLING_SCHEDULE_STATUS,
)

trial_expiry_schedule = ScheduleDefinition(
  job=trial_expiry_job,
  cron_schedule="15 * * * *",  # 15 minutes past every hour
  default_status=BILLING_SCHEDULE_STATUS,
)
