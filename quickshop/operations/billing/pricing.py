"""
Platform pricing.

Pure functions turning plan prices and rates into VAT-inclusive charges.
All money is ``Decimal`` rounded half-up to cents after every step: the fee
is rounded first and VAT is computed on the rounded fee, never on the
transacted total.

``PricingService`` resolves the rates from the settings store and the
per-store overrides from the subscription before calling them.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from ...config.billing import (
  SUBSCRIPTION_TRIAL_DAYS,
  TRANSACTION_FEE_RATE,
  VAT_RATE,
  BillingConfig,
)
from ...config.constants import MINIMUM_CHARGE_AMOUNT
from ...exceptions import UnknownPlanError
from ...models.billing import StoreSubscription
from .settings_store import SettingsStore

CENT = Decimal("0.01")


def round2(value) -> Decimal:
  """Round half-up to two decimal places."""
  return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def is_chargeable(amount) -> bool:
  """Whether an amount is worth sending to the gateway."""
  return Decimal(str(amount)) >= MINIMUM_CHARGE_AMOUNT


@dataclass(frozen=True)
class SubscriptionCharge:
  base: Decimal
  vat: Decimal
  total: Decimal


@dataclass(frozen=True)
class TransactionFee:
  fee_amount: Decimal
  vat_amount: Decimal
  total_fee: Decimal
  applied_rate: Decimal


@dataclass(frozen=True)
class PluginCharge:
  subtotal: Decimal
  vat: Decimal
  total: Decimal


def subscription_price(
  plan: str,
  vat_rate: Decimal,
  plan_prices: Mapping[str, Decimal],
  override_price: Optional[Decimal] = None,
) -> SubscriptionCharge:
  """
  Monthly subscription charge of a plan.

  Args:
      plan: Plan name, e.g. ``plan_a``
      vat_rate: VAT rate as a fraction, e.g. ``0.18``
      plan_prices: Platform price of each paid plan before VAT
      override_price: Per-store negotiated price replacing the plan price

  Raises:
      UnknownPlanError: No override and the plan has no price
  """
  if override_price is not None:
    base = round2(override_price)
  elif plan in plan_prices:
    base = round2(plan_prices[plan])
  else:
    raise UnknownPlanError(plan)

  vat = round2(base * Decimal(str(vat_rate)))
  return SubscriptionCharge(base=base, vat=vat, total=base + vat)


def transaction_fee(
  transacted_total: Decimal,
  default_rate: Decimal,
  vat_rate: Decimal,
  override_rate: Optional[Decimal] = None,
) -> TransactionFee:
  """
  Platform fee on a store's transacted total.

  >>> transaction_fee(Decimal("1000"), Decimal("0.005"), Decimal("0.18")).total_fee
  Decimal('5.90')
  """
  applied_rate = Decimal(str(override_rate if override_rate is not None else default_rate))
  fee_amount = round2(Decimal(str(transacted_total)) * applied_rate)
  vat_amount = round2(fee_amount * Decimal(str(vat_rate)))
  return TransactionFee(
    fee_amount=fee_amount,
    vat_amount=vat_amount,
    total_fee=fee_amount + vat_amount,
    applied_rate=applied_rate,
  )


def plugin_fees(monthly_prices: Iterable[Decimal], vat_rate: Decimal) -> PluginCharge:
  """Combined monthly charge of several plugins."""
  subtotal = round2(sum((round2(price) for price in monthly_prices), Decimal("0")))
  vat = round2(subtotal * Decimal(str(vat_rate)))
  return PluginCharge(subtotal=subtotal, vat=vat, total=subtotal + vat)


class PricingService:
  """Applies platform settings and store overrides to the pricing functions."""

  def __init__(self, settings: SettingsStore, session: Optional[Session] = None):
    self.settings = settings
    self.session = session

  def vat_rate(self) -> Decimal:
    return self.settings.get_decimal(VAT_RATE, self.session)

  def fee_rate(self) -> Decimal:
    return self.settings.get_decimal(TRANSACTION_FEE_RATE, self.session)

  def trial_days(self) -> int:
    return self.settings.get_int(SUBSCRIPTION_TRIAL_DAYS, self.session)

  def plan_prices(self) -> Dict[str, Decimal]:
    return {
      plan: self.settings.get_decimal(BillingConfig.get_plan_price_key(plan), self.session)
      for plan in BillingConfig.get_paid_plans()
    }

  def subscription_charge(
    self, plan: str, subscription: Optional[StoreSubscription] = None
  ) -> SubscriptionCharge:
    override = None
    if subscription is not None and subscription.custom_monthly_price is not None:
      override = Decimal(str(subscription.custom_monthly_price))
    return subscription_price(plan, self.vat_rate(), self.plan_prices(), override)

  def transaction_fee_charge(
    self, transacted_total: Decimal, subscription: Optional[StoreSubscription] = None
  ) -> TransactionFee:
    override = None
    if subscription is not None and subscription.custom_fee_rate is not None:
      override = Decimal(str(subscription.custom_fee_rate))
    return transaction_fee(transacted_total, self.fee_rate(), self.vat_rate(), override)

  def plugin_charge(self, monthly_prices: Iterable[Decimal]) -> PluginCharge:
    return plugin_fees(monthly_prices, self.vat_rate())
