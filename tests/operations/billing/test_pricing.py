"""Tests for platform pricing."""

from decimal import Decimal

import pytest

from quickshop.exceptions import UnknownPlanError
from quickshop.models.billing import PlatformSetting
from quickshop.operations.billing import (
  PricingService,
  is_chargeable,
  plugin_fees,
  round2,
  subscription_price,
  transaction_fee,
)

PLAN_PRICES = {"plan_a": Decimal("299"), "plan_b": Decimal("399")}
VAT = Decimal("0.18")


class TestRounding:
  @pytest.mark.unit
  @pytest.mark.parametrize(
    "value,expected",
    [
      ("0.005", "0.01"),
      ("0.015", "0.02"),
      ("2.675", "2.68"),
      ("1.004", "1.00"),
      ("10", "10.00"),
    ],
  )
  def test_round2_half_up(self, value, expected):
    assert round2(Decimal(value)) == Decimal(expected)

  @pytest.mark.unit
  def test_minimum_charge(self):
    assert is_chargeable(Decimal("1.00"))
    assert not is_chargeable(Decimal("0.99"))
    assert not is_chargeable(Decimal("0"))


class TestSubscriptionPrice:
  @pytest.mark.unit
  def test_plan_a(self):
    charge = subscription_price("plan_a", VAT, PLAN_PRICES)

    assert charge.base == Decimal("299.00")
    assert charge.vat == Decimal("53.82")
    assert charge.total == Decimal("352.82")

  @pytest.mark.unit
  def test_plan_b(self):
    charge = subscription_price("plan_b", VAT, PLAN_PRICES)

    assert charge.total == Decimal("470.82")

  @pytest.mark.unit
  def test_override_price(self):
    charge = subscription_price("plan_a", VAT, PLAN_PRICES, override_price=Decimal("199"))

    assert charge.base == Decimal("199.00")
    assert charge.vat == Decimal("35.82")

  @pytest.mark.unit
  def test_unknown_plan(self):
    with pytest.raises(UnknownPlanError):
      subscription_price("plan_z", VAT, PLAN_PRICES)

  @pytest.mark.unit
  def test_trial_is_not_priced(self):
    with pytest.raises(UnknownPlanError):
      subscription_price("trial", VAT, PLAN_PRICES)


class TestTransactionFee:
  @pytest.mark.unit
  def test_vat_on_rounded_fee(self):
    fee = transaction_fee(Decimal("1000"), Decimal("0.005"), VAT)

    assert fee.fee_amount == Decimal("5.00")
    assert fee.vat_amount == Decimal("0.90")
    assert fee.total_fee == Decimal("5.90")
    assert fee.applied_rate == Decimal("0.005")

  @pytest.mark.unit
  def test_fee_rounds_before_vat(self):
    # 333.33 * 0.005 = 1.66665 -> 1.67, VAT 0.3006 -> 0.30
    fee = transaction_fee(Decimal("333.33"), Decimal("0.005"), VAT)

    assert fee.fee_amount == Decimal("1.67")
    assert fee.vat_amount == Decimal("0.30")
    assert fee.total_fee == Decimal("1.97")

  @pytest.mark.unit
  def test_override_rate(self):
    fee = transaction_fee(Decimal("1000"), Decimal("0.005"), VAT, override_rate=Decimal("0.01"))

    assert fee.fee_amount == Decimal("10.00")
    assert fee.applied_rate == Decimal("0.01")

  @pytest.mark.unit
  def test_zero_total(self):
    fee = transaction_fee(Decimal("0"), Decimal("0.005"), VAT)

    assert fee.total_fee == Decimal("0.00")


class TestPluginFees:
  @pytest.mark.unit
  def test_sums_before_vat(self):
    charge = plugin_fees([Decimal("49"), Decimal("29.90")], VAT)

    assert charge.subtotal == Decimal("78.90")
    assert charge.vat == Decimal("14.20")
    assert charge.total == Decimal("93.10")

  @pytest.mark.unit
  def test_no_plugins(self):
    assert plugin_fees([], VAT).total == Decimal("0.00")


class TestPricingService:
  def test_uses_current_settings(self, db_session, settings):
    PlatformSetting.upsert("subscription_plan_a_price", 249, db_session)
    pricing = PricingService(settings, db_session)

    assert pricing.plan_prices() == {"plan_a": Decimal("249"), "plan_b": Decimal("399")}
    assert pricing.subscription_charge("plan_a").total == Decimal("293.82")
    assert pricing.trial_days() == 7

  def test_store_overrides(self, db_session, settings, store, make_subscription):
    subscription = make_subscription(store)
    subscription.custom_monthly_price = Decimal("100")
    subscription.custom_fee_rate = Decimal("0.002")
    pricing = PricingService(settings, db_session)

    assert pricing.subscription_charge("plan_b", subscription).base == Decimal("100.00")
    assert pricing.transaction_fee_charge(Decimal("1000"), subscription).fee_amount == Decimal("2.00")
    assert pricing.plugin_charge([Decimal("10")]).total == Decimal("11.80")
