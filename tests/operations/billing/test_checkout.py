"""Tests for subscription checkout and payment page callbacks."""

import json
from decimal import Decimal

import pytest

from quickshop.exceptions import CallbackPayloadError, SubscriptionNotFoundError, UnknownPlanError
from quickshop.models import BillingAuditLog, BillingInvoice, StoreSubscription
from quickshop.operations.billing import (
  CustomerProfile,
  handle_subscription_callback,
  initiate_subscription_checkout,
  parse_gateway_callback,
)

OWNER = CustomerProfile(name="Demo Owner", email="owner@example.com")


def _metadata(store_id, plan="plan_a", **extra):
  metadata = {
    "type": "subscription",
    "storeId": store_id,
    "plan": plan,
    "amount": "352.82",
    "basePrice": "299.00",
    "vatAmount": "53.82",
  }
  metadata.update(extra)
  return metadata


def nested_payload(store_id, status_code="000", **metadata):
  return {
    "transaction": {
      "uid": "txn-page-1",
      "status_code": status_code,
      "more_info_1": json.dumps(_metadata(store_id, **metadata)),
    },
    "data": {
      "customer_uid": "cus_1",
      "card_information": {
        "token": "tok_page",
        "four_digits": "4242",
        "brand_id": 2,
        "expiry_month": "12",
        "expiry_year": "28",
      },
    },
    "invoice_number": "9001",
  }


class TestInitiateCheckout:
  def test_builds_payment_page(self, db_session, settings, gateway, store):
    page = initiate_subscription_checkout(
      db_session,
      store.id,
      "plan_b",
      OWNER,
      success_url="https://app.test/ok",
      failure_url="https://app.test/fail",
      callback_url="https://api.test/v1/billing/callback",
      settings=settings,
      gateway=gateway,
    )

    assert page.url == "https://pay.example/page/1"
    sent = gateway.pages[0]
    assert sent["amount"] == Decimal("470.82")
    assert sent["callback_url"] == "https://api.test/v1/billing/callback"
    assert sent["metadata"] == {
      "type": "subscription",
      "storeId": store.id,
      "plan": "plan_b",
      "amount": "470.82",
      "basePrice": "399.00",
      "vatAmount": "71.82",
    }
    assert StoreSubscription.get_by_store_id(store.id, db_session).status == "trial"

  def test_rejects_unknown_plan(self, db_session, settings, gateway, store):
    with pytest.raises(UnknownPlanError):
      initiate_subscription_checkout(
        db_session, store.id, "trial", OWNER, "s", "f", settings=settings, gateway=gateway
      )
    assert gateway.pages == []

  def test_unknown_store(self, db_session, settings, gateway):
    with pytest.raises(SubscriptionNotFoundError):
      initiate_subscription_checkout(
        db_session, "st_missing", "plan_a", OWNER, "s", "f", settings=settings, gateway=gateway
      )


class TestParseCallback:
  @pytest.mark.unit
  def test_nested_format(self):
    callback = parse_gateway_callback(nested_payload("st_1"))

    assert callback.format == "nested"
    assert callback.is_success
    assert callback.transaction_ref == "txn-page-1"
    assert callback.customer_ref == "cus_1"
    assert callback.token_ref == "tok_page"
    assert callback.last_four == "4242"
    assert callback.brand == "brand_2"
    assert callback.expiry == "12/28"
    assert callback.invoice_number == "9001"
    assert callback.metadata["storeId"] == "st_1"

  @pytest.mark.unit
  def test_flat_format(self):
    callback = parse_gateway_callback(
      {
        "status_code": "0",
        "transaction_uid": "txn-2",
        "customer_uid": "cus_2",
        "token_uid": "tok_2",
        "brand_name": "visa",
        "more_info_1": json.dumps(_metadata("st_2", plan="plan_b")),
      }
    )

    assert callback.format == "flat"
    assert callback.is_success
    assert callback.token_ref == "tok_2"
    assert callback.brand == "visa"
    assert callback.expiry is None
    assert callback.metadata["plan"] == "plan_b"

  @pytest.mark.unit
  def test_legacy_metadata_in_more_info(self):
    callback = parse_gateway_callback(
      {"status_code": "000", "more_info": json.dumps(_metadata("st_3"))}
    )

    assert callback.metadata["storeId"] == "st_3"

  @pytest.mark.unit
  def test_failed_status(self):
    assert not parse_gateway_callback(nested_payload("st_1", status_code="003")).is_success

  @pytest.mark.unit
  @pytest.mark.parametrize(
    "payload",
    [
      [],
      {"status_code": "000"},
      {"status_code": "000", "more_info_1": "not json"},
      {"status_code": "000", "more_info_1": json.dumps({"plan": "plan_a"})},
    ],
  )
  def test_invalid_payloads(self, payload):
    with pytest.raises(CallbackPayloadError):
      parse_gateway_callback(payload)


class TestHandleCallback:
  def test_success_activates_and_invoices(self, db_session, settings, gateway, store):
    callback = parse_gateway_callback(nested_payload(store.id))

    outcome = handle_subscription_callback(db_session, callback, settings=settings, gateway=gateway)

    assert outcome.success
    assert outcome.message == "Subscription activated"
    subscription = StoreSubscription.get_by_store_id(store.id, db_session)
    assert subscription.status == "active"
    assert subscription.gateway_token_ref == "tok_page"
    assert subscription.card_last_four == "4242"

    invoice = BillingInvoice.get_by_number(outcome.invoice_number, db_session)
    assert invoice.status == "paid"
    assert invoice.total_amount == Decimal("352.82")
    assert invoice.gateway_transaction_ref == "txn-page-1"
    assert invoice.gateway_invoice_number == "9001"
    assert invoice.period_start == subscription.current_period_start
    assert gateway.charges == []

  def test_duplicate_callback_is_noop(self, db_session, settings, gateway, store):
    callback = parse_gateway_callback(nested_payload(store.id))
    handle_subscription_callback(db_session, callback, settings=settings, gateway=gateway)

    again = handle_subscription_callback(db_session, callback, settings=settings, gateway=gateway)

    assert again.success
    assert again.message == "Subscription already processed"
    assert db_session.query(BillingInvoice).count() == 1

  def test_failed_payment_changes_nothing(self, db_session, settings, gateway, store):
    callback = parse_gateway_callback(nested_payload(store.id, status_code="003"))

    outcome = handle_subscription_callback(db_session, callback, settings=settings, gateway=gateway)

    assert not outcome.success
    assert StoreSubscription.get_by_store_id(store.id, db_session) is None
    events = [e.event_type for e in BillingAuditLog.get_store_history(db_session, store.id)]
    assert events == ["callback_received"]

  def test_amounts_fall_back_to_pricing(self, db_session, settings, gateway, store):
    payload = nested_payload(store.id, plan="plan_b")
    metadata = json.loads(payload["transaction"]["more_info_1"])
    del metadata["basePrice"], metadata["vatAmount"]
    payload["transaction"]["more_info_1"] = json.dumps(metadata)

    outcome = handle_subscription_callback(
      db_session, parse_gateway_callback(payload), settings=settings, gateway=gateway
    )

    invoice = BillingInvoice.get_by_number(outcome.invoice_number, db_session)
    assert invoice.subtotal == Decimal("399.00")
    assert invoice.total_amount == Decimal("470.82")

  def test_unknown_store(self, db_session, settings, gateway):
    callback = parse_gateway_callback(nested_payload("st_missing"))

    with pytest.raises(SubscriptionNotFoundError):
      handle_subscription_callback(db_session, callback, settings=settings, gateway=gateway)
    assert db_session.query(BillingAuditLog).count() == 0

  def test_non_subscription_payment(self, db_session, settings, gateway, store):
    callback = parse_gateway_callback(nested_payload(store.id, type="plugin"))

    with pytest.raises(CallbackPayloadError):
      handle_subscription_callback(db_session, callback, settings=settings, gateway=gateway)

  def test_missing_token(self, db_session, settings, gateway, store):
    payload = nested_payload(store.id)
    del payload["data"]["card_information"]["token"]

    with pytest.raises(CallbackPayloadError):
      handle_subscription_callback(
        db_session, parse_gateway_callback(payload), settings=settings, gateway=gateway
      )
