"""Tests for the PayPlus gateway client."""

import base64
import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from quickshop.exceptions import PaymentGatewayError
from quickshop.operations.billing import (
  CustomerProfile,
  GatewayLineItem,
  PayPlusGateway,
  get_payment_gateway,
  verify_callback_signature,
)
from quickshop.operations.billing.payment_gateway import PayPlusConfig

API_URL = "https://payplus.test/api/v1.0"


class RecordingTransport:
  """Serves queued responses per endpoint and records every request."""

  def __init__(self):
    self.requests = []
    self.routes = {}

  def route(self, endpoint, response):
    self.routes[endpoint] = response
    return self

  def __call__(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    endpoint = request.url.path.split("/api/v1.0/", 1)[1]
    response = self.routes.get(endpoint)
    if response is None:
      return httpx.Response(404, json={"error": "not found"})
    if isinstance(response, Exception):
      raise response
    return response

  def body(self, index=-1):
    return json.loads(self.requests[index].content)


@pytest.fixture
def transport():
  return RecordingTransport()


@pytest.fixture
def payplus(transport):
  config = PayPlusConfig(
    api_url=API_URL,
    api_key="key",
    secret_key="secret",
    terminal_uid="term-1",
    cashier_uid="cash-1",
    payment_page_uid="page-1",
    timeout=5.0,
  )
  with PayPlusGateway(config=config, transport=httpx.MockTransport(transport)) as gateway:
    yield gateway


def _success(data=None, code=0):
  return httpx.Response(
    200,
    json={"results": {"status": "success", "code": code, "description": "ok"}, "data": data or {}},
  )


class TestChargeWithToken:
  def test_successful_charge(self, payplus, transport):
    transport.route(
      "Transactions/Charge",
      _success(
        {
          "transaction_uid": "txn-1",
          "invoice_number": "7001",
          "invoice_link": "https://payplus.test/inv/7001",
        }
      ),
    )

    result = payplus.charge_with_token(
      "tok_1",
      "cus_1",
      Decimal("352.82"),
      description="QuickShop Branding",
      idempotency_key="abc123",
    )

    assert result.success
    assert result.transaction_ref == "txn-1"
    assert result.invoice_number == "7001"
    assert result.invoice_url == "https://payplus.test/inv/7001"

    request = transport.requests[0]
    assert request.headers["Idempotency-Key"] == "abc123"
    assert request.headers["api-key"] == "key"
    body = transport.body()
    assert body["token"] == "tok_1"
    assert body["amount"] == 352.82
    assert body["more_info_2"] == "abc123"
    assert body["products"] == [
      {
        "name": "QuickShop Branding",
        "quantity": "1",
        "price": "352.82",
        "currency_code": "ILS",
        "vat_type": "0",
      }
    ]

  def test_line_items_are_sent(self, payplus, transport):
    transport.route("Transactions/Charge", _success({"transaction_uid": "txn-2"}))

    payplus.charge_with_token(
      "tok_1",
      None,
      Decimal("93.10"),
      line_items=[
        GatewayLineItem(name="whatsapp", price=Decimal("57.82")),
        GatewayLineItem(name="analytics", price=Decimal("35.28")),
      ],
    )

    body = transport.body()
    assert [p["name"] for p in body["products"]] == ["whatsapp", "analytics"]
    assert "more_info_2" not in body
    assert "Idempotency-Key" not in transport.requests[0].headers

  def test_declined_charge(self, payplus, transport):
    transport.route(
      "Transactions/Charge",
      httpx.Response(
        200,
        json={"results": {"status": "error", "code": 1, "description": "Card declined"}},
      ),
    )

    result = payplus.charge_with_token("tok_1", "cus_1", Decimal("10"))

    assert not result.success
    assert result.error == "Card declined"

  def test_success_status_with_nonzero_code_is_failure(self, payplus, transport):
    transport.route("Transactions/Charge", _success({"transaction_uid": "txn-3"}, code=7))

    assert not payplus.charge_with_token("tok_1", "cus_1", Decimal("10")).success

  def test_http_error_is_failure(self, payplus, transport):
    transport.route("Transactions/Charge", httpx.Response(500, text="boom"))

    result = payplus.charge_with_token("tok_1", "cus_1", Decimal("10"))

    assert not result.success
    assert "500" in result.error

  def test_timeout_is_failure(self, payplus, transport):
    transport.route("Transactions/Charge", httpx.ReadTimeout("timed out"))

    result = payplus.charge_with_token("tok_1", "cus_1", Decimal("10"))

    assert not result.success
    assert "timed out" in result.error
    assert len(transport.requests) == 1


class TestCustomers:
  def test_existing_customer_is_reused(self, payplus, transport):
    transport.route("Customers/Search", _success({"items": [{"customer_uid": "cus_9"}]}))

    profile = CustomerProfile(name="Demo", email="owner@example.com")

    assert payplus.get_or_create_customer(profile) == "cus_9"
    assert len(transport.requests) == 1

  def test_missing_customer_is_created(self, payplus, transport):
    transport.route("Customers/Search", _success({"items": []}))
    transport.route("Customers/Add", _success({"customer_uid": "cus_new"}))

    profile = CustomerProfile(name="Demo", email="owner@example.com", phone="050")

    assert payplus.get_or_create_customer(profile) == "cus_new"
    assert transport.body()["customer_name"] == "Demo"
    assert transport.body()["phone"] == "050"

  def test_creation_failure_raises(self, payplus, transport):
    transport.route("Customers/Search", _success({"items": []}))
    transport.route(
      "Customers/Add",
      httpx.Response(200, json={"results": {"status": "error", "description": "bad email"}}),
    )

    with pytest.raises(PaymentGatewayError, match="bad email"):
      payplus.get_or_create_customer(CustomerProfile(name="Demo", email="x"))


class TestPaymentPage:
  def test_generates_link_with_token_and_metadata(self, payplus, transport):
    transport.route(
      "PaymentPages/generateLink",
      _success({"payment_page_link": "https://pay.test/p/1", "page_request_uid": "req-1"}),
    )

    page = payplus.initiate_payment(
      amount=Decimal("352.82"),
      line_items=[GatewayLineItem(name="QuickShop Branding", price=Decimal("352.82"))],
      success_url="https://app.test/ok",
      failure_url="https://app.test/fail",
      callback_url="https://app.test/v1/billing/callback",
      metadata={"type": "subscription", "store_id": "st_1"},
      customer=CustomerProfile(name="Demo", email="owner@example.com"),
    )

    assert page.url == "https://pay.test/p/1"
    assert page.request_id == "req-1"
    body = transport.body()
    assert body["create_token"] is True
    assert body["refURL_callback"] == "https://app.test/v1/billing/callback"
    assert json.loads(body["more_info_1"]) == {"type": "subscription", "store_id": "st_1"}
    assert body["customer"]["email"] == "owner@example.com"

  def test_missing_link_raises(self, payplus, transport):
    transport.route("PaymentPages/generateLink", _success({}))

    with pytest.raises(PaymentGatewayError):
      payplus.initiate_payment(
        amount=Decimal("1"),
        line_items=[],
        success_url="s",
        failure_url="f",
        callback_url="c",
        metadata={},
      )


class TestTokens:
  def test_check_token(self, payplus, transport):
    transport.route(
      "Token/Check/tok_1",
      _success(
        {"four_digits": "4242", "brand_name": "visa", "expiry_month": "12", "expiry_year": "28"}
      ),
    )

    status = payplus.check_token("tok_1")

    assert status.valid
    assert status.last_four == "4242"
    assert status.expiry == "12/28"
    assert transport.requests[0].method == "GET"

  def test_check_unknown_token(self, payplus):
    assert payplus.check_token("tok_missing").valid is False

  def test_remove_token(self, payplus, transport):
    transport.route("Token/Remove/tok_1", _success())

    assert payplus.remove_token("tok_1") is True
    assert payplus.remove_token("tok_2") is False


class TestCallbackSignature:
  @staticmethod
  def _sign(body: bytes, secret: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()

  @pytest.mark.unit
  def test_valid_signature(self):
    body = b'{"transaction": {"status_code": "000"}}'

    assert verify_callback_signature(body, self._sign(body, "s3cret"), "s3cret")

  @pytest.mark.unit
  def test_tampered_body(self):
    signature = self._sign(b'{"amount": 1}', "s3cret")

    assert not verify_callback_signature(b'{"amount": 100}', signature, "s3cret")

  @pytest.mark.unit
  def test_missing_signature_or_secret(self):
    assert not verify_callback_signature(b"{}", None, "s3cret")
    assert not verify_callback_signature(b"{}", self._sign(b"{}", ""), "")

  def test_gateway_uses_configured_secret(self, payplus):
    body = b"{}"

    assert payplus.verify_callback_signature(body, self._sign(body, "secret"))
    assert not payplus.verify_callback_signature(body, self._sign(body, "other"))


@pytest.mark.unit
def test_unknown_provider():
  with pytest.raises(ValueError):
    get_payment_gateway("stripe")
