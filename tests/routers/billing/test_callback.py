"""Tests for the payment page callback endpoint."""

import asyncio
import base64
import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from main import app
from quickshop.config import env
from quickshop.database import get_db_session
from quickshop.models import BillingAuditLog, BillingInvoice, StoreSubscription
from quickshop.routers.billing import callback as callback_module
from quickshop.routers.billing.callback import get_callback_gateway

SECRET = "router-callback-secret"
URL = "/v1/billing/callback"


def sign(body: bytes, secret: str = SECRET) -> str:
  return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def callback_body(store_id, status_code="000", plan="plan_a", payment_type="subscription"):
  metadata = {
    "type": payment_type,
    "storeId": store_id,
    "plan": plan,
    "amount": "352.82",
    "basePrice": "299.00",
    "vatAmount": "53.82",
  }
  payload = {
    "transaction": {
      "uid": "txn-cb-1",
      "status_code": status_code,
      "more_info_1": json.dumps(metadata),
    },
    "data": {
      "customer_uid": "cus_cb",
      "card_information": {"token": "tok_cb", "four_digits": "1111"},
    },
  }
  return json.dumps(payload).encode()


@pytest.fixture
def client(monkeypatch, db_session, gateway):
  monkeypatch.setattr(env, "PAYPLUS_SECRET_KEY", SECRET)
  monkeypatch.setattr(env, "PAYPLUS_CALLBACK_VERIFY", True)
  app.dependency_overrides[get_db_session] = lambda: db_session
  app.dependency_overrides[get_callback_gateway] = lambda: gateway
  yield TestClient(app)
  app.dependency_overrides.clear()


def post(client, body, signature=None):
  headers = {"Content-Type": "application/json"}
  if signature is not None:
    headers["hash"] = signature
  return client.post(URL, content=body, headers=headers)


class TestCallbackSignature:
  def test_missing_signature_is_rejected(self, client, db_session, store):
    response = post(client, callback_body(store.id))

    assert response.status_code == 401
    assert StoreSubscription.get_by_store_id(store.id, db_session) is None
    rejected = db_session.query(BillingAuditLog).all()
    assert [entry.event_type for entry in rejected] == ["callback_rejected"]
    assert rejected[0].store_id is None

  def test_wrong_secret_is_rejected(self, client, db_session, store):
    body = callback_body(store.id)

    response = post(client, body, sign(body, "someone-else"))

    assert response.status_code == 401
    assert db_session.query(BillingInvoice).count() == 0

  def test_tampered_body_is_rejected(self, client, store):
    signature = sign(callback_body(store.id, plan="plan_a"))

    response = post(client, callback_body(store.id, plan="plan_b"), signature)

    assert response.status_code == 401


class TestCallbackProcessing:
  def test_successful_payment_activates(self, client, db_session, store):
    body = callback_body(store.id)

    response = post(client, body, sign(body))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Subscription activated"
    assert data["invoice_number"].startswith("QS-")

    subscription = StoreSubscription.get_by_store_id(store.id, db_session)
    assert subscription.status == "active"
    assert subscription.plan == "plan_a"
    assert subscription.gateway_token_ref == "tok_cb"
    assert db_session.query(BillingInvoice).count() == 1

  def test_duplicate_callback_records_nothing(self, client, db_session, store):
    body = callback_body(store.id)
    post(client, body, sign(body))

    response = post(client, body, sign(body))

    assert response.status_code == 200
    assert response.json()["message"] == "Subscription already processed"
    assert response.json()["invoice_number"] is None
    assert db_session.query(BillingInvoice).count() == 1

  def test_failed_payment(self, client, db_session, store):
    body = callback_body(store.id, status_code="003")

    response = post(client, body, sign(body))

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert StoreSubscription.get_by_store_id(store.id, db_session) is None

  def test_unknown_store(self, client):
    body = callback_body("st_missing")

    response = post(client, body, sign(body))

    assert response.status_code == 404

  def test_missing_metadata(self, client):
    body = json.dumps({"status_code": "000"}).encode()

    response = post(client, body, sign(body))

    assert response.status_code == 400

  def test_invalid_json(self, client):
    body = b"not json"

    response = post(client, body, sign(body))

    assert response.status_code == 400

  def test_verification_can_be_disabled(self, client, monkeypatch, db_session, store):
    monkeypatch.setattr(env, "PAYPLUS_CALLBACK_VERIFY", False)

    response = post(client, callback_body(store.id))

    assert response.status_code == 200
    assert response.json()["success"] is True

  def test_processing_runs_in_worker_thread(self, client, mocker, db_session, store):
    on_event_loop = []
    process = callback_module.handle_subscription_callback

    def _process(*args, **kwargs):
      try:
        asyncio.get_running_loop()
        on_event_loop.append(True)
      except RuntimeError:
        on_event_loop.append(False)
      return process(*args, **kwargs)

    mocker.patch.object(callback_module, "handle_subscription_callback", side_effect=_process)
    body = callback_body(store.id)

    response = post(client, body, sign(body))

    assert response.status_code == 200
    assert on_event_loop == [False]
    assert StoreSubscription.get_by_store_id(store.id, db_session).status == "active"
