import os

os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import quickshop.models  # noqa: F401
from quickshop.database import Base
from quickshop.models import (
  FinancialStatus,
  Order,
  PluginPricing,
  Store,
  StorePlugin,
  StoreSubscription,
  SubscriptionPlan,
  SubscriptionStatus,
)
from quickshop.operations.billing import (
  ChargeResult,
  PaymentGateway,
  PaymentPage,
  SettingsStore,
  TokenStatus,
  verify_callback_signature,
)

# Fixed "now" shared by the billing clocks in tests
NOW = datetime(2026, 3, 10, 12, 0, 0)

CALLBACK_SECRET = "test-callback-secret"


class FakeGateway(PaymentGateway):
  """In-memory gateway recording every call.

  Charges succeed unless a result was queued with ``queue``.
  """

  def __init__(self):
    self.charges = []
    self.pages = []
    self._results = []

  def queue(self, *results: ChargeResult) -> "FakeGateway":
    self._results.extend(results)
    return self

  def get_or_create_customer(self, profile):
    return "cus_fake"

  def initiate_payment(
    self,
    amount,
    line_items,
    success_url,
    failure_url,
    callback_url,
    metadata,
    customer=None,
    description=None,
  ):
    self.pages.append(
      {
        "amount": amount,
        "line_items": line_items,
        "callback_url": callback_url,
        "metadata": metadata,
      }
    )
    return PaymentPage(url="https://pay.example/page/1", request_id="req_1")

  def charge_with_token(
    self,
    token_ref,
    customer_ref,
    amount,
    line_items=None,
    description="",
    idempotency_key=None,
  ):
    self.charges.append(
      {
        "token_ref": token_ref,
        "customer_ref": customer_ref,
        "amount": amount,
        "description": description,
        "idempotency_key": idempotency_key,
      }
    )
    if self._results:
      return self._results.pop(0)
    return ChargeResult(success=True, transaction_ref=f"txn_{len(self.charges)}")

  def check_token(self, token_ref):
    return TokenStatus(valid=True)

  def remove_token(self, token_ref):
    return True

  def verify_callback_signature(self, raw_body, signature, secret=None):
    return verify_callback_signature(raw_body, signature, secret or CALLBACK_SECRET)


def _settings_need_a_session():
  raise RuntimeError("Settings must be read through the test session")


@pytest.fixture
def engine():
  """In-memory SQLite shared by every session of a test."""
  engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
  )

  # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
  @event.listens_for(engine, "connect")
  def _do_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None

  @event.listens_for(engine, "begin")
  def _do_begin(conn):
    conn.exec_driver_sql("BEGIN")

  Base.metadata.create_all(bind=engine)
  yield engine
  engine.dispose()


@pytest.fixture
def db_session(engine):
  session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
  yield session
  session.rollback()
  session.close()


@pytest.fixture
def settings():
  return SettingsStore(session_factory=_settings_need_a_session, ttl=300)


@pytest.fixture
def gateway():
  return FakeGateway()


@pytest.fixture
def now():
  return NOW


@pytest.fixture
def clock():
  return lambda: NOW


@pytest.fixture
def make_store(db_session):
  counter = {"n": 0}

  def _make(slug=None, created_at=None, plan="trial"):
    counter["n"] += 1
    store = Store(
      name=f"Store {counter['n']}",
      slug=slug or f"store-{counter['n']}",
      owner_email=f"owner{counter['n']}@example.com",
      plan=plan,
      created_at=created_at or NOW - timedelta(days=20),
    )
    db_session.add(store)
    db_session.flush()
    return store

  return _make


@pytest.fixture
def store(make_store):
  return make_store(slug="demo")


@pytest.fixture
def make_subscription(db_session):
  def _make(
    store,
    status=SubscriptionStatus.ACTIVE.value,
    plan=SubscriptionPlan.PLAN_A.value,
    token_ref="tok_123",
    created_at=None,
    activated_at=None,
    period_end=None,
    trial_ends_at=None,
  ):
    created_at = created_at or NOW - timedelta(days=20)
    if status == SubscriptionStatus.TRIAL.value:
      plan = SubscriptionPlan.TRIAL.value
      period_start = None
      period_end = None
    else:
      activated_at = activated_at or NOW - timedelta(days=10)
      period_end = period_end or activated_at + timedelta(days=30)
      period_start = period_end - timedelta(days=30)

    subscription = StoreSubscription(
      store_id=store.id,
      plan=plan,
      status=status,
      trial_ends_at=trial_ends_at or created_at + timedelta(days=7),
      activated_at=activated_at,
      current_period_start=period_start,
      current_period_end=period_end,
      gateway_customer_ref="cus_123" if token_ref else None,
      gateway_token_ref=token_ref,
      created_at=created_at,
    )
    db_session.add(subscription)
    db_session.flush()
    return subscription

  return _make


@pytest.fixture
def make_order(db_session):
  def _make(store, total, paid_at, status=FinancialStatus.PAID.value):
    order = Order(
      store_id=store.id,
      total=Decimal(str(total)),
      financial_status=status,
      paid_at=paid_at,
      created_at=paid_at,
    )
    db_session.add(order)
    db_session.flush()
    return order

  return _make


@pytest.fixture
def make_plugin(db_session):
  def _make(store, slug, monthly_price=None, next_billing_date=None, **kwargs):
    if monthly_price is not None and PluginPricing.get_by_slug(slug, db_session) is None:
      db_session.add(PluginPricing(plugin_slug=slug, monthly_price=Decimal(str(monthly_price))))
    plugin = StorePlugin(
      store_id=store.id,
      plugin_slug=slug,
      next_billing_date=next_billing_date,
      **kwargs,
    )
    db_session.add(plugin)
    db_session.flush()
    return plugin

  return _make
