"""Tests for plugin billing due dates."""

from datetime import timedelta

from quickshop.models import Store, StorePlugin


def test_due_plugins(db_session, store, make_plugin, now):
  make_plugin(store, "whatsapp", 49, next_billing_date=now - timedelta(days=1))
  make_plugin(store, "analytics", 29, next_billing_date=None)
  make_plugin(store, "reviews", 19, next_billing_date=now + timedelta(days=3))
  make_plugin(store, "seo", 9, is_active=False)
  make_plugin(store, "chat", 9, subscription_status="trial")

  due = StorePlugin.get_due_for_billing(store.id, now, db_session)

  assert [p.plugin_slug for p in due] == ["analytics", "whatsapp"]


def test_store_ids_with_due_plugins(db_session, make_store, make_plugin, now):
  first = make_store()
  second = make_store()
  make_plugin(first, "whatsapp", 49)
  make_plugin(first, "analytics", 29)
  make_plugin(second, "whatsapp", 49, next_billing_date=now + timedelta(days=1))

  assert StorePlugin.get_store_ids_with_due_plugins(now, db_session) == [first.id]


def test_deactivate_store(db_session, store):
  store.deactivate(db_session)

  assert Store.get_by_id(store.id, db_session).is_active is False
