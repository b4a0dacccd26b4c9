import pytest

from quickshop.config import env
from quickshop.config.env import (
  EnvConfig,
  get_bool_env,
  get_float_env,
  get_int_env,
  get_list_env,
  get_str_env,
)


def test_get_int_env_returns_default_on_invalid(monkeypatch, capsys):
  monkeypatch.setenv("INVALID_INT", "not-a-number")

  value = get_int_env("INVALID_INT", 7)

  captured = capsys.readouterr()
  assert "Invalid INVALID_INT value" in captured.out
  assert value == 7


def test_get_float_env_returns_default(monkeypatch, capsys):
  monkeypatch.setenv("INVALID_FLOAT", "oops")

  value = get_float_env("INVALID_FLOAT", 2.5)

  captured = capsys.readouterr()
  assert "Invalid INVALID_FLOAT value" in captured.out
  assert value == pytest.approx(2.5)


@pytest.mark.parametrize(
  "raw,expected",
  [
    ("true", True),
    ("1", True),
    ("yes", True),
    ("on", True),
    ("false", False),
    ("0", False),
    ("off", False),
  ],
)
def test_get_bool_env_parses_truthy_values(monkeypatch, raw, expected):
  monkeypatch.setenv("BOOL_TEST", raw)

  assert get_bool_env("BOOL_TEST", default=not expected) is expected


def test_get_str_env_uses_default_when_missing(monkeypatch):
  monkeypatch.delenv("MISSING_STR", raising=False)

  assert get_str_env("MISSING_STR", "fallback") == "fallback"


def test_get_list_env_splits_and_strips(monkeypatch):
  monkeypatch.setenv("LIST_ENV", " alpha , beta,gamma ,, ")

  assert get_list_env("LIST_ENV") == ["alpha", "beta", "gamma"]


def test_environment_helpers(monkeypatch):
  monkeypatch.setattr(EnvConfig, "ENVIRONMENT", "prod")
  assert EnvConfig.is_production()
  assert not EnvConfig.is_development()

  monkeypatch.setattr(EnvConfig, "ENVIRONMENT", "test")
  assert EnvConfig.is_test()
  assert not EnvConfig.is_staging()


def test_billing_callback_url_strips_trailing_slash(monkeypatch):
  monkeypatch.setattr(EnvConfig, "APP_URL", "https://shops.example/")

  assert env.billing_callback_url() == "https://shops.example/v1/billing/callback"


def test_billing_schedules_are_off_by_default(monkeypatch):
  monkeypatch.delenv("BILLING_SCHEDULES_ENABLED", raising=False)

  assert get_bool_env("BILLING_SCHEDULES_ENABLED", False) is False
