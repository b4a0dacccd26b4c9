"""Payment gateway resource for Dagster.

Hands billing ops a configured PayPlus client and closes it when the op is
done. Empty fields fall back to the PAYPLUS_* environment settings.
"""

from collections.abc import Generator
from contextlib import contextmanager

from dagster import ConfigurableResource

from quickshop.operations.billing.payment_gateway import (
  PaymentGateway,
  PayPlusConfig,
  PayPlusGateway,
)


class PaymentGatewayResource(ConfigurableResource):
  """PayPlus gateway resource for Dagster billing ops."""

  api_url: str = ""
  api_key: str = ""
  secret_key: str = ""
  terminal_uid: str = ""
  cashier_uid: str = ""
  timeout: float = 0.0

  def get_config(self) -> PayPlusConfig:
    config = PayPlusConfig.from_env()
    for name in ("api_url", "api_key", "secret_key", "terminal_uid", "cashier_uid", "timeout"):
      value = getattr(self, name)
      if value:
        setattr(config, name, value)
    return config

  @contextmanager
  def get_gateway(self) -> Generator[PaymentGateway]:
    gateway = PayPlusGateway(self.get_config())
    try:
      yield gateway
    finally:
      gateway.close()
