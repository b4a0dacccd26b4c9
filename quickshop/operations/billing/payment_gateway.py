"""Payment gateway abstraction and the PayPlus implementation.

The billing engine only talks to the gateway through ``PaymentGateway`` so
the processor can be swapped without touching the orchestration code.
Charges never raise: every transport, HTTP or API failure is returned as a
failed ``ChargeResult`` and nothing is retried here.
"""

import base64
import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ...config import env
from ...config.constants import BILLING_CURRENCY
from ...exceptions import PaymentGatewayError, PaymentGatewayTimeoutError
from ...logger import billing_logger as logger


@dataclass
class PayPlusConfig:
  """Connection settings for the PayPlus REST API."""

  api_url: str = ""
  api_key: str = ""
  secret_key: str = ""
  terminal_uid: str = ""
  cashier_uid: str = ""
  payment_page_uid: str = ""
  timeout: float = 30.0
  currency: str = BILLING_CURRENCY

  @classmethod
  def from_env(cls) -> "PayPlusConfig":
    return cls(
      api_url=env.PAYPLUS_API_URL,
      api_key=env.PAYPLUS_API_KEY,
      secret_key=env.PAYPLUS_SECRET_KEY,
      terminal_uid=env.PAYPLUS_TERMINAL_UID,
      cashier_uid=env.PAYPLUS_CASHIER_UID,
      payment_page_uid=env.PAYPLUS_PAYMENT_PAGE_UID,
      timeout=env.PAYPLUS_TIMEOUT,
    )


@dataclass(frozen=True)
class CustomerProfile:
  name: str
  email: str
  phone: Optional[str] = None
  vat_number: Optional[str] = None
  address: Optional[str] = None
  city: Optional[str] = None


@dataclass(frozen=True)
class GatewayLineItem:
  """Line sent to the gateway; ``price`` is the VAT-inclusive unit price."""

  name: str
  price: Decimal
  quantity: int = 1


@dataclass(frozen=True)
class PaymentPage:
  url: str
  request_id: str


@dataclass(frozen=True)
class ChargeResult:
  """Outcome of a token charge."""

  success: bool
  transaction_ref: Optional[str] = None
  invoice_number: Optional[str] = None
  invoice_url: Optional[str] = None
  error: Optional[str] = None
  raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

  @classmethod
  def failure(cls, error: str) -> "ChargeResult":
    return cls(success=False, error=error or "Unknown error")


@dataclass(frozen=True)
class TokenStatus:
  valid: bool
  last_four: Optional[str] = None
  brand: Optional[str] = None
  expiry: Optional[str] = None


def verify_callback_signature(
  raw_body: bytes, signature: Optional[str], secret: str
) -> bool:
  """Check a base64 HMAC-SHA256 signature over the raw callback body."""
  if not signature or not secret:
    return False

  if isinstance(raw_body, str):
    raw_body = raw_body.encode("utf-8")

  expected = base64.b64encode(
    hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
  ).decode("ascii")

  return hmac.compare_digest(expected, signature.strip())


def _money(amount: Decimal) -> float:
  return float(Decimal(str(amount)).quantize(Decimal("0.01")))


class PaymentGateway(ABC):
  """Abstract tokenized-payment gateway."""

  @abstractmethod
  def get_or_create_customer(self, profile: CustomerProfile) -> str:
    """Find a customer by email, creating it if absent.

    Returns:
        Gateway customer reference

    Raises:
        PaymentGatewayError: Search or creation failed
    """
    pass

  @abstractmethod
  def initiate_payment(
    self,
    amount: Decimal,
    line_items: List[GatewayLineItem],
    success_url: str,
    failure_url: str,
    callback_url: str,
    metadata: Dict[str, Any],
    customer: Optional[CustomerProfile] = None,
    description: Optional[str] = None,
  ) -> PaymentPage:
    """Create a hosted payment page that also stores a reusable card token.

    Raises:
        PaymentGatewayError: The page could not be created
    """
    pass

  @abstractmethod
  def charge_with_token(
    self,
    token_ref: str,
    customer_ref: Optional[str],
    amount: Decimal,
    line_items: Optional[List[GatewayLineItem]] = None,
    description: str = "",
    idempotency_key: Optional[str] = None,
  ) -> ChargeResult:
    """Charge a stored card. Never raises and never retries."""
    pass

  @abstractmethod
  def check_token(self, token_ref: str) -> TokenStatus:
    pass

  @abstractmethod
  def remove_token(self, token_ref: str) -> bool:
    pass

  @abstractmethod
  def verify_callback_signature(
    self, raw_body: bytes, signature: Optional[str], secret: Optional[str] = None
  ) -> bool:
    pass

  def close(self) -> None:
    """Release network resources."""


class PayPlusGateway(PaymentGateway):
  """PayPlus REST API implementation of the payment gateway."""

  def __init__(
    self,
    config: Optional[PayPlusConfig] = None,
    transport: Optional[httpx.BaseTransport] = None,
  ):
    """
    Initialize the PayPlus client.

    Args:
        config: Connection settings, read from the environment when omitted
        transport: Optional httpx transport, used to stub the API in tests
    """
    self.config = config or PayPlusConfig.from_env()
    self.client = httpx.Client(
      base_url=self.config.api_url,
      timeout=httpx.Timeout(self.config.timeout),
      headers={
        "Content-Type": "application/json",
        "api-key": self.config.api_key,
        "secret-key": self.config.secret_key,
      },
      transport=transport,
    )

  def __enter__(self):
    return self

  def __exit__(self, exc_type, exc_val, exc_tb):
    self.close()

  def close(self) -> None:
    self.client.close()

  def _request(
    self,
    endpoint: str,
    method: str = "POST",
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
  ) -> Dict[str, Any]:
    """Send an authenticated request and return the decoded JSON body."""
    try:
      response = self.client.request(method, endpoint, json=body, headers=headers)
    except httpx.TimeoutException as e:
      raise PaymentGatewayTimeoutError(endpoint, self.config.timeout) from e
    except httpx.HTTPError as e:
      raise PaymentGatewayError(
        f"PayPlus request failed: {e}", endpoint=endpoint
      ) from e

    if response.is_error:
      logger.error(
        f"PayPlus API error {response.status_code} on {endpoint}",
        extra={"status_code": response.status_code, "action": "gateway_request"},
      )
      raise PaymentGatewayError(
        f"PayPlus API error: {response.status_code}",
        endpoint=endpoint,
        status_code=response.status_code,
        details={"body": response.text[:500]},
      )

    try:
      payload = response.json()
    except ValueError as e:
      raise PaymentGatewayError(
        "PayPlus returned a non-JSON response",
        endpoint=endpoint,
        status_code=response.status_code,
      ) from e

    if not isinstance(payload, dict):
      raise PaymentGatewayError(
        "PayPlus returned an unexpected response", endpoint=endpoint
      )
    return payload

  @staticmethod
  def _results(payload: Dict[str, Any]) -> Dict[str, Any]:
    return payload.get("results") or {}

  def _is_success(self, payload: Dict[str, Any]) -> bool:
    return self._results(payload).get("status") == "success"

  def _describe(self, payload: Dict[str, Any]) -> str:
    return str(self._results(payload).get("description") or "Unknown error")

  def _products(
    self,
    amount: Decimal,
    line_items: Optional[List[GatewayLineItem]],
    description: str,
  ) -> List[Dict[str, Any]]:
    # PayPlus expects quantity and price as strings, vat_type "0" = VAT included
    items = line_items or [GatewayLineItem(name=description, price=amount)]
    return [
      {
        "name": item.name,
        "quantity": str(item.quantity),
        "price": str(Decimal(str(item.price)).quantize(Decimal("0.01"))),
        "currency_code": self.config.currency,
        "vat_type": "0",
      }
      for item in items
    ]

  def get_or_create_customer(self, profile: CustomerProfile) -> str:
    search = self._request(
      "Customers/Search",
      body={
        "terminal_uid": self.config.terminal_uid,
        "email": profile.email,
        "take": 1,
      },
    )
    found = (search.get("data") or {}).get("items") or []
    if found and found[0].get("customer_uid"):
      return found[0]["customer_uid"]

    created = self._request(
      "Customers/Add",
      body={
        "terminal_uid": self.config.terminal_uid,
        "customer_name": profile.name,
        "email": profile.email,
        "phone": profile.phone or "",
        "vat_number": profile.vat_number or "",
        "address": profile.address or "",
        "city": profile.city or "",
        "country_iso": "IL",
      },
    )
    customer_uid = (created.get("data") or {}).get("customer_uid")
    if not self._is_success(created) or not customer_uid:
      raise PaymentGatewayError(
        f"Failed to create customer: {self._describe(created)}",
        endpoint="Customers/Add",
      )

    logger.info(
      f"Created PayPlus customer {customer_uid}",
      extra={"action": "gateway_customer_created"},
    )
    return customer_uid

  def initiate_payment(
    self,
    amount: Decimal,
    line_items: List[GatewayLineItem],
    success_url: str,
    failure_url: str,
    callback_url: str,
    metadata: Dict[str, Any],
    customer: Optional[CustomerProfile] = None,
    description: Optional[str] = None,
  ) -> PaymentPage:
    body: Dict[str, Any] = {
      "payment_page_uid": self.config.payment_page_uid,
      "charge_method": 1,
      "create_token": True,
      "amount": _money(amount),
      "currency_code": self.config.currency,
      "initial_invoice": True,
      "items": self._products(amount, line_items, description or ""),
      "refURL_success": success_url,
      "refURL_failure": failure_url,
      "refURL_cancel": failure_url,
      "refURL_callback": callback_url,
      "send_failure_callback": True,
      "more_info": description or "",
      "more_info_1": json.dumps(metadata, default=str),
      "language_code": "he",
      "expiry_datetime": "30",
    }
    if customer is not None:
      body["customer"] = {
        "customer_name": customer.name,
        "email": customer.email,
        "phone": customer.phone or "",
        "vat_number": customer.vat_number or "",
      }

    response = self._request("PaymentPages/generateLink", body=body)
    data = response.get("data") or {}
    if not self._is_success(response) or not data.get("payment_page_link"):
      raise PaymentGatewayError(
        f"Failed to generate payment link: {self._describe(response)}",
        endpoint="PaymentPages/generateLink",
      )

    return PaymentPage(
      url=data["payment_page_link"], request_id=data.get("page_request_uid", "")
    )

  def charge_with_token(
    self,
    token_ref: str,
    customer_ref: Optional[str],
    amount: Decimal,
    line_items: Optional[List[GatewayLineItem]] = None,
    description: str = "",
    idempotency_key: Optional[str] = None,
  ) -> ChargeResult:
    body: Dict[str, Any] = {
      "terminal_uid": self.config.terminal_uid,
      "cashier_uid": self.config.cashier_uid,
      "amount": _money(amount),
      "currency_code": self.config.currency,
      "credit_terms": 1,
      "use_token": True,
      "token": token_ref,
      "customer_uid": customer_ref,
      "initial_invoice": True,
      "products": self._products(amount, line_items, description),
      "more_info_1": description,
    }
    headers = None
    if idempotency_key:
      body["more_info_2"] = idempotency_key
      headers = {"Idempotency-Key": idempotency_key}

    try:
      response = self._request("Transactions/Charge", body=body, headers=headers)
    except PaymentGatewayError as e:
      logger.warning(
        f"Token charge failed: {e.message}",
        extra={"action": "gateway_charge", "amount": str(amount)},
      )
      return ChargeResult.failure(e.message)

    results = self._results(response)
    if results.get("status") != "success" or results.get("code") != 0:
      return ChargeResult.failure(self._describe(response))

    data = response.get("data") or {}
    return ChargeResult(
      success=True,
      transaction_ref=data.get("transaction_uid"),
      invoice_number=data.get("invoice_number"),
      invoice_url=data.get("invoice_link"),
      raw=data,
    )

  def check_token(self, token_ref: str) -> TokenStatus:
    try:
      response = self._request(f"Token/Check/{token_ref}", method="GET")
    except PaymentGatewayError as e:
      logger.warning(f"Token check failed: {e.message}")
      return TokenStatus(valid=False)

    if not self._is_success(response):
      return TokenStatus(valid=False)

    data = response.get("data") or {}
    expiry = None
    if data.get("expiry_month") and data.get("expiry_year"):
      expiry = f"{data['expiry_month']}/{data['expiry_year']}"

    return TokenStatus(
      valid=True,
      last_four=data.get("four_digits"),
      brand=data.get("brand_name"),
      expiry=expiry,
    )

  def remove_token(self, token_ref: str) -> bool:
    try:
      response = self._request(
        f"Token/Remove/{token_ref}",
        body={"terminal_uid": self.config.terminal_uid},
      )
    except PaymentGatewayError as e:
      logger.warning(f"Token removal failed: {e.message}")
      return False
    return self._is_success(response)

  def verify_callback_signature(
    self, raw_body: bytes, signature: Optional[str], secret: Optional[str] = None
  ) -> bool:
    return verify_callback_signature(
      raw_body, signature, secret if secret is not None else self.config.secret_key
    )


def get_payment_gateway(provider_name: str = "payplus") -> PaymentGateway:
  """Factory function to get a payment gateway instance.

  Raises:
      ValueError: Unknown provider name
  """
  if provider_name == "payplus":
    return PayPlusGateway()
  else:
    raise ValueError(f"Unknown payment gateway: {provider_name}")
