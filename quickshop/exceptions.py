"""
Custom Exception Types for the QuickShop billing engine.

This module provides the exception hierarchy used by billing operations.
Each exception carries a machine-readable error code and a details dict so
failures can be logged, audited and returned from the API consistently.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class QuickShopError(Exception):
  """
  Base exception for all QuickShop application errors.

  Attributes:
      message: Human-readable error message
      error_code: Application-specific error code for categorization
      details: Additional error context and metadata
      timestamp: When the error occurred
  """

  def __init__(
    self,
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
  ):
    super().__init__(message)
    self.message = message
    self.error_code = error_code or self.__class__.__name__
    self.details = details or {}
    self.timestamp = datetime.now(timezone.utc).isoformat()

  def to_dict(self) -> Dict[str, Any]:
    """Convert exception to dictionary for API responses."""
    return {
      "error": self.error_code,
      "message": self.message,
      "details": self.details,
      "timestamp": self.timestamp,
    }


# ============================================================================
# Billing Exceptions
# ============================================================================


class BillingError(QuickShopError):
  """Base exception for billing operations."""

  pass


class SubscriptionNotFoundError(BillingError):
  """Raised when a store has no subscription and none can be created."""

  def __init__(self, store_id: str):
    super().__init__(
      f"Subscription not found for store '{store_id}'",
      error_code="SUBSCRIPTION_NOT_FOUND",
      details={"store_id": store_id},
    )


class PaymentMethodMissingError(BillingError):
  """Raised when a charge is requested for a store without a stored card token."""

  def __init__(self, store_id: str):
    super().__init__(
      f"No payment method on file for store '{store_id}'",
      error_code="PAYMENT_METHOD_MISSING",
      details={"store_id": store_id},
    )


class InvoiceAlreadyPaidError(BillingError):
  """Raised when a billing period already has a paid invoice."""

  def __init__(
    self,
    store_id: str,
    invoice_type: str,
    period_start: datetime,
    period_end: datetime,
    invoice_number: Optional[str] = None,
  ):
    super().__init__(
      f"Period {period_start.isoformat()} - {period_end.isoformat()} already billed "
      f"for store '{store_id}' ({invoice_type})",
      error_code="INVOICE_ALREADY_PAID",
      details={
        "store_id": store_id,
        "invoice_type": invoice_type,
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "invoice_number": invoice_number,
      },
    )


class InvoiceTotalsMismatchError(BillingError):
  """Raised when line items do not add up to the invoice subtotal."""

  def __init__(self, invoice_number: str, subtotal: Any, items_total: Any):
    super().__init__(
      f"Line items of invoice {invoice_number} total {items_total}, "
      f"expected subtotal {subtotal}",
      error_code="INVOICE_TOTALS_MISMATCH",
      details={
        "invoice_number": invoice_number,
        "subtotal": str(subtotal),
        "items_total": str(items_total),
      },
    )


class UnknownPlanError(BillingError):
  """Raised when a plan name has no configured price."""

  def __init__(self, plan: str):
    super().__init__(
      f"Unknown subscription plan '{plan}'",
      error_code="UNKNOWN_PLAN",
      details={"plan": plan},
    )


# ============================================================================
# Payment Gateway Exceptions
# ============================================================================


class PaymentGatewayError(QuickShopError):
  """Raised when the payment gateway rejects a request or cannot be reached."""

  def __init__(
    self,
    message: str,
    endpoint: Optional[str] = None,
    status_code: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
  ):
    error_details = {"endpoint": endpoint, "status_code": status_code}
    error_details.update(details or {})
    super().__init__(
      message,
      error_code="PAYMENT_GATEWAY_ERROR",
      details=error_details,
    )
    self.endpoint = endpoint
    self.status_code = status_code


class PaymentGatewayTimeoutError(PaymentGatewayError):
  """Raised when a gateway request exceeds its timeout."""

  def __init__(self, endpoint: str, timeout: float):
    super().__init__(
      f"Payment gateway request to {endpoint} timed out after {timeout}s",
      endpoint=endpoint,
      details={"timeout": timeout},
    )
    self.error_code = "PAYMENT_GATEWAY_TIMEOUT"


class CallbackPayloadError(QuickShopError):
  """Raised when a verified callback cannot be parsed."""

  def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
    super().__init__(
      f"Invalid callback payload: {reason}",
      error_code="INVALID_CALLBACK_PAYLOAD",
      details=details,
    )


# ============================================================================
# Configuration Exceptions
# ============================================================================


class SettingsError(QuickShopError):
  """Raised when platform settings cannot be loaded or saved."""

  def __init__(self, reason: str, key: Optional[str] = None):
    super().__init__(
      f"Platform settings error: {reason}",
      error_code="SETTINGS_ERROR",
      details={"key": key} if key else {},
    )
