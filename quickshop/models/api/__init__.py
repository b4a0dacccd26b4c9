"""Pydantic request and response models for the HTTP API."""

from .billing import PaymentCallbackResponse
from .common import HealthStatus

__all__ = [
  "HealthStatus",
  "PaymentCallbackResponse",
]
