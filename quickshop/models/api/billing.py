"""Billing API models."""

from pydantic import BaseModel, Field


class PaymentCallbackResponse(BaseModel):
  """Acknowledgement returned to the payment gateway."""

  success: bool = Field(..., description="Whether the payment was applied")
  message: str = Field(..., examples=["Subscription activated"])
  invoice_number: str | None = Field(
    None, description="Platform invoice recorded for the payment", examples=["QS-2026-000042"]
  )
