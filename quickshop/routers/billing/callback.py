"""PayPlus payment page callback."""

import json
from collections.abc import Generator

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ...config import env
from ...database import get_db_session
from ...exceptions import CallbackPayloadError, SubscriptionNotFoundError
from ...logger import get_logger
from ...models.api import PaymentCallbackResponse
from ...models.billing import BillingAuditLog, BillingEventType
from ...operations.billing import (
  PaymentGateway,
  get_payment_gateway,
  handle_subscription_callback,
  parse_gateway_callback,
  verify_callback_signature,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])

SIGNATURE_HEADER = "hash"


async def get_raw_body(request: Request) -> bytes:
  """Raw request body, needed byte-for-byte for signature verification."""
  return await request.body()


def get_callback_gateway() -> Generator[PaymentGateway]:
  """Gateway used to settle trial fees during activation."""
  gateway = get_payment_gateway()
  try:
    yield gateway
  finally:
    gateway.close()


@router.post(
  "/callback",
  response_model=PaymentCallbackResponse,
  status_code=status.HTTP_200_OK,
  summary="Payment Page Callback",
  description="""Receive the result of a hosted subscription payment page.

**SECURITY**: The request carries no API key. It is authenticated by the
base64 HMAC-SHA256 signature of the raw body in the `hash` header, keyed
with the gateway secret. Unsigned or mis-signed callbacks are rejected with
401 and change nothing.

A successful payment activates the store's subscription, settles fees for
the trial period and records the paid subscription invoice. Repeated
callbacks for an already activated store are acknowledged without
recording anything.""",
  operation_id="handlePaymentCallback",
  responses={
    400: {"description": "Malformed callback"},
    401: {"description": "Invalid signature"},
    404: {"description": "Unknown store"},
  },
)
def handle_payment_callback(
  request: Request,
  raw_body: bytes = Depends(get_raw_body),
  db: Session = Depends(get_db_session),
  gateway: PaymentGateway = Depends(get_callback_gateway),
):
  signature = request.headers.get(SIGNATURE_HEADER)
  client_ip = request.client.host if request.client else "unknown"

  if env.PAYPLUS_CALLBACK_VERIFY and not verify_callback_signature(
    raw_body, signature, env.PAYPLUS_SECRET_KEY
  ):
    logger.warning(
      "Rejected payment callback with invalid signature",
      extra={
        "action": "callback_rejected",
        "client_ip": client_ip,
        "signature_present": bool(signature),
      },
    )
    BillingAuditLog.log_event(
      session=db,
      event_type=BillingEventType.CALLBACK_REJECTED,
      description="Payment callback rejected: invalid signature",
      actor_type="payplus_callback",
      event_data={
        "client_ip": client_ip,
        "signature_present": bool(signature),
        "payload_size_bytes": len(raw_body),
      },
    )
    db.commit()
    raise HTTPException(status_code=401, detail="Invalid callback signature")

  try:
    payload = json.loads(raw_body)
  except ValueError:
    raise HTTPException(status_code=400, detail="Callback body is not valid JSON")

  try:
    callback = parse_gateway_callback(payload)
    outcome = handle_subscription_callback(db, callback, gateway=gateway)
    db.commit()
  except CallbackPayloadError as e:
    db.rollback()
    logger.warning(f"Invalid payment callback: {e.message}", extra={"details": e.details})
    raise HTTPException(status_code=400, detail=e.message)
  except SubscriptionNotFoundError as e:
    db.rollback()
    raise HTTPException(status_code=404, detail=e.message)
  except Exception as e:
    db.rollback()
    logger.error(f"Failed to process payment callback: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail="Failed to process callback")

  logger.info(
    f"Payment callback for store {outcome.store_id}: {outcome.message}",
    extra={
      "store_id": outcome.store_id,
      "action": "callback_processed",
      "success": outcome.success,
      "invoice_number": outcome.invoice_number,
    },
  )
  return PaymentCallbackResponse(
    success=outcome.success,
    message=outcome.message,
    invoice_number=outcome.invoice_number,
  )
