"""QuickShop platform billing API main application module."""

from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from quickshop.config import env
from quickshop.logger import api_logger as logger
from quickshop.routers import router as v1_router

API_TAGS = [
  {"name": "status", "description": "Service health"},
  {"name": "billing", "description": "Payment gateway callbacks"},
]


def _app_version() -> str:
  try:
    return pkg_version("quickshop-billing")
  except PackageNotFoundError:
    return "0.0.0"


def create_app() -> FastAPI:
  """
  Create the FastAPI app and include the routers.

  Returns:
      FastAPI: The configured FastAPI application.
  """
  app = FastAPI(
    title="QuickShop Billing API",
    version=_app_version(),
    description="Platform billing for QuickShop stores",
    openapi_url="/openapi.json",
    openapi_tags=API_TAGS,
  )

  app.state.current_time = datetime.now(timezone.utc)

  @app.on_event("startup")
  async def startup_event():
    logger.info(
      "Starting QuickShop billing API",
      extra={
        "environment": env.ENVIRONMENT,
        "billing_enabled": env.BILLING_ENABLED,
        "callback_verification": env.PAYPLUS_CALLBACK_VERIFY,
      },
    )
    if env.is_production() and not env.PAYPLUS_SECRET_KEY:
      logger.error("PAYPLUS_SECRET_KEY is not set; every payment callback will be rejected")

  @app.middleware("http")
  async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if env.ENVIRONMENT in ["prod", "staging"]:
      response.headers["Strict-Transport-Security"] = (
        "max-age=31536000; includeSubDomains"
      )
    return response

  @app.exception_handler(Exception)
  async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unhandled errors server-side and return a generic message."""
    logger.error(
      "Unhandled exception",
      extra={"path": request.url.path, "method": request.method},
      exc_info=exc,
    )
    return JSONResponse(
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      content={"detail": "Internal server error"},
    )

  app.include_router(v1_router)

  return app


app = create_app()
