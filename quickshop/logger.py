"""
QuickShop Unified Logging

Initializes the structured logging configuration once and exposes the
application loggers.
"""

import logging

from .config import env
from .config.logging import (
  get_logger,
  log_billing_event,
  log_error,
  setup_logging,
)

setup_logging()

logger = get_logger("quickshop")

if env.is_development():
  logging.getLogger("httpx").setLevel(logging.WARNING)
  logging.getLogger("httpcore").setLevel(logging.WARNING)
  logging.getLogger("urllib3").setLevel(logging.WARNING)

# Specialized loggers for different components
billing_logger = get_logger("quickshop.billing")
api_logger = get_logger("quickshop.api")

__all__ = [
  "logger",
  "billing_logger",
  "api_logger",
  "log_billing_event",
  "log_error",
  "get_logger",
]
