"""
Centralized configuration package for the QuickShop billing engine.

This package provides a single source of truth for configuration settings,
including environment variables, constants and default billing values.
"""

from .billing import DEFAULT_PLATFORM_SETTINGS, BillingConfig
from .env import EnvConfig, env

__all__ = [
  # Billing exports
  "DEFAULT_PLATFORM_SETTINGS",
  "BillingConfig",
  # Environment exports
  "EnvConfig",
  "env",
]
