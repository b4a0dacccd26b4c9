"""QuickShop Dagster orchestration.

Runs the recurring platform billing cycles as scheduled jobs so every run
is visible, retryable and logged in the Dagster UI.
"""

from quickshop.dagster.definitions import defs

__all__ = ["defs"]
