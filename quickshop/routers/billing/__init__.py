"""Billing routers."""

from .callback import router as callback_router

__all__ = ["callback_router"]
