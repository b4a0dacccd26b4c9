"""
API v1 routers.
"""

from fastapi import APIRouter

from .billing import callback_router
from .status import router as status_router

router = APIRouter(prefix="/v1")

router.include_router(status_router)
router.include_router(callback_router)

__all__ = ["router", "status_router", "callback_router"]
