"""
Random Push API Router Package
"""
from fastapi import APIRouter
from .push_router import router as push_router
from .claim_router import router as claim_router
from .status_router import router as status_router

router = APIRouter()

# Include all sub-routers
router.include_router(push_router, tags=["push"])
router.include_router(claim_router, tags=["claim"])
router.include_router(status_router, tags=["status"])
