from fastapi import APIRouter

from app.api.treasury_endpoints.burns import router as burns_router
from app.api.treasury_endpoints.fees import router as fees_router
from app.api.treasury_endpoints.vesting import router as vesting_router

router = APIRouter(tags=["treasury"])

router.include_router(vesting_router)
router.include_router(fees_router)
router.include_router(burns_router)
