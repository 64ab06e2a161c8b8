from fastapi import APIRouter

from . import donors, mvp

router = APIRouter()
router.include_router(donors.router)
router.include_router(mvp.router)
