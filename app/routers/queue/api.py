from fastapi import APIRouter

from . import entries, settings

router = APIRouter()
router.include_router(settings.router)
router.include_router(entries.router)
