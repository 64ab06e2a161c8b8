from fastapi import APIRouter

from . import admin, create, internal, status, webhook

router = APIRouter()
router.include_router(create.router)
router.include_router(webhook.router)
router.include_router(status.router)
router.include_router(admin.router)
router.include_router(internal.router)
