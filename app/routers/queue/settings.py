"""Mabar Settings Router - per-streamer queue configuration."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_current_streamer

from .schemas import SettingsResponse, SettingsUpsertRequest
from .service import get_settings, upsert_settings

router = APIRouter(prefix="/mabar/settings", tags=["Mabar Settings"])


@router.get("", response_model=SettingsResponse)
async def get_my_settings(
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_settings(db, streamer_id=streamer_id)


@router.put("", response_model=SettingsResponse)
async def save_my_settings(
    request: SettingsUpsertRequest,
    streamer_id: str = Depends(get_current_streamer),
    db: AsyncSession = Depends(get_async_db),
):
    return await upsert_settings(db, streamer_id=streamer_id, request=request)


@router.get("/{streamer_id}", response_model=SettingsResponse)
async def get_public_settings(streamer_id: str, db: AsyncSession = Depends(get_async_db)):
    """Registration form lookup; only active queues are visible."""
    return await get_settings(db, streamer_id=streamer_id, public=True)
