"""Queue service layer: namespace settings and operator actions on entries."""

import logging

import config
from app.models.settings import NamespaceSettings
from app.services.change_feed import publish_rows
from core.errors import InvalidStateError, NotFoundError, ValidationError
from core.schemas import EntryCustomData

from . import repository as queue_repository
from .schemas import (
    EntryActionResponse,
    PublicQueueEntry,
    PublicQueueResponse,
    QueueEntryResponse,
    QueueListResponse,
    SettingsResponse,
)

logger = logging.getLogger(__name__)


def entry_to_response(entry) -> QueueEntryResponse:
    return QueueEntryResponse(
        id=entry.id,
        namespace_id=entry.namespace_id,
        player_name=entry.player_name,
        game_id=entry.game_id,
        game_nickname=entry.game_nickname,
        selected_role=entry.selected_role,
        amount=entry.amount,
        payment_status=entry.payment_status,
        payment_id=entry.payment_id,
        payment_method=entry.payment_method,
        queue_position=entry.queue_position,
        entry_status=entry.entry_status,
        fields=EntryCustomData.from_column(entry.custom_data).fields,
        joined_at=entry.joined_at,
        paid_at=entry.paid_at,
    )


async def get_settings(db, *, streamer_id: str, public: bool = False) -> SettingsResponse:
    settings = await queue_repository.get_settings_for_streamer(db, streamer_id=streamer_id)
    if settings is None or (public and not settings.is_active):
        raise NotFoundError("Mabar settings not found")
    response = SettingsResponse.model_validate(settings)
    response.active_entries = await queue_repository.count_active_entries(
        db, namespace_id=settings.id
    )
    return response


async def upsert_settings(db, *, streamer_id: str, request) -> SettingsResponse:
    settings = await queue_repository.get_settings_for_streamer(db, streamer_id=streamer_id)
    values = request.model_dump(mode="json")
    if settings is None:
        settings = NamespaceSettings(streamer_id=streamer_id, **values)
        db.add(settings)
        logger.info("Created mabar settings for streamer %s", streamer_id)
    else:
        for key, value in values.items():
            setattr(settings, key, value)
        logger.info("Updated mabar settings for streamer %s", streamer_id)
    await db.commit()
    await db.refresh(settings)
    return await get_settings(db, streamer_id=streamer_id)


async def list_queue(db, *, streamer_id: str, entry_status, payment_status, limit: int, offset: int):
    entries, total = await queue_repository.list_entries(
        db,
        streamer_id=streamer_id,
        entry_status=entry_status,
        payment_status=payment_status,
        limit=limit,
        offset=offset,
    )
    return QueueListResponse(entries=[entry_to_response(e) for e in entries], total=total)


async def get_public_queue(db, *, streamer_id: str) -> PublicQueueResponse:
    entries = await queue_repository.list_public_queue(db, streamer_id=streamer_id)
    return PublicQueueResponse(
        streamer_id=streamer_id,
        entries=[
            PublicQueueEntry(
                queue_position=e.queue_position,
                player_name=e.player_name,
                game_nickname=e.game_nickname,
                selected_role=e.selected_role,
                entry_status=e.entry_status,
            )
            for e in entries
        ],
    )


async def _load_entry(db, entry_id: int, streamer_id: str):
    entry = await queue_repository.get_entry(db, entry_id=entry_id, streamer_id=streamer_id)
    if entry is None:
        raise NotFoundError("Queue entry not found")
    return entry


async def _finish_transition(db, *, ok: bool, entry_id: int, streamer_id: str, action: str, feed):
    if not ok:
        await db.rollback()
        raise InvalidStateError(f"Queue entry {entry_id} changed, cannot {action}")
    await db.commit()
    entry = await _load_entry(db, entry_id, streamer_id)
    logger.info(
        "QUEUE_ENTRY_%s | entry=%s | streamer=%s | entry_status=%s",
        action.upper().replace("-", "_"), entry_id, streamer_id, entry.entry_status,
    )
    await publish_rows(feed, "UPDATE", entry)
    return EntryActionResponse(entry=entry_to_response(entry))


async def select_entry(db, *, entry_id: int, streamer_id: str, feed):
    entry = await _load_entry(db, entry_id, streamer_id)
    if entry.payment_status != "completed":
        raise ValidationError(f"{entry.player_name} has not paid")
    if entry.entry_status != "waiting":
        raise InvalidStateError(f"Only waiting entries can be selected (is {entry.entry_status})")

    selected = await queue_repository.count_selected(db, streamer_id=streamer_id)
    if selected >= config.PARTY_SIZE:
        raise ValidationError(f"At most {config.PARTY_SIZE} players can be selected")

    ok = await queue_repository.transition_entry(
        db,
        entry_id=entry_id,
        from_statuses=("waiting",),
        to_status="selected",
        payment_status="completed",
    )
    return await _finish_transition(
        db, ok=ok, entry_id=entry_id, streamer_id=streamer_id, action="select", feed=feed
    )


async def deselect_entry(db, *, entry_id: int, streamer_id: str, feed):
    entry = await _load_entry(db, entry_id, streamer_id)
    if entry.entry_status != "selected":
        raise InvalidStateError(f"Entry is not selected (is {entry.entry_status})")
    ok = await queue_repository.transition_entry(
        db, entry_id=entry_id, from_statuses=("selected",), to_status="waiting"
    )
    return await _finish_transition(
        db, ok=ok, entry_id=entry_id, streamer_id=streamer_id, action="deselect", feed=feed
    )


async def cancel_entry(db, *, entry_id: int, streamer_id: str, feed):
    """Soft cancel: the row and its queue position stay, the position is never reused."""
    entry = await _load_entry(db, entry_id, streamer_id)
    if entry.entry_status not in ("waiting", "selected"):
        raise InvalidStateError(f"Cannot cancel an entry that is {entry.entry_status}")
    if entry.payment_status == "completed":
        logger.warning(
            "PAID_ENTRY_CANCELLED | entry=%s | order_id=%s | amount=%s",
            entry.id, entry.payment_id, entry.amount,
        )
    ok = await queue_repository.transition_entry(
        db, entry_id=entry_id, from_statuses=("waiting", "selected"), to_status="cancelled"
    )
    return await _finish_transition(
        db, ok=ok, entry_id=entry_id, streamer_id=streamer_id, action="cancel", feed=feed
    )


async def mark_no_show(db, *, entry_id: int, streamer_id: str, feed):
    entry = await _load_entry(db, entry_id, streamer_id)
    if entry.entry_status not in ("waiting", "selected"):
        raise InvalidStateError(f"Cannot mark an entry that is {entry.entry_status} as no-show")
    ok = await queue_repository.transition_entry(
        db, entry_id=entry_id, from_statuses=("waiting", "selected"), to_status="no_show"
    )
    return await _finish_transition(
        db, ok=ok, entry_id=entry_id, streamer_id=streamer_id, action="no-show", feed=feed
    )
