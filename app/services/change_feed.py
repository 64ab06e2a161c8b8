"""
Change feed - publishes committed row changes to Redis for UI collaborators.

Channel per table and streamer: `mabar:<table>:<streamer_id>`. Publishing
happens after commit and never fails the operation that triggered it.
"""
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Optional

import redis.asyncio as redis
from sqlalchemy import inspect

import config
from core.ports.feed import ChangeFeedPort
from core.schemas import ChangeEvent

logger = logging.getLogger(__name__)

_redis: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Get or create Redis connection singleton."""
    global _redis
    if _redis is None:
        _redis = redis.from_url(config.REDIS_URL, decode_responses=True)
        logger.info("Redis connection initialized for change feed")
    return _redis


def channel_for(table: str, streamer_id: str) -> str:
    return f"{config.CHANGE_FEED_CHANNEL_PREFIX}:{table}:{streamer_id}"


def serialize_row(row) -> Dict[str, Any]:
    """Column values of an ORM instance as JSON-safe primitives."""
    record = {}
    for attr in inspect(row).mapper.column_attrs:
        value = getattr(row, attr.key)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        record[attr.key] = value
    return record


def build_event(event_type: str, row, streamer_id: Optional[str] = None) -> ChangeEvent:
    """`streamer_id` is required for rows that do not carry one, like reward claims."""
    return ChangeEvent(
        type=event_type,
        table=row.__tablename__,
        streamer_id=str(streamer_id if streamer_id is not None else row.streamer_id),
        record=serialize_row(row),
    )


class RedisChangeFeed:
    """ChangeFeedPort over Redis pub/sub"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self._client = client

    async def publish(self, event: ChangeEvent) -> None:
        channel = channel_for(event.table, event.streamer_id)
        try:
            client = self._client or get_redis()
            await client.publish(channel, json.dumps(event.model_dump(mode="json")))
            logger.debug("Published %s to %s", event.type, channel)
        except Exception as e:
            logger.error("Failed to publish %s event to %s: %s", event.type, channel, e)


class NullChangeFeed:
    async def publish(self, event: ChangeEvent) -> None:
        logger.debug("Change feed disabled, dropping %s on %s", event.type, event.table)


def get_change_feed():
    if config.CHANGE_FEED_ENABLED:
        return RedisChangeFeed()
    return NullChangeFeed()


async def publish_rows(
    feed: ChangeFeedPort, event_type: str, *rows, streamer_id: Optional[str] = None
) -> None:
    """Publish one event per row. Errors are logged by the feed, never raised."""
    for row in rows:
        if row is None:
            continue
        try:
            event = build_event(event_type, row, streamer_id=streamer_id)
        except Exception as e:
            logger.error("Could not serialize %s for change feed: %s", type(row).__name__, e)
            continue
        await feed.publish(event)
