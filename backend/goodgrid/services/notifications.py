from __future__ import annotations
import enum
import json
from typing import Any, Protocol
from uuid import UUID
import structlog
from redis.asyncio import Redis
from goodgrid.db import utcnow

log = structlog.get_logger()


class NotificationEvent(str, enum.Enum):
    REVIEW_ASSIGNED = "REVIEW_ASSIGNED"
    SUBMISSION_APPROVED = "SUBMISSION_APPROVED"
    SUBMISSION_REJECTED = "SUBMISSION_REJECTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    ZONE_UNLOCKED = "ZONE_UNLOCKED"


class Notifier(Protocol):
    async def notify(self, user_id: UUID, event: NotificationEvent, payload: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class LogNotifier:
    async def notify(self, user_id: UUID, event: NotificationEvent, payload: dict[str, Any]) -> None:
        log.info("notification", user_id=str(user_id), notification_event=event.value, payload=payload)

    async def close(self) -> None:
        return None


class RedisNotifier:
    """Publishes notifications as JSON on a Redis channel; delivery is owned by the subscriber."""

    def __init__(self, redis: Redis, channel: str):
        self.redis = redis
        self.channel = channel

    @classmethod
    def from_url(cls, url: str, channel: str) -> "RedisNotifier":
        return cls(Redis.from_url(url), channel)

    async def notify(self, user_id: UUID, event: NotificationEvent, payload: dict[str, Any]) -> None:
        message = {
            "type": event.value,
            "userId": str(user_id),
            "data": payload,
            "timestamp": utcnow().isoformat(),
        }
        await self.redis.publish(self.channel, json.dumps(message, default=str))

    async def close(self) -> None:
        await self.redis.aclose()


async def notify_safely(notifier: Notifier, user_id: UUID, event: NotificationEvent, payload: dict[str, Any]) -> None:
    """Best-effort: a failed notification never affects the operation that triggered it."""
    try:
        await notifier.notify(user_id, event, payload)
    except Exception as e:
        log.warning("notification_failed", user_id=str(user_id), notification_event=event.value, error=str(e))
