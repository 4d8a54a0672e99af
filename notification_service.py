"""
Notification fan-out.

Status-changing actions insert one notification row per affected user and
push the new row to any realtime subscriber of that user.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, Optional, Set

from utils import serialize_doc, utcnow

logger = logging.getLogger(__name__)


class NotificationBroadcaster:
    """In-process registry of realtime subscribers keyed by user id."""

    def __init__(self):
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, user_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[user_id].add(queue)
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(user_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[user_id]

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    def publish(self, user_id: str, payload: dict) -> int:
        queues = self._subscribers.get(user_id, ())
        for queue in queues:
            queue.put_nowait(payload)
        return len(queues)


broadcaster = NotificationBroadcaster()


def _jsonable(notification: dict) -> dict:
    payload = dict(notification)
    created_at = payload.get("created_at")
    if created_at is not None:
        payload["created_at"] = created_at.isoformat()
    return payload


async def create_notification(
    db,
    user_id: str,
    type: str,
    title: str,
    message: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> dict:
    notification = {
        "user_id": str(user_id),
        "type": getattr(type, "value", type),
        "title": title,
        "message": message,
        "reference_id": str(reference_id) if reference_id is not None else None,
        "is_read": False,
        "created_at": utcnow(),
    }
    result = await db.notifications.insert_one(notification)
    notification["_id"] = result.inserted_id
    serialized = serialize_doc(notification)

    delivered = broadcaster.publish(serialized["user_id"], _jsonable(serialized))
    logger.debug(
        "Notification %s (%s) for user %s pushed to %d subscribers",
        serialized["id"], serialized["type"], user_id, delivered,
    )
    return serialized


async def notify_admins(
    db,
    type: str,
    title: str,
    message: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> int:
    """Insert the same notification for every admin; returns how many."""
    count = 0
    async for admin in db.users.find({"role": "admin"}, {"_id": 1}):
        await create_notification(db, str(admin["_id"]), type, title, message, reference_id)
        count += 1
    if count == 0:
        logger.warning("No admin accounts to notify about %s", getattr(type, "value", type))
    return count
