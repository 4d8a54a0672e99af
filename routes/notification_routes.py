from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from typing import List
from bson import ObjectId
from bson.errors import InvalidId
import asyncio
import logging

from models.notification_models import MarkNotificationsRead, Notification, UnreadCount
from dataBase import get_db
from utils import get_current_user, serialize_doc, to_object_id, verify_token
from notification_service import broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[Notification])
async def get_my_notifications(
    unread_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    query = {"user_id": current_user["id"]}
    if unread_only:
        query["is_read"] = False

    notifications = []
    cursor = db.notifications.find(query).sort("created_at", -1).skip(skip).limit(limit)
    async for notif in cursor:
        notifications.append(serialize_doc(notif))
    return notifications


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    by_type = {}
    async for notif in db.notifications.find({"user_id": current_user["id"], "is_read": False}, {"type": 1}):
        by_type[notif["type"]] = by_type.get(notif["type"], 0) + 1
    return {"total": sum(by_type.values()), "by_type": by_type}


@router.put("/read")
async def mark_read_by_type(
    body: MarkNotificationsRead,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    query = {"user_id": current_user["id"], "is_read": False}
    if body.types:
        query["type"] = {"$in": body.types}
    result = await db.notifications.update_many(query, {"$set": {"is_read": True}})
    return {"message": "Notifications marked as read", "updated": result.modified_count}


@router.put("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    result = await db.notifications.update_one(
        {"_id": to_object_id(notification_id, "Notification"), "user_id": current_user["id"]},
        {"$set": {"is_read": True}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read"}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    result = await db.notifications.delete_one(
        {"_id": to_object_id(notification_id, "Notification"), "user_id": current_user["id"]}
    )
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification deleted successfully"}


@router.websocket("/ws")
async def notification_stream(websocket: WebSocket, token: str = "", db=Depends(get_db)):
    """Push each new notification of the token's user as a JSON message."""
    user_id = verify_token(token) if token else None
    user = None
    if user_id:
        try:
            user = await db.users.find_one({"_id": ObjectId(user_id)}, {"_id": 1})
        except InvalidId:
            user = None
    if not user:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    queue = broadcaster.subscribe(user_id)
    logger.debug("User %s subscribed to notifications", user_id)
    receiver = asyncio.create_task(websocket.receive_text())
    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await websocket.send_json(getter.result())
            else:
                getter.cancel()
            if receiver in done:
                # Raises WebSocketDisconnect once the client goes away
                receiver.result()
                receiver = asyncio.create_task(websocket.receive_text())
    except WebSocketDisconnect:
        pass
    finally:
        receiver.cancel()
        broadcaster.unsubscribe(user_id, queue)
        logger.debug("User %s unsubscribed from notifications", user_id)
