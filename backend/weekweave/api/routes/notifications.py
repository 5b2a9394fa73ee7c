from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from weekweave.api.deps import get_current_user, get_db, user_from_token
from weekweave.models.notification import Notification, NotificationType
from weekweave.schemas.auth import CurrentUser
from weekweave.schemas.notification import NotificationOut
from weekweave.services.audit import log_activity
from weekweave.services.realtime_hub import class_channel, realtime_hub, recipient_channel

router = APIRouter()


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    notification_type: NotificationType | None = Query(default=None),
    is_read: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    query = (
        select(Notification)
        .where(Notification.recipient_id == current_user.recipient_id)
        .order_by(Notification.created_at.desc())
    )
    if notification_type:
        query = query.where(Notification.notification_type == notification_type)
    if is_read is not None:
        query = query.where(Notification.is_read == is_read)
    return list(db.execute(query.offset(offset).limit(limit)).scalars())


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.recipient_id != current_user.recipient_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.is_read = True
    log_activity(
        db,
        actor_id=current_user.id,
        action="notification.read",
        entity_type="notification",
        entity_id=notification_id,
    )
    db.commit()
    db.refresh(notification)
    return notification


def _extract_ws_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token

    auth_header = websocket.headers.get("authorization")
    if not auth_header:
        return None
    scheme, _, value = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


@router.websocket("/notifications/ws")
async def notifications_websocket(websocket: WebSocket) -> None:
    """Push notifications for the caller plus invalidations for any classes it watches.

    Classes are passed as a comma separated ``classes`` query parameter.
    """
    token = _extract_ws_token(websocket)
    if not token:
        await websocket.close(code=1008)
        return
    try:
        user = user_from_token(token)
    except JWTError:
        await websocket.close(code=1008)
        return

    watched = [item.strip() for item in websocket.query_params.get("classes", "").split(",") if item.strip()]
    channels = [recipient_channel(user.recipient_id), *(class_channel(class_id) for class_id in watched)]

    await websocket.accept()
    await realtime_hub.subscribe(websocket, channels)
    try:
        await websocket.send_json({"event": "connected", "recipient_id": user.recipient_id, "classes": watched})
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await realtime_hub.unsubscribe(websocket, channels)
