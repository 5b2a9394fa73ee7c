from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from anyio import from_thread
from sqlalchemy import select
from sqlalchemy.orm import Session

from weekweave.models.notification import Notification, NotificationType
from weekweave.services.calendar import week_start
from weekweave.services.realtime_hub import class_channel, realtime_hub, recipient_channel

logger = logging.getLogger(__name__)

INVALIDATION_EVENT = "schedule.invalidated"


def _safe_iso(value: datetime | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def notification_to_event_payload(notification: Notification, *, event: str = "notification.created") -> dict:
    return {
        "event": event,
        "notification": {
            "id": notification.id,
            "recipient_id": notification.recipient_id,
            "title": notification.title,
            "message": notification.message,
            "notification_type": notification.notification_type.value,
            "change_id": notification.change_id,
            "is_read": notification.is_read,
            "created_at": _safe_iso(notification.created_at),
        },
    }


def _publish(channel: str, payload: dict) -> None:
    try:
        from_thread.run(realtime_hub.publish, channel, payload)
    except Exception:  # pragma: no cover - runtime environment dependent
        logger.debug("Unable to push realtime event to %s", channel, exc_info=True)


def create_notification(
    db: Session,
    *,
    recipient_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    change_id: str | None = None,
    deliver_realtime: bool = True,
) -> Notification:
    record = Notification(
        recipient_id=recipient_id,
        title=title,
        message=message,
        notification_type=notification_type,
        change_id=change_id,
    )
    db.add(record)
    db.flush()

    if deliver_realtime:
        _publish(recipient_channel(recipient_id), notification_to_event_payload(record))
    return record


def notify_once(
    db: Session,
    *,
    recipient_id: str,
    change_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.substitution,
) -> Notification | None:
    """Create a notification for ``change_id`` unless the recipient already has one."""
    existing = db.execute(
        select(Notification.id).where(
            Notification.recipient_id == recipient_id,
            Notification.change_id == change_id,
        )
    ).first()
    if existing is not None:
        return None
    return create_notification(
        db,
        recipient_id=recipient_id,
        title=title,
        message=message,
        notification_type=notification_type,
        change_id=change_id,
    )


def invalidation_payload(class_id: str, reference: date, *, reason: str) -> dict:
    return {
        "event": INVALIDATION_EVENT,
        "class_id": class_id,
        "week_start": week_start(reference).isoformat(),
        "reason": reason,
    }


def publish_scope_invalidation(class_id: str, reference: date, *, reason: str) -> None:
    """Tell subscribers of ``class_id`` that its effective week must be re-read."""
    payload = invalidation_payload(class_id, reference, reason=reason)
    logger.debug("Invalidating class %s week %s (%s)", class_id, payload["week_start"], reason)
    _publish(class_channel(class_id), payload)
