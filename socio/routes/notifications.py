import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from socio.database import get_db
from socio import models, schemas
from socio.auth_utils import authenticate_user, require_organiser
from socio.notification_service import create_notifications

logger = logging.getLogger("socio.notifications")

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])

NOTIFICATION_LIMIT = 50


def _caller_email(auth_user: schemas.AuthUser) -> str:
    if not auth_user.email:
        raise HTTPException(status_code=400, detail="Authenticated user has no email address")
    return auth_user.email.strip().lower()


def _validate_content(title: Optional[str], message: Optional[str], type: Optional[str]) -> str:
    if not title or not title.strip() or not message or not message.strip():
        raise HTTPException(status_code=400, detail="title and message are required")
    type = type or "info"
    if type not in models.NOTIFICATION_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of {', '.join(models.NOTIFICATION_TYPES)}")
    return type


def _get_own_notification(db: Session, notification_id: str, email: str) -> models.Notification:
    notification = db.query(models.Notification).filter(
        models.Notification.id == notification_id,
        func.lower(models.Notification.recipient_email) == email,
    ).first()
    if not notification:
        logger.error(f"Notification {notification_id} not found for {email}")
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


# Endpoint: GET /api/notifications
# Description: The caller's most recent notifications and their unread count.
@router.get("", response_model=schemas.NotificationListResponse)
def list_notifications(
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    email = _caller_email(auth_user)
    mine = db.query(models.Notification).filter(func.lower(models.Notification.recipient_email) == email)
    notifications = mine.order_by(models.Notification.created_at.desc()).limit(NOTIFICATION_LIMIT).all()
    unread_count = mine.filter(models.Notification.is_read.is_(False)).count()
    return {"success": True, "notifications": notifications, "unread_count": unread_count}


@router.post("/read-all", response_model=schemas.MessageResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    email = _caller_email(auth_user)
    updated = (
        db.query(models.Notification)
        .filter(
            func.lower(models.Notification.recipient_email) == email,
            models.Notification.is_read.is_(False),
        )
        .update({models.Notification.is_read: True, models.Notification.read_at: models.utcnow()},
                synchronize_session=False)
    )
    db.commit()
    logger.info(f"Marked {updated} notifications read for {email}")
    return {"success": True, "message": f"Marked {updated} notifications as read"}


@router.post("/bulk", response_model=schemas.BulkNotificationResponse, status_code=201)
def create_bulk_notifications(
    body: schemas.BulkNotificationCreate,
    db: Session = Depends(get_db),
    organiser: models.User = Depends(require_organiser),
):
    type = _validate_content(body.title, body.message, body.type)
    if not body.recipientEmails or not any(e and e.strip() for e in body.recipientEmails):
        raise HTTPException(status_code=400, detail="recipientEmails must be a non-empty list")

    created = create_notifications(
        db,
        body.recipientEmails,
        title=body.title.strip(),
        message=body.message.strip(),
        type=type,
        event_id=body.eventId,
        event_title=body.eventTitle,
        action_url=body.actionUrl,
    )
    db.commit()
    logger.info(f"Organiser {organiser.id} sent {len(created)} notifications")
    return {"success": True, "message": f"Sent {len(created)} notifications", "count": len(created)}


# Endpoint: POST /api/notifications
# Description: Organisers send a single notification.
@router.post("", response_model=schemas.NotificationCreatedResponse, status_code=201)
def create_notification(
    body: schemas.NotificationCreate,
    db: Session = Depends(get_db),
    organiser: models.User = Depends(require_organiser),
):
    type = _validate_content(body.title, body.message, body.type)
    if not body.recipientEmail or not body.recipientEmail.strip():
        raise HTTPException(status_code=400, detail="recipientEmail is required")

    notification = create_notifications(
        db,
        [body.recipientEmail],
        title=body.title.strip(),
        message=body.message.strip(),
        type=type,
        event_id=body.eventId,
        event_title=body.eventTitle,
        action_url=body.actionUrl,
    )[0]
    db.commit()
    db.refresh(notification)
    logger.info(f"Organiser {organiser.id} sent notification {notification.id}")
    return {"success": True, "notification": notification, "message": "Notification created"}


@router.post("/{notification_id}/read", response_model=schemas.MessageResponse)
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    notification = _get_own_notification(db, notification_id, _caller_email(auth_user))
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = models.utcnow()
        db.commit()
    return {"success": True, "message": "Notification marked as read"}


@router.delete("/{notification_id}", response_model=schemas.MessageResponse)
def delete_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    notification = _get_own_notification(db, notification_id, _caller_email(auth_user))
    db.delete(notification)
    db.commit()
    logger.info(f"Notification {notification_id} deleted by {auth_user.id}")
    return {"success": True, "message": "Notification deleted"}
