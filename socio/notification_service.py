import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from socio import models

logger = logging.getLogger("socio.notification_service")


def create_notifications(db: Session, recipients: Iterable[str], title: str, message: str, type: str = "info",
                         event_id: Optional[str] = None, event_title: Optional[str] = None,
                         action_url: Optional[str] = None) -> List[models.Notification]:
    """Queue one notification per distinct recipient. The caller commits."""
    notifications = []
    for email in dict.fromkeys(r.strip().lower() for r in recipients if r and r.strip()):
        notification = models.Notification(
            title=title,
            message=message,
            type=type,
            event_id=event_id,
            event_title=event_title,
            action_url=action_url,
            recipient_email=email,
            is_read=False,
        )
        db.add(notification)
        notifications.append(notification)
    return notifications


def registrant_emails(db: Session, event_id: str) -> List[str]:
    registrations = db.query(models.Registration).filter(models.Registration.event_id == event_id).all()
    emails = []
    for reg in registrations:
        emails.append(reg.user_email)
        emails.append(reg.participant_email)
    return [e for e in emails if e]


def notify_event_updated(db: Session, event: models.Event) -> int:
    recipients = registrant_emails(db, event.event_id)
    created = create_notifications(
        db,
        recipients,
        title="Event updated",
        message=f"Details for '{event.title}' have changed. Please review the event page.",
        type="info",
        event_id=event.event_id,
        event_title=event.title,
        action_url=f"/event/{event.event_id}",
    )
    logger.info(f"Queued {len(created)} update notifications for event {event.event_id}")
    return len(created)
