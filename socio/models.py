import json
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.types import TypeDecorator

from .database import Base

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp; MySQL and SQLite DATETIME columns carry no zone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _hex_id() -> str:
    return uuid.uuid4().hex


class JSONText(TypeDecorator):
    """JSON value stored as text and parsed on read.

    A stored value that no longer parses, or parses to the wrong container, reads back as ``empty``.
    """

    impl = Text
    cache_ok = True

    def __init__(self, empty=list, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.empty = empty

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            # Already encoded (legacy rows, raw form input validated upstream)
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None or value == "":
            return self.empty()
        try:
            parsed = json.loads(value)
        except (TypeError, ValueError):
            logger.warning("Unparseable JSON column value; returning empty default")
            return self.empty()
        if not isinstance(parsed, type(self.empty())):
            logger.warning(f"JSON column value is {type(parsed).__name__}, expected {type(self.empty()).__name__}; returning empty default")
            return self.empty()
        return parsed


REGISTRATION_TYPES = ("individual", "team")
ATTENDANCE_STATUSES = ("attended", "absent")
NOTIFICATION_TYPES = ("info", "success", "warning", "error")
SCAN_RESULTS = ("success", "already_marked", "invalid", "wrong_event", "not_found")


class User(Base):
    __tablename__ = "users"
    id = Column(String(32), primary_key=True, default=_hex_id)
    auth_uuid = Column(String(64), unique=True, index=True, nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255))
    avatar_url = Column(String(500), nullable=True)
    is_organiser = Column(Boolean, default=False, nullable=False)
    course = Column(String(255), nullable=True)
    register_number = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Event(Base):
    __tablename__ = "events"
    id = Column(String(32), primary_key=True, default=_hex_id)
    event_id = Column(String(64), unique=True, index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    event_date = Column(Date, nullable=True)
    event_time = Column(Time, nullable=True)
    end_date = Column(Date, nullable=True)
    venue = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True)
    department_access = Column(JSONText(list))
    claims_applicable = Column(Boolean, default=False)
    registration_fee = Column(Float, nullable=True)
    participants_per_team = Column(Integer, nullable=True)
    max_participants = Column(Integer, nullable=True)
    event_image_url = Column(String(500), nullable=True)
    banner_url = Column(String(500), nullable=True)
    pdf_url = Column(String(500), nullable=True)
    rules = Column(JSONText(list))
    schedule = Column(JSONText(list))
    prizes = Column(JSONText(list))
    tags = Column(JSONText(list))
    organizer_email = Column(String(255), nullable=True)
    organizer_phone = Column(String(50), nullable=True)
    whatsapp_invite_link = Column(String(500), nullable=True)
    organizing_dept = Column(String(255), nullable=True)
    fest = Column(String(64), nullable=True, index=True)
    created_by = Column(String(255), nullable=True)
    auth_uuid = Column(String(64), nullable=True, index=True)
    registration_deadline = Column(DateTime, nullable=True)
    total_participants = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def registration_open(self):
        deadline = to_utc_naive(self.registration_deadline)
        if deadline and utcnow() > deadline:
            return False
        return True

    @property
    def spots_left(self):
        if self.max_participants is None:
            return None
        return max(self.max_participants - (self.total_participants or 0), 0)


class Fest(Base):
    __tablename__ = "fests"
    id = Column(String(32), primary_key=True, default=_hex_id)
    fest_id = Column(String(64), unique=True, index=True, nullable=False)
    fest_title = Column(String(255), nullable=False)
    description = Column(Text)
    opening_date = Column(Date, nullable=True)
    closing_date = Column(Date, nullable=True)
    fest_image_url = Column(String(500), nullable=True)
    organizing_dept = Column(String(255), nullable=True)
    department_access = Column(JSONText(list))
    category = Column(String(100), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    event_heads = Column(JSONText(list))
    created_by = Column(String(255), nullable=True)
    auth_uuid = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (
        CheckConstraint("registration_type IN ('individual', 'team')", name="ck_registrations_type"),
    )

    id = Column(String(32), primary_key=True, default=_hex_id)
    registration_id = Column(String(32), unique=True, index=True, nullable=False)
    event_id = Column(String(64), ForeignKey("events.event_id"), index=True, nullable=False)
    user_email = Column(String(255), nullable=True, index=True)
    registration_type = Column(String(20), nullable=False)
    individual_name = Column(String(255), nullable=True)
    individual_email = Column(String(255), nullable=True)
    individual_register_number = Column(String(50), nullable=True)
    team_name = Column(String(255), nullable=True)
    team_leader_name = Column(String(255), nullable=True)
    team_leader_email = Column(String(255), nullable=True)
    team_leader_register_number = Column(String(50), nullable=True)
    teammates = Column(JSONText(list))
    qr_code_data = Column(Text, nullable=True)
    qr_code_generated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def participant_email(self):
        if self.registration_type == "individual":
            return self.individual_email or self.user_email
        return self.team_leader_email or self.user_email

    @property
    def participant_count(self):
        if self.registration_type == "individual":
            return 1
        return len(self.teammates or []) + 1


class AttendanceStatus(Base):
    __tablename__ = "attendance_status"
    __table_args__ = (
        CheckConstraint("status IN ('attended', 'absent')", name="ck_attendance_status_status"),
    )

    id = Column(String(32), primary_key=True, default=_hex_id)
    registration_id = Column(String(32), ForeignKey("registrations.registration_id"), unique=True, nullable=False)
    event_id = Column(String(64), ForeignKey("events.event_id"), index=True, nullable=False)
    status = Column(String(20), nullable=False)
    marked_at = Column(DateTime, nullable=True)
    marked_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint("type IN ('info', 'success', 'warning', 'error')", name="ck_notifications_type"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="info")
    event_id = Column(String(64), nullable=True)
    event_title = Column(String(255), nullable=True)
    action_url = Column(String(500), nullable=True)
    recipient_email = Column(String(255), nullable=False, index=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class QRScanLog(Base):
    """One row per QR scan attempt, successful or not."""
    __tablename__ = "qr_scan_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registration_id = Column(String(32), nullable=True, index=True)
    event_id = Column(String(64), nullable=False, index=True)
    scanned_by = Column(String(255), nullable=True)
    result = Column(String(20), nullable=False)
    message = Column(String(500), nullable=True)
    scanned_at = Column(DateTime, default=utcnow)
