import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session

from socio import models
from socio.qr_service import InvalidQRCode, verify_qr_code_data

logger = logging.getLogger("socio.attendance_service")


class ScanRejected(Exception):
    """A scan that could not be reconciled; ``status_code`` is the HTTP status to return."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def build_attendance_upsert(dialect_name: str, values: Dict):
    """INSERT ... ON CONFLICT / ON DUPLICATE KEY UPDATE for one attendance row."""
    table = models.AttendanceStatus.__table__
    if dialect_name == "mysql":
        stmt = mysql.insert(table).values(**values)
        return stmt.on_duplicate_key_update(
            status=stmt.inserted.status,
            marked_at=stmt.inserted.marked_at,
            marked_by=stmt.inserted.marked_by,
        )
    if dialect_name in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect_name == "sqlite" else postgresql.insert
        stmt = insert(table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=["registration_id"],
            set_={
                "status": stmt.excluded.status,
                "marked_at": stmt.excluded.marked_at,
                "marked_by": stmt.excluded.marked_by,
            },
        )
    raise NotImplementedError(f"Attendance upsert is not supported on {dialect_name}")


def upsert_attendance(db: Session, registration_id: str, event_id: str, status: str,
                      marked_by: Optional[str], marked_at: datetime) -> None:
    stmt = build_attendance_upsert(db.get_bind().dialect.name, {
        "id": uuid.uuid4().hex,
        "registration_id": registration_id,
        "event_id": event_id,
        "status": status,
        "marked_at": marked_at,
        "marked_by": marked_by,
        "created_at": marked_at,
    })
    db.execute(stmt)


def mark_attendance(db: Session, event_id: str, participant_ids: Iterable[str], status: str,
                    marked_by: Optional[str]) -> Tuple[int, List[str]]:
    """Mark many registrations in one transaction.

    Ids that are not registrations of ``event_id`` are skipped and returned.
    Commits once at the end; any database error rolls everything back.
    """
    requested = list(dict.fromkeys(participant_ids))
    known = {
        row.registration_id
        for row in db.query(models.Registration.registration_id).filter(
            models.Registration.event_id == event_id,
            models.Registration.registration_id.in_(requested),
        )
    }
    now = models.utcnow()
    updated = 0
    skipped = []
    try:
        for participant_id in requested:
            if participant_id not in known:
                logger.warning(f"Skipping attendance for {participant_id}: not registered for event {event_id}")
                skipped.append(participant_id)
                continue
            upsert_attendance(db, participant_id, event_id, status, marked_by, now)
            updated += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    return updated, skipped


def get_participants(db: Session, event_id: str) -> List[Dict]:
    rows = (
        db.query(models.Registration, models.AttendanceStatus)
        .outerjoin(models.AttendanceStatus, models.Registration.registration_id == models.AttendanceStatus.registration_id)
        .filter(models.Registration.event_id == event_id)
        .order_by(models.Registration.created_at.desc())
        .all()
    )
    participants = []
    for reg, attendance in rows:
        participant = {
            "id": reg.id,
            "registration_id": reg.registration_id,
            "event_id": reg.event_id,
            "registration_type": reg.registration_type,
            "created_at": reg.created_at,
            "attendance_status": attendance.status if attendance else "absent",
            "marked_at": attendance.marked_at if attendance else None,
            "marked_by": attendance.marked_by if attendance else None,
        }
        if reg.registration_type == "individual":
            participant["individual_name"] = reg.individual_name
            participant["individual_email"] = reg.individual_email
            participant["individual_register_number"] = reg.individual_register_number
        else:
            participant["team_name"] = reg.team_name
            participant["team_leader_name"] = reg.team_leader_name
            participant["team_leader_email"] = reg.team_leader_email
            participant["team_leader_register_number"] = reg.team_leader_register_number
            participant["teammates"] = reg.teammates or []
        participants.append(participant)
    return participants


def get_attendance_stats(db: Session, event_id: str) -> Dict:
    rows = (
        db.query(models.Registration.registration_id, models.AttendanceStatus.status)
        .outerjoin(models.AttendanceStatus, models.Registration.registration_id == models.AttendanceStatus.registration_id)
        .filter(models.Registration.event_id == event_id)
        .all()
    )
    total = len(rows)
    attended = sum(1 for _, status in rows if status == "attended")
    absent = sum(1 for _, status in rows if status == "absent")
    pending = total - attended - absent
    rate = round(attended / total * 100, 1) if total else 0.0
    return {
        "total": total,
        "attended": attended,
        "absent": absent,
        "pending": pending,
        "attendance_rate": rate,
    }


def log_scan(db: Session, event_id: str, registration_id: Optional[str], scanned_by: Optional[str],
             result: str, message: str) -> None:
    db.add(models.QRScanLog(
        event_id=event_id,
        registration_id=registration_id,
        scanned_by=scanned_by,
        result=result,
        message=message[:500],
    ))
    db.commit()


def reconcile_scan(db: Session, event_id: str, qr_data, scanned_by: Optional[str]) -> Dict:
    """Check a scanned QR payload against the event roster and mark attendance.

    Every outcome is written to ``qr_scan_logs``. Raises ``ScanRejected`` for
    payloads that cannot be accepted.
    """
    try:
        payload = verify_qr_code_data(qr_data)
    except InvalidQRCode as e:
        log_scan(db, event_id, None, scanned_by, "invalid", str(e))
        raise ScanRejected(400, str(e))

    registration_id = payload["registration_id"]
    if payload["event_id"] != event_id:
        message = f"QR code belongs to event {payload['event_id']}"
        log_scan(db, event_id, registration_id, scanned_by, "wrong_event", message)
        raise ScanRejected(400, "QR code is for a different event")

    registration = db.query(models.Registration).filter(
        models.Registration.registration_id == registration_id,
        models.Registration.event_id == event_id,
    ).first()
    if not registration:
        log_scan(db, event_id, registration_id, scanned_by, "not_found", "Registration not found")
        raise ScanRejected(404, "Registration not found")

    participant_name = registration.individual_name or registration.team_leader_name or registration.team_name
    existing = db.query(models.AttendanceStatus).filter(
        models.AttendanceStatus.registration_id == registration_id
    ).first()
    if existing and existing.status == "attended":
        log_scan(db, event_id, registration_id, scanned_by, "already_marked", "Attendance already marked")
        return {
            "message": "Attendance already marked",
            "already_marked": True,
            "registration_id": registration_id,
            "participant_name": participant_name,
            "participant_email": registration.participant_email,
            "marked_at": existing.marked_at,
        }

    now = models.utcnow()
    try:
        upsert_attendance(db, registration_id, event_id, "attended", scanned_by, now)
        db.add(models.QRScanLog(
            event_id=event_id,
            registration_id=registration_id,
            scanned_by=scanned_by,
            result="success",
            message="Attendance marked",
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Registration {registration_id} marked attended for event {event_id} by {scanned_by}")
    return {
        "message": "Attendance marked successfully",
        "already_marked": False,
        "registration_id": registration_id,
        "participant_name": participant_name,
        "participant_email": registration.participant_email,
        "marked_at": now,
    }
