import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from socio.database import get_db
from socio import models, schemas
from socio.auth_utils import authenticate_user, require_event_owner
from socio.attendance_service import (
    ScanRejected,
    get_attendance_stats,
    get_participants,
    mark_attendance,
    reconcile_scan,
)

logger = logging.getLogger("socio.attendance")

router = APIRouter(prefix="/api", tags=["Attendance"])

SCAN_LOG_LIMIT = 200


# Endpoint: GET /api/events/{event_id}/participants
# Description: Registrations of an event with their attendance status, for the organiser's roster.
@router.get("/events/{event_id}/participants")
def list_participants(
    db: Session = Depends(get_db),
    event: models.Event = Depends(require_event_owner),
):
    logger.debug(f"Fetching participants for event {event.event_id}")
    participants = get_participants(db, event.event_id)
    logger.info(f"Fetched {len(participants)} participants for event {event.event_id}")
    return {
        "event": {"event_id": event.event_id, "title": event.title},
        "participants": participants,
    }


# Endpoint: POST /api/events/{event_id}/attendance
# Description: Bulk mark registrations attended or absent in one transaction.
@router.post("/events/{event_id}/attendance", response_model=schemas.AttendanceUpdateResponse)
def update_attendance(
    body: schemas.AttendanceUpdateRequest,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
    event: models.Event = Depends(require_event_owner),
):
    if not body.participantIds:
        raise HTTPException(status_code=400, detail="participantIds must be a non-empty list")
    if body.status not in models.ATTENDANCE_STATUSES:
        raise HTTPException(status_code=400, detail="status must be 'attended' or 'absent'")

    marked_by = body.markedBy or auth_user.email
    try:
        updated, skipped = mark_attendance(db, event.event_id, body.participantIds, body.status, marked_by)
    except SQLAlchemyError as e:
        logger.error(f"Failed to update attendance for event {event.event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update attendance")

    logger.info(f"Marked {updated} registrations as {body.status} for event {event.event_id}; skipped {len(skipped)}")
    return {
        "message": f"Attendance updated for {updated} participants",
        "updated_count": updated,
        "skipped_ids": skipped,
    }


@router.get("/events/{event_id}/attendance/stats", response_model=schemas.AttendanceStatsResponse)
def attendance_stats(
    db: Session = Depends(get_db),
    event: models.Event = Depends(require_event_owner),
):
    return {"event_id": event.event_id, "stats": get_attendance_stats(db, event.event_id)}


# Endpoint: POST /api/events/{event_id}/scan
# Description: Reconciles a scanned QR payload against the roster and marks the registration attended.
@router.post("/events/{event_id}/scan", response_model=schemas.ScanResponse)
def scan_qr_code(
    body: schemas.ScanRequest,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
    event: models.Event = Depends(require_event_owner),
):
    logger.debug(f"Scan received for event {event.event_id} from {auth_user.id}")
    if body.qr_data is None or body.qr_data == "":
        raise HTTPException(status_code=400, detail="qr_data is required")
    try:
        return reconcile_scan(db, event.event_id, body.qr_data, auth_user.email or auth_user.id)
    except ScanRejected as e:
        logger.error(f"Scan rejected for event {event.event_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except SQLAlchemyError as e:
        logger.error(f"Database error while scanning for event {event.event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record attendance")


@router.get("/events/{event_id}/scan-logs", response_model=schemas.ScanLogListResponse)
def list_scan_logs(
    db: Session = Depends(get_db),
    event: models.Event = Depends(require_event_owner),
):
    logs = (
        db.query(models.QRScanLog)
        .filter(models.QRScanLog.event_id == event.event_id)
        .order_by(models.QRScanLog.scanned_at.desc(), models.QRScanLog.id.desc())
        .limit(SCAN_LOG_LIMIT)
        .all()
    )
    return {"logs": logs}
