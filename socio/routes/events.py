import logging
import uuid
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from socio.database import get_db
from socio import models, schemas, storage
from socio.auth_utils import authenticate_user, require_organiser, require_event_owner
from socio.notification_service import notify_event_updated
from socio.parsers import (
    clean_optional_str,
    parse_bool,
    parse_json_field,
    parse_optional_date,
    parse_optional_datetime,
    parse_optional_float,
    parse_optional_int,
    parse_optional_time,
)

logger = logging.getLogger("socio.events")

router = APIRouter(prefix="/api/events", tags=["Events"])

# form field -> (model column, bucket)
FILE_FIELDS = {
    "imageFile": ("event_image_url", "event-images"),
    "bannerFile": ("banner_url", "event-banners"),
    "pdfFile": ("pdf_url", "event-pdfs"),
}

JSON_LIST_FIELDS = ("department_access", "rules", "schedule", "prizes", "tags")
TEXT_FIELDS = (
    "description", "venue", "category", "organizer_email", "organizer_phone",
    "whatsapp_invite_link", "organizing_dept", "fest",
)


def event_form(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    event_date: Optional[str] = Form(None),
    event_time: Optional[str] = Form(None),
    end_date: Optional[str] = Form(None),
    venue: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    claims_applicable: Optional[str] = Form(None),
    registration_fee: Optional[str] = Form(None),
    participants_per_team: Optional[str] = Form(None),
    max_participants: Optional[str] = Form(None),
    registration_deadline: Optional[str] = Form(None),
    organizer_email: Optional[str] = Form(None),
    organizer_phone: Optional[str] = Form(None),
    whatsapp_invite_link: Optional[str] = Form(None),
    organizing_dept: Optional[str] = Form(None),
    fest: Optional[str] = Form(None),
    department_access: Optional[str] = Form(None),
    rules: Optional[str] = Form(None),
    schedule: Optional[str] = Form(None),
    prizes: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
) -> Dict[str, Optional[str]]:
    """Raw event form values; ``None`` means the field was not sent."""
    return dict(locals())


def parse_event_fields(raw: Dict[str, Optional[str]]) -> Dict:
    """Convert the supplied form values into column values.

    Only fields present in the request are returned, so the same parser serves
    create and partial update. Raises ``ValueError`` on malformed input.
    """
    fields = {}
    for key in TEXT_FIELDS:
        if raw.get(key) is not None:
            fields[key] = clean_optional_str(raw[key])
    for key in JSON_LIST_FIELDS:
        if raw.get(key) is not None:
            fields[key] = parse_json_field(raw[key], [], field=key)
    if raw.get("event_date") is not None:
        fields["event_date"] = parse_optional_date(raw["event_date"], "event_date")
    if raw.get("end_date") is not None:
        fields["end_date"] = parse_optional_date(raw["end_date"], "end_date")
    if raw.get("event_time") is not None:
        fields["event_time"] = parse_optional_time(raw["event_time"], "event_time")
    if raw.get("registration_deadline") is not None:
        fields["registration_deadline"] = parse_optional_datetime(raw["registration_deadline"], "registration_deadline")
    if raw.get("claims_applicable") is not None:
        fields["claims_applicable"] = parse_bool(raw["claims_applicable"])
    if raw.get("registration_fee") is not None:
        fields["registration_fee"] = parse_optional_float(raw["registration_fee"], "registration_fee")
    for key in ("participants_per_team", "max_participants"):
        if raw.get(key) is not None:
            value = parse_optional_int(raw[key], key)
            if value is not None and value < 1:
                raise ValueError(f"{key} must be at least 1")
            fields[key] = value
    if raw.get("title") is not None:
        fields["title"] = raw["title"].strip()
    if fields.get("event_date") and fields.get("end_date") and fields["end_date"] < fields["event_date"]:
        raise ValueError("end_date cannot be before event_date")
    return fields


def _cleanup_uploads(uploaded: Dict[str, str]):
    for form_field, url in uploaded.items():
        _, bucket = FILE_FIELDS[form_field]
        storage.delete_file_by_url(url, bucket)


# Endpoint: GET /api/events
# Description: Public list of events, newest first. Optional fest/category filters.
@router.get("", response_model=schemas.EventListResponse)
def list_events(fest: Optional[str] = None, category: Optional[str] = None, db: Session = Depends(get_db)):
    logger.debug(f"Fetching events with fest={fest} category={category}")
    query = db.query(models.Event)
    if fest:
        query = query.filter(models.Event.fest == fest)
    if category:
        query = query.filter(models.Event.category == category)
    events = query.order_by(models.Event.created_at.desc()).all()
    logger.info(f"Fetched {len(events)} events")
    return {"events": events}


@router.get("/{event_id}", response_model=schemas.EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    if not event_id.strip():
        raise HTTPException(status_code=400, detail="Event ID must be a non-empty string.")
    event = db.query(models.Event).filter(models.Event.event_id == event_id).first()
    if not event:
        logger.error(f"Event {event_id} not found")
        raise HTTPException(status_code=404, detail=f"Event with ID '{event_id}' not found.")
    return {"event": event}


# Endpoint: POST /api/events
# Description: Creates an event from a multipart form. Organisers only.
@router.post("", response_model=schemas.EventCreatedResponse, status_code=201)
async def create_event(
    raw: Dict[str, Optional[str]] = Depends(event_form),
    imageFile: Optional[UploadFile] = File(None),
    bannerFile: Optional[UploadFile] = File(None),
    pdfFile: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
    organiser: models.User = Depends(require_organiser),
):
    logger.debug(f"Organiser {organiser.id} creating event with title: {raw.get('title')}")
    if not raw.get("title") or not raw["title"].strip():
        raise HTTPException(status_code=400, detail="Title is required and must be a non-empty string.")
    try:
        fields = parse_event_fields(raw)
    except ValueError as e:
        logger.error(f"Rejected event payload: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    event_id = str(uuid.uuid4())
    uploaded = {}
    try:
        for form_field, upload in (("imageFile", imageFile), ("bannerFile", bannerFile), ("pdfFile", pdfFile)):
            if upload and upload.filename:
                column, bucket = FILE_FIELDS[form_field]
                uploaded[form_field] = await storage.upload_file(upload, bucket, event_id)
                fields[column] = uploaded[form_field]

        new_event = models.Event(
            event_id=event_id,
            created_by=organiser.email,
            auth_uuid=auth_user.id,
            total_participants=0,
            **fields,
        )
        db.add(new_event)
        db.commit()
    except HTTPException:
        db.rollback()
        _cleanup_uploads(uploaded)
        raise
    except IntegrityError as e:
        db.rollback()
        _cleanup_uploads(uploaded)
        logger.error(f"Integrity error creating event: {e}")
        raise HTTPException(status_code=409, detail="An event with this ID already exists.")
    except Exception as e:
        db.rollback()
        _cleanup_uploads(uploaded)
        logger.error(f"Server error creating event: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error while creating event.")

    logger.info(f"Organiser {organiser.id} created event {event_id}")
    return {"message": "Event created successfully", "event_id": event_id, "created_by": organiser.email}


# Endpoint: PUT /api/events/{event_id}
# Description: Partial update of an event by its owner. Registrants are notified.
@router.put("/{event_id}", response_model=schemas.EventUpdatedResponse)
async def update_event(
    raw: Dict[str, Optional[str]] = Depends(event_form),
    imageFile: Optional[UploadFile] = File(None),
    bannerFile: Optional[UploadFile] = File(None),
    pdfFile: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    organiser: models.User = Depends(require_organiser),
    event: models.Event = Depends(require_event_owner),
):
    logger.debug(f"Organiser {organiser.id} updating event {event.event_id}")
    if raw.get("title") is not None and not raw["title"].strip():
        raise HTTPException(status_code=400, detail="Title must be a non-empty string.")
    try:
        fields = parse_event_fields(raw)
    except ValueError as e:
        logger.error(f"Rejected event update payload: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    uploaded = {}
    replaced = []
    try:
        for form_field, upload in (("imageFile", imageFile), ("bannerFile", bannerFile), ("pdfFile", pdfFile)):
            if upload and upload.filename:
                column, bucket = FILE_FIELDS[form_field]
                uploaded[form_field] = await storage.upload_file(upload, bucket, event.event_id)
                replaced.append((getattr(event, column), bucket))
                fields[column] = uploaded[form_field]

        for key, value in fields.items():
            setattr(event, key, value)
        notified = notify_event_updated(db, event)
        db.commit()
        db.refresh(event)
    except HTTPException:
        db.rollback()
        _cleanup_uploads(uploaded)
        raise
    except Exception as e:
        db.rollback()
        _cleanup_uploads(uploaded)
        logger.error(f"Server error updating event {event.event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error while updating event.")

    for old_url, bucket in replaced:
        storage.delete_file_by_url(old_url, bucket)
    logger.info(f"Organiser {organiser.id} updated event {event.event_id}; notified {notified} registrants")
    return {"message": "Event updated successfully", "event": event, "notified": notified}


# Endpoint: DELETE /api/events/{event_id}
# Description: Deletes an event with its files, registrations and attendance rows.
@router.delete("/{event_id}", response_model=schemas.MessageResponse)
def delete_event(
    db: Session = Depends(get_db),
    organiser: models.User = Depends(require_organiser),
    event: models.Event = Depends(require_event_owner),
):
    event_id = event.event_id
    logger.debug(f"Organiser {organiser.id} deleting event {event_id}")
    files = [(getattr(event, column), bucket) for column, bucket in FILE_FIELDS.values()]
    try:
        db.query(models.AttendanceStatus).filter(models.AttendanceStatus.event_id == event_id).delete(synchronize_session=False)
        db.query(models.QRScanLog).filter(models.QRScanLog.event_id == event_id).delete(synchronize_session=False)
        db.query(models.Registration).filter(models.Registration.event_id == event_id).delete(synchronize_session=False)
        db.delete(event)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Server error deleting event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error while deleting event.")

    for url, bucket in files:
        storage.delete_file_by_url(url, bucket)
    logger.info(f"Organiser {organiser.id} deleted event {event_id}")
    return {"message": f"Event deleted successfully by {organiser.email}"}
