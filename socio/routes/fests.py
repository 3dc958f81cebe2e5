import logging
import uuid
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from socio.database import get_db
from socio import models, schemas, storage
from socio.auth_utils import authenticate_user, require_organiser, require_fest_owner
from socio.parsers import clean_optional_str, parse_json_field, parse_optional_date

logger = logging.getLogger("socio.fests")

router = APIRouter(prefix="/api/fests", tags=["Fests"])

FEST_IMAGE_BUCKET = "fest-images"
TEXT_FIELDS = ("description", "organizing_dept", "category", "contact_email", "contact_phone")


def fest_form(
    fest_title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    opening_date: Optional[str] = Form(None),
    closing_date: Optional[str] = Form(None),
    organizing_dept: Optional[str] = Form(None),
    department_access: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    contact_email: Optional[str] = Form(None),
    contact_phone: Optional[str] = Form(None),
    event_heads: Optional[str] = Form(None),
) -> Dict[str, Optional[str]]:
    return dict(locals())


def parse_fest_fields(raw: Dict[str, Optional[str]]) -> Dict:
    fields = {}
    if raw.get("fest_title") is not None:
        fields["fest_title"] = raw["fest_title"].strip()
    for key in TEXT_FIELDS:
        if raw.get(key) is not None:
            fields[key] = clean_optional_str(raw[key])
    for key in ("department_access", "event_heads"):
        if raw.get(key) is not None:
            fields[key] = parse_json_field(raw[key], [], field=key)
    for key in ("opening_date", "closing_date"):
        if raw.get(key) is not None:
            fields[key] = parse_optional_date(raw[key], key)
    if fields.get("opening_date") and fields.get("closing_date") and fields["closing_date"] < fields["opening_date"]:
        raise ValueError("closing_date cannot be before opening_date")
    return fields


@router.get("", response_model=schemas.FestListResponse)
def list_fests(db: Session = Depends(get_db)):
    fests = db.query(models.Fest).order_by(models.Fest.opening_date.desc(), models.Fest.created_at.desc()).all()
    logger.info(f"Fetched {len(fests)} fests")
    return {"fests": fests}


@router.get("/{fest_id}", response_model=schemas.FestResponse)
def get_fest(fest_id: str, db: Session = Depends(get_db)):
    fest = db.query(models.Fest).filter(models.Fest.fest_id == fest_id).first()
    if not fest:
        logger.error(f"Fest {fest_id} not found")
        raise HTTPException(status_code=404, detail=f"Fest with ID '{fest_id}' not found.")
    return {"fest": fest}


@router.get("/{fest_id}/events", response_model=schemas.EventListResponse)
def get_fest_events(fest_id: str, db: Session = Depends(get_db)):
    fest = db.query(models.Fest).filter(models.Fest.fest_id == fest_id).first()
    if not fest:
        raise HTTPException(status_code=404, detail=f"Fest with ID '{fest_id}' not found.")
    events = (
        db.query(models.Event)
        .filter(models.Event.fest == fest_id)
        .order_by(models.Event.event_date.asc(), models.Event.event_time.asc())
        .all()
    )
    return {"events": events}


@router.post("", response_model=schemas.FestCreatedResponse, status_code=201)
async def create_fest(
    raw: Dict[str, Optional[str]] = Depends(fest_form),
    imageFile: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
    organiser: models.User = Depends(require_organiser),
):
    logger.debug(f"Organiser {organiser.id} creating fest: {raw.get('fest_title')}")
    if not raw.get("fest_title") or not raw["fest_title"].strip():
        raise HTTPException(status_code=400, detail="fest_title is required and must be a non-empty string.")
    try:
        fields = parse_fest_fields(raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    fest_id = str(uuid.uuid4())
    image_url = None
    try:
        if imageFile and imageFile.filename:
            image_url = await storage.upload_file(imageFile, FEST_IMAGE_BUCKET, fest_id)
        new_fest = models.Fest(
            fest_id=fest_id,
            fest_image_url=image_url,
            created_by=organiser.email,
            auth_uuid=auth_user.id,
            **fields,
        )
        db.add(new_fest)
        db.commit()
    except HTTPException:
        db.rollback()
        storage.delete_file_by_url(image_url, FEST_IMAGE_BUCKET)
        raise
    except IntegrityError as e:
        db.rollback()
        storage.delete_file_by_url(image_url, FEST_IMAGE_BUCKET)
        logger.error(f"Integrity error creating fest: {e}")
        raise HTTPException(status_code=409, detail="A fest with this ID already exists.")
    except Exception as e:
        db.rollback()
        storage.delete_file_by_url(image_url, FEST_IMAGE_BUCKET)
        logger.error(f"Server error creating fest: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error while creating fest.")

    logger.info(f"Organiser {organiser.id} created fest {fest_id}")
    return {"message": "Fest created successfully", "fest_id": fest_id, "created_by": organiser.email}


@router.put("/{fest_id}", response_model=schemas.FestUpdatedResponse)
async def update_fest(
    raw: Dict[str, Optional[str]] = Depends(fest_form),
    imageFile: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    organiser: models.User = Depends(require_organiser),
    fest: models.Fest = Depends(require_fest_owner),
):
    if raw.get("fest_title") is not None and not raw["fest_title"].strip():
        raise HTTPException(status_code=400, detail="fest_title must be a non-empty string.")
    try:
        fields = parse_fest_fields(raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    old_image_url = None
    new_image_url = None
    if imageFile and imageFile.filename:
        new_image_url = await storage.upload_file(imageFile, FEST_IMAGE_BUCKET, fest.fest_id)
        old_image_url = fest.fest_image_url
        fields["fest_image_url"] = new_image_url
    for key, value in fields.items():
        setattr(fest, key, value)
    try:
        db.commit()
        db.refresh(fest)
    except Exception as e:
        db.rollback()
        storage.delete_file_by_url(new_image_url, FEST_IMAGE_BUCKET)
        logger.error(f"Failed to update fest {fest.fest_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error while updating fest.")

    storage.delete_file_by_url(old_image_url, FEST_IMAGE_BUCKET)
    logger.info(f"Organiser {organiser.id} updated fest {fest.fest_id}")
    return {"message": "Fest updated successfully", "fest": fest}


@router.delete("/{fest_id}", response_model=schemas.MessageResponse)
def delete_fest(
    db: Session = Depends(get_db),
    organiser: models.User = Depends(require_organiser),
    fest: models.Fest = Depends(require_fest_owner),
):
    fest_id = fest.fest_id
    image_url = fest.fest_image_url
    try:
        # Events stay; they are only detached from the fest
        detached = (
            db.query(models.Event)
            .filter(models.Event.fest == fest_id)
            .update({models.Event.fest: None}, synchronize_session=False)
        )
        db.delete(fest)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Server error deleting fest {fest_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error while deleting fest.")

    storage.delete_file_by_url(image_url, FEST_IMAGE_BUCKET)
    logger.info(f"Organiser {organiser.id} deleted fest {fest_id}; detached {detached} events")
    return {"message": "Fest deleted successfully"}
