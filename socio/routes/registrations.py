import logging
import json
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from socio.database import get_db
from socio import models, schemas
from socio.auth_utils import authenticate_user, get_owned_event, optional_auth
from socio.qr_service import generate_qr_code_data, generate_qr_code_image

logger = logging.getLogger("socio.registrations")

router = APIRouter(prefix="/api", tags=["Registrations"])


def _lower(value: Optional[str]) -> Optional[str]:
    return value.strip().lower() if value else None


def _can_access_registration(db: Session, registration: models.Registration, auth_user: schemas.AuthUser) -> bool:
    """Registrants and the event owner may read or cancel a registration."""
    email = _lower(auth_user.email)
    if email and email in {_lower(registration.user_email), _lower(registration.participant_email)}:
        return True
    event = db.query(models.Event).filter(models.Event.event_id == registration.event_id).first()
    return bool(event and event.auth_uuid == auth_user.id)


def _get_registration_or_404(db: Session, registration_id: str) -> models.Registration:
    registration = db.query(models.Registration).filter(
        models.Registration.registration_id == registration_id
    ).first()
    if not registration:
        logger.error(f"Registration {registration_id} not found")
        raise HTTPException(status_code=404, detail="Registration not found")
    return registration


# Endpoint: GET /api/registrations?event_id=... | ?user_email=...
# Description: Event owners list an event's registrations; users list their own.
@router.get("/registrations", response_model=schemas.RegistrationListResponse)
def list_registrations(
    event_id: Optional[str] = None,
    user_email: Optional[str] = None,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    if event_id is not None and event_id.strip():
        get_owned_event(db, event_id, auth_user)
        query = db.query(models.Registration).filter(models.Registration.event_id == event_id)
    elif user_email is not None and user_email.strip():
        if _lower(user_email) != _lower(auth_user.email):
            raise HTTPException(status_code=403, detail="You can only view your own registrations")
        email = _lower(user_email)
        query = db.query(models.Registration).filter(
            or_(
                func.lower(models.Registration.user_email) == email,
                func.lower(models.Registration.individual_email) == email,
                func.lower(models.Registration.team_leader_email) == email,
            )
        )
    else:
        raise HTTPException(status_code=400, detail="Missing or invalid event_id parameter")

    registrations = query.order_by(models.Registration.created_at.desc()).all()
    logger.info(f"User {auth_user.id} fetched {len(registrations)} registrations")
    return {"registrations": registrations, "count": len(registrations)}


# Endpoint: POST /api/register
# Description: Registers an individual or a team for an event and issues the signed QR payload.
@router.post("/register", response_model=schemas.RegistrationCreatedResponse, status_code=201)
def register_for_event(
    body: schemas.RegistrationCreate,
    db: Session = Depends(get_db),
    auth_user: Optional[schemas.AuthUser] = Depends(optional_auth),
):
    if not body.event_id or not body.registration_type:
        raise HTTPException(status_code=400, detail="event_id and registration_type are required")
    if body.registration_type not in models.REGISTRATION_TYPES:
        raise HTTPException(status_code=400, detail="registration_type must be 'individual' or 'team'")

    event = db.query(models.Event).filter(models.Event.event_id == body.event_id).first()
    if not event:
        logger.error(f"Registration attempt for missing event {body.event_id}")
        raise HTTPException(status_code=404, detail="Event not found")
    if not event.registration_open:
        raise HTTPException(status_code=400, detail="Registration deadline has passed")

    user_email = _lower(body.user_email) or _lower(auth_user.email if auth_user else None)
    teammates = [t.model_dump() for t in body.teammates] if body.teammates else []
    if body.registration_type == "individual":
        participant_email = _lower(body.individual_email) or user_email
        participant_count = 1
        teammates = []
    else:
        if not body.team_name or not body.team_name.strip():
            raise HTTPException(status_code=400, detail="team_name is required for team registrations")
        participant_email = _lower(body.team_leader_email) or user_email
        participant_count = len(teammates) + 1
        if event.participants_per_team and participant_count > event.participants_per_team:
            raise HTTPException(
                status_code=400,
                detail=f"Teams for this event can have at most {event.participants_per_team} members",
            )
    if not participant_email:
        raise HTTPException(status_code=400, detail="A participant email is required")

    if event.max_participants is not None and (event.total_participants or 0) + participant_count > event.max_participants:
        logger.error(f"Event {event.event_id} is full")
        raise HTTPException(status_code=400, detail="Event has reached its maximum number of participants")

    duplicate = db.query(models.Registration).filter(
        models.Registration.event_id == event.event_id,
        or_(
            func.lower(models.Registration.individual_email) == participant_email,
            func.lower(models.Registration.team_leader_email) == participant_email,
        ),
    ).first()
    if duplicate:
        logger.error(f"{participant_email} already registered for event {event.event_id}")
        raise HTTPException(status_code=409, detail="You are already registered for this event")

    registration_id = uuid.uuid4().hex
    qr_code_data = generate_qr_code_data(registration_id, event.event_id, participant_email)
    is_individual = body.registration_type == "individual"
    registration = models.Registration(
        registration_id=registration_id,
        event_id=event.event_id,
        user_email=user_email,
        registration_type=body.registration_type,
        individual_name=body.individual_name if is_individual else None,
        individual_email=participant_email if is_individual else None,
        individual_register_number=body.individual_register_number if is_individual else None,
        team_name=None if is_individual else body.team_name.strip(),
        team_leader_name=None if is_individual else body.team_leader_name,
        team_leader_email=None if is_individual else participant_email,
        team_leader_register_number=None if is_individual else body.team_leader_register_number,
        teammates=teammates or None,
        qr_code_data=json.dumps(qr_code_data),
        qr_code_generated_at=models.utcnow(),
    )
    try:
        db.add(registration)
        db.query(models.Event).filter(models.Event.event_id == event.event_id).update(
            {models.Event.total_participants: models.Event.total_participants + participant_count},
            synchronize_session=False,
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Integrity error creating registration: {e}")
        raise HTTPException(status_code=409, detail="Registration with this ID already exists")
    db.refresh(registration)

    logger.info(f"Registration {registration_id} created for event {event.event_id} ({participant_count} participants)")
    return {"message": "Registration successful", "registration": registration}


@router.get("/registrations/{registration_id}", response_model=schemas.RegistrationResponse)
def get_registration(registration_id: str, db: Session = Depends(get_db)):
    registration = _get_registration_or_404(db, registration_id)
    return {"registration": registration}


# Endpoint: GET /api/registrations/{registration_id}/qr-code
# Description: Renders the stored QR payload as a PNG data URL.
@router.get("/registrations/{registration_id}/qr-code", response_model=schemas.QRCodeImageResponse)
def get_registration_qr_code(
    registration_id: str,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    registration = _get_registration_or_404(db, registration_id)
    if not _can_access_registration(db, registration, auth_user):
        raise HTTPException(status_code=403, detail="Not authorized to view this QR code")
    if not registration.qr_code_data:
        raise HTTPException(status_code=404, detail="QR code not found for this registration")
    try:
        qr_data = json.loads(registration.qr_code_data)
    except ValueError:
        logger.error(f"Stored QR payload for {registration_id} is not valid JSON")
        raise HTTPException(status_code=500, detail="Failed to generate QR code image")
    return {"qrCodeImage": generate_qr_code_image(qr_data), "eventId": registration.event_id}


# Endpoint: DELETE /api/registrations/{registration_id}
# Description: Cancels a registration; the event's participant counter never drops below zero.
@router.delete("/registrations/{registration_id}", response_model=schemas.MessageResponse)
def delete_registration(
    registration_id: str,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    registration = _get_registration_or_404(db, registration_id)
    if not _can_access_registration(db, registration, auth_user):
        raise HTTPException(status_code=403, detail="Not authorized to delete this registration")

    participant_count = registration.participant_count
    event_id = registration.event_id
    try:
        db.query(models.AttendanceStatus).filter(
            models.AttendanceStatus.registration_id == registration_id
        ).delete(synchronize_session=False)
        db.delete(registration)
        db.query(models.Event).filter(models.Event.event_id == event_id).update(
            {
                models.Event.total_participants: case(
                    (models.Event.total_participants > participant_count,
                     models.Event.total_participants - participant_count),
                    else_=0,
                )
            },
            synchronize_session=False,
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting registration {registration_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(f"Registration {registration_id} deleted by {auth_user.id}")
    return {"message": "Registration deleted successfully"}
