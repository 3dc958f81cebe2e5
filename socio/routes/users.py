import logging
import re

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from socio.database import get_db
from socio import models, schemas
from socio.auth_utils import authenticate_user, get_user_by_email

logger = logging.getLogger("socio.users")

router = APIRouter(prefix="/api/users", tags=["Users"])


def split_register_number(name: str, register_number: str = ""):
    """Peel a trailing all-digit word off a display name into the register number.

    Campus accounts are often named "Full Name 2241234"; an explicit register
    number always wins.
    """
    name = (name or "").strip()
    parts = name.split(" ")
    if len(parts) > 1 and re.fullmatch(r"\d+", parts[-1]) and not register_number:
        return " ".join(parts[:-1]), parts[-1]
    return name, register_number


def resolve_avatar_url(auth_client_user: schemas.AuthClientUser):
    metadata = auth_client_user.user_metadata or {}
    return (
        metadata.get("avatar_url")
        or metadata.get("picture")
        or auth_client_user.avatar_url
        or auth_client_user.picture
        or None
    )


# Endpoint: GET /api/users
# Description: Lists every local user. Requires a valid token.
@router.get("", response_model=schemas.UserListResponse)
def list_users(db: Session = Depends(get_db), auth_user: schemas.AuthUser = Depends(authenticate_user)):
    logger.debug(f"User {auth_user.id} fetching all users")
    users = db.query(models.User).order_by(models.User.created_at.desc()).all()
    logger.info(f"Fetched {len(users)} users")
    return {"users": users}


@router.get("/{email}", response_model=schemas.UserResponse)
def get_user(email: str, db: Session = Depends(get_db)):
    logger.debug(f"Fetching user {email}")
    user = get_user_by_email(db, email)
    if not user:
        logger.error(f"User {email} not found")
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": user}


# Endpoint: POST /api/users
# Description: Syncs the identity-provider user into the local users table.
# Returns 201 when a row is created, 200 when it already existed.
@router.post("", response_model=schemas.UserSyncResponse)
def sync_user(
    body: schemas.UserSyncRequest,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    auth_client_user = body.user
    if not auth_client_user or not auth_client_user.email:
        logger.error("User sync rejected: email missing")
        raise HTTPException(status_code=400, detail="Invalid user data: email is required")
    if auth_user.email and auth_user.email.lower() != auth_client_user.email.lower():
        logger.error(f"User {auth_user.id} tried to sync a different account {auth_client_user.email}")
        raise HTTPException(status_code=403, detail="You can only sync your own account")
    if auth_client_user.id and auth_client_user.id != auth_user.id:
        logger.error(f"User {auth_user.id} tried to sync auth UUID {auth_client_user.id}")
        raise HTTPException(status_code=403, detail="You can only sync your own account")

    auth_uuid = auth_user.id
    existing_user = db.query(models.User).filter(
        or_(models.User.email == auth_client_user.email, models.User.auth_uuid == auth_uuid)
    ).first()

    if existing_user:
        if existing_user.auth_uuid and existing_user.auth_uuid != auth_uuid:
            logger.error(f"User {auth_user.id} tried to sync account bound to {existing_user.auth_uuid}")
            raise HTTPException(status_code=403, detail="You can only sync your own account")
        if not existing_user.auth_uuid:
            existing_user.auth_uuid = auth_uuid
            db.commit()
            db.refresh(existing_user)
            logger.info(f"User {existing_user.email} updated with auth UUID")
            return {"user": existing_user, "isNew": False, "message": "User updated with auth UUID."}
        return {"user": existing_user, "isNew": False, "message": "User already exists."}

    metadata = auth_client_user.user_metadata or {}
    name, register_number = split_register_number(
        auth_client_user.name or metadata.get("full_name") or "",
        metadata.get("register_number") or "",
    )
    new_user = models.User(
        auth_uuid=auth_uuid,
        email=auth_client_user.email,
        name=name or "New User",
        avatar_url=resolve_avatar_url(auth_client_user),
        register_number=register_number or None,
        is_organiser=False,
        course=None,
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.error(f"Duplicate user {auth_client_user.email}")
        raise HTTPException(status_code=409, detail="User already exists")
    db.refresh(new_user)
    logger.info(f"User {new_user.id} ({new_user.email}) created")
    payload = schemas.UserSyncResponse(user=schemas.UserSchema.model_validate(new_user), isNew=True, message="User created successfully.")
    return JSONResponse(status_code=201, content=jsonable_encoder(payload))


@router.put("/{email}", response_model=schemas.UserResponse)
def update_user(
    email: str,
    update_data: schemas.UpdateUser,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    logger.debug(f"User {auth_user.id} updating profile {email}")
    user = get_user_by_email(db, email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.auth_uuid != auth_user.id:
        logger.error(f"User {auth_user.id} tried to update profile {email}")
        raise HTTPException(status_code=403, detail="You can only update your own profile")

    if update_data.name is not None:
        user.name = update_data.name.strip() or user.name
    if update_data.course is not None:
        user.course = update_data.course.strip() or None
    if update_data.register_number is not None:
        user.register_number = update_data.register_number.strip() or None
    try:
        db.commit()
        db.refresh(user)
    except Exception as e:
        logger.error(f"Failed to update profile for user {user.id}: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update profile")
    logger.info(f"Profile updated for user {user.id}")
    return {"user": user}


@router.get("/{email}/registrations", response_model=schemas.RegistrationListResponse)
def get_user_registrations(
    email: str,
    db: Session = Depends(get_db),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    if not auth_user.email or auth_user.email.lower() != email.lower():
        raise HTTPException(status_code=403, detail="You can only view your own registrations")
    email = email.strip().lower()
    registrations = db.query(models.Registration).filter(
        or_(
            func.lower(models.Registration.user_email) == email,
            func.lower(models.Registration.individual_email) == email,
            func.lower(models.Registration.team_leader_email) == email,
        )
    ).order_by(models.Registration.created_at.desc()).all()
    logger.info(f"User {auth_user.id} fetched {len(registrations)} registrations")
    return {"registrations": registrations, "count": len(registrations)}
