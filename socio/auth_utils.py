import os
import logging
from typing import Optional

import jwt
import requests
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from socio.database import get_db
from socio import models, schemas

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SUPABASE_TIMEOUT_SECONDS = 10

bearer_scheme = HTTPBearer(auto_error=False)


class InvalidToken(Exception):
    pass


class AuthServiceError(Exception):
    pass


def _decode_with_secret(token: str, secret: str) -> schemas.AuthUser:
    audience = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM], audience=audience)
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token decoding failed: {e}")
        raise InvalidToken("Invalid or expired token")
    user_id = payload.get("sub")
    if not user_id:
        raise InvalidToken("Invalid or expired token")
    return schemas.AuthUser(
        id=str(user_id),
        email=payload.get("email"),
        user_metadata=payload.get("user_metadata") or {},
    )


def _fetch_from_supabase(token: str) -> schemas.AuthUser:
    supabase_url = os.getenv("SUPABASE_URL")
    anon_key = os.getenv("SUPABASE_ANON_KEY")
    if not supabase_url or not anon_key:
        raise AuthServiceError("Neither SUPABASE_JWT_SECRET nor SUPABASE_URL/SUPABASE_ANON_KEY is configured")
    try:
        response = requests.get(
            f"{supabase_url.rstrip('/')}/auth/v1/user",
            headers={"Authorization": f"Bearer {token}", "apikey": anon_key},
            timeout=SUPABASE_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise AuthServiceError(str(e))
    if response.status_code in (401, 403):
        raise InvalidToken("Invalid or expired token")
    if response.status_code != 200:
        raise AuthServiceError(f"Supabase auth returned HTTP {response.status_code}")
    data = response.json()
    if not data or not data.get("id"):
        raise InvalidToken("Invalid or expired token")
    return schemas.AuthUser(
        id=str(data["id"]),
        email=data.get("email"),
        user_metadata=data.get("user_metadata") or {},
    )


def verify_access_token(token: str) -> schemas.AuthUser:
    """Validate a Supabase-issued access token.

    Tokens are checked locally against SUPABASE_JWT_SECRET when it is set;
    otherwise the Supabase auth server is asked to resolve the token.
    """
    secret = os.getenv("SUPABASE_JWT_SECRET")
    if secret:
        return _decode_with_secret(token, secret)
    return _fetch_from_supabase(token)


def authenticate_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> schemas.AuthUser:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise HTTPException(status_code=401, detail="No valid authorization token provided")
    try:
        auth_user = verify_access_token(credentials.credentials)
    except InvalidToken as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AuthServiceError as e:
        logger.error(f"Authentication error: {e}")
        raise HTTPException(status_code=500, detail="Authentication service error")
    logger.debug(f"Authenticated user {auth_user.id}")
    return auth_user


def optional_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[schemas.AuthUser]:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return verify_access_token(credentials.credentials)
    except (InvalidToken, AuthServiceError) as e:
        # Anonymous access is allowed; a bad token just means no identity
        logger.debug(f"Ignoring unusable token on optional auth route: {e}")
        return None


def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


def get_user_by_auth_uuid(db: Session, auth_uuid: str):
    return db.query(models.User).filter(models.User.auth_uuid == auth_uuid).first()


def get_user_info(
    auth_user: schemas.AuthUser = Depends(authenticate_user),
    db: Session = Depends(get_db),
) -> models.User:
    user = get_user_by_auth_uuid(db, auth_user.id)
    if not user:
        logger.error(f"Authenticated user {auth_user.id} has no local user row")
        raise HTTPException(status_code=404, detail="User not found in local database")
    return user


def require_organiser(user: models.User = Depends(get_user_info)) -> models.User:
    if not user.is_organiser:
        logger.error(f"User {user.id} is not an organiser")
        raise HTTPException(status_code=403, detail="Access denied: Organiser privileges required")
    return user


def get_owned_event(db: Session, event_id: str, auth_user: schemas.AuthUser) -> models.Event:
    """Load an event and make sure the caller created it."""
    event = db.query(models.Event).filter(models.Event.event_id == event_id).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    if event.auth_uuid != auth_user.id:
        logger.error(f"User {auth_user.id} denied access to event {event_id} owned by {event.auth_uuid}")
        raise HTTPException(status_code=403, detail="Access denied: You can only modify your own resources")
    return event


def get_owned_fest(db: Session, fest_id: str, auth_user: schemas.AuthUser) -> models.Fest:
    fest = db.query(models.Fest).filter(models.Fest.fest_id == fest_id).first()
    if not fest:
        raise HTTPException(status_code=404, detail="Fest not found")
    if fest.auth_uuid != auth_user.id:
        logger.error(f"User {auth_user.id} denied access to fest {fest_id} owned by {fest.auth_uuid}")
        raise HTTPException(status_code=403, detail="Access denied: You can only modify your own resources")
    return fest


def require_event_owner(
    event_id: str,
    auth_user: schemas.AuthUser = Depends(authenticate_user),
    db: Session = Depends(get_db),
) -> models.Event:
    return get_owned_event(db, event_id, auth_user)


def require_fest_owner(
    fest_id: str,
    auth_user: schemas.AuthUser = Depends(authenticate_user),
    db: Session = Depends(get_db),
) -> models.Fest:
    return get_owned_fest(db, fest_id, auth_user)
