import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.hash import pbkdf2_sha256

from magicaltsutsunlist import config
from magicaltsutsunlist.errors import AuthError, ValidationError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
RESET_PURPOSE = "reset-password"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: int
    role: str
    user_name: Optional[str] = None


def hash_password(password: str) -> str:
    return pbkdf2_sha256.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return pbkdf2_sha256.verify(password, hashed)
    except ValueError:
        # Not a hash this scheme recognises.
        return False


def _encode(payload: dict, lifetime: timedelta) -> str:
    payload = dict(payload, exp=datetime.now(timezone.utc) + lifetime)
    return jwt.encode(payload, config.SECRET_KEY, algorithm=ALGORITHM)


def _decode(token: str) -> dict:
    return jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])


def create_access_token(user) -> str:
    return _encode(
        {"id": user.id, "role": user.role, "userName": user.email},
        timedelta(hours=config.ACCESS_TOKEN_HOURS),
    )


def create_reset_token(email: str) -> str:
    return _encode(
        {"email": email, "purpose": RESET_PURPOSE},
        timedelta(minutes=config.RESET_TOKEN_MINUTES),
    )


def read_reset_token(token: str) -> str:
    try:
        payload = _decode(token)
    except jwt.PyJWTError as exc:
        logger.info("Rejected password reset token: %s", exc)
        raise ValidationError("Error validating the token.") from exc
    if payload.get("purpose") != RESET_PURPOSE or not payload.get("email"):
        raise ValidationError("Error validating the token.")
    return payload["email"]


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    if credentials is None:
        raise AuthError("You are not authenticated. Please log in.")
    try:
        payload = _decode(credentials.credentials)
    except jwt.PyJWTError:
        raise AuthError("Invalid token.") from None
    if "id" not in payload or "role" not in payload:
        raise AuthError("Invalid token.")
    return CurrentUser(id=payload["id"], role=payload["role"], user_name=payload.get("userName"))


def require_role(*roles: str):
    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise AuthError("You do not have permission to access this route.")
        return user

    return dependency
