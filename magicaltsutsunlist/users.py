import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from magicaltsutsunlist.auth import hash_password, verify_password
from magicaltsutsunlist.config import ADMIN_ROLE, DEFAULT_ROLE
from magicaltsutsunlist.errors import ConflictError, StoreError, ValidationError
from magicaltsutsunlist.models import User

logger = logging.getLogger(__name__)


def _registered(session: Session, *criteria) -> Optional[User]:
    try:
        return (
            session.execute(
                select(User).where(User.is_registered.is_(True), *criteria).limit(1)
            )
            .scalars()
            .first()
        )
    except SQLAlchemyError as exc:
        logger.error("Error querying users: %s", exc)
        raise StoreError("Error querying the database.") from exc


def _create(session: Session, username: str, email: str, password: str, role: str) -> User:
    user = User(
        is_registered=True,
        username=username.strip(),
        email=email.strip(),
        password=hash_password(password),
        role=role,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("The user already exists.") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Error registering user %s: %s", email, exc)
        raise StoreError("Error registering the user.") from exc
    return user


def sign_up(
    session: Session, username: str, email: str, password: str, role: Optional[str] = None
) -> User:
    role = (role or "").strip() or DEFAULT_ROLE
    if role == ADMIN_ROLE:
        raise ValidationError(f"The {ADMIN_ROLE} role cannot be self-assigned.")
    try:
        taken = session.execute(select(User.id).where(User.email == email).limit(1)).first()
    except SQLAlchemyError as exc:
        logger.error("Error querying users: %s", exc)
        raise StoreError("Error querying the database.") from exc
    if taken:
        raise ConflictError("The user already exists.")
    user = _create(session, username, email, password, role)
    logger.info("User %s registered", user.id)
    return user


def authenticate(session: Session, login: str, password: str) -> Optional[User]:
    """Match `login` against the email or the exact username of a registered user."""
    try:
        candidates = (
            session.execute(
                select(User).where(
                    User.is_registered.is_(True),
                    or_(User.email == login, User.username == login),
                )
            )
            .scalars()
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("Error logging in %s: %s", login, exc)
        raise StoreError("Error logging in.") from exc
    for user in candidates:
        # MySQL string comparison ignores case; usernames must match exactly.
        if user.email != login and user.username != login:
            continue
        if verify_password(password, user.password):
            return user
    return None


def get_registered_user(session: Session, email: str) -> Optional[User]:
    return _registered(session, User.email == email)


def update_password(session: Session, email: str, password: str) -> bool:
    user = get_registered_user(session, email)
    if user is None:
        return False
    user.password = hash_password(password)
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Error updating the password of %s: %s", email, exc)
        raise StoreError("Error updating password.") from exc
    logger.info("Password updated for user %s", user.id)
    return True


def ensure_admin(session: Session, email: str, password: str, username: str = "admin") -> User:
    existing = session.execute(select(User).where(User.email == email)).scalars().first()
    if existing:
        if existing.role != ADMIN_ROLE:
            existing.role = ADMIN_ROLE
            session.commit()
            logger.info("Promoted %s to %s", email, ADMIN_ROLE)
        return existing
    user = _create(session, username, email, password, ADMIN_ROLE)
    logger.info("Created admin user %s", email)
    return user
