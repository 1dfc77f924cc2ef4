import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import create_access_token, get_password_hash, verify_password
from app.db.models.user import User, UserRole
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse

EMAIL_TAKEN_DETAIL = "User with this email already exists"
INVALID_LOGIN_DETAIL = "Invalid email or password"

logger = logging.getLogger("app.auth")


def _find_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.lower()))


def register_user(payload: RegisterRequest, db: Session) -> User:
    if _find_by_email(db, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=EMAIL_TAKEN_DETAIL)

    user = User(
        email=payload.email.lower(),
        hashed_password=get_password_hash(payload.password),
        full_name=payload.full_name.strip() if payload.full_name else None,
        role=UserRole(payload.role).value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent registration
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=EMAIL_TAKEN_DETAIL) from None
    db.refresh(user)
    logger.info("user_registered id=%s role=%s", user.id, user.role)
    return user


def login_user(payload: LoginRequest, db: Session) -> TokenResponse:
    user = _find_by_email(db, payload.email)
    if user is None or not user.is_active or not verify_password(payload.password, user.hashed_password):
        logger.info("login_failed email_domain=%s", payload.email.rsplit("@", 1)[-1])
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_LOGIN_DETAIL)

    return TokenResponse(
        access_token=create_access_token(user_id=user.id, role=user.role, extra_claims={"email": user.email})
    )


def list_consultants(db: Session) -> list[User]:
    """Active consultants, for the request form's consultant picker."""
    query = (
        select(User)
        .where(User.role == UserRole.CONSULTANT.value, User.is_active.is_(True))
        .order_by(User.full_name, User.id)
    )
    return list(db.scalars(query).all())


def list_users(db: Session, limit: int, offset: int) -> list[User]:
    return list(db.scalars(select(User).order_by(User.id).limit(limit).offset(offset)).all())
