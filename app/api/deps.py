from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.security import decode_access_token
from app.db.models.user import User, UserRole
from app.db.session import get_db

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

INVALID_CREDENTIALS_DETAIL = "Could not validate credentials"
NOT_ENOUGH_PERMISSIONS_DETAIL = "Not enough permissions"


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=INVALID_CREDENTIALS_DETAIL,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    try:
        claims = decode_access_token(token)
        user_id = int(claims["sub"])
    except (KeyError, ValueError, TypeError):
        raise _credentials_error() from None

    user = db.get(User, user_id)
    # a role change invalidates tokens issued for the old role
    if user is None or not user.is_active or claims.get("role") != user.role:
        raise _credentials_error()
    return user


def require_roles(*roles: UserRole | str) -> Callable[[User], User]:
    allowed = frozenset(role.value if isinstance(role, UserRole) else role for role in roles)

    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_ENOUGH_PERMISSIONS_DETAIL)
        return current_user

    return checker
