from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_roles
from app.api.pagination import DEFAULT_PAGE_SIZE, LimitParam, OffsetParam
from app.db.models.user import User, UserRole
from app.db.session import get_db
from app.schemas.user import ConsultantResponse, UserResponse
from app.services.auth_service import list_consultants, list_users

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse, status_code=status.HTTP_200_OK)
def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.get("/consultants", response_model=list[ConsultantResponse], status_code=status.HTTP_200_OK)
def get_consultants(
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ConsultantResponse]:
    return [ConsultantResponse.model_validate(consultant) for consultant in list_consultants(db)]


@router.get("", response_model=list[UserResponse], status_code=status.HTTP_200_OK)
def get_users(
    limit: LimitParam = DEFAULT_PAGE_SIZE,
    offset: OffsetParam = 0,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[UserResponse]:
    return [UserResponse.model_validate(user) for user in list_users(db, limit=limit, offset=offset)]
