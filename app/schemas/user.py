from datetime import datetime

from pydantic import BaseModel, EmailStr

from app.db.models.user import UserRole


class UserResponse(BaseModel):
    id: int
    email: EmailStr
    full_name: str | None
    role: UserRole
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ConsultantResponse(BaseModel):
    id: int
    full_name: str | None
    display_name: str

    model_config = {"from_attributes": True}
