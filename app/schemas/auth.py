from pydantic import BaseModel, EmailStr, Field, field_validator

from app.db.models.user import UserRole

SELF_REGISTER_ROLES = frozenset({UserRole.SALES, UserRole.CONSULTANT})


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: str | None = Field(default=None, min_length=1, max_length=120)
    role: UserRole = UserRole.SALES

    @field_validator("role")
    @classmethod
    def validate_role(cls, role: UserRole) -> UserRole:
        if role not in SELF_REGISTER_ROLES:
            raise ValueError("Only sales and consultant accounts can be registered")
        return role


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
