# tenantdesk/schemas/auth.py
from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from tenantdesk.schemas.users import UserOut


class LoginIn(BaseModel):
    username: EmailStr
    password: str
    # longer-lived token when set
    remember_me: bool | None = None


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    company_id: int | None = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
