# tenantdesk/schemas/users.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from tenantdesk.db.models import PermissionEnum, RoleEnum, SubscriptionTier


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: RoleEnum
    company_id: int | None = None
    subscription: SubscriptionTier | None = None
    # own tier if set, otherwise the company's
    effective_subscription: SubscriptionTier
    subscription_expires: datetime | None = None
    permissions: list[PermissionEnum] = []
    is_active: bool
    last_login: datetime | None = None


class UserUpdateSelf(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    password: str | None = Field(default=None, min_length=6, max_length=128)


class UserAdminCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: RoleEnum = RoleEnum.user
    company_id: int | None = None
    subscription: SubscriptionTier | None = None
    permissions: list[PermissionEnum] = []


class UserAdminUpdate(BaseModel):
    # role, active flag, company and subscription are admin-editable
    role: RoleEnum | None = None
    is_active: bool | None = None
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    company_id: int | None = None
    subscription: SubscriptionTier | None = None
    subscription_expires: datetime | None = None
    permissions: list[PermissionEnum] | None = None


class UsersPage(BaseModel):
    items: list[UserOut]
    total: int
    page: int
    limit: int
