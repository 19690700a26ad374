from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tenantdesk.db.models import CompanyFeatureEnum, SubscriptionTier


class CompanyCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    subscription_plan: SubscriptionTier = SubscriptionTier.free


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    subscription_plan: Optional[SubscriptionTier] = None
    is_active: Optional[bool] = None


class SubscriptionUpgrade(BaseModel):
    plan: SubscriptionTier
    duration: int = Field(ge=1, description="months")
    features: list[CompanyFeatureEnum] = Field(default_factory=list)


class CompanyStats(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_users: int
    total_tickets: int
    active_tickets: int
    users_with_inherited_subscription: int
    avg_resolution_hours: float


class CompanyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    description: Optional[str] = None
    subscription_plan: SubscriptionTier
    subscription_start: Optional[datetime] = None
    subscription_end: Optional[datetime] = None
    subscription_active: bool
    features: list[str] = []
    is_active: bool
    created_at: datetime


class CompanyBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
