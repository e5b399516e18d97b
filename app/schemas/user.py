"""User schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import UserRole


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    role: UserRole = UserRole.USER
    is_active: bool = True


class UserRead(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: UserRole
    is_active: bool
    subscription_ends_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionExtend(BaseModel):
    days: int = Field(gt=0, le=3650)


class SubscriptionRead(BaseModel):
    user: UserRead
