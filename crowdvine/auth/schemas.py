"""Pydantic schemas for fastapi-users with MongoDB/Beanie."""

from datetime import datetime

from beanie import PydanticObjectId
from fastapi_users import schemas
from pydantic import ConfigDict

from crowdvine.models.user import Address, UserRole


class UserRead(schemas.BaseUser[PydanticObjectId]):
    """User as returned by the API."""

    full_name: str | None = None
    role: UserRole = UserRole.USER
    producer_id: PydanticObjectId | None = None
    access_granted_at: datetime | None = None
    address: Address | None = None
    created_at: datetime
    last_login: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class UserCreate(schemas.BaseUserCreate):
    full_name: str | None = None


class UserUpdate(schemas.BaseUserUpdate):
    full_name: str | None = None
    address: Address | None = None
