"""User document model for authentication with fastapi-users integration."""

from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field

from crowdvine.models.base import utcnow


class UserRole(str, Enum):
    """Role of an account in the club."""

    USER = "user"
    PRODUCER = "producer"
    ADMIN = "admin"


class Address(BaseModel):
    """Embedded postal address with optional coordinates."""

    full_name: Optional[str] = None
    street: Optional[str] = None
    postcode: Optional[str] = None
    city: Optional[str] = None
    country_code: Optional[str] = None
    phone: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        """Whether the address has enough detail for zone matching."""
        return bool(self.postcode and self.city and self.country_code)


class User(Document):
    """User document model for authentication.

    This model is compatible with fastapi-users BeanieUserDatabase.

    Custom fields added for CrowdVine:
    - role: user, producer or admin
    - producer_id: producer an account manages (role producer)
    - access_granted_at / invite_code_used: how the member joined
    - address: last delivery address used at checkout
    """

    # Required fields for fastapi-users
    email: Indexed(str, unique=True)
    hashed_password: str
    is_active: bool = True
    is_superuser: bool = False
    is_verified: bool = False

    full_name: Optional[str] = None
    role: UserRole = UserRole.USER
    producer_id: Optional[PydanticObjectId] = None

    access_granted_at: Optional[datetime] = None
    invite_code_used: Optional[str] = None
    address: Optional[Address] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None

    class Settings:
        name = "users"
        use_state_management = True
        email_collation = None

    @property
    def is_admin(self) -> bool:
        """Admins are superusers or carry the admin role."""
        return self.is_superuser or self.role == UserRole.ADMIN

    @property
    def is_producer(self) -> bool:
        return self.role == UserRole.PRODUCER and self.producer_id is not None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"
