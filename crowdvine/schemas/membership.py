"""Pydantic schemas for membership, invitations, access requests and discounts."""

from pydantic import BaseModel, EmailStr, Field

from crowdvine.models.membership import MembershipLevel


class InvitationCreate(BaseModel):
    expires_in_days: int | None = Field(None, ge=1, le=365)


class AdminInvitationCreate(BaseModel):
    expires_in_days: int | None = Field(None, ge=1, le=365)
    max_uses: int = Field(1, ge=1, le=1000)
    email: EmailStr | None = None


class InvitationRedeem(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str | None = Field(None, max_length=255)


class AccessRequestCreate(BaseModel):
    email: EmailStr
    full_name: str | None = Field(None, max_length=255)
    message: str | None = Field(None, max_length=2000)


class AccessRequestIds(BaseModel):
    ids: list[str] = Field(..., min_length=1)


class LevelUpdate(BaseModel):
    level: MembershipLevel


class PointsAdjustment(BaseModel):
    points: int = Field(..., description="Positive to add, negative to remove")
    description: str | None = Field(None, max_length=500)
