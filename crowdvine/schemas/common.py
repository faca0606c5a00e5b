"""Shared schema helpers."""

from typing import Any

from beanie import PydanticObjectId
from bson import ObjectId
from pydantic import BaseModel, ConfigDict, field_validator


def object_id_str(v: Any) -> Any:
    if isinstance(v, (PydanticObjectId, ObjectId)):
        return str(v)
    return v


class DocumentResponse(BaseModel):
    """Response built from a beanie document, with the id as a string."""

    id: str

    model_config = ConfigDict(from_attributes=True)

    @field_validator("id", mode="before")
    @classmethod
    def convert_objectid_to_str(cls, v: Any) -> str:
        """Convert ObjectId to string."""
        return object_id_str(v)


class MessageResponse(BaseModel):
    message: str
