# app/schemas/user.py
import uuid
from datetime import datetime
from typing import Literal

from pydantic import EmailStr, ConfigDict, field_validator
from sqlmodel import SQLModel, Field

# Stored roles. Guests have no token and no row.
Role = Literal["user", "baker", "admin"]


def _clean_name(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("name cannot be empty")
    return v


class ProfileCompletion(SQLModel):
    """
    Sent once after sign-up to set the display name.

    `email` is accepted only as a cross-check against the token.
    """

    model_config = ConfigDict(extra="forbid")

    email: EmailStr | None = None
    name: str | None = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        return _clean_name(v)


class ProfileUpdate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        return _clean_name(v)


class UserRead(SQLModel):
    id: uuid.UUID
    email: EmailStr
    name: str
    role: Role
    created_at: datetime


class RoleAssignment(SQLModel):
    """Admin-only: promote a customer to baker, or demote staff."""

    model_config = ConfigDict(extra="forbid")

    role: Role
