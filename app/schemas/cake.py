# app/schemas/cake.py
import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from app.schemas.cart import CakeSize

CakeCategory = Literal[
    "birthday",
    "wedding",
    "celebration",
    "cupcakes",
    "seasonal",
    "custom",
    "other",
]


def _unique_labels(sizes: list[CakeSize] | None) -> list[CakeSize] | None:
    if sizes is None:
        return sizes
    labels = [s.label.strip() for s in sizes]
    if any(not label for label in labels):
        raise ValueError("size label cannot be empty")
    if len(set(labels)) != len(labels):
        raise ValueError("size labels must be unique")
    return sizes


class CakeCreate(SQLModel):
    """
    Payload for creating a cake listing.

    - slug is optional: if omitted, generated from `name`.
    - baker_id is taken from the caller for bakers; admins may set it.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=3, max_length=100)
    slug: str | None = None
    category: CakeCategory = "other"
    description: str = ""
    price: float = Field(ge=0)
    images: list[str] = Field(default_factory=list)
    is_available: bool = True
    featured: bool = False
    baker_id: uuid.UUID | None = None
    ingredients: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    sizes: list[CakeSize] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("slug cannot be empty if provided")
        return v

    @field_validator("sizes")
    @classmethod
    def validate_sizes(cls, v: list[CakeSize]) -> list[CakeSize]:
        return _unique_labels(v)


class CakeUpdate(SQLModel):
    """
    Partial update payload for cakes.
    All fields are optional.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=3, max_length=100)
    slug: str | None = None
    category: CakeCategory | None = None
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    images: list[str] | None = None
    is_available: bool | None = None
    featured: bool | None = None
    ingredients: list[str] | None = None
    allergens: list[str] | None = None
    sizes: list[CakeSize] | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("slug cannot be empty")
        return v

    @field_validator("sizes")
    @classmethod
    def validate_sizes(cls, v: list[CakeSize] | None) -> list[CakeSize] | None:
        return _unique_labels(v)


class CakeRead(SQLModel):
    """
    Cake representation for clients.
    """

    id: uuid.UUID
    name: str
    slug: str
    category: CakeCategory
    description: str
    price: float
    images: list[str]
    is_available: bool
    featured: bool
    baker_id: uuid.UUID | None = None
    ingredients: list[str]
    allergens: list[str]
    sizes: list[CakeSize]
    created_at: datetime
    updated_at: datetime | None = None
