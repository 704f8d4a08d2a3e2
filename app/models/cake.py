# app/models/cake.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class Cake(SQLModel, table=True):
    """
    Catalog entry for a cake.

    Sizes are stored inline as a JSON list of
    {"label": str, "servings": int | None, "price": float}; the size price
    is what lands in the cart, `price` is the "from" price shown in listings.
    """

    __tablename__ = "cakes"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=100,
        index=True,
        description="Display name of the cake",
    )

    slug: str = Field(
        max_length=255,
        unique=True,
        index=True,
        description="URL-friendly identifier (unique)",
    )

    # birthday | wedding | celebration | cupcakes | seasonal | custom | other
    category: str = Field(
        default="other",
        index=True,
        description="Catalog category",
    )

    description: str = Field(default="")

    price: float = Field(
        ge=0,
        description="Base price",
    )

    images: list[str] = Field(default_factory=list, sa_column=Column(JSON))

    is_available: bool = Field(
        default=True,
        index=True,
        description="Whether this cake can be ordered",
    )

    featured: bool = Field(default=False, index=True)

    baker_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
        description="Baker who owns this listing",
    )

    ingredients: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    allergens: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    sizes: list[dict] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime | None = None
