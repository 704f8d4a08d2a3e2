# app/models/cart.py
import uuid
from datetime import datetime

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class CartDocument(SQLModel, table=True):
    """
    The signed-in user's current cart, stored as one JSON document.

    `data` holds a sanitized CartState (items, subtotal, tax, delivery_fee,
    total, is_open). `last_synced` is stamped by the server on every write.
    """

    __tablename__ = "carts"

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        primary_key=True,
    )

    data: dict = Field(default_factory=dict, sa_column=Column(JSON))

    last_synced: datetime | None = Field(
        default=None,
        description="Server timestamp of the last write",
    )
