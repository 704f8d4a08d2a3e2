# app/models/order.py
import uuid
from datetime import datetime, date, timezone

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    Customer order.

    Money fields are snapshots taken at checkout:
      - subtotal, tax, delivery_fee, total
      - amount_paid / balance_due move as payments are recorded

    status_history, payment_status_history and payments are append-only
    JSON lists.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    # pending | approved | processing | ready | delivered | picked-up
    # | completed | cancelled
    status: str = Field(
        default="pending",
        index=True,
        description="Order status lifecycle",
    )

    # unpaid | pending | partial | paid | refunded
    payment_status: str = Field(default="unpaid", index=True)
    payment_method: str | None = None

    # pickup | delivery
    delivery_method: str = Field(description="Fulfillment method")

    customer_name: str
    customer_email: str
    customer_phone: str

    # Delivery info (delivery_method == "delivery")
    delivery_address: str | None = None
    delivery_city: str | None = None
    delivery_state: str | None = None
    delivery_zip_code: str | None = None
    delivery_date: date | None = None
    delivery_time: str | None = None

    # Pickup info (delivery_method == "pickup")
    pickup_date: date | None = None
    pickup_time: str | None = None
    store_location: str | None = None

    special_instructions: str | None = None
    is_custom_order: bool = False

    subtotal: float
    tax: float
    delivery_fee: float = 0.0
    total: float = Field(description="subtotal + tax + delivery_fee")

    amount_paid: float = 0.0
    balance_due: float = 0.0

    baker_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
        description="Baker who claimed the order",
    )

    idempotency_key: str = Field(unique=True, index=True)

    status_history: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    payment_status_history: list[dict] = Field(
        default_factory=list, sa_column=Column(JSON)
    )
    payments: list[dict] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime | None = None


class OrderItem(SQLModel, table=True):
    """
    Line item snapshot inside an order.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    # Plain reference: the cake may be deleted later, the snapshot stays.
    cake_id: str = Field(index=True)
    name: str
    image_url: str | None = None

    price: float = Field(description="Unit price at time of order (pre-tax)")

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    size_label: str | None = None
    customizations: dict | None = Field(default=None, sa_column=Column(JSON))
