# app/schemas/order.py
import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import ConfigDict, EmailStr, field_validator, model_validator
from sqlmodel import SQLModel, Field

OrderStatus = Literal[
    "pending",
    "approved",
    "processing",
    "ready",
    "delivered",
    "picked-up",
    "completed",
    "cancelled",
]
PaymentStatus = Literal["unpaid", "pending", "partial", "paid", "refunded"]
PaymentMethod = Literal["credit-card", "cash", "cash-app"]
DeliveryMethod = Literal["pickup", "delivery"]


def _strip_or_none(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    return v or None


class DeliveryInfo(SQLModel):
    model_config = ConfigDict(extra="forbid")

    address: str
    city: str
    state: str
    zip_code: str
    delivery_date: date | None = None
    delivery_time: str

    @field_validator("address", "city", "state", "zip_code", "delivery_time")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class PickupInfo(SQLModel):
    model_config = ConfigDict(extra="forbid")

    pickup_date: date
    pickup_time: str
    store_location: str | None = None

    @field_validator("pickup_time")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class OrderCreate(SQLModel):
    """
    Payload for creating an order from the current cart.

    User provides:
      - customer contact (name, email, phone)
      - delivery_method and the matching delivery / pickup block
      - optional payment_method, special_instructions
      - optional idempotency_key (a retried checkout with the same key
        returns the first order instead of creating a second one)

    Backend derives:
      - user_id from token
      - status = 'pending', payment_status = 'unpaid'
      - items and totals from the cart (8.25% tax, delivery fee for deliveries)
    """

    model_config = ConfigDict(extra="forbid")

    customer_name: str
    customer_email: EmailStr
    customer_phone: str
    delivery_method: DeliveryMethod
    delivery: DeliveryInfo | None = None
    pickup: PickupInfo | None = None
    payment_method: PaymentMethod | None = None
    special_instructions: str | None = None
    is_custom_order: bool = False
    idempotency_key: str | None = Field(default=None, max_length=200)

    @field_validator("customer_name", "customer_phone")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("special_instructions", "idempotency_key")
    @classmethod
    def normalize_optional(cls, v: str | None) -> str | None:
        return _strip_or_none(v)

    @model_validator(mode="after")
    def fulfillment_details_match_method(self) -> "OrderCreate":
        if self.delivery_method == "delivery" and self.delivery is None:
            raise ValueError("delivery details are required for delivery orders")
        if self.delivery_method == "pickup" and self.pickup is None:
            raise ValueError("pickup details are required for pickup orders")
        return self


class StatusHistoryEntry(SQLModel):
    status: OrderStatus
    timestamp: datetime
    note: str | None = None
    updated_by: str | None = None


class PaymentStatusHistoryEntry(SQLModel):
    status: PaymentStatus
    timestamp: datetime
    note: str | None = None
    updated_by: str | None = None


class PaymentTransaction(SQLModel):
    id: str
    amount: float
    method: PaymentMethod
    paid_at: datetime
    confirmation_id: str | None = None
    card_last4: str | None = None
    card_brand: str | None = None
    notes: str | None = None


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    order_id: uuid.UUID
    cake_id: str
    name: str
    image_url: str | None = None
    price: float
    quantity: int
    size_label: str | None = None
    customizations: dict | None = None
    line_total: float


class OrderRead(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    user_id: uuid.UUID
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: str | None = None
    delivery_method: DeliveryMethod
    customer_name: str
    customer_email: str
    customer_phone: str
    delivery_address: str | None = None
    delivery_city: str | None = None
    delivery_state: str | None = None
    delivery_zip_code: str | None = None
    delivery_date: date | None = None
    delivery_time: str | None = None
    pickup_date: date | None = None
    pickup_time: str | None = None
    store_location: str | None = None
    special_instructions: str | None = None
    is_custom_order: bool
    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    amount_paid: float
    balance_due: float
    baker_id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items, status history and payments.
    """

    items: list[OrderItemRead]
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    payment_status_history: list[PaymentStatusHistoryEntry] = Field(default_factory=list)
    payments: list[PaymentTransaction] = Field(default_factory=list)


class OrderStatusUpdate(SQLModel):
    """
    Baker/admin payload to change order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
    note: str | None = Field(default=None, max_length=1000)

    @field_validator("note")
    @classmethod
    def normalize_note(cls, v: str | None) -> str | None:
        return _strip_or_none(v)


class OrderCancel(SQLModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(min_length=2, max_length=1000)

    @field_validator("reason")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason cannot be empty")
        return v


class PaymentStatusUpdate(SQLModel):
    """
    Baker/admin payload to confirm, settle or refund payment.
    """

    model_config = ConfigDict(extra="forbid")

    payment_status: PaymentStatus
    note: str | None = Field(default=None, max_length=1000)

    @field_validator("note")
    @classmethod
    def normalize_note(cls, v: str | None) -> str | None:
        return _strip_or_none(v)


class PaymentCreate(SQLModel):
    """
    Record a payment made outside the app (no gateway integration).
    """

    model_config = ConfigDict(extra="forbid")

    amount: float = Field(gt=0)
    method: PaymentMethod
    paid_at: datetime | None = None
    confirmation_id: str | None = None
    card_last4: str | None = Field(default=None, min_length=4, max_length=4)
    card_brand: str | None = None
    notes: str | None = Field(default=None, max_length=1000)


class PaymentRecorded(SQLModel):
    payment_id: str
    amount_paid: float
    balance_due: float
    payment_status: PaymentStatus
