# app/schemas/cart.py
import uuid
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import ConfigDict, Field as PydanticField, field_validator
from sqlmodel import SQLModel, Field


class CakeSize(SQLModel):
    """
    A purchasable size of a cake. The size price is the unit price.
    """

    label: str
    servings: int | None = Field(default=None, ge=1)
    price: float = Field(ge=0)


class CartItemCustomizations(SQLModel):
    """
    Options chosen for a customizable cake. Every field is optional.
    """

    selected_cake_id: str | None = None
    flavor: str | None = None
    filling: str | None = None
    frosting: str | None = None
    shape: str | None = None
    dietary_option: str | None = None
    addons: list[str] = Field(default_factory=list)
    special_instructions: str | None = None


class CartItem(SQLModel):
    """
    One line in the cart.

    `id` is an opaque generated identifier; two lines for the same cake can
    coexist when their size or special instructions differ.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    cake_id: str
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(gt=0)
    size: CakeSize
    special_instructions: str | None = None
    customizations: CartItemCustomizations | None = None
    image: str | None = None
    is_customizable: bool = False


class CartState(SQLModel):
    """
    Full cart with derived totals.

    Invariants (kept by the reducer):
      - subtotal == sum(item.price * item.quantity)
      - total == subtotal + tax + delivery_fee
    """

    items: list[CartItem] = Field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    delivery_fee: float = Field(default=0.0, ge=0)
    total: float = 0.0
    is_open: bool = False


# ---------------------------------------------------------------------------
# Reducer actions
# ---------------------------------------------------------------------------


class AddItem(SQLModel):
    type: Literal["ADD_ITEM"] = "ADD_ITEM"
    item: CartItem


class RemoveItem(SQLModel):
    type: Literal["REMOVE_ITEM"] = "REMOVE_ITEM"
    item_id: str


class UpdateQuantity(SQLModel):
    type: Literal["UPDATE_QUANTITY"] = "UPDATE_QUANTITY"
    item_id: str
    quantity: int


class UpdateItemCustomizations(SQLModel):
    type: Literal["UPDATE_ITEM_CUSTOMIZATIONS"] = "UPDATE_ITEM_CUSTOMIZATIONS"
    item_id: str
    customizations: CartItemCustomizations | None = None


class ReplaceCart(SQLModel):
    type: Literal["REPLACE_CART"] = "REPLACE_CART"
    cart: CartState


class ClearCart(SQLModel):
    type: Literal["CLEAR_CART"] = "CLEAR_CART"


class ToggleCart(SQLModel):
    type: Literal["TOGGLE_CART"] = "TOGGLE_CART"
    is_open: bool | None = None


CartAction = Annotated[
    Union[
        AddItem,
        RemoveItem,
        UpdateQuantity,
        UpdateItemCustomizations,
        ReplaceCart,
        ClearCart,
        ToggleCart,
    ],
    PydanticField(discriminator="type"),
]


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class CartItemCreate(SQLModel):
    """
    Payload for adding a cake to the cart.

    The backend resolves name, unit price (from the chosen size) and image
    from the catalog.
    """

    model_config = ConfigDict(extra="forbid")

    cake_id: uuid.UUID
    size_label: str
    quantity: int = Field(default=1, gt=0)
    special_instructions: str | None = None
    customizations: CartItemCustomizations | None = None

    @field_validator("size_label")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("size_label cannot be empty")
        return v


class CartItemUpdate(SQLModel):
    """
    Payload for updating a cart line.

    quantity <= 0 removes the line.
    """

    model_config = ConfigDict(extra="forbid")

    quantity: int | None = None
    customizations: CartItemCustomizations | None = None


class CartMergeRequest(SQLModel):
    """
    Guest cart collected before sign-in, to be merged into the user's cart.
    """

    model_config = ConfigDict(extra="forbid")

    guest_cart: CartState


class CartRead(CartState):
    """
    The stored cart document as returned by the API.
    """

    last_synced: datetime | None = None
