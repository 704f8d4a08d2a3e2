# app/services/cart_reducer.py
"""
Cart state transitions.

`cart_reducer` is a pure function: it never mutates the incoming state and
never raises. Unknown actions return the state unchanged.

`CartStore` holds the current state for one shopping session and notifies
listeners after every dispatch (the persistence adapter is one of them).
"""
from collections.abc import Callable, Iterable

from app.core.config import get_settings
from app.schemas.cart import (
    AddItem,
    CakeSize,
    CartAction,
    CartItem,
    CartItemCustomizations,
    CartState,
    ClearCart,
    RemoveItem,
    ReplaceCart,
    ToggleCart,
    UpdateItemCustomizations,
    UpdateQuantity,
)

settings = get_settings()

TAX_RATE = settings.TAX_RATE

CartListener = Callable[[CartState], None]


def calculate_subtotal(items: Iterable[CartItem]) -> float:
    return sum(item.price * item.quantity for item in items)


def _with_items(
    state: CartState,
    items: list[CartItem],
    delivery_fee: float | None = None,
) -> CartState:
    """
    Return a copy of `state` holding `items`, with totals recomputed.

    Tax is rounded to cents; total is derived from the rounded tax so
    total == subtotal + tax + delivery_fee holds exactly.
    """
    fee = state.delivery_fee if delivery_fee is None else delivery_fee
    subtotal = calculate_subtotal(items)
    tax = round(subtotal * TAX_RATE, 2)
    return state.model_copy(
        update={
            "items": items,
            "subtotal": subtotal,
            "tax": tax,
            "delivery_fee": fee,
            "total": subtotal + tax + fee,
        }
    )


def _same_line(a: CartItem, b: CartItem) -> bool:
    return (
        a.cake_id == b.cake_id
        and a.size.label == b.size.label
        and a.special_instructions == b.special_instructions
    )


def cart_reducer(state: CartState, action: CartAction) -> CartState:
    items = list(state.items or [])

    if isinstance(action, AddItem):
        incoming = action.item
        for index, existing in enumerate(items):
            if _same_line(existing, incoming):
                items[index] = existing.model_copy(
                    update={"quantity": existing.quantity + incoming.quantity}
                )
                break
        else:
            items.append(incoming)
        return _with_items(state, items)

    if isinstance(action, RemoveItem):
        return _with_items(state, [it for it in items if it.id != action.item_id])

    if isinstance(action, UpdateQuantity):
        if action.quantity <= 0:
            return cart_reducer(state, RemoveItem(item_id=action.item_id))
        return _with_items(
            state,
            [
                it.model_copy(update={"quantity": action.quantity})
                if it.id == action.item_id
                else it
                for it in items
            ],
        )

    if isinstance(action, UpdateItemCustomizations):
        # Price does not depend on customizations, totals stay as they are.
        return state.model_copy(
            update={
                "items": [
                    it.model_copy(update={"customizations": action.customizations})
                    if it.id == action.item_id
                    else it
                    for it in items
                ]
            }
        )

    if isinstance(action, ReplaceCart):
        replaced = _with_items(
            action.cart,
            list(action.cart.items or []),
            delivery_fee=action.cart.delivery_fee or 0.0,
        )
        return replaced.model_copy(update={"is_open": state.is_open})

    if isinstance(action, ClearCart):
        return CartState(is_open=state.is_open)

    if isinstance(action, ToggleCart):
        is_open = not state.is_open if action.is_open is None else action.is_open
        return state.model_copy(update={"is_open": is_open})

    return state


class CartStore:
    """
    Holds the cart for one session and dispatches actions through the reducer.

    Usage:

        store = CartStore()
        unsubscribe = store.subscribe(lambda state: print(state.total))
        store.add_item(cake, size, quantity=2)
    """

    def __init__(self, initial: CartState | None = None):
        self.state = initial or CartState()
        self._listeners: list[CartListener] = []

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: CartAction) -> CartState:
        self.state = cart_reducer(self.state, action)
        for listener in list(self._listeners):
            listener(self.state)
        return self.state

    # ---- convenience helpers ----

    def add_item(
        self,
        cake: dict,
        size: CakeSize,
        quantity: int,
        special_instructions: str | None = None,
    ) -> CartState:
        """
        Add a regular (non-customizable) cake.

        `cake` needs "id" and "name"; the first of "images" (or "image_url")
        becomes the thumbnail.
        """
        item = CartItem(
            cake_id=str(cake["id"]),
            name=cake["name"],
            price=size.price,
            quantity=quantity,
            size=size,
            image=_thumbnail(cake),
            special_instructions=special_instructions,
            is_customizable=False,
        )
        return self.dispatch(AddItem(item=item))

    def add_custom_item(
        self,
        cake: dict,
        size: CakeSize,
        quantity: int,
        customizations: CartItemCustomizations,
        special_instructions: str | None = None,
    ) -> CartState:
        item = CartItem(
            cake_id=str(cake["id"]),
            name=cake["name"],
            price=size.price,
            quantity=quantity,
            size=size,
            image=_thumbnail(cake),
            special_instructions=special_instructions,
            customizations=customizations,
            is_customizable=True,
        )
        return self.dispatch(AddItem(item=item))

    def remove_item(self, item_id: str) -> CartState:
        return self.dispatch(RemoveItem(item_id=item_id))

    def update_quantity(self, item_id: str, quantity: int) -> CartState:
        return self.dispatch(UpdateQuantity(item_id=item_id, quantity=quantity))

    def update_item_customizations(
        self,
        item_id: str,
        customizations: CartItemCustomizations | None,
    ) -> CartState:
        return self.dispatch(
            UpdateItemCustomizations(item_id=item_id, customizations=customizations)
        )

    def replace(self, cart: CartState) -> CartState:
        return self.dispatch(ReplaceCart(cart=cart))

    def clear(self) -> CartState:
        return self.dispatch(ClearCart())

    def toggle(self, is_open: bool | None = None) -> CartState:
        return self.dispatch(ToggleCart(is_open=is_open))


PLACEHOLDER_IMAGE = "/placeholder-cake.jpg"


def _thumbnail(cake: dict) -> str:
    images = cake.get("images") or []
    if images:
        return images[0]
    return cake.get("image_url") or PLACEHOLDER_IMAGE
