# app/services/cart_service.py
import logging
import uuid

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlmodel import Session

from app.models.cart import CartDocument
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.schemas.cart import (
    CakeSize,
    CartItem,
    CartItemCreate,
    CartItemUpdate,
    CartMergeRequest,
    CartRead,
    CartState,
    ReplaceCart,
)
from app.services.cake_service import CakeService
from app.services.cart_reducer import CartStore, cart_reducer
from app.services.cart_sync import load_cart_state, merge_guest_items, sanitize_for_storage

logger = logging.getLogger(__name__)


class CartService:
    """
    Server-side operations on a customer's cart document.

    Every change goes through the cart reducer, so totals are always
    recomputed here and never trusted from the client.
    """

    def __init__(self, cart_repo: CartRepository, cake_service: CakeService):
        self.cart_repo = cart_repo
        self.cake_service = cake_service

    # ---- internal helpers ----

    def _read(self, doc: CartDocument | None) -> CartState:
        if doc is None or not doc.data:
            return CartState()
        try:
            return load_cart_state(doc.data)
        except ValidationError:
            logger.warning("Stored cart for %s is invalid; starting empty", doc.user_id)
            return CartState()

    def _to_read(self, doc: CartDocument) -> CartRead:
        state = self._read(doc)
        return CartRead(**state.model_dump(), last_synced=doc.last_synced)

    def current_state(self, session: Session, user_id: uuid.UUID) -> CartState:
        return self._read(self.cart_repo.get(session, user_id))

    def _store(self, session: Session, user_id: uuid.UUID, state: CartState) -> CartRead:
        doc = self.cart_repo.save(session, user_id, sanitize_for_storage(state))
        return self._to_read(doc)

    def _price_from_catalog(self, session: Session, state: CartState) -> CartState:
        """
        Reset each line's unit price and size to what the catalog offers.

        Lines whose cake or size is not in the catalog are kept as sent;
        checkout rejects them.
        """
        items = []
        for line in state.items:
            size = self._catalog_size(session, line)
            if size is not None:
                line = line.model_copy(update={"price": size.price, "size": size})
            items.append(line)
        return state.model_copy(update={"items": items})

    def _catalog_size(self, session: Session, line: CartItem) -> CakeSize | None:
        try:
            cake_id = uuid.UUID(line.cake_id)
        except ValueError:
            return None
        cake = self.cake_service.repo.get_by_id(session, cake_id)
        if cake is None:
            return None
        return self.cake_service.offered_size(cake, line.size.label)

    @staticmethod
    def _ensure_line(state: CartState, item_id: str) -> None:
        if not any(item.id == item_id for item in state.items):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cart item not found",
            )

    # ---- public operations ----

    def get_cart(self, session: Session, user: User) -> CartRead:
        doc = self.cart_repo.get(session, user.id)
        if doc is None:
            return CartRead()
        return self._to_read(doc)

    def save_cart(self, session: Session, user: User, cart: CartState) -> CartRead:
        """
        Replace the whole cart. Prices come from the catalog and totals are
        recomputed from the items.
        """
        cart = self._price_from_catalog(session, cart)
        state = cart_reducer(self.current_state(session, user.id), ReplaceCart(cart=cart))
        return self._store(session, user.id, state)

    def add_item(self, session: Session, user: User, payload: CartItemCreate) -> CartRead:
        """
        Add a cake from the catalog.

        The unit price is the chosen size's price. A line with the same
        cake, size and special instructions has its quantity increased.
        """
        cake = self.cake_service.get_orderable_cake(session, payload.cake_id)
        size = self.cake_service.find_size(cake, payload.size_label)
        summary = {"id": cake.id, "name": cake.name, "images": cake.images}

        store = CartStore(self.current_state(session, user.id))
        if payload.customizations is not None:
            store.add_custom_item(
                summary,
                size,
                payload.quantity,
                payload.customizations,
                payload.special_instructions,
            )
        else:
            store.add_item(summary, size, payload.quantity, payload.special_instructions)
        return self._store(session, user.id, store.state)

    def update_item(
        self,
        session: Session,
        user: User,
        item_id: str,
        payload: CartItemUpdate,
    ) -> CartRead:
        """
        Change quantity and/or customizations of one line.
        quantity <= 0 removes the line.
        """
        store = CartStore(self.current_state(session, user.id))
        self._ensure_line(store.state, item_id)

        changes = payload.model_dump(exclude_unset=True)
        if "customizations" in changes:
            store.update_item_customizations(item_id, payload.customizations)
        if payload.quantity is not None:
            store.update_quantity(item_id, payload.quantity)
        return self._store(session, user.id, store.state)

    def remove_item(self, session: Session, user: User, item_id: str) -> CartRead:
        store = CartStore(self.current_state(session, user.id))
        self._ensure_line(store.state, item_id)
        store.remove_item(item_id)
        return self._store(session, user.id, store.state)

    def clear_cart(self, session: Session, user: User) -> CartRead:
        return self._store(session, user.id, CartState())

    def merge_guest_cart(
        self,
        session: Session,
        user: User,
        payload: CartMergeRequest,
    ) -> CartRead:
        """
        Fold a guest cart into the stored one.

        Guest lines whose cake/size/instructions key is already present are
        dropped; the stored line is kept as it is.
        """
        current = self.current_state(session, user.id)
        guest = self._price_from_catalog(session, payload.guest_cart)
        merged = merge_guest_items(current, guest)
        state = cart_reducer(current, ReplaceCart(cart=merged))
        return self._store(session, user.id, state)
