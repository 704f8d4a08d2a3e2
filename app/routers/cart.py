# app/routers/cart.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_user
from app.database import get_session
from app.models.user import User
from app.repositories.cake_repo import CakeRepository
from app.repositories.cart_repo import CartRepository
from app.schemas.cart import (
    CartItemCreate,
    CartItemUpdate,
    CartMergeRequest,
    CartRead,
    CartState,
)
from app.services.cake_service import CakeService
from app.services.cart_service import CartService

router = APIRouter(prefix="/carts", tags=["Cart"])

cart_repo = CartRepository()
service = CartService(cart_repo, CakeService(CakeRepository()))


@router.get("/current", response_model=CartRead)
def get_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    The caller's stored cart. An empty cart when nothing was saved yet.
    """
    return service.get_cart(session, current_user)


@router.put("/current", response_model=CartRead)
def save_cart(
    cart: CartState,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Save the whole cart as the client holds it. Totals are recomputed.
    """
    return service.save_cart(session, current_user, cart)


@router.delete("/current", response_model=CartRead)
def clear_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.clear_cart(session, current_user)


@router.post("/items", response_model=CartRead)
def add_item(
    payload: CartItemCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Add a cake in a given size.

    Errors:
      - 404 unknown cake
      - 400 cake unavailable or size not offered
    """
    return service.add_item(session, current_user, payload)


@router.patch("/items/{item_id}", response_model=CartRead)
def update_item(
    item_id: str,
    payload: CartItemUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.update_item(session, current_user, item_id, payload)


@router.delete("/items/{item_id}", response_model=CartRead)
def remove_item(
    item_id: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.remove_item(session, current_user, item_id)


@router.post("/merge", response_model=CartRead)
def merge_guest_cart(
    payload: CartMergeRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Merge the cart collected while browsing as a guest.
    Lines already in the stored cart are kept unchanged.
    """
    return service.merge_guest_cart(session, current_user, payload)
