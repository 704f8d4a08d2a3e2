# app/routers/orders.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import require_admin, require_auth, require_baker, require_user
from app.database import get_session
from app.models.user import User
from app.repositories.cake_repo import CakeRepository
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import OrderRepository
from app.schemas.order import (
    OrderCancel,
    OrderCreate,
    OrderRead,
    OrderStatus,
    OrderStatusUpdate,
    OrderWithItemsRead,
    PaymentCreate,
    PaymentRecorded,
    PaymentStatusUpdate,
)
from app.services.cake_service import CakeService
from app.services.cart_service import CartService
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
cake_service = CakeService(CakeRepository())
service = OrderService(
    order_repo,
    CartService(CartRepository(), cake_service),
    cake_service,
)


# -------- Customer endpoints --------


@router.post(
    "/checkout",
    response_model=OrderWithItemsRead,
    status_code=status.HTTP_201_CREATED,
)
def checkout(
    payload: OrderCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Place an order from the caller's stored cart.

    - delivery orders need `delivery`, pickup orders need `pickup`
    - a repeated `idempotency_key` returns the original order
    - the cart is emptied on success
    """
    return service.checkout(session, current_user, payload)


@router.get("/me", response_model=list[OrderWithItemsRead])
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Order history, newest first, with duplicate submissions collapsed.
    """
    return service.list_my_orders(session, current_user)


@router.get("/me/{order_id}", response_model=OrderWithItemsRead)
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.get_my_order(session, current_user, order_id)


# -------- Staff endpoints --------


@router.get(
    "",
    response_model=list[OrderRead],
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
    status: OrderStatus | None = None,
):
    return service.list_all_orders(session, skip, limit, status)


@router.get(
    "/available",
    response_model=list[OrderRead],
    dependencies=[Depends(require_baker)],
)
def list_available_orders(session: Session = Depends(get_session)):
    """
    Unclaimed pending/approved orders, oldest first.
    """
    return service.list_available(session)


@router.get("/assigned", response_model=list[OrderRead])
def list_assigned_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    return service.list_assigned(session, current_user)


@router.get(
    "/{order_id}",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_baker)],
)
def get_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    return service.get_order(session, order_id)


@router.patch("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    """
    Move an order along its lifecycle (baker or admin).
    Completed and cancelled orders cannot change.
    """
    return service.update_status(session, order_id, payload, current_user)


@router.patch("/{order_id}/payment-status", response_model=OrderWithItemsRead)
def update_payment_status(
    order_id: uuid.UUID,
    payload: PaymentStatusUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    """
    Confirm, settle or refund payment (baker or admin).
    Every change is kept in payment_status_history.
    """
    return service.update_payment_status(session, order_id, payload, current_user)


@router.post("/{order_id}/claim", response_model=OrderRead)
def claim_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_baker),
):
    """
    Take an unclaimed order. 409 if another baker got there first.
    """
    return service.claim(session, order_id, current_user)


# -------- Owner or admin --------


@router.post("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(
    order_id: uuid.UUID,
    payload: OrderCancel,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    return service.cancel(session, order_id, payload, current_user)


@router.post(
    "/{order_id}/payments",
    response_model=PaymentRecorded,
    status_code=status.HTTP_201_CREATED,
)
def record_payment(
    order_id: uuid.UUID,
    payload: PaymentCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Record a payment made in store, by card terminal or through Cash App.
    """
    return service.record_payment(session, order_id, payload, current_user)
