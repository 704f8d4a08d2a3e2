# app/services/order_service.py
import logging
import uuid
from datetime import date, datetime, timezone

from fastapi import HTTPException, status
from sqlmodel import Session

from app.core.config import get_settings
from app.models.order import Order, OrderItem
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import CLAIMABLE_STATUSES, OrderRepository
from app.schemas.cart import CartItem, CartState, ReplaceCart
from app.schemas.order import (
    OrderCancel,
    OrderCreate,
    OrderItemRead,
    OrderStatusUpdate,
    OrderWithItemsRead,
    PaymentCreate,
    PaymentRecorded,
    PaymentStatusHistoryEntry,
    PaymentStatusUpdate,
    PaymentTransaction,
    StatusHistoryEntry,
)
from app.services.cake_service import CakeService
from app.services.cart_reducer import cart_reducer
from app.services.cart_service import CartService
from app.services.cart_sync import sanitize_for_storage
from app.services.notification_service import OrderNotifier
from app.services.order_history import deduplicate_orders

logger = logging.getLogger(__name__)

settings = get_settings()

# No further status changes once an order reaches one of these.
FINAL_STATUSES = ("completed", "cancelled")

# Customers may cancel only before the kitchen starts.
CUSTOMER_CANCELLABLE = ("pending", "approved")

# Past the point where an admin can cancel.
FULFILLED_STATUSES = ("delivered", "picked-up", "completed")


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Order not found",
    )


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - checkout: turn the stored cart into an order (totals via the cart
        reducer, delivery fee from settings) and clear the cart
      - customer history, reconciled with `deduplicate_orders`
      - kitchen queue: claim, status changes with history
      - cancellation rules and manual payment records
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        cart_service: CartService,
        cake_service: CakeService,
        notifier: OrderNotifier | None = None,
    ):
        self.order_repo = order_repo
        self.cart_service = cart_service
        self.cake_service = cake_service
        self.notifier = notifier or OrderNotifier()

    @property
    def cart_repo(self) -> CartRepository:
        return self.cart_service.cart_repo

    # -------- Checkout --------

    def checkout(
        self,
        session: Session,
        user: User,
        payload: OrderCreate,
    ) -> OrderWithItemsRead:
        """
        Convert the caller's cart into an Order.

        Steps:
          1. Replay: an order with the same idempotency_key is returned as is.
          2. Fulfillment date must not be in the past.
          3. Cart must be non-empty; every cake must exist and be available
             in the chosen size.
          4. Unit prices come from the catalog; totals from the reducer with
             the delivery fee applied.
          5. Order + items are staged, the cart is cleared, one commit.
          6. Emails are sent best-effort.
        """
        if payload.idempotency_key:
            existing = self.order_repo.get_by_idempotency_key(session, payload.idempotency_key)
            if existing is not None:
                if existing.user_id != user.id:
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="Idempotency key already used",
                    )
                logger.info("Checkout replay for order %s", existing.id)
                return self._detail(session, existing)

        self._validate_fulfillment_date(payload)

        cart = self.cart_service.current_state(session, user.id)
        if not cart.items:
            raise _bad_request("Cart is empty")
        lines = self._catalog_priced_lines(session, cart)

        fee = settings.DELIVERY_FEE if payload.delivery_method == "delivery" else 0.0
        priced = cart_reducer(
            cart,
            ReplaceCart(cart=cart.model_copy(update={"items": lines, "delivery_fee": fee})),
        )
        if priced.total <= 0:
            raise _bad_request("Total order amount must be positive")

        order = self.order_repo.add(session, self._build_order(user, payload, priced))
        items = self.order_repo.add_items(
            session,
            [
                OrderItem(
                    order_id=order.id,
                    cake_id=line.cake_id,
                    name=line.name,
                    image_url=line.image,
                    price=line.price,
                    quantity=line.quantity,
                    size_label=line.size.label,
                    customizations=(
                        sanitize_for_storage(line.customizations)
                        if line.customizations is not None
                        else None
                    ),
                )
                for line in priced.items
            ],
        )

        # Saving the emptied cart commits the whole checkout.
        self.cart_repo.save(session, user.id, sanitize_for_storage(CartState()))
        session.refresh(order)
        for item in items:
            session.refresh(item)

        logger.info("New order %s created for %s (total %.2f)", order.id, user.email, order.total)
        self.notifier.order_placed(order, items)
        return self._to_detail(order, items)

    def _validate_fulfillment_date(self, payload: OrderCreate) -> None:
        if payload.delivery_method == "delivery":
            when = payload.delivery.delivery_date if payload.delivery else None
        else:
            when = payload.pickup.pickup_date if payload.pickup else None
        if when is not None and when < date.today():
            raise _bad_request("Fulfillment date cannot be in the past")

    def _catalog_priced_lines(self, session: Session, cart: CartState) -> list[CartItem]:
        """
        Cart lines re-priced from the catalog's size prices.

        Raises:
            HTTPException(400): a cake is missing or unavailable, or a size
              is no longer offered; `detail.items` lists every bad line.
        """
        errors: list[dict[str, str]] = []
        lines: list[CartItem] = []
        for line in cart.items:
            try:
                cake_id = uuid.UUID(line.cake_id)
            except ValueError:
                errors.append({"cake_id": line.cake_id, "reason": "Cake not found"})
                continue

            cake = self.cake_service.repo.get_by_id(session, cake_id)
            if cake is None:
                errors.append({"cake_id": line.cake_id, "reason": "Cake not found"})
            elif not cake.is_available:
                errors.append({"cake_id": line.cake_id, "reason": "Cake is not available"})
            else:
                size = self.cake_service.offered_size(cake, line.size.label)
                if size is None:
                    errors.append(
                        {
                            "cake_id": line.cake_id,
                            "reason": f"Size '{line.size.label}' is not offered",
                        }
                    )
                else:
                    lines.append(line.model_copy(update={"price": size.price, "size": size}))

        if errors:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Cart validation failed", "items": errors},
            )
        return lines

    @staticmethod
    def _build_order(user: User, payload: OrderCreate, priced: CartState) -> Order:
        order = Order(
            user_id=user.id,
            status="pending",
            payment_status="unpaid",
            payment_method=payload.payment_method,
            delivery_method=payload.delivery_method,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone=payload.customer_phone,
            special_instructions=payload.special_instructions,
            is_custom_order=payload.is_custom_order
            or any(line.is_customizable for line in priced.items),
            subtotal=priced.subtotal,
            tax=priced.tax,
            delivery_fee=priced.delivery_fee,
            total=priced.total,
            amount_paid=0.0,
            balance_due=priced.total,
            idempotency_key=payload.idempotency_key or uuid.uuid4().hex,
        )
        if payload.delivery_method == "delivery" and payload.delivery:
            order.delivery_address = payload.delivery.address
            order.delivery_city = payload.delivery.city
            order.delivery_state = payload.delivery.state
            order.delivery_zip_code = payload.delivery.zip_code
            order.delivery_date = payload.delivery.delivery_date
            order.delivery_time = payload.delivery.delivery_time
        elif payload.pickup:
            order.pickup_date = payload.pickup.pickup_date
            order.pickup_time = payload.pickup.pickup_time
            order.store_location = payload.pickup.store_location

        order.status_history = [_history_entry("pending", "Order created", user)]
        order.payment_status_history = [
            _payment_history_entry("unpaid", "Order created", user)
        ]
        return order

    # -------- Customer views --------

    def list_my_orders(self, session: Session, user: User) -> list[OrderWithItemsRead]:
        """
        The caller's order history with near-duplicate orders collapsed.
        """
        orders = self.order_repo.list_for_user(session, user.id)
        items = self.order_repo.items_by_order(session, [o.id for o in orders])
        details = [self._to_detail(order, items[order.id]) for order in orders]
        return deduplicate_orders(details)

    def get_my_order(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.user_id != user.id:
            raise _not_found()
        return self._detail(session, order)

    # -------- Staff views --------

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status_filter: str | None = None,
    ) -> list[Order]:
        return self.order_repo.list_all(session, skip, limit, status_filter)

    def list_available(self, session: Session) -> list[Order]:
        return self.order_repo.list_unclaimed(session)

    def list_assigned(self, session: Session, baker: User) -> list[Order]:
        return self.order_repo.list_for_baker(session, baker.id)

    def get_order(self, session: Session, order_id: uuid.UUID) -> OrderWithItemsRead:
        return self._detail(session, self._get_or_404(session, order_id))

    # -------- Lifecycle --------

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
        actor: User,
    ) -> Order:
        """
        Move an order to a new status and record it in the history.

        - completed / cancelled orders are final (400)
        - bakers can only move orders that are unclaimed or claimed by them
        - setting the current status again is a no-op
        """
        order = self._get_or_404(session, order_id)

        if order.status in FINAL_STATUSES:
            raise _bad_request(f"Cannot change status of a {order.status} order")

        if actor.role == "baker" and order.baker_id not in (None, actor.id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Order is assigned to another baker",
            )

        if order.status == payload.status:
            return order

        logger.info("Order %s: %s -> %s", order.id, order.status, payload.status)
        self._set_status(order, payload.status, payload.note, actor)
        return self._commit(session, order)

    def claim(self, session: Session, order_id: uuid.UUID, baker: User) -> Order:
        """
        Assign an unclaimed order to the calling baker; pending orders
        become approved.
        """
        order = self._get_or_404(session, order_id)

        if order.baker_id is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Order has already been claimed",
            )
        if order.status not in CLAIMABLE_STATUSES:
            raise _bad_request(f"Cannot claim a {order.status} order")

        order.baker_id = baker.id
        if order.status == "pending":
            self._set_status(order, "approved", f"Claimed by {baker.name}", baker)
        else:
            order.updated_at = datetime.now(timezone.utc)
        return self._commit(session, order)

    def cancel(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderCancel,
        actor: User,
    ) -> Order:
        order = self._get_owned_or_admin(session, order_id, actor)

        if order.status == "cancelled":
            raise _bad_request("Order is already cancelled")

        if actor.role == "admin":
            if order.status in FULFILLED_STATUSES:
                raise _bad_request(f"Cannot cancel a {order.status} order")
        elif order.status not in CUSTOMER_CANCELLABLE:
            raise _bad_request("Only pending or approved orders can be cancelled")

        logger.info("Order %s cancelled by %s", order.id, actor.email)
        self._set_status(order, "cancelled", payload.reason, actor)
        return self._commit(session, order)

    def record_payment(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: PaymentCreate,
        actor: User,
    ) -> PaymentRecorded:
        """
        Record a payment made outside the app.

        The first payment moves payment_status unpaid -> pending until
        staff verify it.
        """
        order = self._get_owned_or_admin(session, order_id, actor)
        if order.status == "cancelled":
            raise _bad_request("Cannot record a payment for a cancelled order")

        transaction = PaymentTransaction(
            id=uuid.uuid4().hex,
            amount=payload.amount,
            method=payload.method,
            paid_at=payload.paid_at or datetime.now(timezone.utc),
            confirmation_id=payload.confirmation_id,
            card_last4=payload.card_last4,
            card_brand=payload.card_brand,
            notes=payload.notes,
        )

        order.payments = [*(order.payments or []), sanitize_for_storage(transaction)]
        order.amount_paid = round(order.amount_paid + payload.amount, 2)
        order.balance_due = max(0.0, round(order.total - order.amount_paid, 2))
        if order.payment_status == "unpaid":
            self._set_payment_status(
                order,
                "pending",
                f"Payment of {payload.amount:.2f} recorded ({payload.method})",
                actor,
            )
        if order.payment_method is None:
            order.payment_method = payload.method
        order.updated_at = datetime.now(timezone.utc)
        self._commit(session, order)

        return PaymentRecorded(
            payment_id=transaction.id,
            amount_paid=order.amount_paid,
            balance_due=order.balance_due,
            payment_status=order.payment_status,
        )

    def update_payment_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: PaymentStatusUpdate,
        actor: User,
    ) -> OrderWithItemsRead:
        """
        Staff verification of recorded payments.

        - bakers can only touch orders that are unclaimed or claimed by them
        - a cancelled order can only be marked refunded
        - setting the current payment status again is a no-op
        """
        order = self._get_or_404(session, order_id)

        if actor.role == "baker" and order.baker_id not in (None, actor.id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Order is assigned to another baker",
            )
        if order.status == "cancelled" and payload.payment_status != "refunded":
            raise _bad_request("A cancelled order can only be marked refunded")

        if order.payment_status != payload.payment_status:
            logger.info(
                "Order %s payment: %s -> %s",
                order.id,
                order.payment_status,
                payload.payment_status,
            )
            self._set_payment_status(order, payload.payment_status, payload.note, actor)
            self._commit(session, order)
        return self._detail(session, order)

    # -------- Helpers --------

    def _get_or_404(self, session: Session, order_id: uuid.UUID) -> Order:
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise _not_found()
        return order

    def _get_owned_or_admin(self, session: Session, order_id: uuid.UUID, actor: User) -> Order:
        order = self._get_or_404(session, order_id)
        if actor.role != "admin" and order.user_id != actor.id:
            raise _not_found()
        return order

    @staticmethod
    def _set_status(order: Order, new_status: str, note: str | None, actor: User) -> None:
        order.status = new_status
        # Reassigned, not appended in place, so the JSON column is flagged dirty.
        order.status_history = [
            *(order.status_history or []),
            _history_entry(new_status, note, actor),
        ]
        order.updated_at = datetime.now(timezone.utc)

    @staticmethod
    def _set_payment_status(
        order: Order,
        new_status: str,
        note: str | None,
        actor: User,
    ) -> None:
        order.payment_status = new_status
        order.payment_status_history = [
            *(order.payment_status_history or []),
            _payment_history_entry(new_status, note, actor),
        ]
        order.updated_at = datetime.now(timezone.utc)

    @staticmethod
    def _commit(session: Session, order: Order) -> Order:
        session.add(order)
        session.commit()
        session.refresh(order)
        return order

    def _detail(self, session: Session, order: Order) -> OrderWithItemsRead:
        return self._to_detail(order, self.order_repo.list_items(session, order.id))

    @staticmethod
    def _to_detail(order: Order, items: list[OrderItem]) -> OrderWithItemsRead:
        data = order.model_dump()
        data["items"] = [
            OrderItemRead(**item.model_dump(), line_total=item.price * item.quantity)
            for item in items
        ]
        data["status_history"] = list(order.status_history or [])
        data["payment_status_history"] = list(order.payment_status_history or [])
        data["payments"] = list(order.payments or [])
        return OrderWithItemsRead.model_validate(data)


def _history_entry(new_status: str, note: str | None, actor: User) -> dict:
    entry = StatusHistoryEntry(
        status=new_status,
        timestamp=datetime.now(timezone.utc),
        note=note,
        updated_by=str(actor.id),
    )
    return sanitize_for_storage(entry)


def _payment_history_entry(new_status: str, note: str | None, actor: User) -> dict:
    entry = PaymentStatusHistoryEntry(
        status=new_status,
        timestamp=datetime.now(timezone.utc),
        note=note,
        updated_by=str(actor.id),
    )
    return sanitize_for_storage(entry)
