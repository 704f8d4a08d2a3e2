# app/repositories/order_repo.py
import uuid

from sqlmodel import Session, col, select

from app.models.order import Order, OrderItem

# Orders a baker may still pick up from the queue.
CLAIMABLE_STATUSES = ("pending", "approved")


class OrderRepository:
    """
    Data access layer for orders and order_items.

    NOTE:
      - No commits here; checkout writes the order, its items and the
        cleared cart in one transaction. The service commits.
    """

    # ---- Orders ----

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def get_by_idempotency_key(self, session: Session, key: str) -> Order | None:
        stmt = select(Order).where(Order.idempotency_key == key)
        return session.exec(stmt).first()

    def list_for_user(self, session: Session, user_id: uuid.UUID) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(col(Order.created_at).desc())
        )
        return list(session.exec(stmt).all())

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        stmt = select(Order)
        if status:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(col(Order.created_at).desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_unclaimed(self, session: Session) -> list[Order]:
        """
        Orders waiting for a baker, oldest first.
        """
        stmt = (
            select(Order)
            .where(col(Order.baker_id).is_(None))
            .where(col(Order.status).in_(CLAIMABLE_STATUSES))
            .order_by(col(Order.created_at))
        )
        return list(session.exec(stmt).all())

    def list_for_baker(self, session: Session, baker_id: uuid.UUID) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.baker_id == baker_id)
            .order_by(col(Order.created_at).desc())
        )
        return list(session.exec(stmt).all())

    def add(self, session: Session, order: Order) -> Order:
        """
        Stage an Order without committing, with its id populated.
        """
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    # ---- Order items ----

    def list_items(self, session: Session, order_id: uuid.UUID) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        return list(session.exec(stmt).all())

    def items_by_order(
        self,
        session: Session,
        order_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, list[OrderItem]]:
        grouped: dict[uuid.UUID, list[OrderItem]] = {oid: [] for oid in order_ids}
        if not order_ids:
            return grouped
        stmt = select(OrderItem).where(col(OrderItem.order_id).in_(order_ids))
        for item in session.exec(stmt).all():
            grouped[item.order_id].append(item)
        return grouped

    def add_items(self, session: Session, items: list[OrderItem]) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        for item in items:
            session.refresh(item)
        return items
