# app/repositories/cart_repo.py
import uuid
from datetime import datetime, timezone

from sqlmodel import Session

from app.core.cart_feed import CartChangeFeed, cart_feed
from app.models.cart import CartDocument


class CartRepository:
    """
    Data access layer for per-user cart documents.

    Every write stamps `last_synced` and publishes the stored document on
    the change feed after commit.
    """

    def __init__(self, feed: CartChangeFeed = cart_feed):
        self.feed = feed

    def get(self, session: Session, user_id: uuid.UUID) -> CartDocument | None:
        return session.get(CartDocument, user_id)

    def save(self, session: Session, user_id: uuid.UUID, data: dict) -> CartDocument:
        """
        Upsert the user's cart document.

        `data` must already be JSON-compatible (see cart_sync.sanitize_for_storage).
        """
        doc = session.get(CartDocument, user_id)
        if doc is None:
            doc = CartDocument(user_id=user_id)

        # Assign a fresh dict so the JSON column is flagged dirty.
        doc.data = dict(data)
        doc.last_synced = datetime.now(timezone.utc)

        session.add(doc)
        session.commit()
        session.refresh(doc)

        self.feed.publish(user_id, self.as_document(doc))
        return doc

    def delete(self, session: Session, user_id: uuid.UUID) -> None:
        doc = session.get(CartDocument, user_id)
        if doc is not None:
            session.delete(doc)
            session.commit()

    @staticmethod
    def as_document(doc: CartDocument) -> dict:
        """
        Document shape seen by subscribers: the cart fields plus last_synced.
        """
        payload = dict(doc.data or {})
        payload["last_synced"] = doc.last_synced.isoformat() if doc.last_synced else None
        return payload
