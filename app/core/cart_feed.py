# app/core/cart_feed.py
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger(__name__)

CartDocumentListener = Callable[[dict], None]


class CartChangeFeed:
    """
    In-process publish/subscribe channel for per-user cart documents.

    The cart repository publishes the stored document after every write;
    open sessions (other tabs, other devices served by this process)
    subscribe to pick up the change.

    Listeners run synchronously inside `publish`, in subscription order.
    A failing listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: dict[uuid.UUID, list[CartDocumentListener]] = defaultdict(list)

    def subscribe(
        self,
        user_id: uuid.UUID,
        listener: CartDocumentListener,
    ) -> Callable[[], None]:
        """
        Register `listener` for `user_id`.

        Returns:
            A callable that removes the listener (safe to call twice).
        """
        self._listeners[user_id].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(user_id)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[user_id]

        return unsubscribe

    def publish(self, user_id: uuid.UUID, document: dict) -> None:
        for listener in list(self._listeners.get(user_id, ())):
            try:
                listener(document)
            except Exception:
                logger.exception("Cart listener failed for user %s", user_id)

    def subscriber_count(self, user_id: uuid.UUID) -> int:
        return len(self._listeners.get(user_id, ()))


cart_feed = CartChangeFeed()
