# app/services/cart_sync.py
"""
Cart persistence for a shopping session.

Anonymous sessions keep the cart in local storage (a JSON key/value file,
one key holding the serialized CartState). Signed-in sessions keep it in
the user's cart document and follow changes made elsewhere through the
cart change feed.

Flow:
  - sign_in(user_id): load the remote document, merge guest items that are
    not already there (remote items win), or promote the local cart when
    there is no document yet; then subscribe to remote changes.
  - every store change schedules a debounced save on the running event loop.
  - sign_out(): flush, unsubscribe, reload the local cart.
  - failures fall back to local storage and call `notify`; there is no
    retry beyond the next debounced save.
"""
import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.config import get_settings
from app.repositories.cart_repo import CartRepository
from app.schemas.cart import CartItem, CartState
from app.services.cart_reducer import CartStore

logger = logging.getLogger(__name__)

settings = get_settings()

LOCAL_CART_KEY = "cart"

# Errors that degrade to local storage instead of propagating.
CART_STORE_ERRORS = (SQLAlchemyError, ValidationError, OSError)

LOAD_FAILED_MESSAGE = "We couldn't load your saved cart. Showing the cart saved on this device."
SAVE_FAILED_MESSAGE = "Failed to save your cart. Please try again."


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def sanitize_for_storage(data):
    """
    Make a value safe for the document store.

    - dict keys whose value is None are omitted (recursively)
    - None inside lists becomes null (kept as None)
    - pydantic models are dumped, UUID/datetime/date/Decimal/Enum become
      JSON scalars, tuples/sets become lists
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    if isinstance(data, dict):
        return {
            str(key): sanitize_for_storage(value)
            for key, value in data.items()
            if value is not None
        }
    if isinstance(data, (list, tuple, set)):
        return [sanitize_for_storage(value) for value in data]
    if isinstance(data, uuid.UUID):
        return str(data)
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    if isinstance(data, Decimal):
        return float(data)
    if isinstance(data, Enum):
        return data.value
    return data


def cart_item_key(item: CartItem) -> str:
    """
    Composite identity used when merging carts: cake + size + instructions.
    """
    return f"{item.cake_id}-{item.size.label}-{item.special_instructions or ''}"


def merge_guest_items(remote: CartState, guest: CartState) -> CartState:
    """
    Append guest items whose composite key is not already in `remote`.

    Remote items are kept as they are (quantities are not summed). Totals
    are not recomputed here; dispatch the result through ReplaceCart.
    """
    known = {cart_item_key(item) for item in remote.items}
    extra = [item for item in guest.items if cart_item_key(item) not in known]
    if not extra:
        return remote
    return remote.model_copy(update={"items": [*remote.items, *extra]})


def load_cart_state(data: dict) -> CartState:
    """
    Parse a stored cart. Visibility is per session, so it always starts closed.
    """
    state = CartState.model_validate(data)
    return state.model_copy(update={"is_open": False})


def _strip_sync_fields(document: dict) -> dict:
    return {k: v for k, v in document.items() if k not in ("last_synced", "last_updated")}


# ---------------------------------------------------------------------------
# Storage backends
# ---------------------------------------------------------------------------


class LocalCartStorage:
    """
    Browser-style local storage backed by a JSON file.

    The file holds a JSON object; the cart lives under a single key.
    """

    def __init__(self, path: str | Path | None = None, key: str = LOCAL_CART_KEY):
        self.path = Path(path or settings.LOCAL_CART_PATH)
        self.key = key

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Local cart storage at %s is unreadable; ignoring it", self.path)
            return {}
        return raw if isinstance(raw, dict) else {}

    def exists(self) -> bool:
        return self.key in self._read_all()

    def load(self) -> CartState | None:
        value = self._read_all().get(self.key)
        if value is None:
            return None
        try:
            return load_cart_state(value)
        except ValidationError:
            logger.warning("Discarding malformed cart in local storage")
            return None

    def save(self, state: CartState) -> None:
        """
        Raises:
            OSError: if the file cannot be written.
        """
        data = self._read_all()
        data[self.key] = sanitize_for_storage(state)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def clear(self) -> None:
        data = self._read_all()
        if data.pop(self.key, None) is not None:
            self.path.write_text(json.dumps(data), encoding="utf-8")


class SQLCartDocumentStore:
    """
    Remote cart store on top of the `carts` table.

    Each call opens its own short session from `session_factory`.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        repo: CartRepository | None = None,
    ):
        self.session_factory = session_factory
        self.repo = repo or CartRepository()

    def get(self, user_id: uuid.UUID) -> CartState | None:
        with self.session_factory() as session:
            doc = self.repo.get(session, user_id)
            if doc is None:
                return None
            return load_cart_state(doc.data or {})

    def save(self, user_id: uuid.UUID, payload: dict) -> None:
        with self.session_factory() as session:
            self.repo.save(session, user_id, payload)

    def subscribe(
        self,
        user_id: uuid.UUID,
        listener: Callable[[dict], None],
    ) -> Callable[[], None]:
        return self.repo.feed.subscribe(user_id, listener)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class CartPersistenceAdapter:
    """
    Mirrors a CartStore to local storage or to the user's cart document.

    Must be driven from a single event loop; saves are scheduled with
    `loop.call_later`. Without a running loop, saves happen immediately.
    """

    def __init__(
        self,
        store: CartStore,
        local: LocalCartStorage,
        remote: SQLCartDocumentStore,
        *,
        debounce_seconds: float | None = None,
        notify: Callable[[str], None] | None = None,
        merge_guest_cart: bool = True,
    ):
        self.store = store
        self.local = local
        self.remote = remote
        self.debounce_seconds = (
            settings.CART_SAVE_DEBOUNCE_SECONDS
            if debounce_seconds is None
            else debounce_seconds
        )
        self.notify = notify or logger.warning
        self.merge_guest_cart = merge_guest_cart

        self.user_id: uuid.UUID | None = None

        self._loading = False
        self._syncing = False
        self._applying_remote = False
        self._last_synced: dict | None = None
        self._pending: asyncio.TimerHandle | None = None
        self._unsubscribe_remote: Callable[[], None] | None = None
        self._unsubscribe_store = store.subscribe(self._on_state_change)

    # ---- session transitions ----

    def load_guest_cart(self) -> CartState:
        """Initialize an anonymous session from local storage."""
        return self.store.replace(self.local.load() or CartState())

    def sign_in(self, user_id: uuid.UUID) -> CartState:
        """
        Switch to the user's cart document.

        Returns the resulting store state.
        """
        self.flush()
        self._drop_remote_subscription()
        self.user_id = user_id
        self._last_synced = None
        self._loading = True

        try:
            local_cart = self.local.load()
            has_local = bool(local_cart and local_cart.items)

            try:
                remote_cart = self.remote.get(user_id)
            except CART_STORE_ERRORS:
                logger.exception("Error loading cart for user %s", user_id)
                self.notify(LOAD_FAILED_MESSAGE)
                if local_cart is not None:
                    self.store.replace(local_cart)
                return self.store.state

            if remote_cart is not None:
                self._last_synced = sanitize_for_storage(remote_cart)
                if self.merge_guest_cart and has_local:
                    merged = merge_guest_items(remote_cart, local_cart)
                    if merged is not remote_cart:
                        logger.info(
                            "Merging %d guest items into cart for user %s",
                            len(merged.items) - len(remote_cart.items),
                            user_id,
                        )
                    self.store.replace(merged)
                else:
                    self.store.replace(remote_cart)
            elif has_local:
                # Promoted to the remote document by the next save.
                logger.info("No saved cart for user %s; promoting local cart", user_id)
                self.store.replace(local_cart)
            else:
                self.store.replace(CartState())

            self._unsubscribe_remote = self.remote.subscribe(user_id, self._on_remote_change)
        finally:
            self._loading = False

        # Saves were suppressed while loading; schedule the promoted or merged cart.
        self._on_state_change(self.store.state)
        return self.store.state

    def sign_out(self) -> CartState:
        """Flush pending work, stop following the remote cart, reload the local one."""
        self.flush()
        self._drop_remote_subscription()
        self.user_id = None
        self._last_synced = None
        return self.store.replace(self.local.load() or CartState())

    def close(self) -> None:
        """Cancel the pending save and drop every subscription."""
        self._cancel_pending()
        self._drop_remote_subscription()
        self._unsubscribe_store()

    def flush(self) -> None:
        """Run a pending debounced save right away."""
        if self._pending is not None:
            self._cancel_pending()
            self._save_now()

    @property
    def has_pending_save(self) -> bool:
        return self._pending is not None

    # ---- listeners ----

    def _on_state_change(self, state: CartState) -> None:
        if self._applying_remote:
            return
        if not state.items and not self._has_saved_cart():
            return

        self._cancel_pending()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save_now()
            return
        self._pending = loop.call_later(self.debounce_seconds, self._run_pending)

    def _on_remote_change(self, document: dict) -> None:
        if self._syncing:
            return

        data = sanitize_for_storage(_strip_sync_fields(document))
        if data == self._last_synced:
            return

        try:
            remote_cart = load_cart_state(data)
        except ValidationError:
            logger.exception("Ignoring malformed remote cart for user %s", self.user_id)
            return

        logger.info("Remote cart changed for user %s; updating local state", self.user_id)
        self._last_synced = data
        self._applying_remote = True
        try:
            self.store.replace(remote_cart)
        finally:
            self._applying_remote = False

    # ---- saving ----

    def _has_saved_cart(self) -> bool:
        if self.user_id is not None:
            return self._last_synced is not None
        return self.local.exists()

    def _run_pending(self) -> None:
        self._pending = None
        self._save_now()

    def _save_now(self) -> None:
        if self._loading:
            logger.debug("Skipping cart save while loading")
            return

        state = self.store.state

        if self.user_id is None:
            try:
                self.local.save(state)
            except OSError:
                logger.exception("Error saving cart to local storage")
                self.notify(SAVE_FAILED_MESSAGE)
            return

        payload = sanitize_for_storage(state)
        if payload == self._last_synced:
            return

        self._syncing = True
        try:
            self.remote.save(self.user_id, payload)
            self._last_synced = payload
        except CART_STORE_ERRORS:
            logger.exception("Error saving cart for user %s", self.user_id)
            self.notify(SAVE_FAILED_MESSAGE)
            try:
                self.local.save(state)
            except OSError:
                logger.exception("Local cart backup failed as well")
        finally:
            self._syncing = False

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _drop_remote_subscription(self) -> None:
        if self._unsubscribe_remote is not None:
            self._unsubscribe_remote()
            self._unsubscribe_remote = None
