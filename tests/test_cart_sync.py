import asyncio
import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.cart_feed import CartChangeFeed
from app.repositories.cart_repo import CartRepository
from app.schemas.cart import AddItem, CakeSize, CartItem, CartState
from app.services.cart_reducer import CartStore, cart_reducer
from app.services.cart_sync import (
    LOAD_FAILED_MESSAGE,
    SAVE_FAILED_MESSAGE,
    CartPersistenceAdapter,
    LocalCartStorage,
    SQLCartDocumentStore,
    cart_item_key,
    merge_guest_items,
    sanitize_for_storage,
)

SIX_INCH = CakeSize(label="6-inch", servings=8, price=10.0)
CHOCOLATE = {"id": "cake-1", "name": "Chocolate Dream", "images": ["/img/choc.jpg"]}
LEMON = {"id": "cake-2", "name": "Lemon Drizzle"}


def cart_with(*items: CartItem) -> CartState:
    state = CartState()
    for item in items:
        state = cart_reducer(state, AddItem(item=item))
    return state


def line(cake: dict, quantity: int = 1, **extra) -> CartItem:
    return CartItem(
        cake_id=cake["id"],
        name=cake["name"],
        price=SIX_INCH.price,
        quantity=quantity,
        size=SIX_INCH,
        **extra,
    )


@pytest.fixture
def feed():
    return CartChangeFeed()


@pytest.fixture
def remote(engine, feed):
    return SQLCartDocumentStore(lambda: Session(engine), CartRepository(feed=feed))


@pytest.fixture
def local(tmp_path):
    return LocalCartStorage(tmp_path / "local_storage.json")


@pytest.fixture
def notices():
    return []


@pytest.fixture
def make_adapter(local, remote, notices):
    adapters = []

    def _make(remote_store=None, debounce=0.05):
        adapter = CartPersistenceAdapter(
            CartStore(),
            local,
            remote_store or remote,
            debounce_seconds=debounce,
            notify=notices.append,
        )
        adapters.append(adapter)
        return adapter

    yield _make
    for adapter in adapters:
        adapter.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class Flavor(enum.Enum):
    VANILLA = "vanilla"


def test_sanitize_drops_none_keys_and_converts_values():
    user_id = uuid.uuid4()
    data = {
        "a": None,
        "nested": {"keep": 1, "drop": None},
        "list": [None, 1, {"x": None}],
        "id": user_id,
        "when": datetime(2026, 1, 2, 3, 4, tzinfo=timezone.utc),
        "amount": Decimal("12.50"),
        "flavor": Flavor.VANILLA,
        "pair": (1, 2),
    }

    assert sanitize_for_storage(data) == {
        "nested": {"keep": 1},
        "list": [None, 1, {}],
        "id": str(user_id),
        "when": "2026-01-02T03:04:00+00:00",
        "amount": 12.5,
        "flavor": "vanilla",
        "pair": [1, 2],
    }


def test_sanitize_model_omits_unset_optionals():
    payload = sanitize_for_storage(cart_with(line(CHOCOLATE)))

    item = payload["items"][0]
    assert "special_instructions" not in item
    assert "customizations" not in item
    assert item["size"] == {"label": "6-inch", "servings": 8, "price": 10.0}


def test_merge_keeps_remote_lines_and_appends_new_ones():
    remote_cart = cart_with(line(CHOCOLATE, quantity=1))
    guest = cart_with(line(CHOCOLATE, quantity=5), line(LEMON))

    merged = merge_guest_items(remote_cart, guest)

    assert [cart_item_key(i) for i in merged.items] == ["cake-1-6-inch-", "cake-2-6-inch-"]
    assert merged.items[0].quantity == 1


def test_merge_without_new_items_returns_remote():
    remote_cart = cart_with(line(CHOCOLATE))

    assert merge_guest_items(remote_cart, cart_with(line(CHOCOLATE))) is remote_cart


# ---------------------------------------------------------------------------
# Local storage
# ---------------------------------------------------------------------------


def test_local_round_trip_resets_visibility(local):
    state = cart_with(line(CHOCOLATE, quantity=2)).model_copy(update={"is_open": True})

    local.save(state)
    loaded = local.load()

    assert loaded.items == state.items
    assert loaded.total == state.total
    assert loaded.is_open is False


def test_local_ignores_unreadable_file(local):
    local.path.write_text("{not json", encoding="utf-8")

    assert local.load() is None
    assert local.exists() is False


def test_local_clear_removes_only_cart_key(local):
    local.path.write_text('{"theme": "dark"}', encoding="utf-8")
    local.save(cart_with(line(CHOCOLATE)))

    local.clear()

    assert local.exists() is False
    assert '"theme"' in local.path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Adapter without a running loop: saves happen immediately
# ---------------------------------------------------------------------------


def test_guest_changes_saved_locally(make_adapter, local):
    adapter = make_adapter()
    adapter.load_guest_cart()

    adapter.store.add_item(CHOCOLATE, SIX_INCH, 2)

    assert local.load().items[0].quantity == 2


def test_first_empty_state_is_not_saved(make_adapter, local):
    adapter = make_adapter()
    adapter.load_guest_cart()

    adapter.store.clear()

    assert local.exists() is False


def test_sign_in_promotes_local_cart(make_adapter, remote):
    adapter = make_adapter()
    adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)
    user_id = uuid.uuid4()

    adapter.sign_in(user_id)

    stored = remote.get(user_id)
    assert stored is not None
    assert [i.cake_id for i in stored.items] == ["cake-1"]


def test_sign_in_merges_guest_items_into_remote(make_adapter, remote):
    user_id = uuid.uuid4()
    remote.save(user_id, sanitize_for_storage(cart_with(line(CHOCOLATE, quantity=1))))

    adapter = make_adapter()
    adapter.store.add_item(CHOCOLATE, SIX_INCH, 4)
    adapter.store.add_item(LEMON, SIX_INCH, 1)

    state = adapter.sign_in(user_id)

    assert [(i.cake_id, i.quantity) for i in state.items] == [("cake-1", 1), ("cake-2", 1)]
    assert state.subtotal == pytest.approx(20.0)
    assert len(remote.get(user_id).items) == 2


def test_sign_in_with_nothing_anywhere_writes_nothing(make_adapter, remote):
    adapter = make_adapter()
    user_id = uuid.uuid4()

    state = adapter.sign_in(user_id)

    assert state.items == []
    assert remote.get(user_id) is None


def test_remote_change_replaces_local_state(make_adapter, remote, feed):
    adapter = make_adapter()
    user_id = uuid.uuid4()
    adapter.sign_in(user_id)
    assert feed.subscriber_count(user_id) == 1

    # Another device writes the document.
    remote.save(user_id, sanitize_for_storage(cart_with(line(LEMON, quantity=3))))

    assert [(i.cake_id, i.quantity) for i in adapter.store.state.items] == [("cake-2", 3)]


def test_own_saves_do_not_echo_back(make_adapter):
    adapter = make_adapter()
    adapter.sign_in(uuid.uuid4())
    states = []
    adapter.store.subscribe(states.append)

    adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)

    assert len(states) == 1


def test_identical_remote_document_is_ignored(make_adapter, feed):
    adapter = make_adapter()
    user_id = uuid.uuid4()
    adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)
    adapter.sign_in(user_id)
    states = []
    adapter.store.subscribe(states.append)

    document = sanitize_for_storage(adapter.store.state)
    document["last_synced"] = "2026-05-01T12:00:00+00:00"
    feed.publish(user_id, document)

    assert states == []


def test_save_failure_falls_back_to_local(make_adapter, local, notices):
    broken = MagicMock(spec=SQLCartDocumentStore)
    broken.get.return_value = None
    broken.save.side_effect = SQLAlchemyError("connection refused")
    broken.subscribe.return_value = MagicMock()

    adapter = make_adapter(remote_store=broken)
    adapter.sign_in(uuid.uuid4())
    adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)

    assert notices == [SAVE_FAILED_MESSAGE]
    assert [i.cake_id for i in local.load().items] == ["cake-1"]


def test_load_failure_falls_back_to_local(make_adapter, local, notices):
    local.save(cart_with(line(LEMON, quantity=2)))
    broken = MagicMock(spec=SQLCartDocumentStore)
    broken.get.side_effect = SQLAlchemyError("timeout")

    adapter = make_adapter(remote_store=broken)
    state = adapter.sign_in(uuid.uuid4())

    assert notices == [LOAD_FAILED_MESSAGE]
    assert [i.cake_id for i in state.items] == ["cake-2"]
    broken.subscribe.assert_not_called()


def test_sign_out_unsubscribes_and_reloads_local(make_adapter, local, feed):
    local.save(cart_with(line(LEMON)))
    adapter = make_adapter()
    user_id = uuid.uuid4()
    adapter.sign_in(user_id)
    adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)

    state = adapter.sign_out()

    assert feed.subscriber_count(user_id) == 0
    assert adapter.user_id is None
    assert [i.cake_id for i in state.items] == ["cake-2"]


# ---------------------------------------------------------------------------
# Adapter on an event loop: debounced saves
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rapid_changes_are_debounced_into_one_save(make_adapter, local):
    adapter = make_adapter(debounce=0.05)
    adapter.load_guest_cart()

    with patch.object(local, "save", wraps=local.save) as save_spy:
        for _ in range(3):
            adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)
        assert adapter.has_pending_save is True
        assert save_spy.call_count == 0

        await asyncio.sleep(0.15)

    assert save_spy.call_count == 1
    assert adapter.has_pending_save is False
    assert local.load().items[0].quantity == 3


@pytest.mark.asyncio
async def test_signed_in_save_reaches_remote_after_debounce(make_adapter, remote):
    adapter = make_adapter(debounce=0.05)
    user_id = uuid.uuid4()
    adapter.sign_in(user_id)

    adapter.store.add_item(LEMON, SIX_INCH, 2)
    assert remote.get(user_id) is None

    await asyncio.sleep(0.15)

    assert [(i.cake_id, i.quantity) for i in remote.get(user_id).items] == [("cake-2", 2)]


@pytest.mark.asyncio
async def test_close_cancels_pending_save(make_adapter, local, feed):
    adapter = make_adapter(debounce=0.05)
    user_id = uuid.uuid4()
    adapter.sign_in(user_id)
    adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)

    adapter.close()
    await asyncio.sleep(0.15)

    assert adapter.has_pending_save is False
    assert feed.subscriber_count(user_id) == 0
    assert local.exists() is False


@pytest.mark.asyncio
async def test_flush_saves_immediately(make_adapter, local):
    adapter = make_adapter(debounce=5)
    adapter.load_guest_cart()
    adapter.store.add_item(CHOCOLATE, SIX_INCH, 1)

    adapter.flush()

    assert adapter.has_pending_save is False
    assert local.exists() is True
