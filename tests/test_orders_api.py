import smtplib
from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from app.repositories.cart_repo import CartRepository
from app.routers import orders as orders_router
from app.schemas.cart import CakeSize, CartItem, CartState
from app.services.cart_sync import sanitize_for_storage
from app.services.notification_service import OrderNotifier

API = "/api/v1/orders"
CART = "/api/v1/carts"


def pickup_order(**overrides):
    payload = {
        "customer_name": "Ada Lovelace",
        "customer_email": "ada@example.com",
        "customer_phone": "555-0100",
        "delivery_method": "pickup",
        "pickup": {
            "pickup_date": (date.today() + timedelta(days=3)).isoformat(),
            "pickup_time": "10:00",
            "store_location": "Main Street",
        },
    }
    payload.update(overrides)
    return payload


def delivery_order(**overrides):
    payload = {
        "customer_name": "Ada Lovelace",
        "customer_email": "ada@example.com",
        "customer_phone": "555-0100",
        "delivery_method": "delivery",
        "delivery": {
            "address": "12 Baker Row",
            "city": "Austin",
            "state": "TX",
            "zip_code": "78701",
            "delivery_date": (date.today() + timedelta(days=5)).isoformat(),
            "delivery_time": "14:00",
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def fill_cart(client, make_cake):
    def _fill(headers, quantity=2, cake=None):
        cake = cake or make_cake()
        response = client.post(
            f"{CART}/items",
            json={"cake_id": str(cake.id), "size_label": "6-inch", "quantity": quantity},
            headers=headers,
        )
        assert response.status_code == 200
        return cake

    return _fill


@pytest.fixture
def placed_order(client, customer, fill_cart):
    fill_cart(customer[1])
    response = client.post(f"{API}/checkout", json=pickup_order(), headers=customer[1])
    assert response.status_code == 201
    return response.json()


# -------- Checkout --------


def test_pickup_checkout_snapshots_cart(client, customer, fill_cart):
    user, headers = customer
    cake = fill_cart(headers)

    response = client.post(f"{API}/checkout", json=pickup_order(), headers=headers)

    assert response.status_code == 201
    order = response.json()
    assert order["user_id"] == str(user.id)
    assert order["status"] == "pending"
    assert order["payment_status"] == "unpaid"
    assert order["subtotal"] == pytest.approx(20.0)
    assert order["tax"] == pytest.approx(1.65)
    assert order["delivery_fee"] == 0
    assert order["total"] == pytest.approx(21.65)
    assert order["balance_due"] == pytest.approx(21.65)
    assert order["pickup_time"] == "10:00"
    assert order["store_location"] == "Main Street"
    (item,) = order["items"]
    assert item["cake_id"] == str(cake.id)
    assert item["size_label"] == "6-inch"
    assert item["line_total"] == pytest.approx(20.0)
    assert [h["status"] for h in order["status_history"]] == ["pending"]

    assert client.get(f"{CART}/current", headers=headers).json()["items"] == []


def test_delivery_checkout_adds_fee(client, customer, fill_cart):
    fill_cart(customer[1])

    order = client.post(f"{API}/checkout", json=delivery_order(), headers=customer[1]).json()

    assert order["delivery_fee"] == pytest.approx(10.0)
    assert order["total"] == pytest.approx(31.65)
    assert order["delivery_city"] == "Austin"


def test_checkout_with_empty_cart(client, customer):
    response = client.post(f"{API}/checkout", json=pickup_order(), headers=customer[1])

    assert response.status_code == 400
    assert response.json()["detail"] == "Cart is empty"


def test_checkout_rejects_past_date(client, customer, fill_cart):
    fill_cart(customer[1])
    payload = pickup_order()
    payload["pickup"]["pickup_date"] = (date.today() - timedelta(days=1)).isoformat()

    response = client.post(f"{API}/checkout", json=payload, headers=customer[1])

    assert response.status_code == 400


def test_checkout_requires_matching_fulfillment_block(client, customer, fill_cart):
    fill_cart(customer[1])
    payload = pickup_order()
    del payload["pickup"]

    assert client.post(f"{API}/checkout", json=payload, headers=customer[1]).status_code == 422


def test_checkout_rejects_cake_no_longer_available(client, session, customer, fill_cart):
    cake = fill_cart(customer[1])
    cake.is_available = False
    session.add(cake)
    session.commit()

    response = client.post(f"{API}/checkout", json=pickup_order(), headers=customer[1])

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "Cart validation failed"
    assert detail["items"] == [{"cake_id": str(cake.id), "reason": "Cake is not available"}]


def test_checkout_replays_idempotency_key(client, customer, make_user, fill_cart):
    fill_cart(customer[1])
    payload = pickup_order(idempotency_key="checkout-123")

    first = client.post(f"{API}/checkout", json=payload, headers=customer[1])
    again = client.post(f"{API}/checkout", json=payload, headers=customer[1])

    assert first.status_code == 201
    assert again.json()["id"] == first.json()["id"]

    _, other_headers = make_user("user")
    assert client.post(f"{API}/checkout", json=payload, headers=other_headers).status_code == 409


def test_checkout_sends_order_emails(client, customer, fill_cart, monkeypatch):
    sender = MagicMock()
    monkeypatch.setattr(
        orders_router.service,
        "notifier",
        OrderNotifier(send_email=sender, baker_inbox="kitchen@example.com"),
    )
    fill_cart(customer[1])

    response = client.post(f"{API}/checkout", json=pickup_order(), headers=customer[1])

    assert response.status_code == 201
    recipients = [call.kwargs["to_email"] for call in sender.call_args_list]
    assert recipients == ["ada@example.com", "kitchen@example.com"]
    assert sender.call_args_list[0].kwargs["subject"].startswith("Order Confirmation #")


def test_checkout_survives_email_failure(client, customer, fill_cart, monkeypatch):
    sender = MagicMock(side_effect=smtplib.SMTPException("server down"))
    monkeypatch.setattr(orders_router.service, "notifier", OrderNotifier(send_email=sender))
    fill_cart(customer[1])

    response = client.post(f"{API}/checkout", json=pickup_order(), headers=customer[1])

    assert response.status_code == 201
    assert sender.called


# -------- History --------


def test_history_collapses_repeated_checkout(client, customer, admin, fill_cart, make_cake):
    cake = make_cake()
    for _ in range(2):
        fill_cart(customer[1], cake=cake)
        assert client.post(f"{API}/checkout", json=pickup_order(), headers=customer[1]).status_code == 201

    mine = client.get(f"{API}/me", headers=customer[1]).json()
    everything = client.get(API, headers=admin[1]).json()

    assert len(mine) == 1
    assert len(everything) == 2


def test_customer_sees_only_own_orders(client, make_user, placed_order):
    _, other_headers = make_user("user")

    assert client.get(f"{API}/me/{placed_order['id']}", headers=other_headers).status_code == 404
    assert client.get(f"{API}/me", headers=other_headers).json() == []


def test_owner_reads_order_detail(client, customer, placed_order):
    response = client.get(f"{API}/me/{placed_order['id']}", headers=customer[1])

    assert response.status_code == 200
    assert response.json()["items"][0]["quantity"] == 2


# -------- Kitchen --------


def test_baker_claims_and_progresses_order(client, baker, make_user, placed_order):
    _, headers = baker
    _, rival_headers = make_user("baker")
    order_id = placed_order["id"]

    available = client.get(f"{API}/available", headers=headers).json()
    assert [o["id"] for o in available] == [order_id]

    claimed = client.post(f"{API}/{order_id}/claim", headers=headers)
    assert claimed.status_code == 200
    assert claimed.json()["status"] == "approved"
    assert claimed.json()["baker_id"] == str(baker[0].id)

    assert client.post(f"{API}/{order_id}/claim", headers=rival_headers).status_code == 409
    assert client.get(f"{API}/available", headers=headers).json() == []
    assert [o["id"] for o in client.get(f"{API}/assigned", headers=headers).json()] == [order_id]

    moved = client.patch(
        f"{API}/{order_id}/status",
        json={"status": "processing", "note": "In the oven"},
        headers=headers,
    )
    assert moved.json()["status"] == "processing"

    denied = client.patch(f"{API}/{order_id}/status", json={"status": "ready"}, headers=rival_headers)
    assert denied.status_code == 403

    history = client.get(f"{API}/{order_id}", headers=headers).json()["status_history"]
    assert [h["status"] for h in history] == ["pending", "approved", "processing"]
    assert history[-1]["note"] == "In the oven"


def test_completed_orders_are_final(client, baker, placed_order):
    order_id = placed_order["id"]
    client.patch(f"{API}/{order_id}/status", json={"status": "completed"}, headers=baker[1])

    response = client.patch(f"{API}/{order_id}/status", json={"status": "ready"}, headers=baker[1])

    assert response.status_code == 400


def test_customer_cannot_use_kitchen_endpoints(client, customer, placed_order):
    order_id = placed_order["id"]

    assert client.get(f"{API}/available", headers=customer[1]).status_code == 403
    assert (
        client.patch(
            f"{API}/{order_id}/status", json={"status": "ready"}, headers=customer[1]
        ).status_code
        == 403
    )


# -------- Cancellation --------


def test_customer_cancels_pending_order(client, customer, placed_order):
    order_id = placed_order["id"]

    response = client.post(
        f"{API}/{order_id}/cancel", json={"reason": "Changed my mind"}, headers=customer[1]
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    again = client.post(f"{API}/{order_id}/cancel", json={"reason": "Twice"}, headers=customer[1])
    assert again.status_code == 400


def test_customer_cannot_cancel_order_in_progress(client, customer, baker, admin, placed_order):
    order_id = placed_order["id"]
    client.patch(f"{API}/{order_id}/status", json={"status": "processing"}, headers=baker[1])

    denied = client.post(f"{API}/{order_id}/cancel", json={"reason": "Too late"}, headers=customer[1])
    allowed = client.post(f"{API}/{order_id}/cancel", json={"reason": "Out of stock"}, headers=admin[1])

    assert denied.status_code == 400
    assert allowed.json()["status"] == "cancelled"


def test_other_customer_cannot_cancel(client, make_user, placed_order):
    _, other_headers = make_user("user")

    response = client.post(
        f"{API}/{placed_order['id']}/cancel", json={"reason": "Not mine"}, headers=other_headers
    )

    assert response.status_code == 404


def test_admin_filters_orders_by_status(client, customer, admin, placed_order):
    client.post(f"{API}/{placed_order['id']}/cancel", json={"reason": "Oops"}, headers=customer[1])

    cancelled = client.get(API, params={"status": "cancelled"}, headers=admin[1]).json()
    pending = client.get(API, params={"status": "pending"}, headers=admin[1]).json()

    assert [o["id"] for o in cancelled] == [placed_order["id"]]
    assert pending == []


# -------- Payments --------


def test_record_partial_payment(client, customer, placed_order):
    response = client.post(
        f"{API}/{placed_order['id']}/payments",
        json={"amount": 10, "method": "cash-app", "confirmation_id": "CA-991"},
        headers=customer[1],
    )

    assert response.status_code == 201
    body = response.json()
    assert body["amount_paid"] == pytest.approx(10.0)
    assert body["balance_due"] == pytest.approx(11.65)
    assert body["payment_status"] == "pending"

    detail = client.get(f"{API}/me/{placed_order['id']}", headers=customer[1]).json()
    assert detail["payment_method"] == "cash-app"
    assert [p["confirmation_id"] for p in detail["payments"]] == ["CA-991"]


def test_payment_rules(client, customer, make_user, placed_order):
    order_id = placed_order["id"]
    _, other_headers = make_user("user")
    payment = {"amount": 5, "method": "cash"}

    assert client.post(f"{API}/{order_id}/payments", json=payment, headers=other_headers).status_code == 404

    client.post(f"{API}/{order_id}/cancel", json={"reason": "No longer needed"}, headers=customer[1])
    assert client.post(f"{API}/{order_id}/payments", json=payment, headers=customer[1]).status_code == 400


# -------- Catalog pricing --------


def stored_cart(session, user, cake, price, size_label="8-inch", quantity=5):
    state = CartState(
        items=[
            CartItem(
                cake_id=str(cake.id),
                name=cake.name,
                price=price,
                quantity=quantity,
                size=CakeSize(label=size_label, price=price),
            )
        ]
    )
    CartRepository().save(session, user.id, sanitize_for_storage(state))


def test_checkout_charges_catalog_prices(client, session, customer, make_cake):
    user, headers = customer
    stored_cart(session, user, make_cake(), price=0.01)

    order = client.post(f"{API}/checkout", json=pickup_order(), headers=headers).json()

    assert order["subtotal"] == pytest.approx(100.0)
    assert order["items"][0]["price"] == 20.0
    assert order["items"][0]["line_total"] == pytest.approx(100.0)


def test_checkout_rejects_size_no_longer_offered(client, session, customer, make_cake):
    user, headers = customer
    cake = make_cake()
    stored_cart(session, user, cake, price=30.0, size_label="12-inch")

    response = client.post(f"{API}/checkout", json=pickup_order(), headers=headers)

    assert response.status_code == 400
    assert response.json()["detail"]["items"] == [
        {"cake_id": str(cake.id), "reason": "Size '12-inch' is not offered"}
    ]


# -------- Payment verification --------


def test_baker_confirms_payment(client, customer, baker, placed_order):
    order_id = placed_order["id"]
    client.post(
        f"{API}/{order_id}/payments",
        json={"amount": 21.65, "method": "cash"},
        headers=customer[1],
    )

    response = client.patch(
        f"{API}/{order_id}/payment-status",
        json={"payment_status": "paid", "note": "Cash counted"},
        headers=baker[1],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["payment_status"] == "paid"
    history = body["payment_status_history"]
    assert [h["status"] for h in history] == ["unpaid", "pending", "paid"]
    assert history[-1]["note"] == "Cash counted"
    assert history[-1]["updated_by"] == str(baker[0].id)


def test_same_payment_status_is_a_no_op(client, admin, placed_order):
    order_id = placed_order["id"]

    body = client.patch(
        f"{API}/{order_id}/payment-status", json={"payment_status": "unpaid"}, headers=admin[1]
    ).json()

    assert [h["status"] for h in body["payment_status_history"]] == ["unpaid"]


def test_payment_status_rules(client, customer, baker, make_user, admin, placed_order):
    order_id = placed_order["id"]
    _, rival_headers = make_user("baker")
    url = f"{API}/{order_id}/payment-status"

    assert client.patch(url, json={"payment_status": "paid"}, headers=customer[1]).status_code == 403
    assert client.patch(url, json={"payment_status": "settled"}, headers=admin[1]).status_code == 422

    client.post(f"{API}/{order_id}/claim", headers=baker[1])
    assert client.patch(url, json={"payment_status": "paid"}, headers=rival_headers).status_code == 403

    client.post(f"{API}/{order_id}/cancel", json={"reason": "Event called off"}, headers=customer[1])
    assert client.patch(url, json={"payment_status": "paid"}, headers=admin[1]).status_code == 400
    refunded = client.patch(url, json={"payment_status": "refunded"}, headers=admin[1])
    assert refunded.json()["payment_status"] == "refunded"
