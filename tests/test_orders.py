from datetime import datetime, timezone

import pytest

from app.models.order import Order


def test_checkout_computes_total_and_creates_pending_order(client):
    response = client.post("/api/checkout", json={
        "tableCode": "5",
        "items": [
            {"name": "Margherita", "price": 5, "qty": 2},
            {"name": "Acqua", "price": 1.5, "qty": 1},
        ],
        "total": 11.5,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["total"] == "11.50"

    pending = client.get("/api/orders", params={"status": "pending"}).json()["orders"]
    order = next(o for o in pending if o["id"] == body["order_id"])
    assert order["total"] == "11.50"
    assert order["payment_status"] == "unpaid"
    assert order["acknowledged"] is False
    assert order["table_code"] == "T5"
    assert order["order_mode"] == "table"
    assert [(i["name"], i["qty"]) for i in order["items"]] == [("Margherita", 2), ("Acqua", 1)]


@pytest.mark.parametrize("payload, code", [
    ({"tableCode": "T1", "items": []}, "missing_items"),
    ({"tableCode": "T1", "items": [{"name": "Pizza", "price": 8}], "total": 9}, "total_mismatch"),
    ({"tableCode": "T1", "items": [{"name": "", "price": 8}]}, "invalid_item"),
    ({"tableCode": "T1", "items": [{"name": "Pizza", "price": 8, "qty": 0}]}, "invalid_item"),
    ({"items": [{"name": "Pizza", "price": 8}], "orderMode": "table"}, "missing_table"),
    ({"items": [{"name": "Pizza", "price": 8}], "orderMode": "home", "customerName": "Ada"}, "missing_customer"),
    ({"items": [{"name": "Pizza", "price": 8}], "orderMode": "drone"}, "invalid_mode"),
])
def test_checkout_rejects_invalid_carts(client, payload, code):
    response = client.post("/api/checkout", json=payload)

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": code}


def test_checkout_without_table_is_takeaway(client):
    response = client.post("/api/checkout", json={"items": [{"name": "Supplì", "price": 2.5, "qty": 4}]})

    order = client.get(f"/api/orders/{response.json()['order_id']}").json()["order"]
    assert order["order_mode"] == "takeaway"
    assert order["table_code"] is None
    assert order["total"] == "10.00"


def test_malformed_body_is_invalid_request(client):
    response = client.post("/api/checkout", json={"items": "nope"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_unknown_order_is_not_found(client):
    response = client.post("/api/orders/999/complete")

    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": "order_not_found"}


def test_complete_then_restore_clears_timestamp(client, place_order):
    order_id = place_order()

    completed = client.post(f"/api/orders/{order_id}/complete").json()["order"]
    assert completed["status"] == "completed"
    assert completed["completed_at"] is not None

    restored = client.post(f"/api/orders/{order_id}/restore").json()["order"]
    assert restored["status"] == "pending"
    assert restored["completed_at"] is None


def test_cancel_then_restore_clears_timestamp(client, place_order):
    order_id = place_order()

    canceled = client.post(f"/api/orders/{order_id}/cancel").json()["order"]
    assert canceled["status"] == "canceled"
    assert canceled["canceled_at"] is not None

    restored = client.post(f"/api/orders/{order_id}/restore").json()["order"]
    assert restored["status"] == "pending"
    assert restored["canceled_at"] is None
    assert restored["completed_at"] is None


@pytest.mark.parametrize("first, second", [
    ("complete", "cancel"),
    ("cancel", "complete"),
    ("complete", "complete"),
    ("cancel", "cancel"),
])
def test_terminal_orders_only_leave_through_restore(client, place_order, first, second):
    order_id = place_order()
    assert client.post(f"/api/orders/{order_id}/{first}").status_code == 200

    response = client.post(f"/api/orders/{order_id}/{second}")

    assert response.status_code == 409
    assert response.json()["error"] == "invalid_transition"


def test_restore_pending_order_is_rejected(client, place_order):
    order_id = place_order()

    response = client.post(f"/api/orders/{order_id}/restore")

    assert response.status_code == 409


def test_ack_is_idempotent(client, app, place_order):
    order_id = place_order()

    first = client.post(f"/api/orders/{order_id}/ack").json()["order"]
    with app.state.session_factory() as session:
        version_after_first = session.get(Order, order_id).version_id

    second = client.post(f"/api/orders/{order_id}/ack").json()["order"]
    with app.state.session_factory() as session:
        version_after_second = session.get(Order, order_id).version_id

    assert first["acknowledged"] is True
    assert second == first
    assert version_after_second == version_after_first


def test_pay_and_unpay(client, place_order):
    order_id = place_order()

    paid = client.post(f"/api/orders/{order_id}/pay", json={"method": "card"}).json()["order"]
    assert paid["payment_status"] == "paid"
    assert paid["payment_method"] == "card"
    assert paid["paid_at"] is not None
    assert paid["status"] == "pending"

    unpaid = client.post(f"/api/orders/{order_id}/unpay").json()["order"]
    assert unpaid["payment_status"] == "unpaid"
    assert unpaid["payment_method"] is None
    assert unpaid["paid_at"] is None


def test_pay_rejects_unknown_method(client, place_order):
    order_id = place_order()

    response = client.post(f"/api/orders/{order_id}/pay", json={"method": "bitcoin"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payment_method"


def test_canceled_order_cannot_be_paid(client, place_order):
    order_id = place_order()
    client.post(f"/api/orders/{order_id}/cancel")

    response = client.post(f"/api/orders/{order_id}/pay", json={"method": "cash"})

    assert response.status_code == 409
    assert response.json()["error"] == "order_canceled"


def test_cancel_keeps_payment_status(client, place_order):
    order_id = place_order()
    client.post(f"/api/orders/{order_id}/pay", json={"method": "cash"})

    canceled = client.post(f"/api/orders/{order_id}/cancel").json()["order"]

    assert canceled["status"] == "canceled"
    assert canceled["payment_status"] == "paid"


def test_list_filters_by_status_and_table(client, place_order):
    first = place_order(tableCode="T1")
    second = place_order(tableCode="T2")
    client.post(f"/api/orders/{first}/complete")

    pending = client.get("/api/orders", params={"status": "pending"}).json()
    assert [o["id"] for o in pending["orders"]] == [second]

    table_one = client.get("/api/orders", params={"table": "1"}).json()
    assert [o["id"] for o in table_one["orders"]] == [first]


def test_list_rejects_unknown_status(client):
    response = client.get("/api/orders", params={"status": "lost"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_status"


def test_list_paginates_newest_first(client, place_order):
    ids = [place_order() for _ in range(3)]

    page = client.get("/api/orders", params={"limit": 2}).json()
    assert page["has_more"] is True
    assert page["next_offset"] == 2
    assert [o["id"] for o in page["orders"]] == [ids[2], ids[1]]

    rest = client.get("/api/orders", params={"limit": 2, "offset": 2}).json()
    assert rest["has_more"] is False
    assert [o["id"] for o in rest["orders"]] == [ids[0]]


def test_list_filters_by_local_day(client, app, place_order):
    order_id = place_order()
    with app.state.session_factory() as session:
        order = session.get(Order, order_id)
        # 23:30 UTC del 14 de junio = 01:30 del 15 en Roma (CEST)
        order.created_at = datetime(2024, 6, 14, 23, 30, tzinfo=timezone.utc)
        session.commit()

    on_15 = client.get("/api/orders", params={"day": "2024-06-15"}).json()
    on_14 = client.get("/api/orders", params={"day": "2024-06-14"}).json()

    assert [o["id"] for o in on_15["orders"]] == [order_id]
    assert on_14["orders"] == []


def test_close_table_pays_and_completes_pending_orders(client, place_order):
    first = place_order(tableCode="T4")
    second = place_order(tableCode="4", items=[{"name": "Tiramisù", "price": 5, "qty": 2}])
    other_table = place_order(tableCode="T7")

    response = client.post("/api/orders/close-table", json={"tableCode": "T4", "method": "card"})

    assert response.status_code == 200
    body = response.json()
    assert sorted(o["id"] for o in body["orders"]) == [first, second]
    assert body["total"] == "17.50"
    assert all(o["status"] == "completed" and o["payment_status"] == "paid" for o in body["orders"])

    untouched = client.get(f"/api/orders/{other_table}").json()["order"]
    assert untouched["status"] == "pending"


def test_close_table_without_pending_orders(client):
    response = client.post("/api/orders/close-table", json={"tableCode": "T9", "method": "cash"})

    assert response.status_code == 404
    assert response.json()["error"] == "no_pending_orders"
