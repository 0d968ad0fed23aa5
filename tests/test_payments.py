import asyncio
import json
import threading

import httpx
import pytest

from app.core.errors import ConflictError
from app.services.fiscal_service import FiscalProvider, FiscalService, HttpFiscalProvider
from app.services.order_service import OrderService
from app.services.payments_service import HttpPaymentsProvider


@pytest.fixture
def provider_calls():
    return []


@pytest.fixture
def payments_provider(provider_calls):
    def handler(request: httpx.Request) -> httpx.Response:
        provider_calls.append((request.url.path, json.loads(request.content), request.headers["authorization"]))
        return httpx.Response(201, json={"id": "chk_1", "redirect_url": "https://pay.example/chk_1"})

    return HttpPaymentsProvider("https://pay.example/v1", "pk_test", transport=httpx.MockTransport(handler))


def test_checkout_without_provider_is_unavailable(client, place_order):
    order_id = place_order()

    response = client.post("/api/payments/checkout", json={"orderId": order_id})

    assert response.status_code == 503
    assert response.json() == {"ok": False, "error": "payments_not_configured"}


def test_checkout_marks_order_pending(client, app, place_order, payments_provider, provider_calls):
    app.state.payments_provider = payments_provider
    order_id = place_order(items=[{"name": "Lasagna", "price": 12.5, "qty": 2}])

    response = client.post("/api/payments/checkout", json={"orderId": order_id})

    assert response.status_code == 200
    assert response.json() == {"ok": True, "order_id": order_id, "checkout_url": "https://pay.example/chk_1"}

    path, payload, auth = provider_calls[0]
    assert path == "/v1/checkouts"
    assert auth == "Bearer pk_test"
    assert payload["amount"] == 25.0
    assert payload["currency"] == "EUR"
    assert payload["return_url"].endswith(f"/api/payments/success?order_id={order_id}")

    order = client.get(f"/api/orders/{order_id}").json()["order"]
    assert order["payment_status"] == "pending"
    assert order["payment_method"] == "online"


def test_success_return_marks_order_paid(client, app, place_order, payments_provider):
    app.state.payments_provider = payments_provider
    order_id = place_order()
    client.post("/api/payments/checkout", json={"orderId": order_id})

    response = client.get("/api/payments/success", params={"order_id": order_id})

    assert response.status_code == 200
    order = response.json()["order"]
    assert order["payment_status"] == "paid"
    assert order["paid_at"] is not None

    again = client.get("/api/payments/success", params={"order_id": order_id})
    assert again.status_code == 200
    assert again.json()["order"]["paid_at"] == order["paid_at"]


def test_success_without_provider_is_unavailable(client, place_order):
    order_id = place_order()

    response = client.get("/api/payments/success", params={"order_id": order_id})

    assert response.status_code == 503
    assert response.json()["error"] == "payments_not_configured"
    assert client.get(f"/api/orders/{order_id}").json()["order"]["payment_status"] == "unpaid"


def test_success_without_checkout_is_rejected(client, app, place_order, payments_provider):
    app.state.payments_provider = payments_provider
    order_id = place_order()

    response = client.get("/api/payments/success", params={"order_id": order_id})

    assert response.status_code == 409
    assert response.json()["error"] == "payment_not_pending"
    assert client.get(f"/api/orders/{order_id}").json()["order"]["payment_status"] == "unpaid"


def test_success_after_cash_payment_is_rejected(client, app, place_order, payments_provider):
    app.state.payments_provider = payments_provider
    order_id = place_order()
    client.post(f"/api/orders/{order_id}/pay", json={"method": "cash"})

    response = client.get("/api/payments/success", params={"order_id": order_id})

    assert response.status_code == 409
    assert client.get(f"/api/orders/{order_id}").json()["order"]["payment_method"] == "cash"


def test_success_for_canceled_order_is_rejected(client, app, place_order, payments_provider):
    app.state.payments_provider = payments_provider
    order_id = place_order()
    client.post("/api/payments/checkout", json={"orderId": order_id})
    client.post(f"/api/orders/{order_id}/cancel")

    response = client.get("/api/payments/success", params={"order_id": order_id})

    assert response.status_code == 409
    assert response.json()["error"] == "order_canceled"


def _record_threads(monkeypatch, cls, names, seen):
    for name in names:
        original = getattr(cls, name)

        def wrapped(self, *args, _original=original, **kwargs):
            seen.append(threading.get_ident())
            return _original(self, *args, **kwargs)

        monkeypatch.setattr(cls, name, wrapped)


def test_checkout_database_work_runs_off_the_event_loop(client, app, place_order, monkeypatch):
    loop_threads, db_threads = [], []

    def handler(request):
        loop_threads.append(threading.get_ident())
        return httpx.Response(201, json={"redirect_url": "https://pay.example/chk_2"})

    app.state.payments_provider = HttpPaymentsProvider(
        "https://pay.example", "pk_test", transport=httpx.MockTransport(handler)
    )
    order_id = place_order()
    _record_threads(monkeypatch, OrderService, ["get_order", "record_payment"], db_threads)

    response = client.post("/api/payments/checkout", json={"orderId": order_id})

    assert response.status_code == 200
    assert len(loop_threads) == 1
    assert db_threads
    assert loop_threads[0] not in db_threads


def test_checkout_rejects_paid_and_canceled_orders(client, app, place_order, payments_provider):
    app.state.payments_provider = payments_provider
    paid = place_order()
    client.post(f"/api/orders/{paid}/pay", json={"method": "cash"})
    canceled = place_order()
    client.post(f"/api/orders/{canceled}/cancel")

    assert client.post("/api/payments/checkout", json={"orderId": paid}).json()["error"] == "already_paid"
    assert client.post("/api/payments/checkout", json={"orderId": canceled}).json()["error"] == "order_canceled"


def test_provider_failure_leaves_order_unpaid(client, app, place_order):
    def handler(request):
        return httpx.Response(500, text="boom")

    app.state.payments_provider = HttpPaymentsProvider(
        "https://pay.example", "pk_test", transport=httpx.MockTransport(handler)
    )
    order_id = place_order()

    response = client.post("/api/payments/checkout", json={"orderId": order_id})

    assert response.status_code == 502
    assert response.json()["error"] == "payment_provider_error"
    assert client.get(f"/api/orders/{order_id}").json()["order"]["payment_status"] == "unpaid"


def test_provider_timeout(client, app, place_order):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    app.state.payments_provider = HttpPaymentsProvider(
        "https://pay.example", "pk_test", transport=httpx.MockTransport(handler)
    )
    order_id = place_order()

    response = client.post("/api/payments/checkout", json={"orderId": order_id})

    assert response.status_code == 504
    assert response.json()["error"] == "payment_provider_timeout"


def test_receipt_without_fiscal_provider(client, place_order):
    order_id = place_order()

    response = client.post(f"/api/orders/{order_id}/receipt")

    assert response.status_code == 503
    assert response.json()["error"] == "fiscal_not_configured"


def test_receipt_is_issued_once(client, app, place_order, provider_calls):
    def handler(request):
        provider_calls.append(json.loads(request.content))
        return httpx.Response(201, json={"id": "rec_77", "receipt_number": "0001-0042", "status": "registered"})

    app.state.fiscal_provider = HttpFiscalProvider(
        "https://fiscal.example", "fk_test", transport=httpx.MockTransport(handler)
    )
    order_id = place_order(items=[{"name": "Risotto", "price": 14, "qty": 1}])
    client.post(f"/api/orders/{order_id}/pay", json={"method": "card"})

    first = client.post(f"/api/orders/{order_id}/receipt").json()
    second = client.post(f"/api/orders/{order_id}/receipt").json()

    assert first["receipt"] == {"record_id": "rec_77", "number": "0001-0042", "status": "registered"}
    assert second["receipt"]["record_id"] == "rec_77"
    assert len(provider_calls) == 1
    assert provider_calls[0]["receipt"]["items"][0]["description"] == "Risotto"
    assert provider_calls[0]["receipt"]["payments"] == [{"method": "card", "amount": 14.0}]

    order = client.get(f"/api/orders/{order_id}").json()["order"]
    assert order["fiscal_record_id"] == "rec_77"


def test_fiscal_rejection_is_bad_gateway(client, app, place_order):
    def handler(request):
        return httpx.Response(422, json={"message": "invalid vat"})

    app.state.fiscal_provider = HttpFiscalProvider(
        "https://fiscal.example", "fk_test", transport=httpx.MockTransport(handler)
    )
    order_id = place_order()

    response = client.post(f"/api/orders/{order_id}/receipt")

    assert response.status_code == 502
    assert response.json()["error"] == "fiscal_provider_error"
    order = client.get(f"/api/orders/{order_id}").json()["order"]
    assert order["fiscal_status"] is None
    assert order["fiscal_record_id"] is None


def test_receipt_database_work_runs_off_the_event_loop(client, app, place_order, monkeypatch):
    loop_threads, db_threads = [], []

    def handler(request):
        loop_threads.append(threading.get_ident())
        return httpx.Response(201, json={"id": "rec_9", "status": "registered"})

    app.state.fiscal_provider = HttpFiscalProvider(
        "https://fiscal.example", "fk_test", transport=httpx.MockTransport(handler)
    )
    order_id = place_order()
    _record_threads(monkeypatch, OrderService, ["claim_receipt", "attach_receipt"], db_threads)

    response = client.post(f"/api/orders/{order_id}/receipt")

    assert response.status_code == 200
    assert len(db_threads) == 2
    assert loop_threads[0] not in db_threads


class RecordingFiscalProvider(FiscalProvider):
    """Proveedor en memoria; `during_call` simula otra petición en vuelo"""

    def __init__(self, during_call=None):
        self.calls = 0
        self.during_call = during_call

    async def create_receipt(self, order):
        self.calls += 1
        if self.during_call is not None:
            await self.during_call(order)
        return {"record_id": f"rec_{order.id}", "number": "0001", "status": "registered"}


def test_concurrent_receipt_reaches_provider_once(db, session_factory, settings):
    order = OrderService(db, settings).create_order("T1", [{"name": "Risotto", "price": 14, "qty": 1}])
    other_session = session_factory()
    competitor_provider = RecordingFiscalProvider()
    competitor_errors = []

    async def second_request(in_flight):
        try:
            await FiscalService(other_session, settings, competitor_provider).issue_receipt(in_flight.id)
        except ConflictError as e:
            competitor_errors.append(e.code)

    provider = RecordingFiscalProvider(during_call=second_request)
    try:
        result = asyncio.run(FiscalService(db, settings, provider).issue_receipt(order.id))
    finally:
        other_session.close()

    assert result["record_id"] == f"rec_{order.id}"
    assert competitor_errors == ["receipt_in_progress"]
    assert provider.calls == 1
    assert competitor_provider.calls == 0

    db.expire_all()
    stored = OrderService(db, settings).get_order(order.id)
    assert stored.fiscal_record_id == f"rec_{order.id}"
    assert stored.fiscal_status == "registered"


def test_receipt_record_is_never_overwritten(db, settings):
    service = OrderService(db, settings)
    order = service.create_order("T1", [{"name": "Risotto", "price": 14, "qty": 1}])
    service.attach_receipt(order.id, "rec_first", "registered")

    with pytest.raises(ConflictError) as exc:
        service.attach_receipt(order.id, "rec_second", "registered")

    assert exc.value.code == "receipt_already_issued"
    assert service.get_order(order.id).fiscal_record_id == "rec_first"
