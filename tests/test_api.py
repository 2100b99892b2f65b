import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from gestro.api import notifications as notifications_api
from gestro.api.deps import get_notification_center, get_session_factory
from gestro.main import app
from gestro.services.notifications import StaffNotificationCenter

from conftest import auth_headers

ANA = auth_headers("user-ana")
BOB = auth_headers("user-bob", "bob@example.com", "Bob")
STAFF = auth_headers("user-staff")

SLOT = {"reservation_date": "2026-11-20", "start_time": "19:00", "end_time": "21:00"}


async def place_order(client, menu, headers=ANA, quantity=2):
    response = await client.post(
        "/api/orders",
        json={"items": [{"product_id": menu["pizza"].id, "quantity": quantity}], "table_number": 3},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


# =============================================================================
# ROOT & HEALTH
# =============================================================================

async def test_root(client):
    body = (await client.get("/")).json()
    assert body["environment"] == "development"
    assert body["health"] == "/health"


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "operational"
    assert body["database"] == "healthy"
    assert body["change_feed"] == "healthy"
    assert body["payment_service"] == "healthy"


# =============================================================================
# MENU
# =============================================================================

async def test_public_menu(client, menu):
    categories = (await client.get("/api/categories")).json()
    assert [c["name"] for c in categories] == ["Mains", "Drinks"]

    products = (await client.get("/api/products", params={"sort": "price_asc"})).json()
    assert products["total"] == 2
    assert [p["name"] for p in products["products"]] == ["Pasta Carbonara", "Pizza Margherita"]
    assert products["products"][0]["category"]["name"] == "Mains"


async def test_product_search_rejects_unknown_sort(client, menu):
    assert (await client.get("/api/products", params={"sort": "random"})).status_code == 400


async def test_product_not_found(client):
    assert (await client.get("/api/products/missing")).status_code == 404


async def test_admin_menu_requires_staff(client, customer, staff, menu):
    new_product = {"name": "Tiramisu", "price": 6.5, "category_id": menu["mains"].id}

    assert (await client.post("/api/admin/products", json=new_product)).status_code == 401
    assert (await client.post("/api/admin/products", json=new_product, headers=ANA)).status_code == 403

    response = await client.post("/api/admin/products", json=new_product, headers=STAFF)
    assert response.status_code == 201
    assert response.json()["price"] == 6.5

    everything = (await client.get("/api/admin/products", headers=STAFF)).json()
    assert everything["total"] == 4


# =============================================================================
# ORDERS
# =============================================================================

async def test_anonymous_order(client, menu):
    order = await place_order(client, menu, headers={})

    assert order["customer_id"] is None
    assert order["total_amount"] == 24.0
    assert order["status"] == "pending"
    assert order["items"][0]["unit_price"] == 12.0
    assert (await client.get(f"/api/orders/{order['id']}")).status_code == 200


async def test_order_for_unknown_product(client, menu):
    response = await client.post("/api/orders", json={"items": [{"product_id": "missing", "quantity": 1}]})

    assert response.status_code == 404
    assert response.json()["success"] is False


async def test_order_for_unavailable_product(client, menu):
    response = await client.post("/api/orders", json={"items": [{"product_id": menu["lemonade"].id, "quantity": 1}]})

    assert response.status_code == 400
    assert "not available" in response.json()["error"]


async def test_empty_order_is_rejected(client):
    assert (await client.post("/api/orders", json={"items": []})).status_code == 422


async def test_my_orders_and_visibility(client, customer, menu):
    order = await place_order(client, menu)

    assert (await client.get("/api/orders")).status_code == 401

    mine = (await client.get("/api/orders", headers=ANA)).json()
    assert mine["total"] == 1
    assert mine["orders"][0]["id"] == order["id"]

    assert (await client.get(f"/api/orders/{order['id']}", headers=BOB)).status_code == 403
    assert (await client.get(f"/api/orders/{order['id']}", headers=STAFF)).status_code == 200


async def test_cancel_order(client, customer, menu):
    order = await place_order(client, menu)

    assert (await client.post(f"/api/orders/{order['id']}/cancel", headers=BOB)).status_code == 403

    response = await client.post(f"/api/orders/{order['id']}/cancel", headers=ANA)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    again = await client.post(f"/api/orders/{order['id']}/cancel", headers=ANA)
    assert again.status_code == 409


async def test_admin_status_workflow(client, customer, staff, menu):
    order = await place_order(client, menu)
    url = f"/api/admin/orders/{order['id']}/status"

    response = await client.patch(url, json={"status": "preparing"}, headers=STAFF)
    assert response.json()["status"] == "preparing"

    skipped = await client.patch(url, json={"status": "delivered"}, headers=STAFF)
    assert skipped.status_code == 409
    assert skipped.json()["success"] is False
    assert "Cannot move order" in skipped.json()["error"]

    forced = await client.patch(url, json={"status": "delivered", "force": True}, headers=STAFF)
    assert forced.status_code == 200
    assert forced.json()["status"] == "delivered"

    missing = await client.patch("/api/admin/orders/missing/status", json={"status": "ready"}, headers=STAFF)
    assert missing.status_code == 404


async def test_admin_order_list(client, customer, staff, menu):
    first = await place_order(client, menu)
    await place_order(client, menu)
    await client.post(f"/api/orders/{first['id']}/cancel", headers=ANA)

    everything = (await client.get("/api/admin/orders", headers=STAFF)).json()
    assert everything["total"] == 2

    cancelled = (await client.get("/api/admin/orders", params={"status": "cancelled"}, headers=STAFF)).json()
    assert cancelled["total"] == 1
    assert cancelled["orders"][0]["id"] == first["id"]


# =============================================================================
# RESERVATIONS
# =============================================================================

async def test_available_tables(client, tables):
    params = {"date": "2026-11-20", "startTime": "19:00", "endTime": "21:00", "partySize": 3}
    available = (await client.get("/api/tables/available", params=params)).json()
    assert [t["table_number"] for t in available] == [2]

    inverted = {**params, "startTime": "21:00", "endTime": "19:00"}
    assert (await client.get("/api/tables/available", params=inverted)).status_code == 400


async def test_reservation_lifecycle(client, customer, tables):
    response = await client.post(
        "/api/reservations",
        json={"table_id": tables[1].id, "party_size": 4, **SLOT},
        headers=ANA,
    )
    assert response.status_code == 201
    reservation = response.json()
    assert reservation["status"] == "pending"
    assert reservation["table"]["table_number"] == 2

    clash = await client.post(
        "/api/reservations",
        json={"table_id": tables[1].id, "party_size": 2, **SLOT, "start_time": "20:00", "end_time": "22:00"},
        headers=BOB,
    )
    assert clash.status_code == 409

    mine = (await client.get("/api/reservations", headers=ANA)).json()
    assert [r["id"] for r in mine] == [reservation["id"]]
    assert (await client.get(f"/api/reservations/{reservation['id']}", headers=BOB)).status_code == 403

    moved = await client.patch(
        f"/api/reservations/{reservation['id']}", json={"notes": "Birthday"}, headers=ANA
    )
    assert moved.json()["notes"] == "Birthday"

    cancelled = await client.post(f"/api/reservations/{reservation['id']}/cancel", headers=ANA)
    assert cancelled.json()["status"] == "cancelled"
    assert (await client.post(f"/api/reservations/{reservation['id']}/cancel", headers=ANA)).status_code == 409


@pytest.mark.parametrize("table_index,party_size,status_code", [
    (2, 2, 409),  # under maintenance
    (0, 3, 400),  # seats 2
])
async def test_reservation_rejected(client, customer, tables, table_index, party_size, status_code):
    response = await client.post(
        "/api/reservations",
        json={"table_id": tables[table_index].id, "party_size": party_size, **SLOT},
        headers=ANA,
    )
    assert response.status_code == status_code


async def test_reservation_needs_login_and_valid_table(client, customer, tables):
    body = {"table_id": tables[0].id, "party_size": 2, **SLOT}
    assert (await client.post("/api/reservations", json=body)).status_code == 401

    unknown = await client.post("/api/reservations", json={**body, "table_id": "missing"}, headers=ANA)
    assert unknown.status_code == 404

    inverted = await client.post(
        "/api/reservations", json={**body, "start_time": "21:00", "end_time": "19:00"}, headers=ANA
    )
    assert inverted.status_code == 422


async def test_reservation_update_rechecks_the_slot(client, customer, tables):
    await client.post(
        "/api/reservations",
        json={"table_id": tables[1].id, "party_size": 4, **SLOT},
        headers=ANA,
    )
    lunch = (await client.post(
        "/api/reservations",
        json={"table_id": tables[1].id, "party_size": 2, **SLOT, "start_time": "12:00", "end_time": "14:00"},
        headers=BOB,
    )).json()
    url = f"/api/reservations/{lunch['id']}"

    taken = await client.patch(url, json={"start_time": "19:30", "end_time": "20:30"}, headers=BOB)
    assert taken.status_code == 409
    assert (await client.patch(url, json={"table_id": tables[2].id}, headers=BOB)).status_code == 409
    assert (await client.patch(url, json={"party_size": 40}, headers=BOB)).status_code == 400

    unchanged = (await client.get(url, headers=BOB)).json()
    assert unchanged["start_time"].startswith("12:00")
    assert unchanged["party_size"] == 2


async def test_admin_tables(client, staff, tables):
    stats = (await client.get("/api/admin/tables/stats", headers=STAFF)).json()
    assert stats == {"total": 3, "available": 2, "occupied": 0, "reserved": 0, "maintenance": 1}

    duplicate = await client.post("/api/admin/tables", json={"table_number": 1, "capacity": 2}, headers=STAFF)
    assert duplicate.status_code == 409

    occupied = await client.patch(
        f"/api/admin/tables/{tables[0].id}/status", json={"status": "occupied"}, headers=STAFF
    )
    assert occupied.json()["status"] == "occupied"


# =============================================================================
# DELIVERY
# =============================================================================

async def test_delivery_tracking(client, customer, staff, menu):
    order = await place_order(client, menu)
    route = {"start_lat": 40.0, "start_lng": -3.0, "end_lat": 40.01, "end_lng": -3.01, "duration_minutes": 1}

    unassigned = await client.post(f"/api/admin/orders/{order['id']}/simulate-delivery", json=route, headers=STAFF)
    assert unassigned.status_code == 409

    driver = (await client.post("/api/admin/drivers", json={"name": "Dario"}, headers=STAFF)).json()
    assigned = await client.post(
        f"/api/admin/orders/{order['id']}/driver", json={"driver_id": driver["id"]}, headers=STAFF
    )
    assert assigned.json()["driver_id"] == driver["id"]

    tracking = (await client.get(f"/api/orders/{order['id']}/tracking", headers=ANA)).json()
    assert tracking["driver_location"] is None
    assert 0 < tracking["estimated_minutes"] <= 45

    started = await client.post(f"/api/admin/orders/{order['id']}/simulate-delivery", json=route, headers=STAFF)
    assert started.status_code == 202
    assert started.json()["steps"] == 2

    history = (await client.get(f"/api/orders/{order['id']}/tracking/history", headers=ANA)).json()
    assert len(history) == 3
    assert history[-1]["latitude"] == pytest.approx(40.01)

    tracking = (await client.get(f"/api/orders/{order['id']}/tracking", headers=ANA)).json()
    assert tracking["driver_location"]["id"] == history[-1]["id"]
    assert (await client.get(f"/api/orders/{order['id']}/tracking", headers=BOB)).status_code == 403


# =============================================================================
# PAYMENTS
# =============================================================================

async def test_card_checkout(client, customer, menu):
    response = await client.post(
        "/api/checkout",
        json={
            "items": [{"product_id": menu["pizza"].id, "quantity": 2}],
            "paymentData": {"method": "card", "token": "pm_card_visa"},
        },
        headers=ANA,
    )

    body = response.json()
    assert body["success"] is True
    assert body["totalAmount"] == 24.0
    assert body["payment"]["status"] == "approved"
    assert body["payment"]["redirectUrl"] == f"/orders/confirmation?id={body['orderId']}"

    order = (await client.get(f"/api/orders/{body['orderId']}", headers=ANA)).json()
    assert order["payment_status"] == "approved"
    assert order["payment_transaction_id"] == body["transactionId"]


async def test_declined_checkout_keeps_the_order(client, customer, menu):
    response = await client.post(
        "/api/checkout",
        json={
            "items": [{"product_id": menu["pasta"].id, "quantity": 1}],
            "paymentData": {"method": "card", "token": "pm_card_chargeDeclined"},
        },
        headers=ANA,
    )

    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Your card was declined."
    assert body["orderId"] is not None
    assert body["payment"]["status"] == "rejected"


async def test_staff_refund(client, customer, staff, menu):
    body = (await client.post(
        "/api/checkout",
        json={
            "items": [{"product_id": menu["pizza"].id, "quantity": 1}],
            "paymentData": {"method": "card", "token": "pm_card_visa"},
        },
        headers=ANA,
    )).json()
    url = f"/api/admin/payments/transactions/{body['transactionId']}/refund"

    assert (await client.post(url, json={}, headers=ANA)).status_code == 403

    refunded = await client.post(url, json={"reason": "requested_by_customer"}, headers=STAFF)
    assert refunded.status_code == 200
    assert refunded.json()["status"] == "refunded"
    assert refunded.json()["paymentId"].startswith("re_mock_")

    order = (await client.get(f"/api/orders/{body['orderId']}", headers=ANA)).json()
    assert order["payment_status"] == "refunded"

    assert (await client.post(url, json={}, headers=STAFF)).status_code == 409
    missing = await client.post("/api/admin/payments/transactions/nope/refund", json={}, headers=STAFF)
    assert missing.status_code == 404


async def test_paid_order_cannot_be_charged_again(client, customer, menu):
    body = (await client.post(
        "/api/checkout",
        json={
            "items": [{"product_id": menu["pizza"].id, "quantity": 1}],
            "paymentData": {"method": "card", "token": "pm_card_visa"},
        },
        headers=ANA,
    )).json()

    again = await client.post("/api/payments/transactions", json={"orderId": body["orderId"]}, headers=ANA)
    assert again.status_code == 409
    assert again.json()["success"] is False

    order = (await client.get(f"/api/orders/{body['orderId']}", headers=ANA)).json()
    assert order["payment_status"] == "approved"


async def test_cash_payment_and_webhook(client, customer, menu):
    order = await place_order(client, menu)

    created = await client.post("/api/payments/transactions", json={"orderId": order["id"]}, headers=ANA)
    assert created.status_code == 201
    transaction = created.json()
    assert transaction["amount"] == 24.0
    assert transaction["status"] == "pending"

    paid = (await client.post(
        "/api/payments/process",
        json={"transactionId": transaction["id"], "paymentData": {"method": "cash"}},
        headers=ANA,
    )).json()
    assert paid["success"] is True
    assert paid["status"] == "pending"

    stored = (await client.get(f"/api/payments/transactions/{transaction['id']}", headers=ANA)).json()
    assert stored["provider_status"] == "cash_on_delivery"

    webhook = await client.post(
        "/api/payments/webhook",
        json={
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_cash", "status": "succeeded", "metadata": {"transaction_id": transaction["id"]}}},
        },
    )
    assert webhook.json() == {"received": True, "transaction_id": transaction["id"], "status": "approved"}


async def test_webhook_rejects_garbage(client):
    response = await client.post("/api/payments/webhook", content=b"not json")
    assert response.status_code == 400


async def test_process_unknown_transaction(client, customer):
    body = (await client.post(
        "/api/payments/process",
        json={"transactionId": "missing", "paymentData": {"method": "card"}},
        headers=ANA,
    )).json()
    assert body == {"success": False, "status": None, "paymentId": None, "error": "Transaction not found", "redirectUrl": None}


async def test_payment_methods(client, customer):
    card = {"type": "credit_card", "card_brand": "visa", "last_four": "4242"}

    first = (await client.post("/api/payment-methods", json=card, headers=ANA)).json()
    second = (await client.post("/api/payment-methods", json={**card, "last_four": "1111"}, headers=ANA)).json()
    assert first["is_default"] is True
    assert second["is_default"] is False

    promoted = await client.post(f"/api/payment-methods/{second['id']}/default", headers=ANA)
    assert promoted.json()["is_default"] is True

    assert (await client.post(f"/api/payment-methods/{second['id']}/default", headers=BOB)).status_code == 404
    assert (await client.delete(f"/api/payment-methods/{first['id']}", headers=ANA)).status_code == 204

    methods = (await client.get("/api/payment-methods", headers=ANA)).json()
    assert [m["id"] for m in methods] == [second["id"]]


async def test_payment_method_validation(client, customer):
    response = await client.post(
        "/api/payment-methods", json={"type": "credit_card", "last_four": "42a2"}, headers=ANA
    )
    assert response.status_code == 422


# =============================================================================
# BACK OFFICE
# =============================================================================

async def test_dashboard_and_kitchen(client, customer, staff, menu, tables):
    order = await place_order(client, menu)

    dashboard = (await client.get("/api/admin/dashboard", headers=STAFF)).json()
    assert dashboard["total_orders"] == 1
    assert dashboard["tables"]["total"] == 3

    kitchen = (await client.get("/api/admin/kitchen", headers=STAFF)).json()
    assert [o["id"] for o in kitchen["pending"]] == [order["id"]]

    sales = (await client.get("/api/admin/analytics/sales", params={"days": 2}, headers=STAFF)).json()
    assert len(sales) == 2


async def test_csv_export(client, customer, staff, menu):
    order = await place_order(client, menu)

    response = await client.get("/api/admin/export/orders", params={"format": "csv"}, headers=STAFF)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="orders_' in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("id,created_at,status,customer_name")
    assert lines[1].startswith(order["id"])
    assert "ana@example.com" in lines[1]


async def test_export_rejects_unknown_format(client, staff):
    response = await client.get("/api/admin/export/orders", params={"format": "pdf"}, headers=STAFF)
    assert response.status_code == 400


async def test_staff_notifications(client, feed, center, customer, staff, menu):
    center.attach(feed)
    order = await place_order(client, menu)

    listed = (await client.get("/api/admin/notifications", headers=STAFF)).json()
    assert len(listed) == 1
    assert listed[0]["order_id"] == order["id"]
    assert (await client.get("/api/admin/notifications/unread-count", headers=STAFF)).json() == {"unread_count": 1}

    read = await client.post(f"/api/admin/notifications/{listed[0]['id']}/read", headers=STAFF)
    assert read.json() == {"success": True, "unread_count": 0}
    assert (await client.post("/api/admin/notifications/missing/read", headers=STAFF)).status_code == 404

    unread = (await client.get("/api/admin/notifications", params={"unread_only": True}, headers=STAFF)).json()
    assert unread == []

    prefs = await client.patch("/api/admin/notifications/preferences", json={"play_sounds": False}, headers=STAFF)
    assert prefs.json() == {"show_notifications": True, "play_sounds": False}

    assert (await client.delete("/api/admin/notifications", headers=STAFF)).status_code == 204
    assert center.notifications == []

    assert (await client.get("/api/admin/notifications", headers=ANA)).status_code == 403


# =============================================================================
# WEBSOCKET
# =============================================================================

@pytest.fixture
def ws_center(monkeypatch):
    center = StaffNotificationCenter(limit=10)

    async def staff_only(session_factory, user_id):
        return user_id == "user-staff"

    monkeypatch.setattr(notifications_api, "is_staff_user", staff_only)
    app.dependency_overrides[get_notification_center] = lambda: center
    app.dependency_overrides[get_session_factory] = lambda: None
    yield center
    app.dependency_overrides.clear()


def test_websocket_rejects_non_staff(ws_center):
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/staff/notifications?user_id=user-ana") as ws:
            ws.receive_json()


def test_websocket_registers_a_sink(ws_center):
    client = TestClient(app)
    with client.websocket_connect("/ws/staff/notifications", headers=STAFF) as ws:
        assert ws.receive_json() == {"type": "hello", "unread_count": 0}
        assert len(ws_center._sinks) == 1

    assert ws_center._sinks == []


# =============================================================================
# ASSISTANT & PROFILE
# =============================================================================

async def test_mcp_info_and_tools(client, menu):
    info = (await client.get("/api/mcp")).json()
    assert info["status"] == "ok"
    assert "createReservation" in info["tools"]

    categories = (await client.post("/api/mcp/tools", json={"tool": "getCategories"})).json()
    assert len(categories["result"]["data"]) == 2

    unknown = (await client.post("/api/mcp/tools", json={"tool": "nope"})).json()
    assert unknown == {"error": "Tool not found"}


async def test_user_tools_act_for_the_caller(client, customer, menu):
    anonymous = await client.post("/api/mcp/tools", json={"tool": "getUserOrders", "params": {"userId": "user-ana"}})
    assert anonymous.status_code == 401

    created = (await client.post(
        "/api/mcp/tools",
        json={
            "tool": "createOrder",
            "params": {"userId": "user-ana", "items": [{"productId": menu["pizza"].id}]},
        },
        headers=BOB,
    )).json()["result"]
    assert created["success"] is True

    assert created["data"]["id"] not in [o["id"] for o in (await client.get("/api/orders", headers=ANA)).json()]
    assert created["data"]["id"] in [o["id"] for o in (await client.get("/api/orders", headers=BOB)).json()]


async def test_chat(client, menu):
    response = await client.post(
        "/api/mcp",
        json={"messages": [{"role": "user", "content": "What are your opening hours?"}]},
    )
    body = response.json()
    assert "Monday to Sunday" in body["response"]
    assert body["action"] is None


async def test_profile_created_on_first_request(client):
    headers = auth_headers("user-new", "new@example.com", "Nadia")

    me = (await client.get("/api/me", headers=headers)).json()
    assert me["email"] == "new@example.com"
    assert me["role"] == "customer"

    updated = await client.patch("/api/me", json={"phone": "+15550000009"}, headers=headers)
    assert updated.json()["phone"] == "+15550000009"
    assert updated.json()["name"] == "Nadia"

    assert (await client.get("/api/me")).status_code == 401
