"""HTTP tests for the customer, staff and realtime endpoints."""

import pytest
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from schemas.results import ExpiryResult


def start_session(client, table, name="Asha"):
    response = client.post("/api/v1/sessions", json={"table_id": table.id, "customer_name": name})
    assert response.status_code == 201
    return response.json()


def token_headers(session: dict) -> dict:
    return {"X-Session-Token": session["session_token"]}


def order(client, session, item, quantity=1):
    response = client.post(
        f"/api/v1/orders/sessions/{session['session_id']}",
        json={"line_items": [{"menu_item_id": item.id, "quantity": quantity}]},
        headers=token_headers(session),
    )
    assert response.status_code == 201
    return response.json()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "message" in response.json()


class TestCustomerSession:
    def test_create_session(self, client, table_5):
        session = start_session(client, table_5)
        assert session["session_token"]
        assert session["table_id"] == table_5.id
        assert session["restaurant_id"] == table_5.restaurant_id

    def test_busy_table_reports_existing_session(self, client, table_5):
        first = start_session(client, table_5)
        response = client.post("/api/v1/sessions", json={"table_id": table_5.id, "customer_name": "Ben"})

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "TABLE_HAS_ACTIVE_SESSION"
        assert detail["existing_session_id"] == first["session_id"]
        assert "session_token" not in detail

    def test_unknown_table(self, client, test_restaurant):
        response = client.post("/api/v1/sessions", json={"table_id": 999, "customer_name": "Asha"})
        assert response.status_code == 404

    def test_blank_name_is_invalid(self, client, table_5):
        response = client.post("/api/v1/sessions", json={"table_id": table_5.id, "customer_name": "   "})
        assert response.status_code == 422

    def test_missing_token(self, client, table_5):
        session = start_session(client, table_5)
        response = client.get(f"/api/v1/sessions/{session['session_id']}")
        assert response.status_code == 401

    def test_wrong_token(self, client, table_5):
        session = start_session(client, table_5)
        response = client.get(f"/api/v1/sessions/{session['session_id']}", headers={"X-Session-Token": "forged"})
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INVALID_TOKEN"

    def test_get_and_renew(self, client, table_5):
        session = start_session(client, table_5)
        response = client.get(f"/api/v1/sessions/{session['session_id']}", headers=token_headers(session))
        assert response.status_code == 200
        assert response.json()["customer_name"] == "Asha"
        assert response.json()["status"] == "active"

        response = client.post(f"/api/v1/sessions/{session['session_id']}/renew", headers=token_headers(session))
        assert response.status_code == 200
        assert response.json()["success"] is True


class TestDiningFlow:
    def test_order_counter_payment_close_and_receipt(self, client, table_5, menu, waiter_headers, test_restaurant):
        session = start_session(client, table_5)
        sid = session["session_id"]
        headers = token_headers(session)

        pasta = order(client, session, menu["pasta"])
        burger = order(client, session, menu["burger"])
        assert pasta["total_amount"] == 23.0
        assert burger["total_amount"] == 11.5

        options = client.get(f"/api/v1/payments/sessions/{sid}/options", headers=headers).json()
        assert options["unpaid_amount"] == 34.5
        assert options["can_close"] is False

        blocked = client.post(f"/api/v1/sessions/{sid}/close", headers=headers)
        assert blocked.status_code == 409
        assert blocked.json()["detail"]["code"] == "UNPAID_ORDERS"
        assert blocked.json()["detail"]["outstanding_amount"] == 34.5

        requested = client.post(f"/api/v1/payments/sessions/{sid}/path", json={"path": "counter"}, headers=headers)
        assert requested.status_code == 200
        assert requested.json()["counter_payment_pending"] is True

        pending = client.get(f"/api/v1/sessions/restaurant/{test_restaurant.id}/counter-pending", headers=waiter_headers)
        assert [s["id"] for s in pending.json()] == [sid]

        paid = client.post(
            f"/api/v1/payments/sessions/{sid}/counter",
            json={"order_ids": [pasta["order_id"], burger["order_id"]], "notes": "cash"},
            headers=waiter_headers,
        )
        assert paid.status_code == 200
        assert paid.json()["amount"] == 34.5

        history = client.get(f"/api/v1/payments/sessions/{sid}/history", headers=waiter_headers).json()
        assert [p["method"] for p in history] == ["cash"]
        assert history[0]["payment_data"]["received_by"] == "waiter"

        can_close = client.get(f"/api/v1/sessions/{sid}/can-close", headers=headers).json()
        assert can_close["can_close"] is True
        assert can_close["outstanding_amount"] == 0

        closed = client.post(f"/api/v1/sessions/{sid}/close", headers=headers)
        assert closed.status_code == 200
        receipt_number = closed.json()["receipt_number"]
        assert receipt_number.startswith("RCP")

        receipt = client.get(f"/api/v1/receipts/{receipt_number}")
        assert receipt.status_code == 200
        assert receipt.json()["customer_name"] == "Asha"
        assert receipt.json()["total_amount"] == 34.5

        pdf = client.get(f"/api/v1/receipts/{receipt_number}/pdf")
        assert pdf.status_code == 200
        assert pdf.headers["content-type"] == "application/pdf"
        assert pdf.content.startswith(b"%PDF")

        after = client.get(f"/api/v1/sessions/{sid}", headers=headers)
        assert after.status_code == 409
        assert after.json()["detail"]["code"] == "SESSION_INACTIVE"

        # The table is free for the next guests
        start_session(client, table_5, "Ben")

    def test_online_payment_of_one_order(self, client, table_5, menu):
        session = start_session(client, table_5)
        sid = session["session_id"]
        pasta = order(client, session, menu["pasta"])
        order(client, session, menu["burger"])

        response = client.post(
            f"/api/v1/payments/sessions/{sid}/orders/{pasta['order_id']}",
            json={"method": "upi"},
            headers=token_headers(session),
        )
        assert response.status_code == 200
        assert response.json()["amount"] == 23.0

        summary = client.get(f"/api/v1/orders/sessions/{sid}/summary", headers=token_headers(session)).json()
        assert summary["paid_amount"] == 23.0
        assert summary["unpaid_amount"] == 11.5

    def test_unavailable_item_rejected(self, client, table_5, menu):
        session = start_session(client, table_5)
        response = client.post(
            f"/api/v1/orders/sessions/{session['session_id']}",
            json={"line_items": [{"menu_item_id": menu["special"].id, "quantity": 1}]},
            headers=token_headers(session),
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "MENU_ITEM_UNAVAILABLE"

    def test_staff_close_requires_payment(self, client, table_5, menu, waiter_headers):
        session = start_session(client, table_5)
        order(client, session, menu["burger"])

        response = client.post(
            f"/api/v1/sessions/{session['session_id']}/staff-close",
            json={"reason": "guest left"},
            headers=waiter_headers,
        )
        assert response.status_code == 409
        assert response.json()["detail"]["outstanding_amount"] == 11.5

    def test_customer_notifications(self, client, table_5, menu):
        session = start_session(client, table_5)
        placed = order(client, session, menu["burger"])
        url = f"/api/v1/notifications/sessions/{session['session_id']}"

        notifications = client.get(url, headers=token_headers(session)).json()
        assert notifications[0]["type"] == "order_placed"
        assert placed["order_number"] in notifications[0]["message"]

        marked = client.post(f"{url}/read", headers=token_headers(session)).json()
        assert marked["updated"] == 1
        assert client.get(f"{url}?unread_only=true", headers=token_headers(session)).json() == []


class TestStaffEndpoints:
    def test_login_and_me(self, client, manager_user):
        response = client.post("/api/v1/users/login", json={"username": "manager", "password": "testpass123"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        me = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["username"] == "manager"

    def test_login_wrong_password(self, client, manager_user):
        response = client.post("/api/v1/users/login", json={"username": "manager", "password": "nope"})
        assert response.status_code == 401

    def test_manager_registers_kitchen_staff(self, client, manager_headers, test_restaurant):
        response = client.post(
            "/api/v1/users/register",
            json={"email": "cook@example.com", "password": "cookpass123", "role": "kitchen"},
            headers=manager_headers,
        )
        assert response.status_code == 201
        assert response.json()["username"] == "cook"
        assert response.json()["restaurant_id"] == test_restaurant.id

    def test_manager_cannot_register_owner(self, client, manager_headers):
        response = client.post(
            "/api/v1/users/register",
            json={"email": "boss@example.com", "password": "bosspass123", "role": "owner"},
            headers=manager_headers,
        )
        assert response.status_code == 403

    def test_kitchen_moves_order_forward(self, client, table_5, menu, kitchen_headers, test_restaurant):
        session = start_session(client, table_5)
        placed = order(client, session, menu["burger"])

        queue = client.get(f"/api/v1/orders/kitchen/{test_restaurant.id}", headers=kitchen_headers)
        assert [o["id"] for o in queue.json()] == [placed["order_id"]]

        response = client.put(f"/api/v1/orders/{placed['order_id']}/status", json={"status": "confirmed"}, headers=kitchen_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

        skipped = client.put(f"/api/v1/orders/{placed['order_id']}/status", json={"status": "served"}, headers=kitchen_headers)
        assert skipped.status_code == 409
        assert skipped.json()["detail"]["code"] == "INVALID_TRANSITION"

    def test_waiter_cannot_change_order_status(self, client, table_5, menu, waiter_headers):
        session = start_session(client, table_5)
        placed = order(client, session, menu["burger"])
        response = client.put(f"/api/v1/orders/{placed['order_id']}/status", json={"status": "confirmed"}, headers=waiter_headers)
        assert response.status_code == 403

    def test_kitchen_of_another_restaurant(self, client, kitchen_headers, other_restaurant):
        response = client.get(f"/api/v1/orders/kitchen/{other_restaurant.id}", headers=kitchen_headers)
        assert response.status_code == 403

    def test_counter_payment_needs_staff(self, client, table_5, menu):
        session = start_session(client, table_5)
        placed = order(client, session, menu["burger"])
        response = client.post(
            f"/api/v1/payments/sessions/{session['session_id']}/counter",
            json={"order_ids": [placed["order_id"]]},
        )
        assert response.status_code in (401, 403)

    def test_create_table_and_take_it_out_of_service(self, client, manager_headers, test_restaurant):
        created = client.post(
            f"/api/v1/table-management/restaurants/{test_restaurant.id}/tables",
            json={"table_number": "12", "capacity": 2},
            headers=manager_headers,
        )
        assert created.status_code == 201
        table_id = created.json()["id"]

        duplicate = client.post(
            f"/api/v1/table-management/restaurants/{test_restaurant.id}/tables",
            json={"table_number": "12"},
            headers=manager_headers,
        )
        assert duplicate.status_code == 409

        updated = client.put(
            f"/api/v1/table-management/tables/{table_id}",
            json={"status": "out_of_service"},
            headers=manager_headers,
        )
        assert updated.status_code == 200

        response = client.post("/api/v1/sessions", json={"table_id": table_id, "customer_name": "Asha"})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "TABLE_INACTIVE"

    def test_active_sessions_for_table(self, client, table_5, waiter_headers):
        session = start_session(client, table_5)
        response = client.get(f"/api/v1/table-management/tables/{table_5.id}/active-sessions", headers=waiter_headers)
        assert [s["session_id"] for s in response.json()] == [session["session_id"]]

    def test_expire_stale_sweep(self, client, table_5, manager_headers, waiter_headers):
        start_session(client, table_5)
        assert client.post("/api/v1/sessions/expire-stale", headers=waiter_headers).status_code == 403

        response = client.post("/api/v1/sessions/expire-stale", headers=manager_headers)
        assert response.status_code == 200
        assert response.json() == {"expired": 0}

    def test_expire_stale_sweep_reports_unreachable_database(self, client, app, manager_headers, monkeypatch):
        unreachable = ExpiryResult.from_db_error(OperationalError("SELECT", {}, Exception("connection refused")))
        monkeypatch.setattr(app.state.registry, "expire_stale_sessions", lambda: unreachable)

        response = client.post("/api/v1/sessions/expire-stale", headers=manager_headers)
        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "CONNECTION_ERROR"

    def test_table_qr(self, client, table_5, manager_headers):
        response = client.get(f"/api/v1/table-management/tables/{table_5.id}/qr", headers=manager_headers)
        assert response.status_code == 200
        assert response.json()["scan_url"].endswith(f"/scan/{table_5.restaurant_id}/{table_5.id}")

    def test_menu_lists_available_items(self, client, menu, test_restaurant):
        response = client.get(f"/api/v1/menu/{test_restaurant.id}/items")
        assert response.status_code == 200
        assert sorted(item["name"] for item in response.json()) == ["Burger", "Pasta"]


class TestScanFlow:
    def test_scan_start_then_rescan_redirects(self, client, table_5):
        base = f"/api/v1/scan/{table_5.restaurant_id}/{table_5.id}"

        first = client.post(base).json()
        assert first["action"] == "show-options"
        assert [(o["type"], o["available"]) for o in first["options"]] == [("new", True)]

        started = client.post(f"{base}/sessions", json={"customer_name": "Asha"})
        assert started.status_code == 201
        session_id = started.json()["session_id"]
        assert "qr_session" in client.cookies

        again = client.post(base).json()
        assert again["action"] == "redirect"
        assert again["redirect_url"] == f"/menu/{table_5.restaurant_id}/{table_5.id}?session={session_id}"

    def test_scan_at_another_table_conflicts(self, client, table_5, table_9):
        client.post(f"/api/v1/scan/{table_5.restaurant_id}/{table_5.id}/sessions", json={"customer_name": "Asha"})

        other = f"/api/v1/scan/{table_9.restaurant_id}/{table_9.id}"
        conflict = client.post(other).json()
        assert conflict["action"] == "show-conflict"
        assert conflict["conflict_session"]["table_id"] == table_5.id

        resolved = client.post(f"{other}/resolve", json={"choice": "start_new"}).json()
        assert resolved["action"] == "show-options"
        assert client.post(other).json()["action"] == "show-options"


class TestRealtime:
    def test_unknown_restaurant_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/v1/notifications/ws/999") as websocket:
                websocket.receive_text()

    def test_dashboard_receives_session_changes(self, client, app, table_5, test_restaurant):
        feed = app.state.change_feed
        before = feed.subscriber_count

        with client.websocket_connect(f"/api/v1/notifications/ws/{test_restaurant.id}") as websocket:
            assert feed.subscriber_count == before + 1
            session = start_session(client, table_5)
            event = websocket.receive_json()
            assert event["table"] == "table_sessions"
            assert event["action"] == "created"
            assert event["session_id"] == session["session_id"]
