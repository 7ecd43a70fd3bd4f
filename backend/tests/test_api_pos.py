"""
Tests for the cashier (POS) endpoints.
"""

from shared.infrastructure.events import ORDER_CREATED, ORDER_STATUS_UPDATED, PAYMENT_UPDATED


def _pos_body(**overrides):
    body = {
        "outlet_id": 1,
        "table_id": 1,
        "items": [{"menu_item_id": 1, "qty": 1}, {"menu_item_id": 2, "qty": 1}],
        "payment_method": "CASH",
    }
    body.update(overrides)
    return body


class TestAuth:
    def test_missing_token_is_401(self, client, seed_menu):
        response = client.post("/api/pos/orders", json=_pos_body())
        assert response.status_code == 401

    def test_garbage_token_is_401(self, client, seed_menu):
        response = client.post(
            "/api/pos/orders", json=_pos_body(), headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_kitchen_role_cannot_take_orders(self, client, seed_menu, kitchen_headers):
        response = client.post("/api/pos/orders", json=_pos_body(), headers=kitchen_headers)
        assert response.status_code == 403

    def test_other_outlet_forbidden(self, client, seed_menu, make_headers):
        headers = make_headers(outlet_ids=(2,))
        response = client.post("/api/pos/orders", json=_pos_body(), headers=headers)
        assert response.status_code == 403


class TestCreatePosOrder:
    def test_mark_as_paid(self, client, seed_table, seed_menu, cashier_headers, notifier):
        response = client.post(
            "/api/pos/orders", json=_pos_body(mark_as_paid=True), headers=cashier_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["order"]["channel"] == "POS"
        assert data["order"]["payment_status"] == "PAID"
        assert data["order"]["total"] == 38000
        assert data["payment"]["status"] == "PAID"
        assert data["payment"]["confirmed_by_id"] == 1
        assert notifier.types() == [ORDER_CREATED]

        board = client.get("/api/kds/orders", params={"outlet_id": 1}, headers=cashier_headers).json()
        assert [o["id"] for o in board["incoming"]] == [data["order"]["id"]]

    def test_cash_unpaid(self, client, seed_table, seed_menu, cashier_headers):
        response = client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers)
        assert response.json()["order"]["payment_status"] == "UNPAID"

    def test_specific_error_for_staff(self, client, seed_table, seed_menu, cashier_headers):
        body = _pos_body(items=[{"menu_item_id": 1, "qty": 1, "variant_name": "Jumbo"}])
        response = client.post("/api/pos/orders", json=body, headers=cashier_headers)

        assert response.status_code == 400
        assert "Unknown variant 'Jumbo'" in response.json()["detail"]

    def test_discount_larger_than_subtotal(self, client, seed_table, seed_menu, cashier_headers):
        response = client.post("/api/pos/orders", json=_pos_body(discount=50000), headers=cashier_headers)
        assert response.status_code == 400


class TestListAndGet:
    def test_list_with_filters(self, client, seed_table, seed_menu, cashier_headers):
        client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers)
        client.post("/api/pos/orders", json=_pos_body(mark_as_paid=True), headers=cashier_headers)

        response = client.get(
            "/api/pos/orders",
            params={"outlet_id": 1, "payment_status": "PAID"},
            headers=cashier_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["payment_status"] == "PAID"
        assert data["poll_interval_seconds"] == 15

    def test_list_rejects_unknown_status(self, client, seed_outlet, cashier_headers):
        response = client.get(
            "/api/pos/orders", params={"outlet_id": 1, "status": "EATEN"}, headers=cashier_headers
        )
        assert response.status_code == 422

    def test_get_order_of_other_outlet_is_404(self, client, seed_table, seed_menu, cashier_headers, make_headers):
        order = client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers).json()["order"]

        response = client.get(f"/api/pos/orders/{order['id']}", headers=make_headers(outlet_ids=(2,)))
        assert response.status_code == 404

        response = client.get(f"/api/pos/orders/{order['id']}", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["items"][0]["name_snapshot"] == "Nasi Goreng"

    def test_order_lists_actions_for_caller(self, client, seed_table, seed_menu, cashier_headers, kitchen_headers):
        order = client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers).json()["order"]
        assert order["allowed_transitions"] == ["ACCEPTED", "CANCELLED"]

        paid = client.post("/api/pos/orders", json=_pos_body(mark_as_paid=True), headers=cashier_headers)
        board = client.get("/api/kds/orders", params={"outlet_id": 1}, headers=kitchen_headers).json()

        incoming = {o["id"]: o for o in board["incoming"]}
        assert incoming[paid.json()["order"]["id"]]["allowed_transitions"] == ["IN_PROGRESS"]


class TestStatusAndDiscount:
    def test_new_to_served_unpaid_is_409(self, client, seed_table, seed_menu, cashier_headers, notifier):
        order = client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers).json()["order"]

        response = client.patch(
            f"/api/pos/orders/{order['id']}/status", json={"status": "SERVED"}, headers=cashier_headers
        )

        assert response.status_code == 409
        assert response.json()["detail"].startswith("Cannot transition from NEW to SERVED")
        assert notifier.types() == [ORDER_CREATED]

        current = client.get(f"/api/pos/orders/{order['id']}", headers=cashier_headers).json()
        assert current["status"] == "NEW"

    def test_cancel_emits_event(self, client, seed_table, seed_menu, cashier_headers, notifier):
        order = client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers).json()["order"]

        response = client.patch(
            f"/api/pos/orders/{order['id']}/status", json={"status": "CANCELLED"}, headers=cashier_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert notifier.types() == [ORDER_CREATED, ORDER_STATUS_UPDATED]

    def test_repeat_status_is_quiet(self, client, seed_table, seed_menu, cashier_headers, notifier):
        order = client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers).json()["order"]

        response = client.patch(
            f"/api/pos/orders/{order['id']}/status", json={"status": "NEW"}, headers=cashier_headers
        )

        assert response.status_code == 200
        assert notifier.types() == [ORDER_CREATED]

    def test_apply_discount(self, client, seed_table, seed_menu, cashier_headers, notifier):
        order = client.post("/api/pos/orders", json=_pos_body(), headers=cashier_headers).json()["order"]

        response = client.post(
            f"/api/pos/orders/{order['id']}/discount", json={"discount": 3000}, headers=cashier_headers
        )

        assert response.status_code == 200
        # 33000 - 3000 + 3300 + 1650 = 34950 -> 35000
        assert response.json()["total"] == 35000
        assert notifier.types() == [ORDER_CREATED, PAYMENT_UPDATED]
