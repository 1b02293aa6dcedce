"""Inventory API: records, movements, availability, reservations, alerts."""

import pytest

from backoffice.extensions import db
from backoffice.models import Inventory


class TestInventoryRecords:
    def test_create_and_fetch(self, client, admin_headers, product):
        response = client.post(
            "/api/inventory",
            json={"product_id": product.id, "quantity": 12, "location": "B-02"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        data = response.get_json()["inventory"]
        assert data["min_stock"] == 10
        assert data["status"] == "OK"

        by_product = client.get(f"/api/inventory/product/{product.id}", headers=admin_headers)
        assert by_product.get_json()["inventory"]["id"] == data["id"]

    def test_create_duplicate(self, client, admin_headers, inventory, product):
        response = client.post("/api/inventory", json={"product_id": product.id}, headers=admin_headers)
        assert response.status_code == 409

    def test_update_quantity(self, client, admin_headers, inventory):
        response = client.put(f"/api/inventory/{inventory.id}", json={"quantity": 2}, headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["inventory"]["status"] == "LOW"

    def test_update_null_max_stock_clears_it(self, client, admin_headers, inventory):
        client.put(f"/api/inventory/{inventory.id}", json={"max_stock": 40}, headers=admin_headers)

        response = client.put(f"/api/inventory/{inventory.id}", json={"max_stock": None}, headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["inventory"]["max_stock"] is None
        assert db.session.get(Inventory, inventory.id).max_stock is None

    def test_update_omitted_max_stock_is_kept(self, client, admin_headers, inventory):
        client.put(f"/api/inventory/{inventory.id}", json={"max_stock": 40}, headers=admin_headers)

        response = client.put(f"/api/inventory/{inventory.id}", json={"location": "D-04"}, headers=admin_headers)
        assert response.get_json()["inventory"]["max_stock"] == 40

    def test_get_missing(self, client, admin_headers):
        assert client.get("/api/inventory/999", headers=admin_headers).status_code == 404

    def test_list_with_filters(self, client, salesperson_headers, inventory):
        response = client.get("/api/inventory?has_stock=true&sort_by=quantity", headers=salesperson_headers)
        assert response.status_code == 200
        assert response.get_json()["count"] == 1

    def test_list_rejects_bad_sort(self, client, salesperson_headers):
        assert client.get("/api/inventory?sort_by=price", headers=salesperson_headers).status_code == 400


class TestMovements:
    def test_remove_then_insufficient(self, client, admin_headers, inventory, product):
        body = {"product_id": product.id, "quantity": 6, "reason": "Counter sale"}

        first = client.post("/api/inventory/remove", json=body, headers=admin_headers)
        assert first.status_code == 200
        assert first.get_json()["inventory"]["quantity"] == 4

        second = client.post("/api/inventory/remove", json=body, headers=admin_headers)
        assert second.status_code == 400
        data = second.get_json()
        assert data["error"] == "Insufficient stock"
        assert data["details"]["available"] == 4

    def test_add(self, client, admin_headers, inventory, product):
        response = client.post(
            "/api/inventory/add",
            json={"product_id": product.id, "quantity": 5, "reason": "Supplier delivery"},
            headers=admin_headers,
        )
        assert response.get_json()["inventory"]["quantity"] == 15

    def test_add_bulk_delivery(self, client, admin_headers, inventory, product):
        response = client.post(
            "/api/inventory/add",
            json={"product_id": product.id, "quantity": 20000, "reason": "Container delivery"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["inventory"]["quantity"] == 20010

    @pytest.mark.parametrize("body", [
        {"quantity": 1, "reason": "Delivery"},
        {"product_id": 1, "quantity": "1.5", "reason": "Delivery"},
        {"product_id": 1, "quantity": 1, "reason": "no"},
    ])
    def test_bad_movement_body(self, client, admin_headers, inventory, body):
        assert client.post("/api/inventory/add", json=body, headers=admin_headers).status_code == 400

    def test_adjust(self, client, admin_headers, inventory, product):
        response = client.post(
            "/api/inventory/adjust",
            json={"product_id": product.id, "delta": -10, "reason": "Water damage"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["inventory"]["status"] == "OUT"

    def test_history(self, client, admin_headers, inventory, product):
        client.post(
            "/api/inventory/add",
            json={"product_id": product.id, "quantity": 1, "reason": "Supplier delivery"},
            headers=admin_headers,
        )

        listing = client.get(f"/api/inventory/movements?product_id={product.id}&type=IN", headers=admin_headers)
        assert listing.get_json()["count"] == 1
        assert listing.get_json()["items"][0]["user"]["name"] == "Admin"

        recent = client.get(f"/api/inventory/product/{product.id}/movements?limit=5", headers=admin_headers)
        assert recent.get_json()["count"] == 1

    def test_history_bad_date(self, client, admin_headers):
        assert client.get("/api/inventory/movements?date_from=yesterday", headers=admin_headers).status_code == 400


class TestAvailability:
    def test_check_and_exists(self, client, salesperson_headers, inventory, product, other_product):
        check = client.get(f"/api/inventory/check/{product.id}", headers=salesperson_headers).get_json()
        assert check == {"available": True, "quantity": 10, "is_low_stock": False}

        missing = client.get(f"/api/inventory/check/{other_product.id}", headers=salesperson_headers).get_json()
        assert missing["available"] is False

        exists = client.get(f"/api/inventory/exists/{other_product.id}", headers=salesperson_headers).get_json()
        assert exists["exists"] is False

    def test_reserve_is_only_a_check(self, client, salesperson_headers, inventory, product):
        response = client.post(
            "/api/inventory/reserve", json={"product_id": product.id, "quantity": 11}, headers=salesperson_headers
        )
        assert response.get_json()["available"] is False
        assert db.session.get(Inventory, inventory.id).reserved_quantity == 0


class TestReservations:
    def test_reserve_commit(self, client, salesperson_headers, admin_headers, inventory, product):
        created = client.post(
            "/api/inventory/reservations",
            json={"product_id": product.id, "quantity": 3},
            headers=salesperson_headers,
        )
        assert created.status_code == 201
        token = created.get_json()["reservation"]["token"]

        committed = client.post(f"/api/inventory/reservations/{token}/commit", headers=admin_headers)
        assert committed.status_code == 200
        assert committed.get_json()["inventory"]["quantity"] == 7

        again = client.post(f"/api/inventory/reservations/{token}/release", headers=salesperson_headers)
        assert again.status_code == 409

    def test_salesperson_cannot_commit(self, client, salesperson_headers, inventory, product):
        created = client.post(
            "/api/inventory/reservations",
            json={"product_id": product.id, "quantity": 10},
            headers=salesperson_headers,
        )
        token = created.get_json()["reservation"]["token"]

        response = client.post(f"/api/inventory/reservations/{token}/commit", headers=salesperson_headers)

        assert response.status_code == 403
        assert "required_roles" in response.get_json()
        inv = db.session.get(Inventory, inventory.id)
        db.session.refresh(inv)
        assert inv.quantity == 10
        assert inv.reserved_quantity == 10

    def test_salesperson_can_release_own_hold(self, client, salesperson_headers, inventory, product):
        created = client.post(
            "/api/inventory/reservations",
            json={"product_id": product.id, "quantity": 4},
            headers=salesperson_headers,
        )
        token = created.get_json()["reservation"]["token"]

        released = client.post(f"/api/inventory/reservations/{token}/release", headers=salesperson_headers)
        assert released.status_code == 200
        assert released.get_json()["reservation"]["status"] == "RELEASED"

    def test_over_reserve(self, client, salesperson_headers, inventory, product):
        response = client.post(
            "/api/inventory/reservations",
            json={"product_id": product.id, "quantity": 11},
            headers=salesperson_headers,
        )
        assert response.status_code == 409


class TestAlerts:
    def test_low_and_out(self, client, admin_headers, inventory, product):
        client.post(
            "/api/inventory/adjust",
            json={"product_id": product.id, "delta": -10, "reason": "Water damage"},
            headers=admin_headers,
        )

        low = client.get("/api/inventory/alerts/low-stock", headers=admin_headers).get_json()
        out = client.get("/api/inventory/alerts/out-of-stock", headers=admin_headers).get_json()
        assert low["count"] == 1
        assert out["items"][0]["product"]["code"] == "PROD-001"
