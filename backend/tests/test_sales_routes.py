"""Sales API."""

import pytest


@pytest.fixture
def sale_id(client, salesperson_headers, inventory, product, customer):
    response = client.post(
        "/api/sales",
        json={"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": 2}]},
        headers=salesperson_headers,
    )
    assert response.status_code == 201
    return response.get_json()["sale"]["id"]


class TestCreate:
    def test_created_as_draft(self, client, salesperson_headers, sale_id, salesperson_user):
        sale = client.get(f"/api/sales/{sale_id}", headers=salesperson_headers).get_json()["sale"]

        assert sale["status"] == "DRAFT"
        assert sale["total"] == "39.80"
        assert sale["user"]["id"] == salesperson_user.id
        assert sale["item_count"] == 1
        assert sale["is_editable"] is True

    @pytest.mark.parametrize("body", [
        {},
        {"customer_id": 1},
        {"customer_id": 1, "items": []},
        {"customer_id": 1, "items": "nope"},
        {"customer_id": "abc", "items": [{"product_id": 1, "quantity": 1}]},
        {"customer_id": 1, "items": [{"product_id": 1}]},
    ])
    def test_bad_body(self, client, salesperson_headers, body):
        assert client.post("/api/sales", json=body, headers=salesperson_headers).status_code == 400

    def test_insufficient_stock(self, client, salesperson_headers, inventory, product, customer):
        response = client.post(
            "/api/sales",
            json={"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": 50}]},
            headers=salesperson_headers,
        )
        assert response.status_code == 409
        assert response.get_json()["details"]["available"] == 10

    def test_unknown_customer(self, client, salesperson_headers, inventory, product):
        response = client.post(
            "/api/sales",
            json={"customer_id": 999, "items": [{"product_id": product.id, "quantity": 1}]},
            headers=salesperson_headers,
        )
        assert response.status_code == 404


class TestEdit:
    def test_item_lifecycle(self, client, salesperson_headers, sale_id, other_product):
        added = client.post(
            f"/api/sales/{sale_id}/items",
            json={"product_id": other_product.id, "quantity": 2},
            headers=salesperson_headers,
        )
        assert added.status_code == 201
        sale = added.get_json()["sale"]
        assert sale["total"] == "54.50"
        item_id = sale["items"][-1]["id"]

        updated = client.put(
            f"/api/sales/{sale_id}/items/{item_id}",
            json={"quantity": 1},
            headers=salesperson_headers,
        ).get_json()["sale"]
        assert updated["total"] == "47.15"

        removed = client.delete(f"/api/sales/{sale_id}/items/{item_id}", headers=salesperson_headers)
        assert removed.get_json()["sale"]["total"] == "39.80"

    def test_update_header(self, client, salesperson_headers, sale_id):
        response = client.put(
            f"/api/sales/{sale_id}",
            json={"discount": "0.80", "tax": "2.00", "notes": "Deliver to back door"},
            headers=salesperson_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["sale"]["total"] == "41.00"

    def test_negative_discount(self, client, salesperson_headers, sale_id):
        response = client.put(f"/api/sales/{sale_id}", json={"discount": "-1"}, headers=salesperson_headers)
        assert response.status_code == 400


class TestStatus:
    def test_cancel(self, client, salesperson_headers, sale_id):
        response = client.patch(f"/api/sales/{sale_id}/cancel", headers=salesperson_headers)
        assert response.status_code == 200
        assert response.get_json()["sale"]["status"] == "CANCELLED"

        again = client.patch(f"/api/sales/{sale_id}/cancel", headers=salesperson_headers)
        assert again.status_code == 409

    def test_complete_then_cancel_conflicts(self, client, salesperson_headers, sale_id):
        done = client.patch(f"/api/sales/{sale_id}/status", json={"status": "completed"}, headers=salesperson_headers)
        assert done.get_json()["sale"]["status"] == "COMPLETED"

        response = client.patch(f"/api/sales/{sale_id}/cancel", headers=salesperson_headers)
        assert response.status_code == 409

    def test_status_required(self, client, salesperson_headers, sale_id):
        assert client.patch(f"/api/sales/{sale_id}/status", json={}, headers=salesperson_headers).status_code == 400

    def test_missing_sale(self, client, salesperson_headers, db_session):
        assert client.patch("/api/sales/999/cancel", headers=salesperson_headers).status_code == 404


class TestList:
    def test_list_and_filter(self, client, salesperson_headers, sale_id):
        listing = client.get("/api/sales?status=DRAFT", headers=salesperson_headers).get_json()

        assert listing["count"] == 1
        assert listing["items"][0]["id"] == sale_id
        assert "items" not in listing["items"][0]

    def test_date_window(self, client, salesperson_headers, sale_id):
        future = client.get("/api/sales?date_from=2999-01-01T00:00:00Z", headers=salesperson_headers).get_json()
        assert future["count"] == 0

    def test_pagination_cap(self, client, salesperson_headers, sale_id):
        listing = client.get("/api/sales?per_page=500", headers=salesperson_headers).get_json()
        assert listing["pagination"]["per_page"] == 100
