"""
Sales service tests.

Lifecycle gates, totals, and the stock check done at creation.
"""

from decimal import Decimal

import pytest

from backoffice.errors import ConflictError, InvalidStateError, NotFoundError
from backoffice.extensions import db
from backoffice.models import Inventory, InventoryMovement, Sale, SaleItem
from backoffice.services import sales_service
from backoffice.validation import ValidationError


@pytest.fixture
def sale(inventory, product, customer, admin_user):
    """DRAFT sale: 2 x 19.90."""
    return sales_service.create_sale(customer.id, admin_user.id, [{"product_id": product.id, "quantity": 2}])


def _expected_total(sale):
    subtotal = sum((item.total for item in sale.items), Decimal("0.00"))
    return subtotal - sale.discount + sale.tax


# =============================================================================
# Creation
# =============================================================================

class TestCreateSale:
    def test_creates_draft_with_product_price(self, sale, admin_user, customer):
        assert sale.status == "DRAFT"
        assert sale.total == Decimal("39.80")
        assert sale.user_id == admin_user.id
        assert sale.customer_id == customer.id
        assert len(sale.items) == 1
        assert sale.items[0].unit_price == Decimal("19.90")

    def test_stock_is_checked_not_deducted(self, sale, inventory):
        assert db.session.get(Inventory, inventory.id).quantity == 10
        assert db.session.query(InventoryMovement).count() == 0

    def test_discount_and_tax(self, inventory, product, customer, admin_user):
        sale = sales_service.create_sale(
            customer.id,
            admin_user.id,
            [{"product_id": product.id, "quantity": 3, "unit_price": "10.00", "discount": "1.50"}],
            discount="2.00",
            tax="0.75",
        )
        assert sale.items[0].total == Decimal("28.50")
        assert sale.total == Decimal("27.25")

    def test_round_trip(self, sale):
        fetched = sales_service.get_sale(sale.id)
        data = fetched.to_dict()

        assert data["id"] == sale.id
        assert data["total"] == "39.80"
        assert data["subtotal"] == "39.80"
        assert data["status"] == "DRAFT"
        assert data["items"][0]["product"]["code"] == "PROD-001"

    def test_empty_items(self, customer, admin_user):
        with pytest.raises(ValidationError):
            sales_service.create_sale(customer.id, admin_user.id, [])

    def test_insufficient_stock(self, inventory, product, customer, admin_user):
        with pytest.raises(ConflictError) as exc:
            sales_service.create_sale(customer.id, admin_user.id, [{"product_id": product.id, "quantity": 11}])

        assert exc.value.details == {"product_id": product.id, "available": 10, "requested": 11}
        assert db.session.query(Sale).count() == 0

    def test_missing_inventory_counts_as_zero(self, other_product, customer, admin_user):
        with pytest.raises(ConflictError):
            sales_service.create_sale(customer.id, admin_user.id, [{"product_id": other_product.id, "quantity": 1}])

    def test_inactive_customer(self, inventory, product, customer, admin_user):
        customer.is_active = False
        db.session.commit()

        with pytest.raises(ConflictError):
            sales_service.create_sale(customer.id, admin_user.id, [{"product_id": product.id, "quantity": 1}])

    def test_unknown_customer(self, inventory, product, admin_user):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(999, admin_user.id, [{"product_id": product.id, "quantity": 1}])

    def test_inactive_product(self, inventory, product, customer, admin_user):
        product.is_active = False
        db.session.commit()

        with pytest.raises(InvalidStateError):
            sales_service.create_sale(customer.id, admin_user.id, [{"product_id": product.id, "quantity": 1}])

    def test_discount_swallowing_line_rejected(self, inventory, product, customer, admin_user):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                customer.id,
                admin_user.id,
                [{"product_id": product.id, "quantity": 1, "discount": "19.90"}],
            )

    def test_negative_total_rejected(self, inventory, product, customer, admin_user):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                customer.id, admin_user.id, [{"product_id": product.id, "quantity": 1}], discount="50.00"
            )
        assert db.session.query(Sale).count() == 0


# =============================================================================
# Items and totals
# =============================================================================

class TestItems:
    def test_total_tracks_every_item_change(self, sale, other_product):
        sale = sales_service.add_item(sale.id, other_product.id, 4)
        assert sale.total == Decimal("69.20")
        assert sale.total == _expected_total(sale)

        added = next(i for i in sale.items if i.product_id == other_product.id)
        sale = sales_service.update_item(sale.id, added.id, quantity=1, discount="0.35")
        assert sale.total == Decimal("46.80")
        assert sale.total == _expected_total(sale)

        sale = sales_service.remove_item(sale.id, added.id)
        assert sale.total == Decimal("39.80")
        assert db.session.query(SaleItem).count() == 1

    def test_update_sale_recomputes(self, sale):
        sale = sales_service.update_sale(sale.id, discount="9.80", tax="1.00", notes="Pick up Friday")
        assert sale.total == Decimal("31.00")
        assert sale.notes == "Pick up Friday"

    def test_update_item_needs_a_field(self, sale):
        with pytest.raises(ValidationError):
            sales_service.update_item(sale.id, sale.items[0].id)

    def test_unknown_item(self, sale):
        with pytest.raises(NotFoundError):
            sales_service.update_item(sale.id, 999, quantity=1)

    @pytest.mark.parametrize("quantity", [0, 10001])
    def test_item_quantity_bounds(self, sale, product, quantity):
        with pytest.raises(ValidationError):
            sales_service.add_item(sale.id, product.id, quantity)

    def test_items_frozen_after_confirm(self, sale, product):
        sales_service.set_status(sale.id, "CONFIRMED")

        with pytest.raises(ConflictError):
            sales_service.add_item(sale.id, product.id, 1)
        with pytest.raises(ConflictError):
            sales_service.update_sale(sale.id, notes="late change")


# =============================================================================
# Status transitions
# =============================================================================

class TestStatus:
    def test_cancel_draft(self, sale):
        cancelled = sales_service.cancel_sale(sale.id)
        assert cancelled.status == "CANCELLED"
        assert cancelled.is_cancellable() is False

    def test_cancel_completed_conflicts(self, sale):
        sales_service.set_status(sale.id, "COMPLETED")

        with pytest.raises(ConflictError):
            sales_service.cancel_sale(sale.id)
        assert sales_service.get_sale(sale.id).status == "COMPLETED"

    def test_cancel_twice_conflicts(self, sale):
        sales_service.cancel_sale(sale.id)
        with pytest.raises(ConflictError):
            sales_service.cancel_sale(sale.id)

    def test_cancel_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.cancel_sale(999)

    def test_status_cancelled_goes_through_cancel(self, sale):
        assert sales_service.set_status(sale.id, "CANCELLED").status == "CANCELLED"

    def test_pending_stays_editable(self, sale, other_product):
        sales_service.set_status(sale.id, "PENDING")
        sale = sales_service.add_item(sale.id, other_product.id, 1)
        assert sale.status == "PENDING"

    def test_confirmed_cannot_move_on(self, sale):
        sales_service.set_status(sale.id, "CONFIRMED")
        with pytest.raises(ConflictError):
            sales_service.set_status(sale.id, "COMPLETED")

    def test_confirmed_can_still_be_cancelled(self, sale):
        sales_service.set_status(sale.id, "CONFIRMED")
        assert sales_service.cancel_sale(sale.id).status == "CANCELLED"

    def test_unknown_status(self, sale):
        with pytest.raises(ValidationError):
            sales_service.set_status(sale.id, "SHIPPED")

    def test_status_change_never_touches_stock(self, sale, inventory):
        sales_service.set_status(sale.id, "COMPLETED")
        assert db.session.get(Inventory, inventory.id).quantity == 10
        assert db.session.query(InventoryMovement).count() == 0


class TestListSales:
    def test_filters(self, sale, inventory, product, customer, manager_user):
        other = sales_service.create_sale(customer.id, manager_user.id, [{"product_id": product.id, "quantity": 1}])
        sales_service.cancel_sale(other.id)

        everything = sales_service.list_sales()
        assert [row["id"] for row in everything["items"]] == [other.id, sale.id]
        assert "items" not in everything["items"][0]

        assert sales_service.list_sales(status="CANCELLED")["count"] == 1
        assert sales_service.list_sales(user_id=manager_user.id)["items"][0]["id"] == other.id
        assert sales_service.list_sales(customer_id=customer.id)["count"] == 2

    def test_bad_status_filter(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(status="LOST")
