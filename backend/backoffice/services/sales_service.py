# Overview: Service-layer operations for sales; encapsulates business logic and database work.

# backend/backoffice/services/sales_service.py

"""
Sale lifecycle (authoritative)

Status gates:
- DRAFT / PENDING are editable: items, customer, notes, discount and tax may change.
- Every status except CANCELLED / COMPLETED is cancellable.
- CONFIRMED / COMPLETED require a positive total.

Totals:
- item.total = unit_price * quantity - item.discount  (truncated to cents per step)
- sale.total = sum(item.total) - sale.discount + sale.tax
- recomputed after every mutation, before commit.

Stock:
- create_sale checks each requested quantity against current inventory but does
  not deduct. Stock leaves through inventory_service (remove_stock with a
  sale_id, or committing a reservation).
- cancel_sale releases the sale's ACTIVE reservations; committed movements are
  not reversed.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import SALE_STATUSES, Customer, Inventory, Product, Sale, SaleItem, User
from ..money import ZERO, to_money
from ..time_utils import utcnow
from ..validation import SaleItemRequest, ValidationError, coerce_money
from .concurrency import begin_write, lock_for_update, run_with_retry
from .inventory_service import release_reservations_for_sale
from .pagination import paginate


def _get_sale_for_update(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def _require_editable(sale: Sale) -> None:
    if not sale.is_editable():
        raise ConflictError(
            f"Sale cannot be modified in status {sale.status}",
            {"sale_id": sale.id, "status": sale.status},
        )


def _get_customer(customer_id: int, *, require_active: bool = True) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", {"customer_id": customer_id})
    if require_active and not customer.is_active:
        raise ConflictError("Customer is inactive", {"customer_id": customer_id})
    return customer


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", {"product_id": product_id})
    return product


def _validate_amount(name: str, value) -> Decimal:
    amount = coerce_money(name, value)
    if amount < 0:
        raise ValidationError(f"{name} must be >= 0")
    return amount


def _as_item_request(item) -> SaleItemRequest:
    if isinstance(item, SaleItemRequest):
        return item
    return SaleItemRequest.from_payload(item)


def _check_item_total(item: SaleItem) -> None:
    if item.recalculate_total() <= 0:
        raise ValidationError(
            "Item discount must be less than unit_price * quantity",
            {"product_id": item.product_id},
        )


def _build_item(request: SaleItemRequest, product: Product) -> SaleItem:
    item = SaleItem(
        product_id=product.id,
        quantity=request.quantity,
        unit_price=request.unit_price if request.unit_price is not None else to_money(product.price),
        discount=request.discount if request.discount is not None else ZERO,
    )
    item.product = product
    _check_item_total(item)
    return item


def _finalize(sale: Sale) -> None:
    if sale.recalculate_total() < 0:
        raise ValidationError("Sale total cannot be negative", {"total": str(sale.total)})


def create_sale(
    customer_id: int,
    acting_user_id: int,
    items: list,
    notes: str | None = None,
    discount=0,
    tax=0,
) -> Sale:
    """
    Create a DRAFT sale.

    Every item is checked against current inventory (missing inventory counts
    as zero). Stock is not deducted here.
    """
    if not items:
        raise ValidationError("Sale must have at least one item")
    requests = [_as_item_request(item) for item in items]
    for request in requests:
        request.validate()
    discount = _validate_amount("discount", discount)
    tax = _validate_amount("tax", tax)
    if notes is not None and len(notes) > 1000:
        raise ValidationError("notes exceeds max length 1000")

    def _op():
        customer = _get_customer(customer_id)
        user = db.session.get(User, acting_user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": acting_user_id})

        sale = Sale(
            customer_id=customer.id,
            user_id=user.id,
            status="DRAFT",
            discount=discount,
            tax=tax,
            notes=notes,
            sale_date=utcnow(),
        )

        for request in requests:
            product = _get_product(request.product_id)
            if not product.is_active:
                raise InvalidStateError("Product is inactive", {"product_id": product.id})

            inventory = db.session.query(Inventory).filter_by(product_id=product.id).first()
            on_hand = inventory.quantity if inventory is not None else 0
            if on_hand < request.quantity:
                raise ConflictError(
                    f"Insufficient stock for product {product.name}",
                    {"product_id": product.id, "available": on_hand, "requested": request.quantity},
                )

            sale.items.append(_build_item(request, product))

        _finalize(sale)
        db.session.add(sale)
        db.session.commit()

        current_app.logger.info(
            "Sale %s created: customer=%s user=%s total=%s", sale.id, customer.id, user.id, sale.total
        )
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def list_sales(
    customer_id: int | None = None,
    user_id: int | None = None,
    status: str | None = None,
    date_from=None,
    date_to=None,
    page: int | None = 1,
    per_page: int | None = None,
) -> dict:
    """Newest first. Items in the result omit line items."""
    query = db.session.query(Sale)

    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)
    if status:
        if status not in SALE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(SALE_STATUSES)}")
        query = query.filter(Sale.status == status)
    if date_from is not None:
        query = query.filter(Sale.sale_date >= date_from)
    if date_to is not None:
        query = query.filter(Sale.sale_date <= date_to)

    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda s: s.to_dict(include_items=False))


def update_sale(
    sale_id: int,
    customer_id: int | None = None,
    notes: str | None = None,
    discount=None,
    tax=None,
) -> Sale:
    """Apply only the provided fields, then recompute the total."""
    if discount is not None:
        discount = _validate_amount("discount", discount)
    if tax is not None:
        tax = _validate_amount("tax", tax)
    if notes is not None and len(notes) > 1000:
        raise ValidationError("notes exceeds max length 1000")

    def _op():
        sale = _get_sale_for_update(sale_id)
        _require_editable(sale)

        if customer_id is not None and customer_id != sale.customer_id:
            sale.customer = _get_customer(customer_id)
        if notes is not None:
            sale.notes = notes
        if discount is not None:
            sale.discount = discount
        if tax is not None:
            sale.tax = tax

        _finalize(sale)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def cancel_sale(sale_id: int) -> Sale:
    """
    Mark a sale CANCELLED and release its ACTIVE reservations.

    Stock already moved out for this sale stays out.
    """
    def _op():
        begin_write()
        sale = _get_sale_for_update(sale_id)
        if not sale.is_cancellable():
            raise ConflictError(
                f"Sale cannot be cancelled in status {sale.status}",
                {"sale_id": sale.id, "status": sale.status},
            )

        previous = sale.status
        sale.status = "CANCELLED"
        released = release_reservations_for_sale(sale.id)
        db.session.commit()

        current_app.logger.info(
            "Sale %s cancelled (was %s, released %s reservations)", sale.id, previous, released
        )
        return sale

    return run_with_retry(_op)


def set_status(sale_id: int, status: str) -> Sale:
    """
    Generic status transition.

    CANCELLED follows cancel_sale (reservations released). Any other target
    needs an editable sale; CONFIRMED and COMPLETED also need total > 0.
    Stock is never touched here.
    """
    if status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(SALE_STATUSES)}")
    if status == "CANCELLED":
        return cancel_sale(sale_id)

    def _op():
        sale = _get_sale_for_update(sale_id)
        _require_editable(sale)
        if status in ("CONFIRMED", "COMPLETED") and to_money(sale.total) <= 0:
            raise InvalidStateError(
                f"Sale total must be positive to move to {status}",
                {"sale_id": sale.id, "total": str(sale.total)},
            )

        previous = sale.status
        sale.status = status
        db.session.commit()

        current_app.logger.info("Sale %s status %s -> %s", sale.id, previous, status)
        return sale

    return run_with_retry(_op)


def add_item(
    sale_id: int,
    product_id: int,
    quantity: int,
    unit_price=None,
    discount=None,
) -> Sale:
    """Append an item to an editable sale. No stock check."""
    request = SaleItemRequest(
        product_id=product_id,
        quantity=quantity,
        unit_price=unit_price,
        discount=discount,
    )
    request.validate()

    def _op():
        sale = _get_sale_for_update(sale_id)
        _require_editable(sale)
        product = _get_product(request.product_id)

        sale.items.append(_build_item(request, product))
        _finalize(sale)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def _find_item(sale: Sale, item_id: int) -> SaleItem:
    for item in sale.items:
        if item.id == item_id:
            return item
    raise NotFoundError("Sale item not found", {"sale_id": sale.id, "item_id": item_id})


def update_item(
    sale_id: int,
    item_id: int,
    quantity: int | None = None,
    unit_price=None,
    discount=None,
) -> Sale:
    if quantity is None and unit_price is None and discount is None:
        raise ValidationError("Nothing to update")

    def _op():
        sale = _get_sale_for_update(sale_id)
        _require_editable(sale)
        item = _find_item(sale, item_id)

        request = SaleItemRequest(
            product_id=item.product_id,
            quantity=quantity if quantity is not None else item.quantity,
            unit_price=unit_price if unit_price is not None else item.unit_price,
            discount=discount if discount is not None else item.discount,
        )
        request.validate()

        item.quantity = request.quantity
        item.unit_price = request.unit_price
        item.discount = request.discount
        _check_item_total(item)

        _finalize(sale)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def remove_item(sale_id: int, item_id: int) -> Sale:
    def _op():
        sale = _get_sale_for_update(sale_id)
        _require_editable(sale)
        item = _find_item(sale, item_id)

        # delete-orphan cascade removes the row on flush
        sale.items.remove(item)
        _finalize(sale)
        db.session.commit()
        return sale

    return run_with_retry(_op)
