# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/backoffice/services/inventory_service.py

"""
Inventory invariants (authoritative)

Stock model:
- One Inventory row per product holds the on-hand quantity as an integer counter.
- quantity >= 0 at all times. Every change is a single conditional UPDATE
  (quantity + delta >= 0 in the WHERE clause); a zero rowcount means the change
  would have gone negative and nothing was written.
- reserved_quantity <= quantity when a reservation is taken. Plain OUT movements
  do not look at reservations.

Audit:
- Every stock-affecting call appends exactly one InventoryMovement in the same
  DB transaction as the counter change. Movements are never updated or deleted.
- Movement quantity is the positive magnitude; ADJUSTMENT carries abs(delta).

Acting user:
- Callers pass acting_user_id explicitly. This module never reads flask.g.
"""

from __future__ import annotations

import secrets

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, InvalidArgumentError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import (
    DEFAULT_MIN_STOCK,
    MOVEMENT_TYPES,
    Inventory,
    InventoryMovement,
    Product,
    Sale,
    StockReservation,
    User,
)
from ..time_utils import utcnow
from ..validation import (
    CreateInventoryRequest,
    StockMovementRequest,
    UpdateInventoryRequest,
    ValidationError,
    coerce_int,
    validate_stock_quantity,
    validate_reason,
)
from .concurrency import apply_counter_delta, begin_write, lock_for_update, run_with_retry
from .pagination import paginate

INVENTORY_SORT_FIELDS = {
    "product_name": Product.name,
    "quantity": Inventory.quantity,
    "min_stock": Inventory.min_stock,
    "location": Inventory.location,
    "last_update": Inventory.last_update,
}

RECORD_UPDATE_REASON = "Inventory record update"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def _get_product(product_id: int, *, require_active: bool = True) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", {"product_id": product_id})
    if require_active and not product.is_active:
        raise InvalidStateError("Product is inactive", {"product_id": product_id})
    return product


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", {"user_id": user_id})
    return user


def _get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def _inventory_by_product(product_id: int) -> Inventory | None:
    return db.session.query(Inventory).filter_by(product_id=product_id).first()


def _require_inventory(product_id: int) -> Inventory:
    inventory = _inventory_by_product(product_id)
    if inventory is None:
        raise NotFoundError("Inventory not found for product", {"product_id": product_id})
    return inventory


def _record_movement(
    *,
    inventory: Inventory,
    movement_type: str,
    quantity: int,
    reason: str,
    user_id: int,
    sale_id: int | None = None,
) -> InventoryMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidArgumentError(f"Unknown movement type: {movement_type}")
    movement = InventoryMovement(
        type=movement_type,
        quantity=quantity,
        reason=reason,
        inventory_id=inventory.id,
        product_id=inventory.product_id,
        user_id=user_id,
        sale_id=sale_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def _apply_quantity_delta(inventory: Inventory, delta: int) -> bool:
    return apply_counter_delta(
        Inventory,
        inventory.id,
        "quantity",
        delta,
        extra_values={"last_update": utcnow()},
    )


# ---------------------------------------------------------------------------
# Inventory records
# ---------------------------------------------------------------------------


def create_for_product(
    product_id: int,
    quantity: int | None = None,
    min_stock: int | None = None,
    max_stock: int | None = None,
    location: str | None = None,
) -> Inventory:
    """
    Create the inventory record for a product.

    Defaults: quantity 0, min_stock 10. One record per product.
    """
    request = CreateInventoryRequest(
        product_id=product_id,
        quantity=quantity,
        min_stock=min_stock,
        max_stock=max_stock,
        location=location,
    )
    request.validate()

    effective_min = request.min_stock if request.min_stock is not None else DEFAULT_MIN_STOCK
    if request.max_stock is not None and request.max_stock <= effective_min:
        raise ValidationError("max_stock must be greater than min_stock")

    def _op():
        begin_write()
        _get_product(request.product_id)

        if _inventory_by_product(request.product_id) is not None:
            raise ConflictError("Inventory already exists for product", {"product_id": request.product_id})

        inventory = Inventory(
            product_id=request.product_id,
            quantity=request.quantity if request.quantity is not None else 0,
            min_stock=effective_min,
            max_stock=request.max_stock,
            location=request.location,
            reserved_quantity=0,
            last_update=utcnow(),
        )
        db.session.add(inventory)
        db.session.commit()

        current_app.logger.info(
            "Inventory created: product=%s quantity=%s", inventory.product_id, inventory.quantity
        )
        return inventory

    return run_with_retry(_op)


def update_inventory(
    inventory_id: int,
    acting_user_id: int,
    quantity: int | None = None,
    min_stock: int | None = None,
    max_stock: int | None = None,
    location: str | None = None,
    clear_max_stock: bool = False,
) -> Inventory:
    """
    Update thresholds, location and/or quantity of an inventory record.

    Fields left as None are unchanged; clear_max_stock drops the ceiling.

    A quantity change is a stock movement: it is written as one ADJUSTMENT
    with reason "Inventory record update".
    """
    request = UpdateInventoryRequest(
        quantity=quantity,
        min_stock=min_stock,
        max_stock=max_stock,
        location=location,
        clear_max_stock=clear_max_stock,
    )
    request.validate()

    def _op():
        begin_write()
        inventory = lock_for_update(db.session.query(Inventory).filter_by(id=inventory_id)).first()
        if inventory is None:
            raise NotFoundError("Inventory not found", {"inventory_id": inventory_id})
        _get_product(inventory.product_id)
        _get_user(acting_user_id)

        effective_min = request.min_stock if request.min_stock is not None else inventory.min_stock
        if request.clear_max_stock:
            effective_max = None
        elif request.max_stock is not None:
            effective_max = request.max_stock
        else:
            effective_max = inventory.max_stock
        if effective_max is not None and effective_max <= effective_min:
            raise ValidationError("max_stock must be greater than min_stock")

        if request.min_stock is not None:
            inventory.min_stock = request.min_stock
        if request.clear_max_stock or request.max_stock is not None:
            inventory.max_stock = effective_max
        if request.location is not None:
            inventory.location = request.location
        inventory.last_update = utcnow()
        db.session.flush()

        if request.quantity is not None and request.quantity != inventory.quantity:
            previous = inventory.quantity
            # Compare-and-set against the value just read; a concurrent writer forces a retry
            result = db.session.execute(
                update(Inventory)
                .where(Inventory.id == inventory.id)
                .where(Inventory.quantity == previous)
                .values(quantity=request.quantity, last_update=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StaleDataError("Inventory quantity changed concurrently")

            _record_movement(
                inventory=inventory,
                movement_type="ADJUSTMENT",
                quantity=abs(request.quantity - previous),
                reason=RECORD_UPDATE_REASON,
                user_id=acting_user_id,
            )
            current_app.logger.info(
                "Inventory %s quantity set %s -> %s by user %s",
                inventory.id, previous, request.quantity, acting_user_id,
            )

        db.session.commit()
        return inventory

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Stock movements
# ---------------------------------------------------------------------------


def adjust_stock(product_id: int, delta: int, reason: str, acting_user_id: int) -> Inventory:
    """
    Apply a signed correction to on-hand quantity.

    The movement row is an ADJUSTMENT with quantity = abs(delta).
    """
    delta = coerce_int("delta", delta)
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    reason = validate_reason(reason)

    def _op():
        begin_write()
        _get_product(product_id)
        _get_user(acting_user_id)
        inventory = _require_inventory(product_id)
        current_quantity = inventory.quantity

        if not _apply_quantity_delta(inventory, delta):
            raise InvalidArgumentError(
                "Adjustment would make stock negative",
                {"product_id": product_id, "quantity": current_quantity, "delta": delta},
            )

        _record_movement(
            inventory=inventory,
            movement_type="ADJUSTMENT",
            quantity=abs(delta),
            reason=reason,
            user_id=acting_user_id,
        )
        db.session.commit()

        current_app.logger.info(
            "Stock ADJUSTMENT: product=%s delta=%s user=%s", product_id, delta, acting_user_id
        )
        return inventory

    return run_with_retry(_op)


def process_stock_movement(request: StockMovementRequest, acting_user_id: int) -> Inventory:
    """
    Apply an IN or OUT movement.

    OUT that would drive quantity below zero raises InvalidStateError and
    leaves both the counter and the movement log untouched.
    """
    request.validate()

    def _op():
        begin_write()
        _get_product(request.product_id)
        _get_user(acting_user_id)
        if request.sale_id is not None:
            _get_sale(request.sale_id)
        inventory = _require_inventory(request.product_id)
        current_quantity = inventory.quantity

        delta = request.quantity if request.type == "IN" else -request.quantity
        if not _apply_quantity_delta(inventory, delta):
            raise InvalidStateError(
                "Insufficient stock",
                {
                    "product_id": request.product_id,
                    "available": current_quantity,
                    "requested": request.quantity,
                },
            )

        _record_movement(
            inventory=inventory,
            movement_type=request.type,
            quantity=request.quantity,
            reason=request.reason,
            user_id=acting_user_id,
            sale_id=request.sale_id,
        )
        db.session.commit()

        current_app.logger.info(
            "Stock %s: product=%s quantity=%s sale=%s user=%s",
            request.type, request.product_id, request.quantity, request.sale_id, acting_user_id,
        )
        return inventory

    return run_with_retry(_op)


def add_stock(product_id: int, quantity: int, reason: str, acting_user_id: int) -> Inventory:
    request = StockMovementRequest(type="IN", product_id=product_id, quantity=quantity, reason=reason)
    return process_stock_movement(request, acting_user_id)


def remove_stock(
    product_id: int,
    quantity: int,
    reason: str,
    acting_user_id: int,
    sale_id: int | None = None,
) -> Inventory:
    request = StockMovementRequest(
        type="OUT",
        product_id=product_id,
        quantity=quantity,
        reason=reason,
        sale_id=sale_id,
    )
    return process_stock_movement(request, acting_user_id)


# ---------------------------------------------------------------------------
# Point-in-time checks (read-only, never raise for missing inventory)
# ---------------------------------------------------------------------------


def check_stock(product_id: int) -> dict:
    inventory = _inventory_by_product(product_id)
    if inventory is None:
        return {"available": False, "quantity": 0, "is_low_stock": True}
    return {
        "available": inventory.quantity > 0,
        "quantity": inventory.quantity,
        "is_low_stock": inventory.is_low_stock,
    }


def reserve_stock(product_id: int, quantity: int) -> bool:
    """
    Non-binding availability check. Nothing is held; use create_reservation
    for a binding hold.
    """
    status = check_stock(product_id)
    return status["available"] and quantity <= status["quantity"]


def has_inventory(product_id: int) -> bool:
    return _inventory_by_product(product_id) is not None


# ---------------------------------------------------------------------------
# Reservations (two-phase: reserve, then commit or release)
# ---------------------------------------------------------------------------


def _get_reservation(token: str) -> StockReservation:
    reservation = lock_for_update(db.session.query(StockReservation).filter_by(token=token)).first()
    if reservation is None:
        raise NotFoundError("Reservation not found")
    return reservation


def _resolve_reservation(reservation: StockReservation, status: str) -> None:
    """ACTIVE -> status, guarded so only one caller can resolve a reservation."""
    result = db.session.execute(
        update(StockReservation)
        .where(StockReservation.id == reservation.id)
        .where(StockReservation.status == "ACTIVE")
        .values(status=status, resolved_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Reservation is no longer active", {"token": reservation.token})
    if not apply_counter_delta(Inventory, reservation.inventory_id, "reserved_quantity", -reservation.quantity):
        raise InvalidStateError("Reserved quantity out of sync", {"inventory_id": reservation.inventory_id})


def create_reservation(
    product_id: int,
    quantity: int,
    acting_user_id: int,
    sale_id: int | None = None,
) -> StockReservation:
    """Hold quantity units. Fails with ConflictError if unreserved stock is short."""
    quantity = validate_stock_quantity(quantity)

    def _op():
        begin_write()
        _get_product(product_id)
        _get_user(acting_user_id)
        if sale_id is not None:
            sale = _get_sale(sale_id)
            if sale.status == "CANCELLED":
                raise InvalidStateError("Cannot reserve stock for a cancelled sale", {"sale_id": sale_id})
        inventory = _require_inventory(product_id)
        available = inventory.available_quantity

        held = apply_counter_delta(
            Inventory,
            inventory.id,
            "reserved_quantity",
            quantity,
            ceiling_column="quantity",
        )
        if not held:
            raise ConflictError(
                "Insufficient stock to reserve",
                {"product_id": product_id, "available": available, "requested": quantity},
            )

        reservation = StockReservation(
            token=secrets.token_hex(16),
            inventory_id=inventory.id,
            product_id=product_id,
            sale_id=sale_id,
            user_id=acting_user_id,
            quantity=quantity,
            status="ACTIVE",
            created_at=utcnow(),
        )
        db.session.add(reservation)
        db.session.commit()

        current_app.logger.info(
            "Stock reserved: product=%s quantity=%s sale=%s", product_id, quantity, sale_id
        )
        return reservation

    return run_with_retry(_op)


def commit_reservation(token: str, acting_user_id: int, reason: str | None = None) -> Inventory:
    """Turn a hold into an OUT movement linked to the reservation's sale."""
    if reason is not None:
        reason = validate_reason(reason)

    def _op():
        begin_write()
        reservation = _get_reservation(token)
        _get_user(acting_user_id)
        _resolve_reservation(reservation, "COMMITTED")

        inventory = db.session.get(Inventory, reservation.inventory_id)
        current_quantity = inventory.quantity
        if not _apply_quantity_delta(inventory, -reservation.quantity):
            raise InvalidStateError(
                "Insufficient stock",
                {
                    "product_id": reservation.product_id,
                    "available": current_quantity,
                    "requested": reservation.quantity,
                },
            )

        movement_reason = reason
        if movement_reason is None:
            movement_reason = f"Reservation committed for sale {reservation.sale_id}" \
                if reservation.sale_id else "Reservation committed"
        _record_movement(
            inventory=inventory,
            movement_type="OUT",
            quantity=reservation.quantity,
            reason=movement_reason,
            user_id=acting_user_id,
            sale_id=reservation.sale_id,
        )
        db.session.commit()

        current_app.logger.info(
            "Reservation committed: product=%s quantity=%s sale=%s",
            reservation.product_id, reservation.quantity, reservation.sale_id,
        )
        return inventory

    return run_with_retry(_op)


def release_reservation(token: str) -> StockReservation:
    def _op():
        begin_write()
        reservation = _get_reservation(token)
        _resolve_reservation(reservation, "RELEASED")
        db.session.commit()
        current_app.logger.info("Reservation released: product=%s quantity=%s",
                                reservation.product_id, reservation.quantity)
        return reservation

    return run_with_retry(_op)


def release_reservations_for_sale(sale_id: int) -> int:
    """
    Release every ACTIVE reservation of a sale.

    Runs inside the caller's transaction and does not commit.
    """
    reservations = (
        db.session.query(StockReservation)
        .filter_by(sale_id=sale_id, status="ACTIVE")
        .all()
    )
    for reservation in reservations:
        _resolve_reservation(reservation, "RELEASED")
    return len(reservations)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_inventory(inventory_id: int) -> Inventory:
    inventory = db.session.get(Inventory, inventory_id)
    if inventory is None:
        raise NotFoundError("Inventory not found", {"inventory_id": inventory_id})
    return inventory


def get_inventory_for_product(product_id: int) -> Inventory:
    _get_product(product_id, require_active=False)
    return _require_inventory(product_id)


def list_inventories(filters: dict | None = None, *, page: int | None = 1, per_page: int | None = None) -> dict:
    """
    Filtered, sorted, paginated inventory list.

    Filters (all optional): search (product name or code), category_id,
    supplier_id, location (substring), low_stock, out_of_stock, has_stock,
    min_quantity, max_quantity, sort_by, sort_order.
    """
    filters = filters or {}

    query = (
        db.session.query(Inventory)
        .join(Product, Inventory.product_id == Product.id)
    )

    search = filters.get("search")
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.code.ilike(pattern)))
    if filters.get("category_id") is not None:
        query = query.filter(Product.category_id == filters["category_id"])
    if filters.get("supplier_id") is not None:
        query = query.filter(Product.supplier_id == filters["supplier_id"])
    if filters.get("location"):
        query = query.filter(Inventory.location.ilike(f"%{filters['location'].strip()}%"))
    if filters.get("low_stock"):
        query = query.filter(Inventory.quantity <= Inventory.min_stock)
    if filters.get("out_of_stock"):
        query = query.filter(Inventory.quantity == 0)
    if filters.get("has_stock"):
        query = query.filter(Inventory.quantity > 0)
    if filters.get("min_quantity") is not None:
        query = query.filter(Inventory.quantity >= filters["min_quantity"])
    if filters.get("max_quantity") is not None:
        query = query.filter(Inventory.quantity <= filters["max_quantity"])

    sort_by = filters.get("sort_by") or "product_name"
    if sort_by not in INVENTORY_SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of {', '.join(INVENTORY_SORT_FIELDS)}")
    sort_order = (filters.get("sort_order") or "asc").lower()
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")

    sort_column = INVENTORY_SORT_FIELDS[sort_by]
    ordering = sort_column.desc() if sort_order == "desc" else sort_column.asc()
    query = query.order_by(ordering, Inventory.id.asc())

    return paginate(query, page=page, per_page=per_page, serialize=lambda inv: inv.to_dict())


def list_movements(filters: dict | None = None, *, page: int | None = 1, per_page: int | None = None) -> dict:
    """
    Movement history, newest first.

    Filters (all optional): product_id, type, user_id, sale_id, reason
    (substring), date_from / date_to (inclusive, UTC-naive datetimes).
    """
    filters = filters or {}
    query = db.session.query(InventoryMovement)

    if filters.get("product_id") is not None:
        query = query.filter(InventoryMovement.product_id == filters["product_id"])
    if filters.get("type"):
        if filters["type"] not in MOVEMENT_TYPES:
            raise ValidationError(f"type must be one of {', '.join(MOVEMENT_TYPES)}")
        query = query.filter(InventoryMovement.type == filters["type"])
    if filters.get("user_id") is not None:
        query = query.filter(InventoryMovement.user_id == filters["user_id"])
    if filters.get("sale_id") is not None:
        query = query.filter(InventoryMovement.sale_id == filters["sale_id"])
    if filters.get("reason"):
        query = query.filter(InventoryMovement.reason.ilike(f"%{filters['reason']}%"))
    if filters.get("date_from") is not None:
        query = query.filter(InventoryMovement.created_at >= filters["date_from"])
    if filters.get("date_to") is not None:
        query = query.filter(InventoryMovement.created_at <= filters["date_to"])

    query = query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda m: m.to_dict())


def list_product_movements(product_id: int, limit: int = 20) -> list[InventoryMovement]:
    _get_product(product_id, require_active=False)
    return (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product_id)
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


def low_stock_alerts() -> list[Inventory]:
    """Active products at or under their minimum (out-of-stock included)."""
    return (
        db.session.query(Inventory)
        .join(Product, Inventory.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .filter(Inventory.quantity <= Inventory.min_stock)
        .order_by(Inventory.quantity.asc(), Product.name.asc())
        .all()
    )


def out_of_stock_products() -> list[Inventory]:
    return (
        db.session.query(Inventory)
        .join(Product, Inventory.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .filter(Inventory.quantity == 0)
        .order_by(Product.name.asc())
        .all()
    )
