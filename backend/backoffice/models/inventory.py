from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

MOVEMENT_TYPES = ("IN", "OUT", "ADJUSTMENT")

RESERVATION_STATUSES = ("ACTIVE", "COMMITTED", "RELEASED")

DEFAULT_MIN_STOCK = 10


class Inventory(db.Model):
    """
    Per-product stock counter.

    INVARIANTS:
    - exactly one row per product (unique product_id)
    - quantity >= 0, enforced by the CHECK constraint as well as by the
      conditional UPDATE in inventory_service
    - reserved_quantity counts units held by ACTIVE reservations
    - rows are never deleted; history lives in inventory_movements
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventories_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventories_quantity_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_inventories_min_stock_non_negative"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_inventories_reserved_non_negative"),
        db.Index("ix_inventories_location", "location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK)
    max_stock = db.Column(db.Integer, nullable=True)
    location = db.Column(db.String(100), nullable=True)

    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    last_update = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="inventory")

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0

    @property
    def is_overstock(self) -> bool:
        return self.max_stock is not None and self.quantity > self.max_stock

    @property
    def available_quantity(self) -> int:
        return max(self.quantity - (self.reserved_quantity or 0), 0)

    @property
    def status(self) -> str:
        if self.is_out_of_stock:
            return "OUT"
        if self.is_low_stock:
            return "LOW"
        if self.is_overstock:
            return "OVERSTOCK"
        return "OK"

    def __repr__(self) -> str:
        return f"<Inventory id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": {
                "id": product.id,
                "name": product.name,
                "code": product.code,
                "category_name": product.category.name if product.category else None,
                "supplier_name": product.supplier.name if product.supplier else None,
            } if product else None,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "location": self.location,
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "is_overstock": self.is_overstock,
            "status": self.status,
            "last_update": to_utc_z(self.last_update),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only stock ledger.

    quantity is always the positive magnitude; direction comes from type.
    ADJUSTMENT rows do not record a sign (the original delta is only visible
    by comparing snapshots).
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_movements_quantity_positive"),
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_movements_type", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(500), nullable=False)

    inventory_id = db.Column(db.Integer, db.ForeignKey("inventories.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    inventory = db.relationship("Inventory", backref=db.backref("movements", lazy="dynamic"))
    product = db.relationship("Product")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "inventory_id": self.inventory_id,
            "product": {"id": self.product.id, "name": self.product.name, "code": self.product.code}
            if self.product else None,
            "user": self.user.to_summary() if self.user else None,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockReservation(db.Model):
    """
    Units held for a sale before they physically leave.

    ACTIVE -> COMMITTED (OUT movement written, quantity and reserved_quantity drop)
    ACTIVE -> RELEASED  (reserved_quantity drops, quantity untouched)
    """
    __tablename__ = "stock_reservations"
    __table_args__ = (
        db.UniqueConstraint("token", name="uq_stock_reservations_token"),
        db.CheckConstraint("quantity > 0", name="ck_stock_reservations_quantity_positive"),
        db.Index("ix_stock_reservations_sale_status", "sale_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), nullable=False)

    inventory_id = db.Column(db.Integer, db.ForeignKey("inventories.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    inventory = db.relationship("Inventory")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "token": self.token,
            "inventory_id": self.inventory_id,
            "product_id": self.product_id,
            "sale_id": self.sale_id,
            "user_id": self.user_id,
            "quantity": self.quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
