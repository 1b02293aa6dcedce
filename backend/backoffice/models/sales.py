from __future__ import annotations

from decimal import Decimal

from sqlalchemy import event

from ..extensions import db
from ..money import ZERO, line_total, money_str, to_money
from ..time_utils import to_utc_z, utcnow

SALE_STATUSES = ("DRAFT", "PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", "REFUNDED")

EDITABLE_STATUSES = frozenset({"DRAFT", "PENDING"})
NON_CANCELLABLE_STATUSES = frozenset({"CANCELLED", "COMPLETED"})


class Sale(db.Model):
    """
    Sale document.

    LIFECYCLE:
    - created as DRAFT
    - items, discount, tax and customer may change only while DRAFT/PENDING
    - anything except CANCELLED/COMPLETED may be cancelled

    total = sum(item.total) - discount + tax, recomputed after every mutation.
    version_id gives optimistic locking for concurrent edits of one sale.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("discount >= 0", name="ck_sales_discount_non_negative"),
        db.CheckConstraint("tax >= 0", name="ck_sales_tax_non_negative"),
        db.Index("ix_sales_customer_date", "customer_id", "sale_date"),
        db.Index("ix_sales_status_date", "status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT")

    total = db.Column(db.Numeric(10, 2), nullable=False, default=ZERO)
    discount = db.Column(db.Numeric(10, 2), nullable=False, default=ZERO)
    tax = db.Column(db.Numeric(10, 2), nullable=False, default=ZERO)

    notes = db.Column(db.String(1000), nullable=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    customer = db.relationship("Customer")
    user = db.relationship("User")
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    def is_cancellable(self) -> bool:
        return self.status not in NON_CANCELLABLE_STATUSES

    def calculate_subtotal(self) -> Decimal:
        subtotal = ZERO
        for item in self.items:
            subtotal += to_money(item.total)
        return to_money(subtotal)

    def recalculate_total(self) -> Decimal:
        for item in self.items:
            item.recalculate_total()
        self.total = to_money(self.calculate_subtotal() - to_money(self.discount) + to_money(self.tax))
        return self.total

    def __repr__(self) -> str:
        return f"<Sale id={self.id} status={self.status} total={self.total}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "status": self.status,
            "total": money_str(self.total),
            "discount": money_str(self.discount),
            "tax": money_str(self.tax),
            "notes": self.notes,
            "sale_date": to_utc_z(self.sale_date),
            "customer": self.customer.to_summary() if self.customer else None,
            "user": self.user.to_summary() if self.user else None,
            "is_editable": self.is_editable(),
            "is_cancellable": self.is_cancellable(),
            "item_count": len(self.items),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["subtotal"] = money_str(self.calculate_subtotal())
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1 AND quantity <= 10000", name="ck_sale_items_quantity_range"),
        db.CheckConstraint("discount >= 0", name="ck_sale_items_discount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    discount = db.Column(db.Numeric(10, 2), nullable=False, default=ZERO)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def recalculate_total(self) -> Decimal:
        self.total = line_total(self.unit_price, self.quantity, self.discount)
        return self.total

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product": {
                "id": product.id,
                "name": product.name,
                "code": product.code,
                "category_name": product.category.name if product.category else None,
            } if product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "discount": money_str(self.discount),
            "total": money_str(self.total),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(SaleItem, "before_insert")
@event.listens_for(SaleItem, "before_update")
def _sale_item_total(mapper, connection, target):
    target.recalculate_total()
