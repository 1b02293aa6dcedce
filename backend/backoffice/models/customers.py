from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

CUSTOMER_TYPES = ("RETAIL", "WHOLESALE")


class Customer(db.Model):
    """
    Customer master data.

    RETAIL customers are individuals (CPF document), WHOLESALE are companies (CNPJ).
    Inactive customers are kept for history but cannot open new sales.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("document", name="uq_customers_document"),
        db.UniqueConstraint("email", name="uq_customers_email"),
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_type_active", "type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    neighborhood = db.Column(db.String(100), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(2), nullable=True)
    zip_code = db.Column(db.String(9), nullable=True)
    document = db.Column(db.String(18), nullable=True)

    type = db.Column(db.String(16), nullable=False, default="RETAIL")
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "document": self.document,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "document": self.document,
            "type": self.type,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
