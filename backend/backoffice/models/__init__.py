# backend/backoffice/models/__init__.py
"""
Model registry.

Importing this package registers every table on db.metadata, which is what
create_all() and Alembic autogenerate rely on.
"""

from .auth import USER_ROLES, SessionToken, User
from .catalog import Category, Product, Supplier
from .customers import CUSTOMER_TYPES, Customer
from .inventory import (
    DEFAULT_MIN_STOCK,
    MOVEMENT_TYPES,
    RESERVATION_STATUSES,
    Inventory,
    InventoryMovement,
    StockReservation,
)
from .sales import (
    EDITABLE_STATUSES,
    NON_CANCELLABLE_STATUSES,
    SALE_STATUSES,
    Sale,
    SaleItem,
)

__all__ = [
    "USER_ROLES",
    "User",
    "SessionToken",
    "Category",
    "Supplier",
    "Product",
    "CUSTOMER_TYPES",
    "Customer",
    "DEFAULT_MIN_STOCK",
    "MOVEMENT_TYPES",
    "RESERVATION_STATUSES",
    "Inventory",
    "InventoryMovement",
    "StockReservation",
    "SALE_STATUSES",
    "EDITABLE_STATUSES",
    "NON_CANCELLABLE_STATUSES",
    "Sale",
    "SaleItem",
]
