# vetclinic/models/__init__.py
from .user import User
from .client import Owner, Patient
from .clinical import Procedure, ClinicalRecord, ClinicalRecordItem
from .billing import (
    Invoice,
    InvoiceItem,
    Payment,
    InvoiceStatus,
    InvoiceOrigin,
    PaymentMethod,
)
from .inventory import (
    Product,
    ProductVariant,
    Lot,
    InventoryMovement,
    MovementType,
    StockUnit,
)
from .error_log import ErrorLog

__all__ = [
    "User",
    "Owner",
    "Patient",
    "Procedure",
    "ClinicalRecord",
    "ClinicalRecordItem",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "InvoiceStatus",
    "InvoiceOrigin",
    "PaymentMethod",
    "Product",
    "ProductVariant",
    "Lot",
    "InventoryMovement",
    "MovementType",
    "StockUnit",
    "ErrorLog",
]
