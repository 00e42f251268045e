"""Core data models - provider-neutral canonical types.

This package contains the canonical product, order, invoice and shipment
models and the normalized operation result returned by every driver.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    IntValue,
    DateValue,
    
    # Products
    CanonicalProduct,
    CategoryRef,
    
    # Orders
    CanonicalOrder,
    OrderLine,
    Customer,
    Address,
    PaymentStatus,
)

from core.models.invoice import (
    InvoicePayload,
    InvoiceParty,
    InvoiceLine,
    InvoiceTotals,
    TaxSubtotal,
    InternetSale,
    DeliveryInfo,
)

from core.models.shipment import (
    ShipmentRequest,
    ShipmentContact,
    ShipmentPayer,
    Parcel,
)

from core.models.results import (
    OperationResult,
    ResultKind,
    Pagination,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",
    "IntValue",
    "DateValue",
    
    # Products
    "CanonicalProduct",
    "CategoryRef",
    
    # Orders
    "CanonicalOrder",
    "OrderLine",
    "Customer",
    "Address",
    "PaymentStatus",
    
    # Invoices
    "InvoicePayload",
    "InvoiceParty",
    "InvoiceLine",
    "InvoiceTotals",
    "TaxSubtotal",
    "InternetSale",
    "DeliveryInfo",
    
    # Shipments
    "ShipmentRequest",
    "ShipmentContact",
    "ShipmentPayer",
    "Parcel",
    
    # Results
    "OperationResult",
    "ResultKind",
    "Pagination",
]
