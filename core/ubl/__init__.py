"""UBL 2.1 e-Archive document generation."""

from core.ubl.builder import (
    UBLInvoiceBuilder,
    internet_sale_reference_id,
    NAMESPACES,
    INVOICE_NS,
    CAC_NS,
    CBC_NS,
)

__all__ = [
    "UBLInvoiceBuilder",
    "internet_sale_reference_id",
    "NAMESPACES",
    "INVOICE_NS",
    "CAC_NS",
    "CBC_NS",
]
