"""Invoice payload models.

An ``InvoicePayload`` is built fresh for every invoice request from a
``CanonicalOrder`` (see ``core.mapping.invoices``) and is never persisted.
Amounts are stored already rounded to two decimals.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from core.models.canonical import CanonicalBase, DecimalValue, DateValue


class InvoiceParty(CanonicalBase):
    """Supplier or customer party of an invoice."""
    name: Optional[str] = None
    first_name: Optional[str] = None
    family_name: Optional[str] = None
    tax_number: Optional[str] = None
    tax_office: Optional[str] = None
    street: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None

    @property
    def tax_scheme(self) -> str:
        """TCKN for 11-digit national ids, VKN otherwise."""
        return "TCKN" if len(self.tax_number or "") == 11 else "VKN"

    @property
    def is_person(self) -> bool:
        return bool(self.first_name and self.family_name)


class TaxSubtotal(CanonicalBase):
    """Tax amount for one VAT rate."""
    rate: DecimalValue
    taxable_amount: DecimalValue
    tax_amount: DecimalValue
    tax_name: str = "KDV"
    tax_type_code: str = "0015"


class InvoiceLine(CanonicalBase):
    """One invoice line with its own tax figures."""
    name: str
    quantity: DecimalValue
    unit_price: DecimalValue
    vat_rate: DecimalValue
    line_extension: DecimalValue
    tax_amount: DecimalValue
    unit_code: str = "NIU"
    sku: Optional[str] = None
    product_id: Optional[str] = None
    description: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return self.line_extension + self.tax_amount


class InvoiceTotals(CanonicalBase):
    """Document level totals."""
    line_extension: DecimalValue
    tax_exclusive: DecimalValue
    tax_inclusive: DecimalValue
    tax_total: DecimalValue
    payable: DecimalValue
    allowance: DecimalValue = Decimal("0.00")
    subtotals: List[TaxSubtotal] = Field(default_factory=list)


class InternetSale(CanonicalBase):
    """Internet sale block required on e-Archive invoices for online orders."""
    website: Optional[str] = None
    payment_method: str = "EFT/HAVALE"
    payment_date: Optional[DateValue] = None
    reference_id: Optional[str] = None


class DeliveryInfo(CanonicalBase):
    """Carrier and despatch information."""
    carrier_name: str
    carrier_tax_number: str
    despatch_date: Optional[DateValue] = None
    despatch_time: Optional[str] = None
    tracking_number: Optional[str] = None


class InvoicePayload(CanonicalBase):
    """Everything a provider needs to issue a fiscal document."""
    invoice_id: str = ""
    uuid: str
    issue_date: DateValue
    issue_time: str = "00:00:00"
    profile_id: str = "EARSIVFATURA"
    type_code: str = "SATIS"
    currency: str = "TRY"
    notes: List[str] = Field(default_factory=list)
    supplier: InvoiceParty = Field(default_factory=InvoiceParty)
    customer: InvoiceParty = Field(default_factory=InvoiceParty)
    lines: List[InvoiceLine] = Field(default_factory=list)
    totals: InvoiceTotals
    internet_sale: Optional[InternetSale] = None
    delivery: Optional[DeliveryInfo] = None
    order_reference: Optional[str] = None
    order_id: Optional[str] = None
    document_url: Optional[str] = None
    due_date: Optional[DateValue] = None
    paid: bool = False
    payment_method: Optional[str] = None

    @property
    def line_count(self) -> int:
        return len(self.lines)
