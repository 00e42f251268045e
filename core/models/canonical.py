"""Core canonical data models - provider-neutral products and orders.

These models represent catalog and order data in a standardized format
that is independent of any specific ERP or accounting provider.

Provider-specific field mappings are handled in /drivers/ and /core/mapping/.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

logger = logging.getLogger(__name__)


# =============================================================================
# Value Parsers (handle the loose formats providers send back)
# =============================================================================

_CURRENCY_MARKERS = ("₺", "TRY", "TL", "$", "€")


def _finite(value: Decimal) -> Optional[Decimal]:
    """NaN and infinities count as missing values."""
    if value.is_finite():
        return value
    logger.debug(f"Ignoring non-finite number: {value}")
    return None


def _parse_decimal(value):
    """Parse decimal from various formats.

    Accepts Turkish decimal commas ("12,50", "1.234,56") as well as
    "1,234.56", currency markers and accounting-style negatives.
    "NaN" and "Infinity" parse as missing.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return _finite(value)
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return _finite(Decimal(str(value)))
    if isinstance(value, str):
        s = value.strip()
        for marker in _CURRENCY_MARKERS:
            s = s.replace(marker, "")
        s = s.replace(" ", "")
        if s == "":
            return None
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        if "," in s and "." in s:
            if s.rfind(",") > s.rfind("."):
                s = s.replace(".", "").replace(",", ".")
            else:
                s = s.replace(",", "")
        elif "," in s:
            s = s.replace(",", ".")
        try:
            return _finite(Decimal(s))
        except InvalidOperation:
            raise ValueError(f"Cannot parse decimal: {value!r}")
    return value


def _parse_int(value):
    """Parse integer from various formats."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal, str)):
        parsed = _parse_decimal(value)
        return int(parsed) if parsed is not None else None
    return value


def _parse_date(value):
    """Parse date from various string formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%Y-%m-%dT%H:%M:%S"):
            try:
                return datetime.strptime(s[:19], fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


# Annotated types for automatic parsing
DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
IntValue = Annotated[int, BeforeValidator(_parse_int)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# =============================================================================
# Product Models
# =============================================================================

class CategoryRef(CanonicalBase):
    """Category reference as resolved from the provider."""
    id: Optional[str] = None
    name: Optional[str] = None


class CanonicalProduct(CanonicalBase):
    """A provider product in canonical form.

    Monetary and stock fields are never negative; negative provider values
    are clamped to zero. ``sku`` is the cross-provider join key when present.
    ``raw`` keeps the provider payload for audit and is excluded from
    serialized sync results.
    """
    id: Optional[str] = None
    sku: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    price: DecimalValue = Decimal("0")
    cost: DecimalValue = Decimal("0")
    stock: IntValue = 0
    vat_rate: DecimalValue = Decimal("20")
    barcode: Optional[str] = None
    category: Optional[CategoryRef] = None
    brand: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    currency: str = "TRY"
    provider: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @field_validator("price", "cost", "vat_rate", "stock")
    @classmethod
    def _clamp_non_negative(cls, value, info):
        if value < 0:
            logger.warning(f"Negative {info.field_name} ({value}) clamped to 0")
            return type(value)(0)
        return value

    def to_sync_dict(self) -> Dict[str, Any]:
        """JSON-ready representation used in sync results."""
        return self.model_dump(mode="json", exclude={"raw"})


# =============================================================================
# Order Models (read-only input owned by the marketplace)
# =============================================================================

class PaymentStatus(str, Enum):
    """Payment state of a marketplace order."""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Address(CanonicalBase):
    """Postal address attached to an order."""
    line1: Optional[str] = None
    line2: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class Customer(CanonicalBase):
    """Buyer of an order. A company name marks a corporate customer."""
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    tax_number: Optional[str] = None
    tax_office: Optional[str] = None
    company_name: Optional[str] = None

    @property
    def is_company(self) -> bool:
        return bool(self.company_name)

    @property
    def display_name(self) -> Optional[str]:
        if self.company_name:
            return self.company_name
        if self.name:
            return self.name
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or None


class OrderLine(CanonicalBase):
    """A single order line item."""
    product_id: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    quantity: IntValue = 1
    unit_price: DecimalValue = Decimal("0")
    vat_rate: Optional[DecimalValue] = None


class CanonicalOrder(CanonicalBase):
    """Marketplace order as handed to a driver.

    The adapter layer never mutates it. The provider-facing order number is
    ``prefix + code``.
    """
    id: Optional[str] = None
    prefix: str = ""
    code: str
    created_at: Optional[datetime] = None
    customer: Customer = Field(default_factory=Customer)
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    lines: List[OrderLine] = Field(default_factory=list)
    shipping_charge: DecimalValue = Decimal("0")
    total: Optional[DecimalValue] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    cargo_provider: Optional[str] = None
    tracking_number: Optional[str] = None
    note: Optional[str] = None
    currency: str = "TRY"

    @property
    def order_number(self) -> str:
        return f"{self.prefix}{self.code}"

    @property
    def billing(self) -> Address:
        """Billing address, falling back to shipping, then to an empty address."""
        return self.billing_address or self.shipping_address or Address()

    @property
    def shipping(self) -> Address:
        return self.shipping_address or self.billing_address or Address()

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID
