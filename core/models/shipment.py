"""Shipment models for cargo carriers.

A ``ShipmentRequest`` is built from a ``CanonicalOrder`` and the pharmacy's
own party (see ``core.mapping.shipments``). Carrier drivers translate it
into their own booking payloads.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import Field

from core.models.canonical import CanonicalBase, DecimalValue


class ShipmentPayer(str, Enum):
    """Who pays the carrier."""
    SENDER = "sender"
    RECEIVER = "receiver"


class ShipmentContact(CanonicalBase):
    """Sender or receiver of a shipment."""
    name: str
    address: str
    district: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class Parcel(CanonicalBase):
    """One physical package. Carriers bill at least 1 desi and 1 kg."""
    desi: DecimalValue = Decimal("1")
    weight_grams: DecimalValue = Decimal("1000")
    content: str = "Gönderi"


class ShipmentRequest(CanonicalBase):
    """Everything a carrier needs to book a pickup."""
    order_reference: str
    invoice_number: Optional[str] = None
    sender: ShipmentContact
    receiver: ShipmentContact
    parcels: List[Parcel] = Field(default_factory=list)
    payer: ShipmentPayer = ShipmentPayer.SENDER
    cod_amount: DecimalValue = Decimal("0")

    @property
    def total_desi(self) -> Decimal:
        return sum((p.desi for p in self.parcels), Decimal("0"))
