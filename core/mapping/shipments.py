"""CanonicalOrder -> ShipmentRequest mapping.

Orders carry no package dimensions, so every unit ordered becomes one
parcel at the carriers' billing minimum (1 desi, 1 kg) unless the caller
supplies measured parcels.
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from core.mapping.fallbacks import DEFAULT_FALLBACKS, FallbackPolicy, join_address, normalize_phone
from core.models.canonical import CanonicalOrder
from core.models.invoice import InvoiceParty
from core.models.shipment import Parcel, ShipmentContact, ShipmentPayer, ShipmentRequest

MIN_DESI = Decimal("1")
MIN_WEIGHT_GRAMS = Decimal("1000")


def parcel(content: str, desi=None, weight_grams=None) -> Parcel:
    """A parcel raised to the billing minimums."""
    return Parcel(
        content=content or "Gönderi",
        desi=max(Decimal(str(desi or 0)), MIN_DESI),
        weight_grams=max(Decimal(str(weight_grams or 0)), MIN_WEIGHT_GRAMS),
    )


def order_parcels(order: CanonicalOrder) -> List[Parcel]:
    parcels = [
        parcel(line.name)
        for line in order.lines
        for _ in range(max(line.quantity, 0))
    ]
    return parcels or [parcel("Gönderi")]


def sender_contact(party: InvoiceParty, policy: FallbackPolicy = DEFAULT_FALLBACKS) -> ShipmentContact:
    return ShipmentContact(
        name=party.name or policy.customer_name,
        address=party.street or policy.address_text,
        district=party.district or policy.district,
        city=party.city or policy.city,
        phone=normalize_phone(party.phone, policy),
        email=party.email,
    )


def receiver_contact(order: CanonicalOrder, policy: FallbackPolicy = DEFAULT_FALLBACKS) -> ShipmentContact:
    address = order.shipping
    return ShipmentContact(
        name=order.customer.display_name or policy.customer_name,
        address=join_address(address.line1, address.line2, policy=policy),
        district=address.district or policy.district,
        city=address.city or policy.city,
        phone=normalize_phone(order.customer.phone, policy),
        email=order.customer.email,
    )


def build_shipment(
    order: CanonicalOrder,
    sender: InvoiceParty,
    policy: FallbackPolicy = DEFAULT_FALLBACKS,
    parcels: Optional[Sequence[Parcel]] = None,
    payer: ShipmentPayer = ShipmentPayer.SENDER,
    invoice_number: Optional[str] = None,
) -> ShipmentRequest:
    """Shipment for an order, shipped by ``sender`` to the order's address."""
    return ShipmentRequest(
        order_reference=order.order_number,
        invoice_number=invoice_number or order.order_number,
        sender=sender_contact(sender, policy),
        receiver=receiver_contact(order, policy),
        parcels=list(parcels) if parcels else order_parcels(order),
        payer=payer,
    )
