"""CanonicalOrder -> InvoicePayload mapping.

Line amounts are rounded before they are summed, so document totals always
equal the sum of the printed line figures:

    line_extension = round(quantity * unit_price)
    tax_amount     = round(line_extension * vat_rate / 100)
"""

import uuid as uuid_lib
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from core.mapping.carriers import payment_type, resolve_carrier
from core.mapping.fallbacks import (
    DEFAULT_FALLBACKS,
    FallbackPolicy,
    customer_tax_number,
    join_address,
    normalize_phone,
    split_full_name,
)
from core.mapping.money import to_decimal, to_money, ZERO
from core.models.canonical import CanonicalOrder, OrderLine
from core.models.invoice import (
    DeliveryInfo,
    InternetSale,
    InvoiceLine,
    InvoiceParty,
    InvoicePayload,
    InvoiceTotals,
    TaxSubtotal,
)

SHIPPING_LINE_NAME = "Kargo Bedeli"


def build_line(
    name: str,
    quantity,
    unit_price,
    vat_rate,
    sku: Optional[str] = None,
    product_id: Optional[str] = None,
    description: Optional[str] = None,
) -> InvoiceLine:
    """Build one invoice line with its rounded extension and tax."""
    qty = to_decimal(quantity)
    price = to_decimal(unit_price)
    rate = to_decimal(vat_rate)
    line_extension = to_money(qty * price)
    tax_amount = to_money(line_extension * rate / Decimal("100"))
    return InvoiceLine(
        name=name,
        quantity=qty,
        unit_price=to_money(price),
        vat_rate=rate,
        line_extension=line_extension,
        tax_amount=tax_amount,
        sku=sku,
        product_id=product_id,
        description=description,
    )


def summarize(lines: List[InvoiceLine], allowance=ZERO) -> InvoiceTotals:
    """Document totals with tax subtotals grouped by rate in first-seen order."""
    groups: Dict[Decimal, List[Decimal]] = {}
    for line in lines:
        bucket = groups.setdefault(line.vat_rate, [ZERO, ZERO])
        bucket[0] += line.line_extension
        bucket[1] += line.tax_amount

    subtotals = [
        TaxSubtotal(rate=rate, taxable_amount=to_money(taxable), tax_amount=to_money(tax))
        for rate, (taxable, tax) in groups.items()
    ]

    line_extension = to_money(sum((l.line_extension for l in lines), ZERO))
    tax_total = to_money(sum((l.tax_amount for l in lines), ZERO))
    allowance = to_money(allowance)
    tax_inclusive = to_money(line_extension + tax_total)
    return InvoiceTotals(
        line_extension=line_extension,
        tax_exclusive=line_extension,
        tax_inclusive=tax_inclusive,
        tax_total=tax_total,
        allowance=allowance,
        payable=to_money(tax_inclusive - allowance),
        subtotals=subtotals,
    )


def _order_line(line: OrderLine, policy: FallbackPolicy) -> InvoiceLine:
    rate = line.vat_rate if line.vat_rate is not None else policy.vat_rate
    return build_line(
        name=line.name or line.sku or "Ürün",
        quantity=line.quantity,
        unit_price=line.unit_price,
        vat_rate=rate,
        sku=line.sku,
        product_id=line.product_id,
        description=line.description,
    )


def customer_party(order: CanonicalOrder, policy: FallbackPolicy = DEFAULT_FALLBACKS) -> InvoiceParty:
    """Customer party of an order with fallbacks for missing fields."""
    customer = order.customer
    address = order.billing
    if customer.is_company:
        first_name, family_name = None, None
    elif customer.first_name and customer.last_name:
        first_name, family_name = customer.first_name, customer.last_name
    elif customer.name:
        first_name, family_name = split_full_name(customer.name, policy)
    else:
        first_name, family_name = None, None

    return InvoiceParty(
        name=customer.display_name or policy.final_consumer_name,
        first_name=first_name,
        family_name=family_name,
        tax_number=customer_tax_number(customer.tax_number, policy),
        tax_office=customer.tax_office,
        street=join_address(address.line1, address.line2, policy=policy) if address.line1 else policy.street,
        district=address.district or policy.district,
        city=address.city or policy.city,
        postal_code=address.postal_code or policy.postal_code,
        country=address.country or policy.country,
        email=customer.email,
        phone=normalize_phone(customer.phone, policy),
    )


def build_invoice_payload(
    order: CanonicalOrder,
    supplier: InvoiceParty,
    policy: FallbackPolicy = DEFAULT_FALLBACKS,
    invoice_id: Optional[str] = None,
    uuid: Optional[str] = None,
    issued_at: Optional[datetime] = None,
    profile_id: str = "EARSIVFATURA",
    include_shipping: bool = True,
    internet_sale: bool = True,
) -> InvoicePayload:
    """Build the invoice for an order.

    Lines keep the order's line sequence. A positive shipping charge is
    appended as its own line at the default VAT rate.

    Args:
        order: Marketplace order
        supplier: Issuing party (the pharmacy)
        policy: Fallback values for absent customer fields
        invoice_id: Document id, defaults to the order number
        uuid: Document UUID, generated when omitted
        issued_at: Issue timestamp, defaults to the order creation time
        profile_id: UBL profile (EARSIVFATURA, TICARIFATURA, ...)
        include_shipping: Add the shipping charge as a line
        internet_sale: Attach the internet sale block
    """
    issued_at = issued_at or order.created_at or datetime.now()
    lines = [_order_line(line, policy) for line in order.lines]
    if include_shipping and order.shipping_charge > 0:
        lines.append(build_line(SHIPPING_LINE_NAME, 1, order.shipping_charge, policy.vat_rate))

    sale = None
    if internet_sale:
        paid_on = order.paid_at or issued_at
        sale = InternetSale(
            website=supplier.website,
            payment_method=payment_type(order.payment_method),
            payment_date=paid_on.date(),
        )

    delivery = None
    carrier = resolve_carrier(order.cargo_provider)
    if carrier is not None:
        delivery = DeliveryInfo(
            carrier_name=carrier.title,
            carrier_tax_number=carrier.tax_number,
            despatch_date=issued_at.date(),
            despatch_time=issued_at.strftime("%H:%M:%S"),
            tracking_number=order.tracking_number,
        )

    notes = [f"Sipariş #{order.order_number}"]
    if order.note:
        notes.append(order.note)

    return InvoicePayload(
        invoice_id=invoice_id or order.order_number,
        uuid=uuid or str(uuid_lib.uuid4()),
        issue_date=issued_at.date(),
        issue_time=issued_at.strftime("%H:%M:%S"),
        profile_id=profile_id,
        currency=order.currency,
        notes=notes,
        supplier=supplier,
        customer=customer_party(order, policy),
        lines=lines,
        totals=summarize(lines),
        internet_sale=sale,
        delivery=delivery,
        order_reference=order.order_number,
        order_id=order.id,
        due_date=(issued_at + timedelta(days=policy.due_days)).date(),
        paid=order.is_paid,
        payment_method=order.payment_method,
    )
