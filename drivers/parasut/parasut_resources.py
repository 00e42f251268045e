"""JSON:API request bodies for the Paraşüt v4 API.

Paraşüt wraps every resource as ``{"data": {"type", "attributes",
"relationships"}}``. These builders turn canonical values into those bodies
and nothing else; lookups and sequencing live in the driver.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.mapping.money import money_float
from core.models.invoice import InvoiceLine, InvoiceParty, InvoicePayload

# Paraşüt still uses the pre-2005 lira code.
CURRENCY_CODES = {"TRY": "TRL"}

PRODUCT_UNIT = "Adet"
SHIPMENT_NAME = "Kargo Gönderimi"
PAYMENT_NOTE = "Sipariş otomatik tahsilatı"


def relation(resource_type: str, resource_id: str) -> Dict[str, Any]:
    return {"data": {"id": str(resource_id), "type": resource_type}}


def contact_body(party: InvoiceParty, account_type: str = "customer") -> Dict[str, Any]:
    return {
        "data": {
            "type": "contacts",
            "attributes": {
                "name": party.name or "",
                "email": party.email or "",
                "phone": party.phone or "",
                "tax_number": party.tax_number or "",
                "tax_office": party.tax_office or "",
                "contact_type": "person" if party.is_person else "company",
                "account_type": account_type,
                "address": party.street or "",
                "city": party.city or "",
                "district": party.district or "",
                "country": party.country or "",
                "postal_code": party.postal_code or "",
            },
        }
    }


def product_body(line: InvoiceLine, code: str, inventory_tracking: bool = True) -> Dict[str, Any]:
    return {
        "data": {
            "type": "products",
            "attributes": {
                "name": line.name,
                "code": code,
                "vat_rate": money_float(line.vat_rate),
                "unit": PRODUCT_UNIT,
                "list_price": money_float(line.unit_price),
                "buying_price": 0,
                "inventory_tracking": inventory_tracking,
                "initial_stock_count": 0,
            },
        }
    }


def invoice_detail(line: InvoiceLine, product_id: Optional[str]) -> Dict[str, Any]:
    detail: Dict[str, Any] = {
        "type": "sales_invoice_details",
        "attributes": {
            "quantity": money_float(line.quantity),
            "unit_price": money_float(line.unit_price),
            "vat_rate": money_float(line.vat_rate),
            "description": line.name,
        },
    }
    if product_id:
        detail["relationships"] = {"product": relation("products", product_id)}
    return detail


def sales_invoice_body(
    payload: InvoicePayload,
    contact_id: str,
    details: List[Dict[str, Any]],
    series: Optional[str] = None,
) -> Dict[str, Any]:
    customer = payload.customer
    attributes: Dict[str, Any] = {
        "item_type": "invoice",
        "description": payload.notes[0] if payload.notes else "Sipariş Faturası",
        "issue_date": payload.issue_date.isoformat(),
        "due_date": (payload.due_date or payload.issue_date).isoformat(),
        "currency": CURRENCY_CODES.get(payload.currency, payload.currency),
        "exchange_rate": 1,
        "billing_address": customer.street or "",
        "billing_phone": customer.phone or "",
        "city": customer.city or "",
        "district": customer.district or "",
        "country": customer.country or "",
        "tax_number": customer.tax_number or "",
        "tax_office": customer.tax_office or "",
        "shipment_included": True,
    }
    if series:
        attributes["invoice_series"] = series
    if payload.invoice_id:
        attributes["invoice_id"] = payload.invoice_id
    return {
        "data": {
            "type": "sales_invoices",
            "attributes": attributes,
            "relationships": {
                "contact": relation("contacts", contact_id),
                "details": {"data": details},
            },
        }
    }


def payment_body(
    invoice_id: str,
    amount: Decimal,
    payment_date: date,
    account_id: Optional[str] = None,
) -> Dict[str, Any]:
    attributes: Dict[str, Any] = {
        "date": payment_date.isoformat(),
        "amount": money_float(amount),
        "notes": PAYMENT_NOTE,
    }
    if account_id:
        attributes["account_id"] = account_id
    return {
        "data": {
            "type": "payments",
            "attributes": attributes,
            "relationships": {"sales_invoice": relation("sales_invoices", invoice_id)},
        }
    }


def e_archive_body(
    invoice_id: str,
    payload: InvoicePayload,
    website: Optional[str],
    payment_platform: str,
    shipment_date: date,
) -> Dict[str, Any]:
    attributes: Dict[str, Any] = {}
    sale = payload.internet_sale
    if sale is not None:
        attributes["internet_sale"] = {
            "url": sale.website or website or "",
            "payment_type": sale.payment_method,
            "payment_platform": payment_platform,
            "payment_date": (sale.payment_date or payload.issue_date).isoformat(),
        }
    delivery = payload.delivery
    if delivery is not None:
        attributes["shipment"] = {
            "title": delivery.carrier_name,
            "vkn": delivery.carrier_tax_number,
            "name": SHIPMENT_NAME,
            "date": (delivery.despatch_date or shipment_date).isoformat(),
        }
    return {
        "data": {
            "type": "e_archives",
            "attributes": attributes,
            "relationships": {"sales_invoice": relation("sales_invoices", invoice_id)},
        }
    }
