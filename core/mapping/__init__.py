"""Core mapping - provider payloads to canonical models and back.

This module provides the provider-neutral pieces of field mapping:
defaulting payload access, monetary formatting, fallback values,
product mapping, order-to-invoice and order-to-shipment conversion.

Provider-specific field locations are declared by each driver.
"""

from core.mapping.accessor import PayloadAccessor, first_present
from core.mapping.carriers import Carrier, CARGO_COMPANIES, resolve_carrier, payment_type
from core.mapping.fallbacks import (
    FallbackPolicy,
    DEFAULT_FALLBACKS,
    normalize_phone,
    local_phone,
    generate_sku,
    split_full_name,
    join_address,
    customer_tax_number,
)
from core.mapping.invoices import build_invoice_payload, build_line, customer_party, summarize
from core.mapping.money import to_decimal, to_money, format_money, format_rate, money_float
from core.mapping.products import ProductFieldMap, map_product, LookupCache
from core.mapping.shipments import build_shipment, order_parcels

__all__ = [
    "PayloadAccessor",
    "first_present",
    "Carrier",
    "CARGO_COMPANIES",
    "resolve_carrier",
    "payment_type",
    "FallbackPolicy",
    "DEFAULT_FALLBACKS",
    "normalize_phone",
    "local_phone",
    "generate_sku",
    "split_full_name",
    "join_address",
    "customer_tax_number",
    "build_invoice_payload",
    "build_line",
    "customer_party",
    "summarize",
    "to_decimal",
    "to_money",
    "format_money",
    "format_rate",
    "money_float",
    "ProductFieldMap",
    "map_product",
    "LookupCache",
    "build_shipment",
    "order_parcels",
]
