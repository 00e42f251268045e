"""Dopigo ERP driver.

Multipart login returns an opaque token that stays valid for about a month;
it is sent as ``Authorization: Token <t>``. Calls are spaced at least half a
second apart.

Products come grouped: each result is a product *meta* (name, description,
category, VAT) with its sellable variants under ``products``. Sync flattens
the variants and skips archived metas. Dopigo has no category endpoint, so
names are read from the meta detail.

Required credentials: username, password

Optional custom settings:
- service_name / sales_channel: how orders are labeled in Dopigo
"""

import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.fallbacks import join_address, normalize_phone
from core.mapping.money import format_money
from core.mapping.products import LookupCache, ProductFieldMap, map_product
from core.models.canonical import Address, CanonicalOrder, CategoryRef
from core.models.invoice import InvoicePayload
from core.models.results import OperationResult
from drivers.auth.strategies import SessionToken
from drivers.base import ProviderDriver, driver_operation, register_driver
from drivers.errors import DriverError, PayloadValidationError, SchemaMismatchError
from drivers.rate_limit import RateLimitRule

TOKEN_LIFETIME = 30 * 24 * 3600
CATEGORY_TTL = 24 * 3600
DEFAULT_SERVICE_NAME = "i-eczane"
DEFAULT_SALES_CHANNEL = "i-eczane.com"
META_VAT = Decimal("18")

VARIANT_FIELDS = ProductFieldMap(
    id=("id",),
    sku=("sku",),
    name=("invoice_name",),
    price=("price",),
    cost=("purchase_price",),
    stock=("stock",),
    barcode=("barcode",),
    images=("images",),
    currency=("price_currency",),
)


def _login_payload(credential) -> Dict[str, Any]:
    return {"username": credential.username, "password": credential.password}


@register_driver("dopigo")
class DopigoDriver(ProviderDriver):
    """Dopigo REST API."""

    display_name = "Dopigo"
    default_base_url = "https://panel.dopigo.com"
    required_credentials = ("username", "password")
    default_rate_limits = (RateLimitRule(limit=120, period_seconds=60, min_interval_seconds=0.5),)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Category names outlive a single sync run.
        self.categories = LookupCache(ttl_seconds=CATEGORY_TTL)

    def build_auth_strategy(self) -> SessionToken:
        return SessionToken(
            login_url=f"{self.base_url}/users/get_auth_token/",
            login_payload=_login_payload,
            token_path=("token",),
            lifetime_seconds=TOKEN_LIFETIME,
            body_format="multipart",
            header_prefix="Token",
        )

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        body = PayloadAccessor(self.expect_dict(
            await self._request_json("GET", "/api/v1/products/all/", params={"page_size": 1}),
            "product list",
        ))
        return OperationResult.ok("Connected to Dopigo", data={"product_count": body.integer("count")})

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        body = PayloadAccessor(self.expect_dict(
            await self._request_json("GET", "/api/v1/products/all/", params={"page": page, "page_size": page_size}),
            "product list",
        ))
        products = []
        skipped = 0
        for meta in body.items("results"):
            if PayloadAccessor(meta).boolean("archived"):
                skipped += 1
                continue
            products.extend(await self._flatten_meta(meta))

        if skipped:
            self.logger.debug(f"Skipped {skipped} archived product metas")
        return self.products_page(
            products,
            page,
            page_size,
            total=body.integer("count", default=len(products)),
            has_more=body.has("next"),
            next_cursor=body.text("next"),
        )

    async def _flatten_meta(self, meta: Dict[str, Any]) -> List[Any]:
        acc = PayloadAccessor(meta)
        meta_id = acc.text("meta_id")
        category = None
        category_id = acc.text(["category.id", "category"])
        if category_id:
            name = acc.text("category.name")
            if not name and meta_id:
                name = await self.categories.get_or_load(category_id, lambda: self._category_name(meta_id))
            category = CategoryRef(id=category_id, name=name)

        variants = []
        for variant in acc.items("products"):
            v = PayloadAccessor(variant)
            variants.append(map_product(
                variant,
                VARIANT_FIELDS,
                provider=self.name,
                category=category,
                overrides={
                    "name": v.text("invoice_name") or acc.text("name", default=""),
                    "description": acc.text("description"),
                    "vat_rate": acc.decimal("vat", default=META_VAT),
                },
                policy=self.policy,
            ))
        return variants

    async def _category_name(self, meta_id: str) -> Optional[str]:
        try:
            detail = await self._request_json("GET", f"/api/v1/products/product_meta/{meta_id}/")
        except DriverError as e:
            self.logger.warning(f"Category lookup through meta {meta_id} failed: {e.message}")
            return None
        return PayloadAccessor(detail).text("category.name")

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        return await self._push_order(self.order_body(order), order.order_number)

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        """Dopigo invoices follow orders; the payload is pushed as its order."""
        if not payload.order_reference:
            raise PayloadValidationError("Dopigo invoices need the order reference", field="order_reference")
        return await self._push_order(self.invoice_order_body(payload), payload.order_reference)

    async def _push_order(self, body: Dict[str, Any], order_number: str) -> OperationResult:
        if not body["items"]:
            raise PayloadValidationError("Order has no items", field="items")
        self.logger.info(
            f"Pushing order {order_number} to Dopigo",
            extra_fields={"items": len(body["items"]), "total": body["total"]},
        )
        reply = await self._request_json("POST", "/api/v1/orders/", json=body)
        if not isinstance(reply, dict):
            raise SchemaMismatchError("Dopigo order response is not an object", response_body=str(reply)[:500])
        acc = PayloadAccessor(reply)
        return OperationResult.ok(
            "Order sent to Dopigo",
            data={
                "order_id": acc.text("id"),
                "order_number": acc.text("service_value", default=order_number),
                "invoice_number": acc.text("invoice_number"),
            },
        )

    # =========================================================================
    # Payload mapping
    # =========================================================================

    def _address(self, address: Address, name: str, phone: Optional[str]) -> Dict[str, Any]:
        return {
            "full_address": join_address(address.line1, address.line2, policy=self.policy),
            "contact_full_name": name,
            "contact_phone_number": normalize_phone(phone, self.policy),
            "city": address.city or "",
            "district": address.district or "",
            "zip_code": address.postal_code or "",
        }

    def _envelope(self, **fields) -> Dict[str, Any]:
        body = {
            "service": 1,
            "service_name": self.config.setting("service_name", DEFAULT_SERVICE_NAME),
            "sales_channel": self.config.setting("sales_channel", DEFAULT_SALES_CHANNEL),
            "shipped_date": None,
            "payment_type": "undefined",
            "status": "shipped",
            "discount": None,
            # Dopigo rejects archived inbound orders.
            "archived": False,
        }
        body.update(fields)
        return body

    @staticmethod
    def _item(service_item_id: str, product_id: str, sku: str, name: str, quantity, unit_price: Decimal,
              vat: Decimal, shipment_code: Optional[str] = None) -> Dict[str, Any]:
        return {
            "service_item_id": service_item_id,
            "service_product_id": product_id,
            "service_shipment_code": shipment_code,
            "sku": sku,
            "attributes": "",
            "name": name,
            "amount": quantity,
            "price": format_money(unit_price * Decimal(quantity)),
            "unit_price": format_money(unit_price),
            "shipment_campaign_code": None,
            "buyer_pays_shipment": False,
            "status": "shipped",
            "vat": float(vat),
            "tax_ratio": float(vat),
            "product": {"sku": sku},
        }

    def order_body(self, order: CanonicalOrder) -> Dict[str, Any]:
        customer = order.customer
        full_name = customer.display_name or self.policy.customer_name
        shipping = self._address(order.shipping, full_name, customer.phone)
        billing = self._address(order.billing, full_name, customer.phone)
        order_key = order.id or order.code

        items = []
        for line in order.lines:
            product_id = line.product_id or line.sku or line.name
            sku = line.sku or line.barcode or f"PROD-{product_id}"
            items.append(self._item(
                # Must be unique per push.
                f"{order_key}-{product_id}-{uuid.uuid4().hex[:8]}",
                str(product_id),
                sku,
                line.name,
                line.quantity,
                line.unit_price,
                line.vat_rate if line.vat_rate is not None else self.policy.vat_rate,
                order.tracking_number,
            ))

        total = order.total
        if total is None:
            total = sum((l.unit_price * l.quantity for l in order.lines), Decimal("0")) + order.shipping_charge

        is_company = bool(customer.tax_number)
        return self._envelope(
            service_created=(order.created_at.strftime("%Y-%m-%d %H:%M:%S") if order.created_at else None),
            service_value=order.order_number,
            service_order_id=str(order_key),
            customer={
                "account_type": "company" if is_company else "person",
                "full_name": full_name,
                "address": shipping,
                "email": customer.email or "",
                "phone_number": normalize_phone(customer.phone, self.policy),
                "tax_id": customer.tax_number if is_company else None,
                "tax_office": customer.tax_office if is_company else None,
                "company_name": (customer.company_name or "") if is_company else "",
            },
            billing_address=billing,
            shipping_address=shipping,
            total=format_money(total),
            service_fee=format_money(order.shipping_charge),
            notes=order.note or "",
            items=items,
        )

    def invoice_order_body(self, payload: InvoicePayload) -> Dict[str, Any]:
        party = payload.customer
        name = party.name or self.policy.customer_name
        address = self._address(
            Address(line1=party.street, district=party.district, city=party.city, postal_code=party.postal_code),
            name,
            party.phone,
        )
        is_company = not party.is_person
        items = [
            self._item(
                f"{payload.order_reference}-{index}",
                line.product_id or line.sku or str(index),
                line.sku or f"PROD-{line.product_id or index}",
                line.name,
                self.whole_quantity(line.quantity),
                line.unit_price,
                line.vat_rate,
            )
            for index, line in enumerate(payload.lines, start=1)
        ]
        return self._envelope(
            service_created=payload.issue_date.strftime("%Y-%m-%d 00:00:00"),
            service_value=payload.order_reference,
            service_order_id=payload.order_id or payload.order_reference,
            customer={
                "account_type": "company" if is_company else "person",
                "full_name": name,
                "address": address,
                "email": party.email or "",
                "phone_number": normalize_phone(party.phone, self.policy),
                "tax_id": party.tax_number if is_company else None,
                "tax_office": party.tax_office if is_company else None,
                "company_name": name if is_company else "",
            },
            billing_address=address,
            shipping_address=address,
            total=format_money(payload.totals.payable),
            service_fee=format_money(Decimal("0")),
            notes="; ".join(payload.notes),
            items=items,
        )

    # =========================================================================
    # Extensions
    # =========================================================================

    @driver_operation
    async def clear_token(self) -> OperationResult:
        """Drop the cached session token; the next call logs in again."""
        await self.auth.invalidate()
        return OperationResult.ok("Token cleared")
