"""Sentos driver.

HTTP Basic auth on every call, built from username/password or the older
api_key/api_secret pair. Each tenant has its own panel host; the API lives
under ``<panel>/api``. Budgets differ by method: 2 GET and 12 POST per
minute. Category name lookups made while syncing products are metered on
a budget of their own so they do not eat into the GET allowance.

Sentos does not accept pushed orders; ``sync_order`` reads the order back
by its code. Invoices are attached to an existing Sentos order.

Required credentials: username/password or api_key/api_secret

Optional custom settings (or credential extras):
- panel_url: full panel URL, or a bare subdomain (also ``subdomain`` / ``firm_name``)
- invoice_type: default EARSIV
"""

import json
from decimal import Decimal
from typing import Any, Dict, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.products import LookupCache, ProductFieldMap, map_product
from core.models.canonical import CanonicalOrder, CategoryRef
from core.models.invoice import InvoicePayload
from core.models.results import OperationResult
from drivers.auth.strategies import BasicStatic
from drivers.base import ProviderDriver, driver_operation, register_driver
from drivers.errors import DriverError, PayloadValidationError, ProviderRejectedError
from drivers.rate_limit import RateLimitRule

FALLBACK_BASE_URL = "https://api.sentos.com.tr/api"
DEFAULT_INVOICE_TYPE = "EARSIV"
LOOKUP_CLASS = "lookup"

PRODUCT_FIELDS = ProductFieldMap(
    id=("id",),
    sku=("sku",),
    name=("name",),
    description=("description",),
    price=("sale_price",),
    cost=("purchase_price",),
    vat_rate=("vat_rate",),
    barcode=("barcode",),
    brand=("brand",),
    images=("images",),
    currency=("currency",),
    default_vat=Decimal("20"),
)


def _flatten_text(value: Any) -> Optional[str]:
    """Localized fields arrive as ``{"tr": ..., "en": ...}`` objects."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, ensure_ascii=False)
    return value


def _total_stock(raw: Dict[str, Any]) -> int:
    total = 0
    for entry in PayloadAccessor(raw).items("stocks"):
        total += PayloadAccessor(entry).integer("stock")
    return total


@register_driver("sentos")
class SentosDriver(ProviderDriver):
    """Sentos REST API."""

    display_name = "Sentos"
    credential_groups = (("username", "password"), ("api_key", "api_secret"))
    default_rate_limits = (
        RateLimitRule(limit=2, period_seconds=60, operation_class="get"),
        RateLimitRule(limit=12, period_seconds=60, operation_class="post"),
        RateLimitRule(limit=60, period_seconds=60, operation_class=LOOKUP_CLASS),
    )

    def build_auth_strategy(self) -> BasicStatic:
        return BasicStatic()

    def resolve_base_url(self) -> str:
        panel = None
        for name in ("panel_url", "subdomain", "firm_name"):
            panel = self.config.setting(name) or self.credential.value(name)
            if panel:
                break
        if not panel:
            return FALLBACK_BASE_URL
        panel = panel.rstrip("/")
        if panel.lower().startswith(("http://", "https://")):
            return f"{panel}/api"
        return f"https://{panel}.sentos.com.tr/api"

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        warehouses = await self._request_json("GET", "/warehouses")
        count = len(warehouses) if isinstance(warehouses, list) else len(PayloadAccessor(warehouses).items("data"))
        return OperationResult.ok(
            "Connected to Sentos",
            data={"endpoint": self.base_url, "warehouse_count": count},
        )

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        body = PayloadAccessor(self.expect_dict(
            await self._request_json(
                "GET",
                "/products",
                params={"page": page, "size": page_size, "include": "category"},
            ),
            "product list",
        ))
        categories = LookupCache()
        products = []
        for raw in body.items("data"):
            acc = PayloadAccessor(raw)
            category = None
            category_id = acc.text(["category_id", "category.id"])
            if category_id:
                name = acc.text(["category.name", "category.data.name"])
                if not name:
                    name = await self._category_name(categories, category_id)
                category = CategoryRef(id=category_id, name=name)
            products.append(map_product(
                raw,
                PRODUCT_FIELDS,
                provider=self.name,
                category=category,
                stock=_total_stock(raw),
                overrides={
                    "name": _flatten_text(raw.get("name")),
                    "description": _flatten_text(raw.get("description")),
                },
                policy=self.policy,
            ))
        self.logger.info(
            f"Sentos page {page}: {len(products)} products, {len(categories)} categories resolved"
        )
        return self.products_page(products, page, page_size)

    async def _category_name(self, categories: LookupCache, category_id: str) -> Optional[str]:
        """Category name by id; a failed lookup leaves the name empty and is retried next time."""
        try:
            return await categories.get_or_load(category_id, lambda: self._fetch_category_name(category_id))
        except DriverError as e:
            self.logger.warning(f"Category {category_id} lookup failed: {e.message}")
            return None

    async def _fetch_category_name(self, category_id: str) -> Optional[str]:
        data = await self._request_json("GET", f"/categories/{category_id}", rate_class=LOOKUP_CLASS)
        return PayloadAccessor(data if isinstance(data, dict) else {"data": data}).text(["data.0.name", "data.name", "name"])

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        """Read the Sentos copy of an order by its marketplace code."""
        data = await self._request_json("GET", "/orders", params={"order_code": order.order_number})
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            data = data["data"]
        orders = data if isinstance(data, list) else [data]
        if not orders or not orders[0]:
            raise ProviderRejectedError(f"Order {order.order_number} not found in Sentos", "not_found")
        found = PayloadAccessor(orders[0])
        return OperationResult.ok(
            "Order fetched",
            data={
                "order_id": found.text("id"),
                "order_code": found.text("order_code"),
                "status": found.text("status"),
                "total": found.text("total"),
            },
        )

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        """Attach an already issued invoice to its Sentos order."""
        if not payload.order_id:
            raise PayloadValidationError("Sentos invoices need the Sentos order id", field="order_id")
        if not payload.invoice_id:
            raise PayloadValidationError("Invoice number is required", field="invoice_id")
        reply = await self._request_json(
            "POST",
            f"/orders/invoice/{payload.order_id}",
            json=self._invoice_body(payload.invoice_id, payload.document_url),
        )
        reply = PayloadAccessor(reply if isinstance(reply, dict) else {})
        return OperationResult.ok(
            "Invoice attached",
            data={
                "invoice_id": reply.text("id"),
                "invoice_number": reply.text("invoice_number", default=payload.invoice_id),
                "invoice_url": reply.text("invoice_url", default=payload.document_url),
            },
        )

    def _invoice_body(self, invoice_number: Optional[str], invoice_url: Optional[str], invoice_type: Optional[str] = None) -> Dict[str, Any]:
        return {
            "invoice_type": invoice_type or self.config.setting("invoice_type", DEFAULT_INVOICE_TYPE),
            "invoice_number": invoice_number,
            "invoice_url": invoice_url,
        }

    # =========================================================================
    # Extensions
    # =========================================================================

    @driver_operation
    async def get_categories(self) -> OperationResult:
        data = await self._request_json("GET", "/categories")
        categories = data if isinstance(data, list) else PayloadAccessor(data).items("data")
        return OperationResult.ok("Categories fetched", data={"categories": categories})

    @driver_operation
    async def update_invoice(
        self,
        invoice_id: str,
        invoice_number: Optional[str] = None,
        invoice_url: Optional[str] = None,
        invoice_type: Optional[str] = None,
    ) -> OperationResult:
        reply = await self._request_json(
            "PUT",
            f"/orders/invoice/{invoice_id}",
            json=self._invoice_body(invoice_number, invoice_url, invoice_type),
        )
        return OperationResult.ok("Invoice updated", data={"invoice_id": invoice_id, "response": reply})

    @driver_operation
    async def delete_invoice(self, invoice_id: str) -> OperationResult:
        await self._send("DELETE", f"/orders/invoice/{invoice_id}")
        return OperationResult.ok("Invoice deleted", data={"invoice_id": invoice_id})
