"""Entegra ERP driver.

JWT obtain/refresh pair sent as ``Authorization: JWT <access>``. The
account budget is 7200 requests per hour and token calls count against it,
so auth requests pass through the same rate gate.

Entegra has no invoice resource; invoices are pushed as orders.

Required credentials: username (account email), password
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.fallbacks import normalize_phone, split_full_name
from core.mapping.money import money_float
from core.mapping.products import ProductFieldMap, map_product
from core.models.canonical import CanonicalOrder
from core.models.invoice import InvoicePayload
from core.models.results import OperationResult
from drivers.auth.strategies import JwtObtainRefresh
from drivers.base import ProviderDriver, driver_operation, register_driver
from drivers.errors import PayloadValidationError, ProviderRejectedError
from drivers.rate_limit import RateLimitRule

MAX_ORDER_PAGE = 200

KDV_RATES = tuple(Decimal(r) for r in ("0", "8", "10", "18"))

PRODUCT_REQUIRED_FIELDS = (
    "status",
    "quantity",
    "group",
    "productName",
    "productCode",
    "barcode",
    "price1",
    "kdv_id",
    "currencyType",
)

PRODUCT_FIELDS = ProductFieldMap(
    id=("id",),
    sku=("productCode",),
    name=("name", "productName"),
    description=("description",),
    price=("price2", "price1"),
    cost=("buying_price",),
    stock=("quantity",),
    vat_rate=("kdv_id",),
    barcode=("barcode",),
    category_id=("group",),
    brand=("brand",),
    images=("product_pictures", "pictures"),
    currency=("currencyType",),
    default_vat=Decimal("18"),
    allowed_vat_rates=KDV_RATES,
)


@register_driver("entegra")
class EntegraDriver(ProviderDriver):
    """Entegra API v2."""

    display_name = "Entegra"
    default_base_url = "https://apiv2.entegrabilisim.com"
    required_credentials = ("username", "password")
    default_rate_limits = (RateLimitRule(limit=7200, period_seconds=3600),)

    def build_auth_strategy(self) -> JwtObtainRefresh:
        return JwtObtainRefresh(
            obtain_url=f"{self.base_url}/api/user/token/obtain/",
            refresh_url=f"{self.base_url}/api/user/token/refresh/",
        )

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        try:
            await self._send("GET", "/store/getMarketplaceQuantitySettings")
            checked = "getMarketplaceQuantitySettings"
        except ProviderRejectedError as e:
            self.logger.debug(f"Quantity settings unavailable ({e.message}), trying stores")
            await self._send("GET", "/store/getStores")
            checked = "getStores"
        return OperationResult.ok("Connected to Entegra", data={"endpoint": checked})

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        body = PayloadAccessor(self.expect_dict(
            await self._request_json("GET", f"/product/page={page}/"),
            "product list",
        ))
        # "porductList" is the API's own spelling.
        raw_products = body.items(["porductList", "productList"])
        products = [
            map_product(raw, PRODUCT_FIELDS, provider=self.name, policy=self.policy)
            for raw in raw_products
        ]
        return self.products_page(
            products,
            page,
            page_size,
            total=body.integer("totalProduct", default=len(products)),
        )

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        return await self._create_order(self.order_body(order))

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        """Push the invoice as an order; Entegra has no invoice endpoint."""
        return await self._create_order(self.invoice_order_body(payload))

    async def _create_order(self, body: Dict[str, Any]) -> OperationResult:
        if not body["order_product"]:
            raise PayloadValidationError("Order has no products", field="order_product")
        reply = PayloadAccessor(self.expect_dict(await self._request_json("POST", "/order/", json=body), "order"))
        return OperationResult.ok(
            "Order created",
            data={
                "order_id": reply.text("id"),
                "order_number": reply.text(["no", "order_number"]),
            },
        )

    # =========================================================================
    # Payload mapping
    # =========================================================================

    def order_body(self, order: CanonicalOrder) -> Dict[str, Any]:
        customer = order.customer
        if customer.first_name and customer.last_name:
            first_name, last_name = customer.first_name, customer.last_name
        else:
            first_name, last_name = split_full_name(customer.display_name, self.policy)
        billing = order.billing
        shipping = order.shipping
        phone = normalize_phone(customer.phone, self.policy)

        lines = []
        for line in order.lines:
            lines.append({
                "product_id": line.product_id,
                "name": line.name,
                "model": line.sku or "",
                "quantity": line.quantity,
                "price": money_float(line.unit_price),
                "total": money_float(line.unit_price * line.quantity),
            })
        total = order.total
        if total is None:
            total = sum((line.unit_price * line.quantity for line in order.lines), Decimal("0")) + order.shipping_charge

        return {
            "order_number": order.order_number,
            "firstname": first_name,
            "lastname": last_name,
            "email": customer.email or "",
            "mobil_phone": phone,
            "telephone": phone,
            "invoice_address": billing.line1 or self.policy.address_text,
            "invoice_city": billing.city or self.policy.city,
            "invoice_district": billing.district or self.policy.district,
            "invoice_postcode": billing.postal_code or self.policy.postal_code,
            "ship_address": shipping.line1 or self.policy.address_text,
            "ship_city": shipping.city or self.policy.city,
            "ship_district": shipping.district or self.policy.district,
            "ship_postcode": shipping.postal_code or self.policy.postal_code,
            "total": money_float(total),
            "grand_total": money_float(total),
            "order_product": lines,
        }

    def invoice_order_body(self, payload: InvoicePayload) -> Dict[str, Any]:
        party = payload.customer
        if party.first_name and party.family_name:
            first_name, last_name = party.first_name, party.family_name
        else:
            first_name, last_name = split_full_name(party.name, self.policy)
        return {
            "order_number": payload.order_reference or payload.invoice_id,
            "firstname": first_name,
            "lastname": last_name,
            "email": party.email or "",
            "mobil_phone": party.phone or self.policy.phone,
            "telephone": party.phone or self.policy.phone,
            "invoice_address": party.street or self.policy.address_text,
            "invoice_city": party.city or self.policy.city,
            "invoice_district": party.district or self.policy.district,
            "invoice_postcode": party.postal_code or self.policy.postal_code,
            "ship_address": party.street or self.policy.address_text,
            "ship_city": party.city or self.policy.city,
            "ship_district": party.district or self.policy.district,
            "ship_postcode": party.postal_code or self.policy.postal_code,
            "total": money_float(payload.totals.tax_exclusive),
            "grand_total": money_float(payload.totals.payable),
            "order_product": [
                {
                    "product_id": line.product_id,
                    "name": line.name,
                    "model": line.sku or "",
                    "quantity": self.whole_quantity(line.quantity),
                    "price": money_float(line.unit_price),
                    "total": money_float(line.line_extension),
                }
                for line in payload.lines
            ],
        }

    # =========================================================================
    # Extensions
    # =========================================================================

    @driver_operation
    async def create_product(self, product: Dict[str, Any]) -> OperationResult:
        """Create a product from Entegra-shaped fields.

        Missing required fields fail locally; nothing is sent.
        """
        for name in PRODUCT_REQUIRED_FIELDS:
            if product.get(name) is None or product.get(name) == "":
                raise PayloadValidationError(f"Required product field is missing: {name}", field=name)

        body = {
            "status": int(product["status"]),
            "quantity": int(product["quantity"]),
            "group": int(product["group"]),
            "productCode": product["productCode"],
            "productName": product["productName"],
            "barcode": product["barcode"],
            "price1": money_float(product["price1"]),
            "kdv_id": int(product["kdv_id"]),
            "currencyType": product["currencyType"],
            "description": product.get("description", ""),
            "brand": product.get("brand", ""),
            "product_pictures": product.get("product_pictures", []),
            "supplier": product.get("supplier") or "Manual",
            "supplier_id": product.get("supplier_id") or product["productCode"],
        }
        for name, value in product.items():
            if name not in body and value is not None:
                body[name] = value

        reply = PayloadAccessor(self.expect_dict(
            await self._request_json("POST", "/product/", json={"list": [body]}),
            "product",
        ))
        return OperationResult.ok(
            "Product created",
            data={"product_id": reply.text(["id", "list.0.id"])},
        )

    @driver_operation
    async def get_orders(self, page: int = 1, limit: Optional[int] = None, **filters) -> OperationResult:
        """List orders. ``limit`` is capped at 200 by the API."""
        params: Dict[str, Any] = {
            k: v
            for k, v in filters.items()
            if k in ("id", "order_number", "supplier", "status", "start_date", "end_date") and v is not None
        }
        if limit is not None:
            params["limit"] = min(int(limit), MAX_ORDER_PAGE)
        body = PayloadAccessor(self.expect_dict(
            await self._request_json("GET", f"/order/page={page}/", params=params or None),
            "order list",
        ))
        orders: List[Any] = body.items("orders")
        return OperationResult.ok(
            "Orders fetched",
            data={"orders": orders, "total": body.integer("totalOrder", default=len(orders))},
        )
