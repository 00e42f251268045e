"""StockMount driver.

Every call is a JSON POST. ``/api/user/dologin`` returns an ``ApiCode``
valid for an hour, which is sent as a body field on each later call.
Failures come back as HTTP 200 with ``Result: false``; ``ErrorCode 00006``
means the session expired and is treated like a 401.

Orders need a store id on top of the session. It is looked up once and
cached for a day.

Required credentials: username/password or api_key/api_secret

Optional custom settings:
- store_id: skip the store lookup
- product_source_id: catalog source used for products (default: first source)
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.fallbacks import join_address, local_phone, split_full_name
from core.mapping.money import money_float
from core.mapping.products import LookupCache, ProductFieldMap, map_product
from core.models.canonical import CanonicalOrder
from core.models.invoice import InvoicePayload
from core.models.results import OperationResult
from core.security.credential_store import store_key
from drivers.auth.strategies import SessionToken
from drivers.base import ProviderDriver, driver_operation, register_driver
from drivers.errors import (
    AuthenticationError,
    ConfigurationError,
    DriverError,
    PayloadValidationError,
    ProviderRejectedError,
    SchemaMismatchError,
)
from drivers.transport import TransportResponse

SESSION_EXPIRED = "00006"
STORE_TTL = 24 * 3600
STORE_MARKER = "stockmount"

PRODUCT_DEFAULTS = {
    "CurrencyId": 1,
    "Quantity": 10,
    "TaxRate": 20,
    "Category": "Genel",
    "Images": [],
    "Status": 1,
}

PRODUCT_FIELDS = ProductFieldMap(
    id=("ProductId",),
    sku=("Code",),
    name=("Name",),
    description=("Description", "Subtitle"),
    price=("Price",),
    cost=("BuyPrice",),
    stock=("Quantity",),
    vat_rate=("TaxRate",),
    barcode=("Barcode",),
    category_name=("Category",),
    brand=("Brand",),
)


def _login_payload(credential) -> Dict[str, Any]:
    if credential.username and credential.password:
        return {"Username": credential.username, "Password": credential.password}
    return {
        "ApiKey": credential.api_key,
        "ApiPassword": credential.api_secret or credential.value("api_password"),
    }


@register_driver("stockmount")
class StockMountDriver(ProviderDriver):
    """StockMount integration API."""

    display_name = "StockMount"
    default_base_url = "https://out.stockmount.com"
    credential_groups = (("username", "password"), ("api_key", "api_secret"))

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sources = LookupCache(ttl_seconds=STORE_TTL)

    def build_auth_strategy(self) -> SessionToken:
        return SessionToken(
            login_url=f"{self.base_url}/api/user/dologin",
            login_payload=_login_payload,
            token_path=("Response.ApiCode",),
            lifetime_seconds=3600,
            placement="body",
            body_field="ApiCode",
            success_path="Result",
        )

    def check_response(self, response: TransportResponse) -> None:
        super().check_response(response)
        body = PayloadAccessor(response.json())
        if body.text("ErrorCode") == SESSION_EXPIRED:
            raise AuthenticationError("StockMount session expired", 401, response.text)
        if body.has("Result") and not body.boolean("Result"):
            raise ProviderRejectedError(
                body.text(["ErrorMessage", "Message"], default="StockMount rejected the request"),
                body.text("ErrorCode"),
                response.status,
                response.text,
            )

    async def _call(self, path: str, body: Optional[Dict[str, Any]] = None) -> PayloadAccessor:
        """POST and return the ``Response`` member."""
        reply = await self._request_json("POST", path, json=dict(body or {}))
        if not isinstance(reply, dict):
            raise SchemaMismatchError(f"StockMount {path} returned a non-object body", response_body=str(reply)[:500])
        return PayloadAccessor({"Response": reply.get("Response")})

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        # Forcing a login is the only side-effect-free check StockMount offers.
        record = await self.auth.ensure_token(force=True)
        stores = (await self._call("/api/Integration/GetStore")).items("Response")
        return OperationResult.ok(
            "Connected to StockMount",
            data={"store_count": len(stores), "token_expires_at": record.expires_at.isoformat()},
        )

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        source_id = await self._product_source_id()
        reply = await self._call(
            "/api/Product/GetProducts",
            {"ProductSourceId": source_id, "RowsByPage": page_size, "PageIndex": page},
        )
        products = []
        for raw in reply.items("Response.Products"):
            image = PayloadAccessor(raw).text("Image")
            products.append(map_product(
                raw,
                PRODUCT_FIELDS,
                provider=self.name,
                images=[image] if image else [],
                policy=self.policy,
            ))
        total = reply.integer("Response.TotalProductCount", default=len(products))
        return self.products_page(products, page, page_size, total=total, has_more=page * page_size < total)

    async def _product_source_id(self) -> str:
        configured = self.config.setting("product_source_id")
        if configured:
            return str(configured)
        return await self.sources.get_or_load("first", self._first_product_source)

    async def _first_product_source(self) -> str:
        sources = (await self._call("/api/Product/GetProductSources")).items("Response")
        if not sources:
            raise ProviderRejectedError("StockMount account has no product source", "no_product_source")
        source_id = PayloadAccessor(sources[0]).text("ProductSourceId")
        if not source_id:
            raise SchemaMismatchError("StockMount product source has no ProductSourceId", response_body=str(sources[0])[:500])
        return source_id

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        return await self._set_order(self.order_criteria(order))

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        """StockMount has no invoices; the payload is recorded as an order."""
        return await self._set_order(self.invoice_criteria(payload))

    async def _set_order(self, criteria: Dict[str, Any]) -> OperationResult:
        if not criteria["OrderDetails"]:
            raise PayloadValidationError("Order has no lines", field="OrderDetails")
        store_id = await self._resolve_store_id()

        # SetOrder fails on unknown product codes.
        for detail in criteria["OrderDetails"]:
            await self._ensure_product(detail)

        reply = await self._call("/api/Integration/SetOrder", {"StoreId": store_id, "Order": criteria})
        return OperationResult.ok(
            "Order created",
            data={
                "order_id": reply.text("Response.OrderId"),
                "order_code": criteria["IntegrationOrderCode"],
                "store_id": store_id,
            },
        )

    async def _ensure_product(self, detail: Dict[str, Any]) -> None:
        code = detail["IntegrationProductCode"]
        if not code:
            return
        try:
            await self._add_product({
                "Code": code,
                "Name": detail["ProductName"] or f"Urun {code}",
                "Price": detail["Price"],
                "Description": "Siparis esnasinda otomatik olusturuldu",
                "Barcode": detail["Barcode"],
            })
        except DriverError as e:
            self.logger.warning(f"Could not pre-create product {code}: {e.message}")

    # =========================================================================
    # Payload mapping
    # =========================================================================

    def _criteria(self, code: str, full_name: str, company: Optional[str], when: str, tax_number: Optional[str],
                  tax_office: Optional[str], phone: Optional[str], address: str, district: Optional[str],
                  city: Optional[str], postal_code: Optional[str], notes: str) -> Dict[str, Any]:
        first_name, last_name = split_full_name(full_name, self.policy)
        if not city and district:
            city, district = district, self.policy.district
        return {
            "IntegrationOrderCode": code,
            "Nickname": full_name,
            "Fullname": full_name,
            "Name": first_name,
            "Surname": last_name,
            "CompanyTitle": company or full_name or "Bireysel",
            "OrderDate": when,
            "ListingStatus": "New",
            "OrderStatus": "New",
            "PersonalIdentification": "",
            "TaxNumber": tax_number or "",
            "TaxAuthority": tax_office or "",
            "Telephone": local_phone(phone, self.policy),
            "Address": address,
            "District": district or self.policy.district,
            "City": city or self.policy.city,
            "ZipCode": postal_code or self.policy.postal_code,
            "Notes": notes,
            "OrderDetails": [],
        }

    @staticmethod
    def _detail(criteria: Dict[str, Any], code: str, name: str, quantity, price: Decimal, vat: Decimal,
                barcode: Optional[str]) -> Dict[str, Any]:
        return {
            "IntegrationProductCode": code,
            "ProductName": name,
            "Quantity": quantity,
            "Price": money_float(price),
            "Telephone": criteria["Telephone"],
            "Address": criteria["Address"],
            "District": criteria["District"],
            "City": criteria["City"],
            "ZipCode": criteria["ZipCode"],
            "DeliveryTitle": criteria["Fullname"],
            "TaxRate": money_float(vat),
            "Barcode": barcode or "",
            "ProductCode": code,
            "CargoPayment": "Buyer",
        }

    def order_criteria(self, order: CanonicalOrder) -> Dict[str, Any]:
        customer = order.customer
        address = order.billing
        full_name = customer.display_name or self.policy.customer_name
        criteria = self._criteria(
            order.order_number,
            full_name,
            customer.company_name,
            (order.created_at or datetime.now(timezone.utc)).isoformat(),
            customer.tax_number,
            customer.tax_office,
            customer.phone,
            join_address(address.line1, address.line2, address.district, address.city, policy=self.policy),
            address.district,
            address.city,
            address.postal_code,
            order.note or "",
        )
        for line in order.lines:
            criteria["OrderDetails"].append(self._detail(
                criteria,
                line.sku or line.product_id or "",
                line.name,
                line.quantity,
                line.unit_price,
                line.vat_rate if line.vat_rate is not None else self.policy.vat_rate,
                line.barcode,
            ))
        return criteria

    def invoice_criteria(self, payload: InvoicePayload) -> Dict[str, Any]:
        party = payload.customer
        full_name = party.name or self.policy.customer_name
        criteria = self._criteria(
            payload.order_reference or payload.invoice_id,
            full_name,
            None if party.is_person else party.name,
            f"{payload.issue_date.isoformat()}T{payload.issue_time}",
            party.tax_number,
            party.tax_office,
            party.phone,
            join_address(party.street, party.district, party.city, policy=self.policy),
            party.district,
            party.city,
            party.postal_code,
            "; ".join(payload.notes),
        )
        for line in payload.lines:
            criteria["OrderDetails"].append(self._detail(
                criteria,
                line.sku or line.product_id or "",
                line.name,
                self.whole_quantity(line.quantity),
                line.unit_price,
                line.vat_rate,
                None,
            ))
        return criteria

    # =========================================================================
    # Stores
    # =========================================================================

    @driver_operation
    async def get_stores(self) -> OperationResult:
        stores = await self._stores()
        return OperationResult.ok("Stores fetched", data={"stores": stores})

    async def _stores(self) -> List[Dict[str, Any]]:
        return (await self._call("/api/Integration/GetStore")).items("Response")

    @driver_operation
    async def resolve_store_id(self) -> OperationResult:
        return OperationResult.ok("Store resolved", data={"store_id": await self._resolve_store_id()})

    async def _resolve_store_id(self) -> str:
        """Store that receives orders.

        Prefers the store whose integration is StockMount itself, else the
        first one. Cached for a day.
        """
        configured = self.config.setting("store_id")
        if configured:
            return str(configured)

        key = store_key(self.name, self.tenant_id, "store_id")
        cached = await self.store.get(key)
        if cached and cached.get("store_id"):
            return cached["store_id"]

        stores = await self._stores()
        if not stores:
            raise ConfigurationError("StockMount account has no store to receive orders")
        chosen = stores[0]
        for store in stores:
            if STORE_MARKER in PayloadAccessor(store).text("IntegrationName", default="").lower():
                chosen = store
                break
        store_id = PayloadAccessor(chosen).text("StoreId")
        if not store_id:
            raise SchemaMismatchError("StockMount store has no StoreId", response_body=str(chosen)[:500])

        await self.store.set(key, {"store_id": store_id}, ttl_seconds=STORE_TTL)
        self.logger.info(f"Using StockMount store {store_id}")
        return store_id

    # =========================================================================
    # Products
    # =========================================================================

    @driver_operation
    async def add_product(self, product: Dict[str, Any]) -> OperationResult:
        """Create a product from StockMount-shaped fields; defaults fill the rest."""
        if not product.get("Code"):
            raise PayloadValidationError("Product code is required", field="Code")
        response = await self._add_product(product)
        return OperationResult.ok("Product added", data={"product": response})

    async def _add_product(self, product: Dict[str, Any]) -> Any:
        body = dict(PRODUCT_DEFAULTS)
        body["ProductSourceId"] = await self._product_source_id()
        body.update(product)
        return (await self._call("/api/Product/AddProduct", body)).get("Response")
