"""BizimHesap B2B driver.

Static ``Key`` and ``Token`` headers on every call; the Key has a public
default for B2B integrations. Invoices go to ``/addinvoice`` with every
amount pre-computed as a two-decimal string.

Required credentials: firm_id, api_secret (the B2B token)
Optional: api_key (defaults to the public B2B key)
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.invoices import build_invoice_payload
from core.mapping.money import format_money, to_money
from core.mapping.products import ProductFieldMap, map_product
from core.models.canonical import CanonicalOrder
from core.models.invoice import InvoiceParty, InvoicePayload
from core.models.results import OperationResult
from drivers.auth.strategies import BasicStatic
from drivers.base import ProviderDriver, driver_operation, register_driver
from drivers.errors import PayloadValidationError

PUBLIC_B2B_KEY = "BZMHB2B724018943908D0B82491F203F"
SALES_INVOICE = 3
COMMISSION_VAT = Decimal("20")

# (field, product id, line name)
COMMISSION_LINES = (
    ("shipping_fee", "KARGO", "Kargo Bedeli"),
    ("platform_commission", "KOMISYON", "Platform Komisyonu"),
    ("pos_commission", "POS_KOM", "POS Komisyonu"),
    ("marketing_fee", "PAZARLAMA", "Pazarlama Bedeli"),
)

PRODUCT_FIELDS = ProductFieldMap(
    id=("id",),
    sku=("code", "sku"),
    name=("title", "name"),
    description=("description",),
    price=("price",),
    cost=("buyingPrice", "cost"),
    stock=("quantity", "stock"),
    vat_rate=("tax", "vat_rate"),
    barcode=("barcode",),
    category_name=("category",),
    brand=("brand",),
    images=("photo",),
    images_as_json=True,
    default_vat=Decimal("20"),
)


def detail_line(product_id: str, name: str, quantity, unit_price, vat_rate, barcode: Optional[str] = None) -> Dict[str, Any]:
    gross = to_money(to_money(unit_price) * Decimal(quantity))
    tax = to_money(gross * Decimal(vat_rate) / Decimal("100"))
    return {
        "productId": product_id,
        "productName": name,
        "note": "",
        "barcode": barcode or "",
        "taxRate": format_money(vat_rate),
        "quantity": quantity,
        "unitPrice": format_money(unit_price),
        "grossPrice": format_money(gross),
        "discount": "0.00",
        "net": format_money(gross),
        "tax": format_money(tax),
        "total": format_money(gross + tax),
    }


def amounts(details: List[Dict[str, Any]]) -> Dict[str, str]:
    gross = sum((Decimal(d["net"]) for d in details), Decimal("0"))
    tax = sum((Decimal(d["tax"]) for d in details), Decimal("0"))
    return {
        "currency": "TL",
        "gross": format_money(gross),
        "discount": "0.00",
        "net": format_money(gross),
        "tax": format_money(tax),
        "total": format_money(gross + tax),
    }


@register_driver("bizimhesap")
class BizimHesapDriver(ProviderDriver):
    """BizimHesap B2B API."""

    display_name = "BizimHesap"
    default_base_url = "https://bizimhesap.com/api/b2b"
    required_credentials = ("firm_id", "api_secret")

    def build_auth_strategy(self) -> BasicStatic:
        return BasicStatic(
            static_headers={"Key": "api_key", "Token": "api_secret"},
            header_defaults={"Key": PUBLIC_B2B_KEY},
        )

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        await self._send("GET", "/products", params={"limit": 1})
        return OperationResult.ok("Connected to BizimHesap", data={"firm_id": self.credential.firm_id})

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        data = await self._request_json("GET", "/products", params={"page": page, "limit": page_size})
        if isinstance(data, list):
            raw_products, total = data, None
        else:
            body = PayloadAccessor(data)
            raw_products = body.items("data.products") or body.items("data")
            total = body.integer("total", default=None)
        products = [
            map_product(raw, PRODUCT_FIELDS, provider=self.name, policy=self.policy)
            for raw in raw_products
            if isinstance(raw, dict)
        ]
        return self.products_page(products, page, page_size, total=total if total is not None else len(products))

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        payload = build_invoice_payload(order, self.supplier_party(), self.policy)
        return await self._add_invoice(self.invoice_body(payload))

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        return await self._add_invoice(self.invoice_body(payload))

    async def _add_invoice(self, body: Dict[str, Any]) -> OperationResult:
        if not body["details"]:
            raise PayloadValidationError("Invoice has no lines", field="details")
        reply = await self._request_json("POST", "/addinvoice", json=body)
        acc = PayloadAccessor(reply if isinstance(reply, dict) else {})
        return OperationResult.ok(
            "Invoice created",
            data={
                "invoice_no": body["invoiceNo"],
                "invoice_id": acc.text(["guid", "id", "data.guid", "data.id"]),
                "url": acc.text(["url", "data.url"]),
                "total": body["amounts"]["total"],
            },
        )

    # =========================================================================
    # Payload mapping
    # =========================================================================

    def _envelope(self, invoice_no: str, note: str, issued: date, due: date, customer: Dict[str, Any],
                  details: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "firmId": self.credential.firm_id,
            "invoiceNo": invoice_no,
            "invoiceType": SALES_INVOICE,
            "note": note,
            "dates": {
                "invoiceDate": f"{issued.isoformat()}T00:00:00",
                "dueDate": f"{due.isoformat()}T00:00:00",
            },
            "customer": customer,
            "amounts": amounts(details),
            "details": details,
        }

    @staticmethod
    def _customer(customer_id: str, party: InvoiceParty) -> Dict[str, Any]:
        return {
            "customerId": customer_id,
            "title": party.name or "",
            "taxOffice": party.tax_office or "",
            "taxNo": party.tax_number or "",
            "email": party.email or "",
            "phone": party.phone or "",
            "address": party.street or "",
        }

    def invoice_body(self, payload: InvoicePayload) -> Dict[str, Any]:
        details = [
            detail_line(
                line.product_id or line.sku or str(index),
                line.name,
                self.whole_quantity(line.quantity),
                line.unit_price,
                line.vat_rate,
            )
            for index, line in enumerate(payload.lines, start=1)
        ]
        reference = payload.order_reference or payload.invoice_id
        return self._envelope(
            payload.invoice_id or reference,
            f"Sipariş #{reference}" if reference else "; ".join(payload.notes),
            payload.issue_date,
            payload.due_date or payload.issue_date + timedelta(days=self.policy.due_days),
            self._customer(payload.customer.tax_number or "0", payload.customer),
            details,
        )

    # =========================================================================
    # Extensions
    # =========================================================================

    @driver_operation
    async def create_commission_invoice(
        self,
        shop_id: str,
        shop: InvoiceParty,
        period: str,
        commission: Dict[str, Any],
    ) -> OperationResult:
        """Bill a pharmacy for marketplace fees of one period.

        ``commission`` may carry shipping_fee, platform_commission,
        pos_commission and marketing_fee; non-positive amounts are skipped.
        """
        details = []
        for field_name, product_id, name in COMMISSION_LINES:
            amount = to_money(commission.get(field_name) or 0)
            if amount > 0:
                details.append(detail_line(product_id, name, 1, amount, COMMISSION_VAT))
        if not details:
            raise PayloadValidationError("No billable commission lines", field="commission")

        today = date.today()
        body = self._envelope(
            f"KOM-{shop_id}-{today.strftime('%Y%m%d')}",
            f"{period} dönemi komisyon faturası",
            today,
            today + timedelta(days=self.policy.due_days),
            self._customer(str(shop_id), shop),
            details,
        )
        return await self._add_invoice(body)
