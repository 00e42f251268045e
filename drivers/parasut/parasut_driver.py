"""Paraşüt accounting driver.

OAuth2 password grant with refresh tokens; REST with JSON:API bodies under
``/v4/{company_id}/``. Issuing an invoice takes several calls: the contact
and every line's product are found or created first, then the sales
invoice, then (for paid orders) a payment and optionally the e-Archive
document.

Required credentials: client_id, client_secret, username, password, company_id

Optional custom settings:
- invoice_series: series letter for new invoices
- account_id: cash/bank account that receives payments
- create_e_archive: issue the e-Archive document after the invoice (default False)
- website / payment_platform: internet sale metadata
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.fallbacks import generate_sku
from core.mapping.invoices import build_invoice_payload
from core.mapping.money import to_money
from core.mapping.products import ProductFieldMap, map_product
from core.models.canonical import CanonicalOrder
from core.models.invoice import InvoiceLine, InvoiceParty, InvoicePayload
from core.models.results import OperationResult
from drivers.auth.strategies import OAuth2PasswordRefresh
from drivers.base import ProviderDriver, driver_operation, register_driver
from drivers.errors import DriverError, ProviderRejectedError, SchemaMismatchError
from drivers.parasut import parasut_resources as resources

WEB_APP_URL = "https://uygulama.parasut.com"
DEFAULT_PAYMENT_PLATFORM = "Sanal Pos"

PRODUCT_FIELDS = ProductFieldMap(
    id=("id",),
    sku=("attributes.code",),
    name=("attributes.name",),
    description=("attributes.description",),
    price=("attributes.list_price",),
    cost=("attributes.buying_price",),
    stock=("attributes.stock_count",),
    vat_rate=("attributes.vat_rate",),
    barcode=("attributes.barcode",),
    category_id=("relationships.category.data.id",),
    brand=("attributes.brand",),
    currency=("attributes.currency",),
)


@register_driver("parasut")
class ParasutDriver(ProviderDriver):
    """Paraşüt v4 API."""

    display_name = "Paraşüt"
    default_base_url = "https://api.parasut.com"
    required_credentials = ("client_id", "client_secret", "username", "password", "company_id")

    def build_auth_strategy(self) -> OAuth2PasswordRefresh:
        return OAuth2PasswordRefresh(token_url=f"{self.base_url}/oauth/token")

    def api(self, path: str) -> str:
        return f"/v4/{self.credential.company_id}/{path.lstrip('/')}"

    async def _data(self, method: str, path: str, **kwargs) -> Any:
        """Call the API and return the JSON:API ``data`` member."""
        body = self.expect_dict(await self._request_json(method, self.api(path), **kwargs), path)
        if "data" not in body:
            raise SchemaMismatchError(f"Paraşüt response for {path} has no data member", response_body=str(body)[:500])
        return body["data"]

    @staticmethod
    def _id_of(resource: Any, what: str) -> str:
        if not isinstance(resource, dict) or not resource.get("id"):
            raise SchemaMismatchError(f"Paraşüt returned a {what} without an id", response_body=str(resource)[:500])
        return str(resource["id"])

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        me = PayloadAccessor(await self._data("GET", "me"))
        return OperationResult.ok(
            "Connected to Paraşüt",
            data={
                "user_id": me.text("id"),
                "email": me.text("attributes.email"),
                "company_id": self.credential.company_id,
            },
        )

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        body = self.expect_dict(
            await self._request_json(
                "GET",
                self.api("products"),
                params={"page[number]": page, "page[size]": page_size},
            ),
            "products",
        )
        acc = PayloadAccessor(body)
        products = [
            map_product(raw, PRODUCT_FIELDS, provider=self.name, policy=self.policy)
            for raw in acc.items("data")
        ]
        return self.products_page(
            products,
            page,
            page_size,
            total=acc.integer("meta.total_count", default=None),
            has_more=page < acc.integer("meta.total_pages", default=0) if acc.has("meta.total_pages") else None,
        )

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        """Create the sales invoice for an order; Paraşüt has no order resource."""
        payload = build_invoice_payload(order, self.supplier_party(), self.policy)
        return await self._issue(payload)

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        return await self._issue(payload)

    async def _issue(self, payload: InvoicePayload) -> OperationResult:
        contact_id = await self._find_or_create_contact(payload.customer)

        details = []
        for line in payload.lines:
            product_id = await self._find_or_create_product(line)
            details.append(resources.invoice_detail(line, product_id))

        invoice = await self._data(
            "POST",
            "sales_invoices",
            json=resources.sales_invoice_body(
                payload,
                contact_id,
                details,
                series=self.config.setting("invoice_series"),
            ),
        )
        invoice_id = self._id_of(invoice, "sales invoice")
        data: Dict[str, Any] = {"invoice_id": invoice_id, "contact_id": contact_id}

        # The invoice exists from here on; follow-up failures are reported
        # alongside its id so a retry does not issue it twice.
        message = "Invoice created"
        if payload.paid:
            # Paraşüt's own total avoids rounding drift between the two systems.
            attrs = PayloadAccessor(invoice).child("attributes")
            amount = attrs.decimal(["remaining", "net_total", "gross_total"], default=payload.totals.payable)
            if amount > 0:
                try:
                    data["payment_id"] = await self._add_payment(invoice_id, amount)
                except DriverError as e:
                    self.logger.warning(f"Payment for invoice {invoice_id} failed: {e.message}")
                    data["payment_error"] = e.message
                    message = "Invoice created; payment not recorded"

        if self.config.setting("create_e_archive", False):
            try:
                data["e_archive_id"] = await self._create_e_archive(invoice_id, payload)
            except DriverError as e:
                self.logger.warning(f"e-Archive for invoice {invoice_id} failed: {e.message}")
                data["e_archive_error"] = e.message
                message = f"{message}; e-Archive not issued"

        return OperationResult.ok(message, data=data)

    # =========================================================================
    # Extensions
    # =========================================================================

    @driver_operation
    async def find_or_create_contact(self, party: InvoiceParty) -> OperationResult:
        contact_id = await self._find_or_create_contact(party)
        return OperationResult.ok("Contact ready", data={"contact_id": contact_id})

    async def _find_or_create_contact(self, party: InvoiceParty) -> str:
        if party.email:
            found = await self._data("GET", "contacts", params={"filter[email]": party.email})
            if found:
                return self._id_of(found[0], "contact")

        if party.tax_number and party.tax_number != self.policy.tax_number:
            found = await self._data("GET", "contacts", params={"filter[tax_number]": party.tax_number})
            if found:
                return self._id_of(found[0], "contact")

        created = await self._data("POST", "contacts", json=resources.contact_body(party))
        contact_id = self._id_of(created, "contact")
        self.logger.info(f"Created Paraşüt contact {contact_id}")
        return contact_id

    @driver_operation
    async def find_or_create_product(self, line: InvoiceLine) -> OperationResult:
        product_id = await self._find_or_create_product(line)
        return OperationResult.ok("Product ready", data={"product_id": product_id})

    async def _find_or_create_product(self, line: InvoiceLine) -> str:
        code = line.sku or generate_sku(line.name, self.policy)
        found = await self._data("GET", "products", params={"filter[code]": code})
        if found:
            return self._id_of(found[0], "product")
        created = await self._data("POST", "products", json=resources.product_body(line, code))
        return self._id_of(created, "product")

    @driver_operation
    async def add_payment(
        self,
        invoice_id: str,
        amount,
        payment_date: Optional[date] = None,
        account_id: Optional[str] = None,
    ) -> OperationResult:
        payment_id = await self._add_payment(invoice_id, to_money(amount), payment_date, account_id)
        return OperationResult.ok("Payment recorded", data={"payment_id": payment_id, "invoice_id": invoice_id})

    async def _add_payment(
        self,
        invoice_id: str,
        amount: Decimal,
        payment_date: Optional[date] = None,
        account_id: Optional[str] = None,
    ) -> str:
        body = resources.payment_body(
            invoice_id,
            amount,
            payment_date or date.today(),
            account_id or self.config.setting("account_id"),
        )
        payment = await self._data("POST", f"sales_invoices/{invoice_id}/payments", json=body)
        return self._id_of(payment, "payment")

    @driver_operation
    async def create_e_archive(self, invoice_id: str, payload: InvoicePayload) -> OperationResult:
        e_archive_id = await self._create_e_archive(invoice_id, payload)
        return OperationResult.ok("e-Archive requested", data={"e_archive_id": e_archive_id})

    async def _create_e_archive(self, invoice_id: str, payload: InvoicePayload) -> str:
        body = resources.e_archive_body(
            invoice_id,
            payload,
            website=self.config.setting("website"),
            payment_platform=self.config.setting("payment_platform", DEFAULT_PAYMENT_PLATFORM),
            shipment_date=date.today(),
        )
        return self._id_of(await self._data("POST", "e_archives", json=body), "e-Archive")

    @driver_operation
    async def cancel_invoice(self, invoice_id: str) -> OperationResult:
        await self._send("POST", self.api(f"sales_invoices/{invoice_id}/cancel"))
        return OperationResult.ok("Invoice cancelled", data={"invoice_id": invoice_id})

    @driver_operation
    async def get_invoice_pdf_url(self, invoice_id: str) -> OperationResult:
        """PDF link of an invoice, falling back to the web app URL."""
        invoice = PayloadAccessor(await self._data("GET", f"sales_invoices/{invoice_id}"))
        pdf_url = invoice.text("attributes.pdf_url")
        if not pdf_url:
            try:
                pdf = PayloadAccessor(await self._request_json("GET", self.api(f"sales_invoices/{invoice_id}/pdf")))
            except ProviderRejectedError as e:
                self.logger.debug(f"No PDF endpoint for invoice {invoice_id}: {e.message}")
            else:
                pdf_url = pdf.text(["pdf_url", "url", "data.attributes.url"])
        if not pdf_url:
            pdf_url = f"{WEB_APP_URL}/{self.credential.company_id}/satislar/{invoice_id}/pdf"
        return OperationResult.ok("PDF URL resolved", data={"pdf_url": pdf_url, "invoice_id": invoice_id})
