"""KolaySoft e-Archive SOAP driver.

Invoices travel as UBL 2.1 XML inside a CDATA section of a hand-built SOAP
envelope. Credentials go in ``Username``/``Password`` HTTP headers on every
call. Responses are read by tag name because the service is inconsistent
about namespace prefixes.

Required credentials: username, password

Optional custom settings:
- wsdl_url: overrides the live/test endpoint
- document_no_prefix: 3 letters + year, default ``DNM<year>``
- source_urn / destination_urn
- submit_for_approval: default True
"""

import base64
from typing import Any, Dict, List, Optional

from core.mapping.invoices import build_invoice_payload
from core.mapping.money import format_money
from core.models.canonical import CanonicalOrder
from core.models.invoice import InvoicePayload
from core.models.results import OperationResult, Pagination
from core.ubl.builder import UBLInvoiceBuilder
from drivers.auth.strategies import SoapHeader
from drivers.base import ProviderDriver, driver_operation, register_driver
from drivers.errors import (
    AuthenticationError,
    PayloadValidationError,
    ProviderRejectedError,
    classify_response,
)
from drivers.soap import SOAP_HEADERS, SoapTagExtractor, build_envelope, cdata, element, elements
from drivers.transport import TransportResponse

LIVE_WSDL = "https://servis.smartdonusum.com/EArchiveInvoiceService/EArchiveInvoiceWS?wsdl"
TEST_WSDL = "https://servis.kolayentegrasyon.net/EArchiveInvoiceService/EArchiveInvoiceWS?wsdl"
SERVICE_NS = "http://earchiveinvoiceservice.entegrator.com/"

DEFAULT_SOURCE_URN = "urn:mail:defaultpk"
DEFAULT_DESTINATION_URN = "urn:mail:defaultgb"


@register_driver("kolaysoft")
class KolaySoftDriver(ProviderDriver):
    """KolaySoft / Smart Dönüşüm e-Archive invoice service."""

    display_name = "KolaySoft"
    required_credentials = ("username", "password")
    uses_soap = True

    def build_auth_strategy(self) -> SoapHeader:
        return SoapHeader()

    @property
    def wsdl_url(self) -> str:
        return self.config.setting("wsdl_url") or (TEST_WSDL if self.config.is_test else LIVE_WSDL)

    def resolve_base_url(self) -> str:
        return self.wsdl_url.replace("?wsdl", "")

    def default_headers(self) -> Dict[str, str]:
        return dict(SOAP_HEADERS)

    def check_response(self, response: TransportResponse) -> None:
        # Faults come back as HTTP 500 but are business rejections, not outages.
        if response.status in (401, 403):
            raise AuthenticationError(
                f"KolaySoft rejected the credentials (HTTP {response.status})",
                response.status,
                response.text,
            )
        fault = SoapTagExtractor(response.text).fault()
        if fault:
            raise ProviderRejectedError(f"SOAP fault: {fault}", "soap_fault", response.status, response.text)
        if not response.ok:
            raise classify_response(response.status, response.text)

    async def _soap(self, operation: str, body: str = "") -> SoapTagExtractor:
        envelope = build_envelope(operation, body, SERVICE_NS)
        response = await self._send("POST", self.base_url, body=envelope)
        return SoapTagExtractor(response.text)

    @staticmethod
    def _reject_unless_success(reply: SoapTagExtractor, what: str) -> None:
        if reply.is_success():
            return
        reason = reply.first("explanation") or reply.first("cause") or "unknown error"
        raise ProviderRejectedError(f"{what} failed: {reason}", reply.first("code"), response_body=reply.body)

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        reply = await self._soap("getPrefixList")
        environment = "test" if self.config.is_test else "live"
        explanation = reply.first("stateExplanation")
        message = f"Connected to KolaySoft ({environment})"
        if explanation:
            message = f"{message}: {explanation}"
        return OperationResult.ok(
            message,
            data={
                "environment": environment,
                "endpoint": self.base_url,
                "prefix_count": int(reply.first("documentsCount") or 0),
                "state": reply.first("queryState"),
            },
        )

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        return OperationResult.ok(
            "KolaySoft has no product catalog",
            data={"products": []},
            pagination=Pagination(page=page, per_page=page_size, total=0, has_more=False),
        )

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        """Invoice an order directly; the service has no order concept."""
        payload = build_invoice_payload(order, self.supplier_party(), self.policy)
        return await self._send_invoice(payload)

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        return await self._send_invoice(payload)

    async def _send_invoice(self, payload: InvoicePayload) -> OperationResult:
        if not payload.lines:
            raise PayloadValidationError("Invoice has no lines", field="lines")

        xml = UBLInvoiceBuilder(self.policy).build(payload)
        prefix = self.config.setting("document_no_prefix") or f"DNM{payload.issue_date.year}"
        body = (
            "<invoiceXMLList>"
            + element("documentUUID", payload.uuid)
            + element("documentId", payload.invoice_id)
            + element("xmlContent", cdata(xml), raw=True)
            + elements([
                ("sourceUrn", self.config.setting("source_urn", DEFAULT_SOURCE_URN)),
                ("destinationUrn", self.config.setting("destination_urn", DEFAULT_DESTINATION_URN)),
                ("documentDate", payload.issue_date.isoformat()),
                ("submitForApproval", bool(self.config.setting("submit_for_approval", True))),
                ("documentNoPrefix", prefix),
            ])
            + "</invoiceXMLList>"
        )

        self.logger.info(
            f"Sending e-Archive invoice {payload.invoice_id}",
            extra_fields={"uuid": payload.uuid, "lines": payload.line_count, "xml_size": len(xml)},
        )
        reply = await self._soap("sendInvoice", body)
        self._reject_unless_success(reply, "Invoice submission")

        return OperationResult.ok(
            reply.first("explanation") or "Invoice sent",
            data={
                "uuid": reply.first("documentUUID") or payload.uuid,
                "invoice_number": reply.first("documentID") or payload.invoice_id,
                "code": reply.first("code"),
                "line_count": payload.line_count,
                "totals": {
                    "line_extension": format_money(payload.totals.line_extension),
                    "tax_total": format_money(payload.totals.tax_total),
                    "payable": format_money(payload.totals.payable),
                },
            },
        )

    # =========================================================================
    # Extensions
    # =========================================================================

    @driver_operation
    async def control_invoice_xml(self, xml_content: str) -> OperationResult:
        """Validate a UBL document without submitting it."""
        if xml_content.lstrip().startswith("<?xml") or "<Invoice" in xml_content:
            xml_content = base64.b64encode(xml_content.encode("utf-8")).decode("ascii")
        reply = await self._soap("controlInvoiceXML", element("invoiceXML", xml_content))
        self._reject_unless_success(reply, "XML validation")
        return OperationResult.ok(reply.first("explanation") or "XML is valid", data={"code": reply.first("code")})

    @driver_operation
    async def query_invoice(self, uuid: str) -> OperationResult:
        reply = await self._soap("QueryInvoicesWithGUIDList", element("guidList", uuid))
        documents = reply.blocks("documents")
        if not documents:
            raise ProviderRejectedError(f"Invoice {uuid} not found", "not_found", response_body=reply.body)
        return OperationResult.ok(
            "Invoice found",
            data={"documents": [self._document(d) for d in documents]},
        )

    @staticmethod
    def _document(block: SoapTagExtractor) -> Dict[str, Optional[str]]:
        return block.values("documentUUID", "documentID", "documentDate", "code", "explanation", "state")

    @driver_operation
    async def cancel_invoice(self, uuid: str) -> OperationResult:
        body = "<inputDocumentList>" + element("documentUUID", uuid) + "</inputDocumentList>"
        reply = await self._soap("cancelInvoice", body)
        self._reject_unless_success(reply, "Invoice cancellation")
        return OperationResult.ok(reply.first("explanation") or "Invoice cancelled", data={"uuid": uuid})

    @driver_operation
    async def get_prefix_list(self) -> OperationResult:
        reply = await self._soap("getPrefixList")
        prefixes: List[Any] = reply.all("prefix")
        return OperationResult.ok(
            reply.first("stateExplanation") or "OK",
            data={"prefixes": prefixes, "count": int(reply.first("documentsCount") or len(prefixes))},
        )

    @driver_operation
    async def get_new_uuid(self) -> OperationResult:
        reply = await self._soap("getNewUUID")
        return OperationResult.ok("UUID created", data={"uuid": reply.first("return")})

    @driver_operation
    async def get_customer_credit_count(self) -> OperationResult:
        reply = await self._soap("getCustomerCreditCount")
        return OperationResult.ok("Credit count fetched", data={"credit_count": int(reply.first("return") or 0)})
