"""
Provider Extension Tests

Operations beyond the four-call driver contract:
1. KolaySoft document services (control, query, cancel, prefixes, UUID, credits)
2. Paraşüt contact lookup, payments, e-Archive, cancel and PDF links
3. Entegra order listing and product creation
4. Sentos invoice maintenance and categories
5. Dopigo token reset and StockMount store listing
"""

import asyncio
import base64
from datetime import date

from conftest import FakeTransport, json_response, text_response
from core.mapping.invoices import build_invoice_payload
from core.models.invoice import InvoiceParty
from core.models.results import ResultKind

PARASUT_CREDENTIALS = dict(
    client_id="cid",
    client_secret="secret",
    username="ops@eczane.example",
    password="pw",
    company_id="555",
)


def run(coro):
    return asyncio.run(coro)


def soap_reply(operation: str, content: str) -> str:
    return (
        '<S:Envelope xmlns:S="http://schemas.xmlsoap.org/soap/envelope/"><S:Body>'
        f'<ns2:{operation}Response xmlns:ns2="http://earchiveinvoiceservice.entegrator.com/">'
        f"{content}</ns2:{operation}Response></S:Body></S:Envelope>"
    )


def parasut_login():
    return json_response({"access_token": "tok", "refresh_token": "ref", "expires_in": 7200})


# =============================================================================
# KolaySoft
# =============================================================================

class TestKolaySoftServices:
    """Document services besides sending."""

    def test_control_encodes_raw_xml(self, make_driver):
        transport = FakeTransport(text_response(soap_reply(
            "controlInvoiceXML", "<return><code>000</code><explanation>Geçerli</explanation></return>",
        )))
        driver = make_driver("kolaysoft", transport, username="u", password="p")
        xml = '<?xml version="1.0"?><Invoice/>'

        result = run(driver.control_invoice_xml(xml))

        assert result.success
        assert result.message == "Geçerli"
        encoded = base64.b64encode(xml.encode("utf-8")).decode("ascii")
        assert f"<invoiceXML>{encoded}</invoiceXML>" in transport.requests[0].body

    def test_control_rejection(self, make_driver):
        transport = FakeTransport(text_response(soap_reply(
            "controlInvoiceXML", "<return><code>301</code><explanation>Şema hatası</explanation></return>",
        )))
        driver = make_driver("kolaysoft", transport, username="u", password="p")

        result = run(driver.control_invoice_xml("PEludm9pY2UvPg=="))

        assert result.kind == ResultKind.PROVIDER_REJECTED
        assert result.error_code == "301"
        assert "Şema hatası" in result.message

    def test_query_invoice(self, make_driver):
        transport = FakeTransport(text_response(soap_reply(
            "QueryInvoicesWithGUIDList",
            "<return><documents><documentUUID>u-1</documentUUID><documentID>DNM2026000000001</documentID>"
            "<code>000</code><state>1</state></documents></return>",
        )))
        driver = make_driver("kolaysoft", transport, username="u", password="p")

        result = run(driver.query_invoice("u-1"))

        document = result.data["documents"][0]
        assert document["documentID"] == "DNM2026000000001"
        assert document["state"] == "1"
        assert "<guidList>u-1</guidList>" in transport.requests[0].body

    def test_query_unknown_invoice(self, make_driver):
        transport = FakeTransport(text_response(soap_reply("QueryInvoicesWithGUIDList", "<return/>")))
        driver = make_driver("kolaysoft", transport, username="u", password="p")

        result = run(driver.query_invoice("missing"))

        assert result.kind == ResultKind.PROVIDER_REJECTED
        assert result.error_code == "not_found"

    def test_cancel(self, make_driver):
        transport = FakeTransport(text_response(soap_reply("cancelInvoice", "<return><code>000</code></return>")))
        driver = make_driver("kolaysoft", transport, username="u", password="p")

        result = run(driver.cancel_invoice("u-1"))

        assert result.data == {"uuid": "u-1"}
        assert "<documentUUID>u-1</documentUUID>" in transport.requests[0].body

    def test_prefixes_uuid_and_credits(self, make_driver):
        transport = FakeTransport(
            text_response(soap_reply("getPrefixList", "<return><prefix>DNM</prefix><prefix>ABC</prefix></return>")),
            text_response(soap_reply("getNewUUID", "<return>8d1c0f2e-0000-4000-8000-000000000002</return>")),
            text_response(soap_reply("getCustomerCreditCount", "<return>250</return>")),
        )
        driver = make_driver("kolaysoft", transport, username="u", password="p")

        prefixes = run(driver.get_prefix_list())
        new_uuid = run(driver.get_new_uuid())
        credits = run(driver.get_customer_credit_count())

        assert prefixes.data == {"prefixes": ["DNM", "ABC"], "count": 2}
        assert new_uuid.data["uuid"] == "8d1c0f2e-0000-4000-8000-000000000002"
        assert credits.data["credit_count"] == 250
        assert all(r.headers["Username"] == "u" for r in transport.requests)


# =============================================================================
# Paraşüt
# =============================================================================

class TestParasutExtensions:
    """Lookups and follow-up documents."""

    def test_placeholder_tax_number_not_searched(self, make_driver):
        transport = FakeTransport(
            parasut_login(),
            json_response({"data": {"id": "c-9", "type": "contacts"}}),
        )
        driver = make_driver("parasut", transport, **PARASUT_CREDENTIALS)

        result = run(driver.find_or_create_contact(InvoiceParty(name="Nihai Tuketici", tax_number="11111111111")))

        assert result.data == {"contact_id": "c-9"}
        assert transport.requests[1].method == "POST"
        assert transport.requests[1].json["data"]["attributes"]["contact_type"] == "company"

    def test_contact_found_by_tax_number(self, make_driver):
        transport = FakeTransport(
            parasut_login(),
            json_response({"data": []}),
            json_response({"data": [{"id": "c-3", "type": "contacts"}]}),
        )
        driver = make_driver("parasut", transport, **PARASUT_CREDENTIALS)
        party = InvoiceParty(name="Deva Ecza", tax_number="9876543210", email="deva@example.com")

        result = run(driver.find_or_create_contact(party))

        assert result.data["contact_id"] == "c-3"
        assert transport.requests[2].params == {"filter[tax_number]": "9876543210"}

    def test_add_payment(self, make_driver):
        transport = FakeTransport(parasut_login(), json_response({"data": {"id": "pay-7"}}))
        driver = make_driver("parasut", transport, custom_settings={"account_id": "acc-1"}, **PARASUT_CREDENTIALS)

        result = run(driver.add_payment("inv-1", "99.999", payment_date=date(2026, 10, 19)))

        assert result.data == {"payment_id": "pay-7", "invoice_id": "inv-1"}
        request = transport.requests[1]
        assert request.url == "https://api.parasut.com/v4/555/sales_invoices/inv-1/payments"
        attributes = request.json["data"]["attributes"]
        assert attributes == {"date": "2026-10-19", "amount": 100.0, "notes": "Sipariş otomatik tahsilatı", "account_id": "acc-1"}

    def test_e_archive_carries_internet_sale(self, make_driver, order, supplier):
        transport = FakeTransport(parasut_login(), json_response({"data": {"id": "ea-1"}}))
        driver = make_driver("parasut", transport, **PARASUT_CREDENTIALS)

        result = run(driver.create_e_archive("inv-1", build_invoice_payload(order, supplier)))

        assert result.data == {"e_archive_id": "ea-1"}
        body = transport.requests[1].json["data"]
        assert body["attributes"]["internet_sale"]["payment_type"] == "KREDIKARTI/BANKAKARTI"
        assert body["attributes"]["internet_sale"]["payment_platform"] == "Sanal Pos"
        assert body["relationships"]["sales_invoice"]["data"]["id"] == "inv-1"

    def test_cancel(self, make_driver):
        transport = FakeTransport(parasut_login(), json_response({}))
        driver = make_driver("parasut", transport, **PARASUT_CREDENTIALS)

        assert run(driver.cancel_invoice("inv-1")).success
        assert transport.urls()[1] == "https://api.parasut.com/v4/555/sales_invoices/inv-1/cancel"

    def test_pdf_url_falls_back_to_web_app(self, make_driver):
        transport = FakeTransport(
            parasut_login(),
            json_response({"data": {"id": "inv-1", "attributes": {}}}),
            json_response({"errors": [{"detail": "not found"}]}, status=404),
        )
        driver = make_driver("parasut", transport, **PARASUT_CREDENTIALS)

        result = run(driver.get_invoice_pdf_url("inv-1"))

        assert result.success
        assert result.data["pdf_url"] == "https://uygulama.parasut.com/555/satislar/inv-1/pdf"

    def test_pdf_url_from_invoice(self, make_driver):
        transport = FakeTransport(
            parasut_login(),
            json_response({"data": {"id": "inv-1", "attributes": {"pdf_url": "https://cdn.example/inv-1.pdf"}}}),
        )
        driver = make_driver("parasut", transport, **PARASUT_CREDENTIALS)

        assert run(driver.get_invoice_pdf_url("inv-1")).data["pdf_url"] == "https://cdn.example/inv-1.pdf"


# =============================================================================
# Entegra
# =============================================================================

def entegra_login():
    return json_response({"access": "jwt-a", "refresh": "jwt-r"})


class TestEntegraExtensions:
    def test_get_orders_caps_limit(self, make_driver):
        transport = FakeTransport(
            entegra_login(),
            json_response({"orders": [{"id": 1}, {"id": 2}], "totalOrder": 7}),
        )
        driver = make_driver("entegra", transport, username="u", password="p")

        result = run(driver.get_orders(page=2, limit=500, status="1", unknown="x"))

        assert result.data == {"orders": [{"id": 1}, {"id": 2}], "total": 7}
        request = transport.requests[1]
        assert request.url == "https://apiv2.entegrabilisim.com/order/page=2/"
        assert request.params == {"status": "1", "limit": 200}

    def test_create_product(self, make_driver):
        transport = FakeTransport(entegra_login(), json_response({"id": 88}))
        driver = make_driver("entegra", transport, username="u", password="p")
        product = {
            "status": "1",
            "quantity": "4",
            "group": 3,
            "productName": "Aspirin",
            "productCode": "A-1",
            "barcode": "8690000000001",
            "price1": "12.5",
            "kdv_id": 10,
            "currencyType": "TRL",
            "desi": 1,
        }

        result = run(driver.create_product(product))

        assert result.data == {"product_id": "88"}
        body = transport.requests[1].json["list"][0]
        assert body["status"] == 1
        assert body["quantity"] == 4
        assert body["price1"] == 12.5
        assert body["supplier"] == "Manual"
        assert body["supplier_id"] == "A-1"
        assert body["desi"] == 1


# =============================================================================
# Sentos
# =============================================================================

class TestSentosExtensions:
    def test_invoice_maintenance(self, make_driver):
        transport = FakeTransport(
            json_response([{"id": 5, "name": "Vitaminler"}]),
            json_response({"id": 31}),
            text_response(""),
        )
        driver = make_driver("sentos", transport, username="u", password="p")

        categories = run(driver.get_categories())
        updated = run(driver.update_invoice("31", invoice_number="IE1001", invoice_url="https://fatura.example/31"))
        deleted = run(driver.delete_invoice("31"))

        assert categories.data == {"categories": [{"id": 5, "name": "Vitaminler"}]}
        assert updated.success and deleted.success
        methods = [(r.method, r.url) for r in transport.requests]
        assert methods == [
            ("GET", "https://api.sentos.com.tr/api/categories"),
            ("PUT", "https://api.sentos.com.tr/api/orders/invoice/31"),
            ("DELETE", "https://api.sentos.com.tr/api/orders/invoice/31"),
        ]
        assert transport.requests[1].json["invoice_number"] == "IE1001"


# =============================================================================
# Dopigo / StockMount
# =============================================================================

class TestTokenAndStores:
    def test_dopigo_clear_token_forces_login(self, make_driver):
        transport = FakeTransport(
            json_response({"token": "tok-1"}),
            json_response({"count": 3, "results": []}),
            json_response({"token": "tok-2"}),
            json_response({"count": 3, "results": []}),
        )
        driver = make_driver("dopigo", transport, username="u", password="p")

        assert run(driver.test_connection()).data == {"product_count": 3}
        assert run(driver.clear_token()).success
        assert run(driver.test_connection()).success

        assert transport.requests[2].url == "https://panel.dopigo.com/users/get_auth_token/"
        assert transport.requests[3].headers["Authorization"] == "Token tok-2"

    def test_stockmount_stores(self, make_driver):
        transport = FakeTransport(
            json_response({"Result": True, "Response": {"ApiCode": "code-1"}}),
            json_response({"Result": True, "Response": [{"StoreId": 11, "IntegrationName": "Trendyol"}]}),
        )
        driver = make_driver("stockmount", transport, username="u", password="p")

        result = run(driver.get_stores())

        assert result.data == {"stores": [{"StoreId": 11, "IntegrationName": "Trendyol"}]}
        assert transport.requests[1].json == {"ApiCode": "code-1"}
