"""
Cargo Carrier Tests

Exercises the carrier drivers against a scripted transport:
1. Order -> shipment mapping (one parcel per unit, billing minimums)
2. Hepsijet: Basic-auth token, standard and XL bookings, tracking and label fallbacks
3. Navlungo: JSON login, success flags, cancel/track/label
4. Contract operations carriers do not support, and local validation
"""

import asyncio
from decimal import Decimal

from conftest import FakeTransport, json_response, text_response
from core.mapping.invoices import build_invoice_payload
from core.mapping.shipments import build_shipment, parcel
from core.models.canonical import CanonicalOrder
from core.models.results import ResultKind
from core.models.shipment import ShipmentPayer

HEPSIJET = "https://integration.hepsijet.com"
NAVLUNGO = "https://api.navlungo.com"


def run(coro):
    return asyncio.run(coro)


def hepsijet_token():
    return json_response({"token": "hj-tok", "expires_in": 3600})


def navlungo_token():
    return json_response({"token": "nv-tok", "expires_in": 3600})


# =============================================================================
# Mapping
# =============================================================================

class TestShipmentMapping:
    """CanonicalOrder -> ShipmentRequest."""

    def test_one_parcel_per_unit(self, order, supplier):
        shipment = build_shipment(order, supplier)

        assert [p.content for p in shipment.parcels] == ["Vitamin C", "Vitamin C", "Zinc"]
        assert shipment.total_desi == Decimal("3")
        assert all(p.weight_grams == Decimal("1000") for p in shipment.parcels)
        assert shipment.order_reference == "IE1001"
        assert shipment.receiver.phone == "+905321112233"
        assert shipment.receiver.district == "Maltepe"
        assert shipment.sender.name == "Ornek Ecza Deposu A.S."

    def test_order_without_lines_or_address(self, supplier):
        shipment = build_shipment(CanonicalOrder(code="7"), supplier)

        assert len(shipment.parcels) == 1
        assert shipment.receiver.name == "Müşteri"
        assert shipment.receiver.address == "Adres Belirtilmemis"
        assert shipment.receiver.city == "Istanbul"

    def test_parcel_minimums(self):
        small = parcel("Damla", desi="0.4", weight_grams=250)
        assert (small.desi, small.weight_grams) == (Decimal("1"), Decimal("1000"))
        assert parcel("Koli", desi=12).desi == Decimal("12")


# =============================================================================
# Hepsijet
# =============================================================================

class TestHepsijet:
    def test_order_booked(self, make_driver, order):
        transport = FakeTransport(hepsijet_token(), json_response({"deliveryNo": "HJ1", "barcode": "HJ1-B"}))
        driver = make_driver("hepsijet", transport, api_key="k", api_secret="s")

        result = run(driver.sync_order(order))

        assert result.success, result.message
        assert result.data["tracking_number"] == "HJ1"
        assert result.data["barcode"] == "HJ1-B"
        assert result.data["order_reference"] == "IE1001"

        login, booking = transport.requests
        assert (login.method, login.url) == ("GET", f"{HEPSIJET}/auth/getToken")
        assert login.headers["Authorization"] == "Basic azpz"
        assert booking.url == f"{HEPSIJET}/delivery/sendDeliveryOrderEnhanced"
        assert booking.headers["Authorization"] == "Bearer hj-tok"
        body = booking.json
        assert body["customerOrderId"] == "IE1001"
        assert body["serviceType"] == ["STANDART"]
        assert body["paymentType"] == "SENDER_PAYS"
        assert len(body["parcels"]) == 3
        assert body["receiver"]["address"]["town"]["name"] == "Maltepe"
        assert "email" not in body["receiver"]

    def test_heavy_shipment_booked_as_xl(self, make_driver, order, supplier):
        transport = FakeTransport(hepsijet_token(), json_response({"deliveryNo": "HJ2"}))
        driver = make_driver("hepsijet", transport, custom_settings={"payer": "receiver"}, api_key="k", api_secret="s")
        shipment = build_shipment(
            order, supplier, parcels=[parcel("A", desi=20), parcel("B", desi=25)], payer=driver.payer(),
        )

        result = run(driver.send_shipment(shipment))

        assert result.data["xl"] is True
        assert transport.requests[1].url == f"{HEPSIJET}/delivery/sendDeliveryOrder"
        assert transport.requests[1].json["serviceType"] == ["TMH"]
        assert transport.requests[1].json["paymentType"] == "RECEIVER_PAYS"
        assert shipment.payer == ShipmentPayer.RECEIVER

    def test_booking_without_delivery_number_rejected(self, make_driver, order):
        transport = FakeTransport(hepsijet_token(), json_response({"message": "Adres eksik"}))
        driver = make_driver("hepsijet", transport, api_key="k", api_secret="s")

        result = run(driver.sync_order(order))

        assert result.kind == ResultKind.PROVIDER_REJECTED
        assert "Adres eksik" in result.message

    def test_tracking_falls_back_and_token_reused(self, make_driver):
        transport = FakeTransport(
            hepsijet_token(),
            json_response({"message": "not found"}, status=404),
            json_response({"deliveryNo": "HJ1", "status": "DELIVERED", "events": [{"status": "DELIVERED"}]}),
            json_response({"success": True, "message": "İptal edildi"}),
        )
        driver = make_driver("hepsijet", transport, api_key="k", api_secret="s")

        tracked = run(driver.track_shipment("HJ1"))
        cancelled = run(driver.cancel_shipment("HJ1"))

        assert tracked.data["status"] == "DELIVERED"
        assert tracked.data["description"] == "DELIVERED"
        assert tracked.data["events"] == [{"status": "DELIVERED"}]
        assert cancelled.message == "İptal edildi"
        assert transport.urls()[1:] == [
            f"{HEPSIJET}/deliveryTransaction/getDeliveryTracking",
            f"{HEPSIJET}/delivery/integration/track",
            f"{HEPSIJET}/rest/delivery/deleteDeliveryOrder/HJ1",
        ]
        assert transport.requests[3].json == {"reason": "Müşteri talebi ile iptal edildi"}

    def test_label_falls_back_to_zpl(self, make_driver):
        transport = FakeTransport(
            hepsijet_token(),
            json_response({"message": "label service down"}, status=400),
            text_response("^XA^FDHJ1^FS^XZ"),
        )
        driver = make_driver("hepsijet", transport, api_key="k", api_secret="s")

        result = run(driver.get_label("HJ1", parcel_count=2))

        assert result.data["format"] == "zpl"
        assert result.data["label"] == "^XA^FDHJ1^FS^XZ"
        assert transport.requests[1].json == {"barcode": "HJ1", "totalParcel": 2}
        assert transport.requests[2].url == f"{HEPSIJET}/delivery/generateZplBarcode/HJ1/2"

    def test_label_url(self, make_driver):
        transport = FakeTransport(hepsijet_token(), json_response({"labelUrl": "https://cdn.example/HJ1.pdf"}))
        driver = make_driver("hepsijet", transport, api_key="k", api_secret="s")

        assert run(driver.get_label("HJ1")).data["label_url"] == "https://cdn.example/HJ1.pdf"

    def test_bad_credentials(self, make_driver):
        transport = FakeTransport(json_response({"message": "Unauthorized"}, status=401))
        driver = make_driver("hepsijet", transport, api_key="k", api_secret="wrong")

        result = run(driver.test_connection())

        assert result.kind == ResultKind.AUTH_ERROR
        assert len(transport.requests) == 1


# =============================================================================
# Navlungo
# =============================================================================

class TestNavlungo:
    def test_order_booked(self, make_driver, order):
        transport = FakeTransport(
            navlungo_token(),
            json_response({"success": True, "tracking_number": "NV1", "label_url": "https://nv.example/NV1"}),
        )
        driver = make_driver("navlungo", transport, custom_settings={"carrier_id": "7"}, api_key="k", api_secret="s")

        result = run(driver.sync_order(order))

        assert result.success, result.message
        assert result.data["tracking_number"] == "NV1"
        assert result.data["label_url"] == "https://nv.example/NV1"
        login, booking = transport.requests
        assert login.url == f"{NAVLUNGO}/v2/auth/login"
        assert login.json == {"api_key": "k", "api_secret": "s"}
        assert booking.headers["Authorization"] == "Bearer nv-tok"
        assert booking.json["carrier_id"] == "7"
        assert booking.json["payment_type"] == "sender_pays"
        assert booking.json["sender"]["email"] == "fatura@ornek.example"
        assert [p["deci"] for p in booking.json["parcels"]] == [1.0, 1.0, 1.0]

    def test_success_flag_false_rejected(self, make_driver, order):
        transport = FakeTransport(navlungo_token(), json_response({"success": False, "message": "Bakiye yetersiz"}))
        driver = make_driver("navlungo", transport, api_key="k", api_secret="s")

        result = run(driver.sync_order(order))

        assert result.kind == ResultKind.PROVIDER_REJECTED
        assert result.error_code == "rejected"
        assert "Bakiye yetersiz" in result.message

    def test_track_cancel_label(self, make_driver):
        transport = FakeTransport(
            navlungo_token(),
            json_response({"success": True, "status": "IN_TRANSIT", "events": [{"at": "2026-10-19"}]}),
            json_response({"success": True}),
            json_response({"success": True, "label_url": "https://nv.example/NV1.pdf"}),
        )
        driver = make_driver("navlungo", transport, api_key="k", api_secret="s")

        tracked = run(driver.track_shipment("NV1"))
        cancelled = run(driver.cancel_shipment("NV1", reason="Stok yok"))
        label = run(driver.get_label("NV1"))

        assert tracked.data["status"] == "IN_TRANSIT"
        assert len(tracked.data["events"]) == 1
        assert cancelled.message == "Shipment cancelled"
        assert label.data["label_url"] == "https://nv.example/NV1.pdf"
        assert [(r.method, r.url) for r in transport.requests[1:]] == [
            ("GET", f"{NAVLUNGO}/v2/track/NV1"),
            ("POST", f"{NAVLUNGO}/v2/cancel/NV1"),
            ("GET", f"{NAVLUNGO}/v2/label/NV1"),
        ]
        assert transport.requests[2].json == {"reason": "Stok yok"}


# =============================================================================
# Contract and validation
# =============================================================================

class TestCarrierContract:
    """Operations carriers do not support fail locally."""

    def test_no_catalog(self, make_driver):
        result = run(make_driver("navlungo", api_key="k", api_secret="s").sync_products())
        assert result.success
        assert result.data["products"] == []
        assert result.pagination.has_more is False

    def test_no_invoices(self, make_driver, order, supplier):
        driver = make_driver("hepsijet", api_key="k", api_secret="s")
        result = run(driver.create_invoice(build_invoice_payload(order, supplier)))

        assert result.kind == ResultKind.VALIDATION_ERROR
        assert driver.transport.requests == []

    def test_tracking_number_required(self, make_driver):
        driver = make_driver("hepsijet", api_key="k", api_secret="s")

        result = run(driver.track_shipment(" "))

        assert result.kind == ResultKind.VALIDATION_ERROR
        assert result.field == "tracking_number"
        assert driver.transport.requests == []

    def test_shipment_without_parcels_rejected(self, make_driver, order, supplier):
        driver = make_driver("navlungo", api_key="k", api_secret="s")
        shipment = build_shipment(order, supplier).model_copy(update={"parcels": []})

        result = run(driver.send_shipment(shipment))

        assert result.field == "parcels"
        assert driver.transport.requests == []

    def test_carrier_record(self, make_driver):
        assert make_driver("hepsijet", api_key="k", api_secret="s").carrier.tax_number == "2650701090"
        assert make_driver("navlungo", api_key="k", api_secret="s").carrier is None
