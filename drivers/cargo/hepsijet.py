"""Hepsijet cargo driver.

``GET /auth/getToken`` with HTTP Basic (api_key:api_secret) returns a
bearer token valid for an hour. Shipments of 41 desi or more are booked as
XL deliveries on a separate endpoint.

Required credentials: api_key, api_secret
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.money import money_float
from core.models.shipment import ShipmentContact, ShipmentPayer, ShipmentRequest
from drivers.auth.strategies import BasicStatic, SessionToken
from drivers.base import register_driver
from drivers.cargo.base import CargoDriver
from drivers.errors import ProviderRejectedError, SchemaMismatchError

LIVE_BASE_URL = "https://integration.hepsijet.com"
TEST_BASE_URL = "https://integration-apitest.hepsijet.com"
XL_DESI = Decimal("41")

STANDARD_ENDPOINT = "/delivery/sendDeliveryOrderEnhanced"
XL_ENDPOINT = "/delivery/sendDeliveryOrder"
TRACKING_ENDPOINTS = ("/deliveryTransaction/getDeliveryTracking", "/delivery/integration/track")


def _party(contact: ShipmentContact, with_email: bool) -> Dict[str, Any]:
    party = {
        "name": contact.name,
        "address": {
            "city": {"name": contact.city or ""},
            "town": {"name": contact.district or ""},
            "district": {"name": ""},
            "addressLine1": contact.address,
            "addressLine2": "",
        },
        "phone": contact.phone or "",
    }
    if with_email:
        party["email"] = contact.email or ""
    return party


@register_driver("hepsijet")
class HepsijetDriver(CargoDriver):
    """Hepsijet delivery API."""

    display_name = "Hepsijet"
    carrier_key = "hepsijet"
    required_credentials = ("api_key", "api_secret")

    def resolve_base_url(self) -> str:
        return TEST_BASE_URL if self.config.is_test else LIVE_BASE_URL

    def build_auth_strategy(self) -> SessionToken:
        return SessionToken(
            login_url=f"{self.base_url}/auth/getToken",
            login_payload=None,
            login_method="GET",
            login_auth=BasicStatic(user_fields=("api_key",), password_fields=("api_secret",)),
            token_path=("token", "access_token", "accessToken"),
            lifetime_seconds=3600,
            lifetime_path=("expires_in", "expiresIn"),
            header_prefix="Bearer",
        )

    def delivery_body(self, shipment: ShipmentRequest) -> Dict[str, Any]:
        xl = shipment.total_desi >= XL_DESI
        return {
            "customerOrderId": shipment.order_reference,
            "sender": _party(shipment.sender, with_email=True),
            "receiver": _party(shipment.receiver, with_email=False),
            "parcels": [
                {"desi": money_float(p.desi), "weight": money_float(p.weight_grams), "content": p.content}
                for p in shipment.parcels
            ],
            "serviceType": ["TMH"] if xl else ["STANDART"],
            "paymentType": "RECEIVER_PAYS" if shipment.payer == ShipmentPayer.RECEIVER else "SENDER_PAYS",
            "codAmount": money_float(shipment.cod_amount),
            "invoiceNumber": shipment.invoice_number or "",
        }

    async def _send_shipment(self, shipment: ShipmentRequest) -> Dict[str, Any]:
        endpoint = XL_ENDPOINT if shipment.total_desi >= XL_DESI else STANDARD_ENDPOINT
        reply = self.reply(await self._request_json("POST", endpoint, json=self.delivery_body(shipment)), "Hepsijet delivery")
        delivery_no = reply.text(["deliveryNo", "delivery_no"])
        if not delivery_no:
            message = reply.text(["message", "error", "errorMessage"], default="no delivery number returned")
            raise ProviderRejectedError(f"Hepsijet delivery refused: {message}", "no_delivery_no", response_body=str(reply.raw)[:500])
        return {
            "tracking_number": delivery_no,
            "barcode": reply.text("barcode", default=delivery_no),
            "status": reply.text("status", default="SUCCESS"),
            "xl": endpoint == XL_ENDPOINT,
        }

    async def _cancel_shipment(self, tracking_number: str, reason: str) -> Optional[str]:
        data = await self._request_json(
            "POST",
            f"/rest/delivery/deleteDeliveryOrder/{tracking_number}",
            json={"reason": reason},
        )
        return self.reply(data, "Hepsijet cancellation").text("message")

    async def _track_shipment(self, tracking_number: str) -> Dict[str, Any]:
        body = {"deliveryNo": tracking_number}
        try:
            data = await self._request_json("POST", TRACKING_ENDPOINTS[0], json=body)
        except ProviderRejectedError as e:
            self.logger.info(f"Tracking {tracking_number} via fallback endpoint: {e.message}")
            data = await self._request_json("POST", TRACKING_ENDPOINTS[1], json=body)
        reply = self.reply(data, "Hepsijet tracking")
        status = reply.text(["status", "Status"], default="")
        return {
            "status": status,
            "description": reply.text(["statusDescription", "status_description"], default=status),
            "events": reply.items(["events", "Events"]),
            "tracking_events": reply.items(["trackingEvents", "tracking_events"]),
        }

    async def _label(self, tracking_number: str, parcel_count: int) -> Dict[str, Any]:
        try:
            data = await self._request_json(
                "POST",
                "/delivery/BarcodeLabel",
                json={"barcode": tracking_number, "totalParcel": parcel_count},
            )
        except (ProviderRejectedError, SchemaMismatchError) as e:
            self.logger.info(f"No label URL for {tracking_number}, requesting ZPL: {e.message}")
        else:
            label_url = PayloadAccessor(data if isinstance(data, dict) else {}).text(["labelUrl", "label_url"])
            if label_url:
                return {"label_url": label_url, "barcode": tracking_number}

        response = await self._send(
            "GET",
            f"/delivery/generateZplBarcode/{tracking_number}/{parcel_count}",
            headers={"Accept": "text/plain"},
        )
        return {"label": response.text, "format": "zpl", "barcode": tracking_number}
