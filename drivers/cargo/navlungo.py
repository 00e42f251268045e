"""Navlungo cargo driver.

Navlungo brokers shipments to several carriers. ``POST /v2/auth/login``
with the API key pair returns a bearer token and its lifetime. Every reply
carries a ``success`` flag.

Required credentials: api_key, api_secret

Optional custom settings (or credential extras):
- carrier_id: carrier to book with; Navlungo picks one when empty
"""

from typing import Any, Dict, Optional

from core.mapping.money import money_float
from core.models.shipment import ShipmentContact, ShipmentPayer, ShipmentRequest
from drivers.auth.strategies import SessionToken
from drivers.base import register_driver
from drivers.cargo.base import CargoDriver
from drivers.errors import ProviderRejectedError, SchemaMismatchError


def _login_payload(credential) -> Dict[str, Any]:
    return {"api_key": credential.api_key, "api_secret": credential.api_secret}


def _contact(contact: ShipmentContact) -> Dict[str, Any]:
    return {
        "name": contact.name,
        "address": contact.address,
        "city": contact.city or "",
        "district": contact.district or "",
        "phone": contact.phone or "",
    }


@register_driver("navlungo")
class NavlungoDriver(CargoDriver):
    """Navlungo v2 API."""

    display_name = "Navlungo"
    default_base_url = "https://api.navlungo.com"
    required_credentials = ("api_key", "api_secret")

    def build_auth_strategy(self) -> SessionToken:
        return SessionToken(
            login_url=f"{self.base_url}/v2/auth/login",
            login_payload=_login_payload,
            lifetime_seconds=3600,
            lifetime_path="expires_in",
            header_prefix="Bearer",
        )

    def post_body(self, shipment: ShipmentRequest) -> Dict[str, Any]:
        sender = _contact(shipment.sender)
        sender["email"] = shipment.sender.email or ""
        return {
            "carrier_id": self.config.setting("carrier_id") or self.credential.value("carrier_id") or "",
            "sender": sender,
            "receiver": _contact(shipment.receiver),
            "parcels": [
                {"weight": money_float(p.weight_grams), "deci": money_float(p.desi), "description": p.content}
                for p in shipment.parcels
            ],
            "payment_type": "receiver_pays" if shipment.payer == ShipmentPayer.RECEIVER else "sender_pays",
            "invoice_number": shipment.invoice_number or "",
            "order_code": shipment.order_reference,
        }

    async def _send_shipment(self, shipment: ShipmentRequest) -> Dict[str, Any]:
        data = await self._request_json("POST", "/v2/create-a-post", json=self.post_body(shipment))
        reply = self.reply(data, "Navlungo shipment")
        tracking_number = reply.text("tracking_number")
        if not tracking_number:
            raise SchemaMismatchError("Navlungo booked a shipment without a tracking number", response_body=str(data)[:500])
        result = {"tracking_number": tracking_number}
        label_url = reply.text("label_url")
        if label_url:
            result["label_url"] = label_url
        return result

    async def _cancel_shipment(self, tracking_number: str, reason: str) -> Optional[str]:
        data = await self._request_json("POST", f"/v2/cancel/{tracking_number}", json={"reason": reason})
        return self.reply(data, "Navlungo cancellation").text("message")

    async def _track_shipment(self, tracking_number: str) -> Dict[str, Any]:
        reply = self.reply(await self._request_json("GET", f"/v2/track/{tracking_number}"), "Navlungo tracking")
        status = reply.text("status", default="")
        return {"status": status, "description": status, "events": reply.items("events")}

    async def _label(self, tracking_number: str, parcel_count: int) -> Dict[str, Any]:
        reply = self.reply(await self._request_json("GET", f"/v2/label/{tracking_number}"), "Navlungo label")
        label_url = reply.text("label_url")
        if not label_url:
            raise ProviderRejectedError(f"Navlungo has no label for {tracking_number}", "no_label")
        return {"label_url": label_url}
