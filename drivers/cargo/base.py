"""Cargo carrier driver contract.

Carriers share the provider pipeline (rate gate, ``AuthManager``, status
classification, the ``OperationResult`` boundary) and add four shipment
operations:

    send_shipment(shipment)                  book a pickup, returns the tracking number
    cancel_shipment(tracking_number, reason) cancel a booked shipment
    track_shipment(tracking_number)          current status and movement events
    get_label(tracking_number, parcels)      label URL or ZPL label text

Carriers have no catalog and issue no invoices. ``sync_order`` books the
shipment for an order, sent from the configured supplier party.

Optional custom settings (all carriers):
- payer: "sender" (default) or "receiver"
"""

from abc import abstractmethod
from typing import Any, ClassVar, Dict, Optional

from core.mapping.accessor import PayloadAccessor
from core.mapping.carriers import Carrier, resolve_carrier
from core.mapping.shipments import build_shipment
from core.models.canonical import CanonicalOrder
from core.models.invoice import InvoicePayload
from core.models.results import OperationResult, Pagination
from core.models.shipment import ShipmentPayer, ShipmentRequest
from drivers.base import ProviderDriver, driver_operation
from drivers.errors import PayloadValidationError, ProviderRejectedError, SchemaMismatchError

DEFAULT_CANCEL_REASON = "Müşteri talebi ile iptal edildi"

_MESSAGE_PATHS = ["message", "error", "errorMessage"]


class CargoDriver(ProviderDriver):
    """Base class for cargo carriers."""

    carrier_key: ClassVar[Optional[str]] = None

    @property
    def carrier(self) -> Optional[Carrier]:
        """Official carrier record, for carriers that deliver themselves."""
        return resolve_carrier(self.carrier_key)

    def payer(self) -> ShipmentPayer:
        value = str(self.config.setting("payer", ShipmentPayer.SENDER.value)).lower()
        if value in ("receiver", "receiver_pays", "alici_odeyecek"):
            return ShipmentPayer.RECEIVER
        return ShipmentPayer.SENDER

    @staticmethod
    def reply(data: Any, what: str) -> PayloadAccessor:
        """Carrier reply with its ``success`` flag checked.

        Raises:
            ProviderRejectedError: The reply carries ``success: false``
        """
        if not isinstance(data, dict):
            raise SchemaMismatchError(f"Expected an object for {what}, got {type(data).__name__}", response_body=str(data)[:500])
        acc = PayloadAccessor(data)
        flag = acc.get(["success", "isSuccess"])
        if flag is not None and not acc.boolean(["success", "isSuccess"]):
            message = acc.text(_MESSAGE_PATHS, default="unknown error")
            raise ProviderRejectedError(f"{what} refused: {message}", "rejected", response_body=str(data)[:500])
        return acc

    # =========================================================================
    # Contract
    # =========================================================================

    @driver_operation
    async def test_connection(self) -> OperationResult:
        token = await self.auth.ensure_token(force=True)
        data: Dict[str, Any] = {"endpoint": self.base_url}
        if token is not None:
            data["token_expires_at"] = token.expires_at.isoformat()
        return OperationResult.ok(f"Connected to {self.display_name}", data=data)

    @driver_operation
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        return OperationResult.ok(
            f"{self.display_name} has no product catalog",
            data={"products": []},
            pagination=Pagination(page=page, per_page=page_size, total=0, has_more=False),
        )

    @driver_operation
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        """Book the shipment of an order."""
        shipment = build_shipment(order, self.supplier_party(), self.policy, payer=self.payer())
        return await self._book(shipment)

    @driver_operation
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        raise PayloadValidationError(f"{self.display_name} does not issue invoices", field="invoice")

    # =========================================================================
    # Shipments
    # =========================================================================

    @driver_operation
    async def send_shipment(self, shipment: ShipmentRequest) -> OperationResult:
        return await self._book(shipment)

    async def _book(self, shipment: ShipmentRequest) -> OperationResult:
        if not shipment.parcels:
            raise PayloadValidationError("Shipment has no parcels", field="parcels")
        data = await self._send_shipment(shipment)
        self.logger.info(f"Shipment {data['tracking_number']} booked for {shipment.order_reference}")
        return OperationResult.ok("Shipment booked", data={"order_reference": shipment.order_reference, **data})

    @driver_operation
    async def cancel_shipment(self, tracking_number: str, reason: str = DEFAULT_CANCEL_REASON) -> OperationResult:
        self._require_tracking(tracking_number)
        message = await self._cancel_shipment(tracking_number, reason)
        return OperationResult.ok(message or "Shipment cancelled", data={"tracking_number": tracking_number})

    @driver_operation
    async def track_shipment(self, tracking_number: str) -> OperationResult:
        self._require_tracking(tracking_number)
        data = await self._track_shipment(tracking_number)
        return OperationResult.ok("Shipment tracked", data={"tracking_number": tracking_number, **data})

    @driver_operation
    async def get_label(self, tracking_number: str, parcel_count: int = 1) -> OperationResult:
        self._require_tracking(tracking_number)
        data = await self._label(tracking_number, max(parcel_count, 1))
        return OperationResult.ok("Label fetched", data={"tracking_number": tracking_number, **data})

    @staticmethod
    def _require_tracking(tracking_number: Optional[str]) -> None:
        if not tracking_number or not str(tracking_number).strip():
            raise PayloadValidationError("Tracking number is required", field="tracking_number")

    @abstractmethod
    async def _send_shipment(self, shipment: ShipmentRequest) -> Dict[str, Any]:
        """Book the shipment; the result has at least ``tracking_number``."""
        pass

    @abstractmethod
    async def _cancel_shipment(self, tracking_number: str, reason: str) -> Optional[str]:
        pass

    @abstractmethod
    async def _track_shipment(self, tracking_number: str) -> Dict[str, Any]:
        """``status``, ``description`` and ``events`` of a shipment."""
        pass

    @abstractmethod
    async def _label(self, tracking_number: str, parcel_count: int) -> Dict[str, Any]:
        pass
