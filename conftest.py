"""Shared pytest fixtures: scripted transport, controllable clock, sample documents."""

import json
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Union

import pytest

from core.models.canonical import Address, CanonicalOrder, Customer, OrderLine, PaymentStatus
from core.models.invoice import InvoiceParty
from core.security.credential_store import InMemoryCredentialStore
from drivers.base import DriverConfig, create_driver
from drivers.credentials import ProviderCredential
from drivers.transport import Transport, TransportRequest, TransportResponse

Scripted = Union[TransportResponse, Exception, Callable[[TransportRequest], TransportResponse]]


def json_response(data: Any, status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, text=json.dumps(data))


def text_response(text: str, status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, text=text)


class FakeTransport(Transport):
    """Replays scripted responses in order and records every request."""

    def __init__(self, *responses: Scripted):
        self.responses: List[Scripted] = list(responses)
        self.requests: List[TransportRequest] = []

    def queue(self, *responses: Scripted) -> "FakeTransport":
        self.responses.extend(responses)
        return self

    async def send(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        scripted = self.responses.pop(0)
        if isinstance(scripted, Exception):
            raise scripted
        if callable(scripted):
            return scripted(request)
        return scripted

    def urls(self) -> List[str]:
        return [r.url for r in self.requests]


class FakeClock:
    """Wall clock under test control; ``sleep`` advances it instantly."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=timezone.utc)

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryCredentialStore:
    return InMemoryCredentialStore(clock=clock.time)


@pytest.fixture
def supplier() -> InvoiceParty:
    return InvoiceParty(
        name="Ornek Ecza Deposu A.S.",
        tax_number="1234567890",
        tax_office="Kadikoy",
        street="Moda Cad. 1",
        district="Kadikoy",
        city="Istanbul",
        postal_code="34710",
        country="Türkiye",
        email="fatura@ornek.example",
        phone="+902165550000",
    )


@pytest.fixture
def order() -> CanonicalOrder:
    """Two units at 50.00 and one at 30.00, all at 20% VAT."""
    return CanonicalOrder(
        id="981",
        prefix="IE",
        code="1001",
        created_at=datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc),
        customer=Customer(
            name="Ayşe Yılmaz",
            email="ayse@example.com",
            phone="0532 111 22 33",
        ),
        shipping_address=Address(line1="Bağdat Cad. 10", district="Maltepe", city="Istanbul", postal_code="34840"),
        lines=[
            OrderLine(product_id="p-1", sku="VIT-C", name="Vitamin C", quantity=2, unit_price="50.00", vat_rate=20),
            OrderLine(product_id="p-2", sku="ZINC", name="Zinc", quantity=1, unit_price="30.00", vat_rate=20),
        ],
        payment_status=PaymentStatus.PAID,
        payment_method="KREDIKARTI/BANKAKARTI",
    )


@pytest.fixture
def make_driver(store, clock, supplier):
    """Build a registered driver wired to a FakeTransport and the fake clock."""

    def factory(provider: str, transport: Optional[FakeTransport] = None, custom_settings=None, **credential_fields):
        credential = ProviderCredential(provider=provider, tenant_id="eczane-42", **credential_fields)
        config = DriverConfig(
            provider=provider,
            credential=credential,
            supplier=supplier,
            custom_settings=custom_settings or {},
        )
        return create_driver(
            config,
            store=store,
            transport=transport or FakeTransport(),
            clock=clock.time,
            sleep=clock.sleep,
            now=clock.utcnow,
        )

    return factory
