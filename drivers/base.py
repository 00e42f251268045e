"""Provider driver contract, request pipeline and registry.

Every driver implements the same four operations:

    test_connection()                 cheapest authenticated call, no side effects
    sync_products(page, page_size)    one page of CanonicalProduct
    sync_order(order)                 push a CanonicalOrder
    create_invoice(payload)           issue a fiscal document

Each returns an ``OperationResult``; the ``driver_operation`` decorator is
the boundary where exceptions are normalized, so nothing raises to the
caller. Outbound requests go through ``_send``: rate gate, credentials,
transport, status classification, with ``AuthManager`` providing the single
renew-and-retry on 401.

To add a provider:
1. Create a subpackage under drivers/
2. Subclass ProviderDriver and implement build_auth_strategy + the contract
3. Register it with @register_driver("name")
"""

import asyncio
import functools
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple, Type

from core.config import IntegrationSettings
from core.mapping.fallbacks import DEFAULT_FALLBACKS, FallbackPolicy
from core.models.canonical import CanonicalOrder, CanonicalProduct
from core.models.invoice import InvoiceParty, InvoicePayload
from core.models.results import OperationResult, Pagination
from core.observability.logging import (
    get_logger,
    log_operation_complete,
    log_operation_start,
    with_correlation,
)
from core.security.credential_store import CredentialStore, InMemoryCredentialStore
from drivers.auth.manager import AuthManager
from drivers.auth.strategies import AuthStrategy
from drivers.auth.tokens import utcnow
from drivers.credentials import ProviderCredential
from drivers.errors import (
    ConfigurationError,
    PayloadValidationError,
    SchemaMismatchError,
    classify_response,
    normalize_exception,
)
from drivers.rate_limit import RateLimiter, RateLimitRule
from drivers.transport import HttpTransport, Transport, TransportRequest, TransportResponse


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class DriverConfig:
    """Configuration for one tenant's driver instance."""
    provider: str
    credential: ProviderCredential
    environment: str = "production"  # production, test
    base_url: Optional[str] = None
    timeout_seconds: Optional[float] = None
    token_buffer_seconds: Optional[float] = None
    rate_limits: Optional[List[RateLimitRule]] = None  # overrides driver defaults
    fallbacks: FallbackPolicy = DEFAULT_FALLBACKS
    supplier: Optional[InvoiceParty] = None
    custom_settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def tenant_id(self) -> str:
        return self.credential.tenant_id

    @property
    def is_test(self) -> bool:
        return self.environment.lower() in ("test", "sandbox", "staging")

    def setting(self, name: str, default: Any = None) -> Any:
        return self.custom_settings.get(name, default)


# =============================================================================
# Operation boundary
# =============================================================================

def driver_operation(func):
    """Run a driver operation under correlation and normalize its outcome."""
    operation = func.__name__

    @functools.wraps(func)
    async def wrapper(self: "ProviderDriver", *args, **kwargs) -> OperationResult:
        started = time.monotonic()
        with with_correlation(
            provider=self.name,
            tenant_id=self.tenant_id,
            operation=operation,
            request_id=uuid.uuid4().hex[:12],
        ):
            log_operation_start(operation)
            try:
                result = await func(self, *args, **kwargs)
            except Exception as exc:
                result = normalize_exception(exc, f"{self.name}.{operation}")
            log_operation_complete(
                operation,
                result.kind.value,
                duration_ms=(time.monotonic() - started) * 1000,
                message=result.message,
            )
            return result

    return wrapper


# =============================================================================
# Driver Contract
# =============================================================================

class ProviderDriver(ABC):
    """Abstract base class for provider drivers.

    Subclasses declare:
        name: registry key
        default_base_url: used when the config does not set one
        required_credentials / credential_groups: validated at construction
        default_rate_limits: provider budget
        uses_soap: takes the SOAP timeout from settings instead of the HTTP one
    """

    name: ClassVar[str] = "base"
    display_name: ClassVar[str] = ""
    default_base_url: ClassVar[str] = ""
    required_credentials: ClassVar[Tuple[str, ...]] = ()
    credential_groups: ClassVar[Tuple[Tuple[str, ...], ...]] = ()
    default_rate_limits: ClassVar[Tuple[RateLimitRule, ...]] = ()
    uses_soap: ClassVar[bool] = False

    def __init__(
        self,
        config: DriverConfig,
        store: Optional[CredentialStore] = None,
        transport: Optional[Transport] = None,
        settings: Optional[IntegrationSettings] = None,
        clock: Callable[[], float] = time.time,
        sleep=asyncio.sleep,
        now=utcnow,
    ):
        if config.credential.provider != self.name:
            raise ConfigurationError(
                f"Credential for {config.credential.provider} cannot be used with the {self.name} driver"
            )
        if self.required_credentials:
            config.credential.require(*self.required_credentials)
        if self.credential_groups:
            config.credential.require_any(*self.credential_groups)

        settings = settings or IntegrationSettings()
        self.config = config
        self.credential = config.credential
        self.policy = config.fallbacks
        self.timeout = config.timeout_seconds or (
            settings.soap_timeout_seconds if self.uses_soap else settings.http_timeout_seconds
        )
        self.store = store or InMemoryCredentialStore()
        self.transport = transport or HttpTransport(default_timeout=self.timeout)
        self.logger = get_logger(f"drivers.{self.name}")

        rules = config.rate_limits if config.rate_limits is not None else self.default_rate_limits
        self.rate_limiter = RateLimiter(
            self.name,
            self.tenant_id,
            self.store,
            rules,
            clock=clock,
            sleep=sleep,
        )
        self.auth = AuthManager(
            self.build_auth_strategy(),
            self.credential,
            self.store,
            sender=self._dispatch,
            clock=now,
            buffer_seconds=(
                config.token_buffer_seconds
                if config.token_buffer_seconds is not None
                else settings.token_buffer_seconds
            ),
            timeout=self.timeout,
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def tenant_id(self) -> str:
        return self.credential.tenant_id

    @property
    def base_url(self) -> str:
        url = self.config.base_url or self.resolve_base_url()
        if not url:
            raise ConfigurationError(f"{self.name}: no base URL configured")
        return url.rstrip("/")

    def resolve_base_url(self) -> str:
        return self.default_base_url

    @abstractmethod
    def build_auth_strategy(self) -> AuthStrategy:
        """Authentication strategy for this provider."""
        pass

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    def default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _dispatch(self, request: TransportRequest, rate_class: Optional[str] = None) -> TransportResponse:
        """Rate gate then transport; used for auth calls too."""
        await self.rate_limiter.acquire(request.method, rate_class)
        return await self.transport.send(request)

    def check_response(self, response: TransportResponse) -> None:
        """Raise for failures. Drivers extend this for in-body error codes."""
        if not response.ok:
            raise classify_response(response.status, response.text)

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        form: Optional[Dict[str, Any]] = None,
        multipart: Optional[Dict[str, Any]] = None,
        body: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        rate_class: Optional[str] = None,
    ) -> TransportResponse:
        """Authenticated, rate-limited request with one renewal on 401.

        ``rate_class`` meters the call on a rule other than its method's.
        """
        url = self.url(path)

        async def attempt(token):
            request = TransportRequest(
                method=method,
                url=url,
                headers={**self.default_headers(), **(headers or {})},
                params=params,
                json=json,
                form=form,
                multipart=multipart,
                body=body,
                timeout=timeout or self.timeout,
            )
            self.auth.strategy.apply(request, self.credential, token)
            response = await self._dispatch(request, rate_class)
            self.check_response(response)
            return response

        return await self.auth.call(attempt)

    async def _request_json(self, method: str, path: str, **kwargs) -> Any:
        response = await self._send(method, path, **kwargs)
        return response.json()

    @staticmethod
    def expect_dict(data: Any, what: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise SchemaMismatchError(f"Expected an object for {what}, got {type(data).__name__}", response_body=str(data)[:500])
        return data

    @classmethod
    def whole_quantity(cls, quantity: Decimal) -> int:
        """Line quantity as an integer; providers that count units reject fractions."""
        if quantity != quantity.to_integral_value():
            raise PayloadValidationError(
                f"{cls.display_name or cls.name} accepts whole quantities only, got {quantity}",
                field="quantity",
            )
        return int(quantity)

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------

    def products_page(
        self,
        products: Sequence[CanonicalProduct],
        page: int,
        page_size: int,
        total: Optional[int] = None,
        has_more: Optional[bool] = None,
        next_cursor: Optional[str] = None,
        message: str = "Products fetched",
    ) -> OperationResult:
        return OperationResult.ok(
            message,
            data={"products": [p.to_sync_dict() for p in products]},
            pagination=Pagination(
                page=page,
                per_page=page_size,
                total=total,
                has_more=has_more if has_more is not None else len(products) >= page_size,
                next_cursor=next_cursor,
            ),
        )

    def supplier_party(self) -> InvoiceParty:
        """Issuing party for invoices, from config or custom settings."""
        if self.config.supplier is not None:
            return self.config.supplier
        supplier = self.config.setting("supplier")
        if isinstance(supplier, dict):
            return InvoiceParty.model_validate(supplier)
        raise ConfigurationError(f"{self.name}: supplier party is not configured")

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def test_connection(self) -> OperationResult:
        """Validate credentials with the cheapest authenticated call."""
        pass

    @abstractmethod
    async def sync_products(self, page: int = 1, page_size: int = 100) -> OperationResult:
        """Fetch one page of products as CanonicalProduct dicts."""
        pass

    @abstractmethod
    async def sync_order(self, order: CanonicalOrder) -> OperationResult:
        """Push an order in the provider's shape."""
        pass

    @abstractmethod
    async def create_invoice(self, payload: InvoicePayload) -> OperationResult:
        """Create a fiscal document."""
        pass


# =============================================================================
# Driver Registry
# =============================================================================

_driver_registry: Dict[str, Type[ProviderDriver]] = {}


def register_driver(name: str):
    """Decorator to register a driver class under ``name``."""
    def decorator(cls):
        cls.name = name
        _driver_registry[name] = cls
        return cls
    return decorator


def create_driver(config: DriverConfig, **kwargs) -> ProviderDriver:
    """Instantiate the registered driver for ``config.provider``.

    Raises:
        ValueError: Unknown provider
        ConfigurationError: Missing credential fields
    """
    provider = config.provider
    if provider not in _driver_registry:
        available = ", ".join(sorted(_driver_registry)) or "none"
        raise ValueError(f"Unknown provider: {provider}. Available: {available}")
    return _driver_registry[provider](config, **kwargs)


def list_available_drivers() -> List[str]:
    """List registered provider names."""
    return sorted(_driver_registry)
