"""Provider drivers - pluggable integrations with ERP, accounting and e-invoice services.

This package contains the driver contract and one subpackage per provider
(Parasut, Entegra, Dopigo, Sentos, StockMount, KolaySoft, BizimHesap), plus
the cargo carriers under cargo/ (Hepsijet, Navlungo).

Canonical models are provider-neutral. This package handles:
- Provider authentication and token lifecycle
- Rate limiting per provider and tenant
- Data transformation (canonical <-> provider format)
- Error classification into OperationResult kinds

Key Design Principle:
- Callers depend ONLY on the ProviderDriver contract
- Every operation returns an OperationResult; nothing raises to the caller
- No provider-specific types leak through the contract

To add a new provider:
1. Create a new folder (e.g., logo/)
2. Subclass ProviderDriver
3. Register using @register_driver decorator and import it below
"""

from drivers.base import (
    # Core contract
    ProviderDriver,
    DriverConfig,
    driver_operation,

    # Factory functions
    create_driver,
    register_driver,
    list_available_drivers,
)
from drivers.credentials import ProviderCredential
from drivers.errors import (
    DriverError,
    AuthenticationError,
    RateLimitExceededError,
    ProviderRejectedError,
    TransientNetworkError,
    SchemaMismatchError,
    PayloadValidationError,
    ConfigurationError,
    classify_response,
    normalize_exception,
)
from drivers.rate_limit import RateLimiter, RateLimitRule
from drivers.transport import HttpTransport, Transport, TransportRequest, TransportResponse

# Import providers to register them
from drivers.parasut import ParasutDriver
from drivers.entegra import EntegraDriver
from drivers.dopigo import DopigoDriver
from drivers.sentos import SentosDriver
from drivers.stockmount import StockMountDriver
from drivers.kolaysoft import KolaySoftDriver
from drivers.bizimhesap import BizimHesapDriver
from drivers.cargo import CargoDriver, HepsijetDriver, NavlungoDriver

__all__ = [
    # Core contract
    "ProviderDriver",
    "DriverConfig",
    "driver_operation",
    "ProviderCredential",

    # Factory functions
    "create_driver",
    "register_driver",
    "list_available_drivers",

    # Errors
    "DriverError",
    "AuthenticationError",
    "RateLimitExceededError",
    "ProviderRejectedError",
    "TransientNetworkError",
    "SchemaMismatchError",
    "PayloadValidationError",
    "ConfigurationError",
    "classify_response",
    "normalize_exception",

    # Infrastructure
    "RateLimiter",
    "RateLimitRule",
    "HttpTransport",
    "Transport",
    "TransportRequest",
    "TransportResponse",

    # Providers
    "ParasutDriver",
    "EntegraDriver",
    "DopigoDriver",
    "SentosDriver",
    "StockMountDriver",
    "KolaySoftDriver",
    "BizimHesapDriver",

    # Cargo carriers
    "CargoDriver",
    "HepsijetDriver",
    "NavlungoDriver",
]
