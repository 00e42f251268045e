"""
Observability Module for Marketplace Integrations

Provides:
- Structured logging with correlation IDs (provider, tenant, operation)
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    get_correlation_context,
    with_correlation,
    log_operation_start,
    log_operation_complete,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "get_correlation_context",
    "with_correlation",
    "log_operation_start",
    "log_operation_complete",
]
