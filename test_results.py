"""
Result Normalization Tests

Every driver call resolves to one OperationResult:
1. HTTP statuses map onto the error taxonomy
2. Raised exceptions (driver, network, parsing, unknown) become results
3. Result invariants: success matches kind, failures carry no data
"""

import asyncio

import aiohttp
import pytest
from pydantic import ValidationError

from core.models.results import OperationResult, Pagination, ResultKind
from drivers.errors import (
    AuthenticationError,
    ConfigurationError,
    DriverError,
    PayloadValidationError,
    ProviderRejectedError,
    RateLimitExceededError,
    SchemaMismatchError,
    TransientNetworkError,
    classify_response,
    normalize_exception,
)


class TestClassifyResponse:
    """HTTP status to exception."""

    @pytest.mark.parametrize("status, expected", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (429, RateLimitExceededError),
        (408, TransientNetworkError),
        (502, TransientNetworkError),
        (400, ProviderRejectedError),
        (422, ProviderRejectedError),
    ])
    def test_status_mapping(self, status, expected):
        assert isinstance(classify_response(status), expected)

    def test_message_from_json_body(self):
        error = classify_response(422, '{"errors": [{"title": "Geçersiz vergi no"}]}')
        assert "Geçersiz vergi no" in error.message
        assert error.code == "422"

    def test_plain_body(self):
        error = classify_response(400, "bad request  ")
        assert error.message.endswith("bad request")


class TestNormalizeException:
    """Exception to result."""

    def test_validation_keeps_field(self):
        result = normalize_exception(PayloadValidationError("Missing tax number", field="tax_number"))
        assert result.kind == ResultKind.VALIDATION_ERROR
        assert result.field == "tax_number"
        assert result.success is False

    def test_rate_limit_keeps_retry_after(self):
        result = normalize_exception(RateLimitExceededError("slow down", retry_after=12))
        assert result.kind == ResultKind.RATE_LIMIT_EXCEEDED
        assert result.retry_after == 12

    def test_rejection_keeps_code(self):
        result = normalize_exception(ProviderRejectedError("Fatura mevcut", code="103"))
        assert result.kind == ResultKind.PROVIDER_REJECTED
        assert result.error_code == "103"

    @pytest.mark.parametrize("exc, kind", [
        (AuthenticationError("expired", 401), ResultKind.AUTH_ERROR),
        (TransientNetworkError("timeout"), ResultKind.TRANSIENT_NETWORK_ERROR),
        (SchemaMismatchError("no id", response_body="{}"), ResultKind.SCHEMA_MISMATCH),
        (ConfigurationError("no url"), ResultKind.VALIDATION_ERROR),
        (aiohttp.ClientConnectionError("refused"), ResultKind.TRANSIENT_NETWORK_ERROR),
        (asyncio.TimeoutError(), ResultKind.TRANSIENT_NETWORK_ERROR),
        (KeyError("data"), ResultKind.SCHEMA_MISMATCH),
        (TypeError("NoneType"), ResultKind.SCHEMA_MISMATCH),
    ])
    def test_kind_mapping(self, exc, kind):
        assert normalize_exception(exc, "parasut.sync_order").kind == kind

    def test_generic_driver_error(self):
        result = normalize_exception(DriverError("odd", status_code=418))
        assert result.kind == ResultKind.PROVIDER_REJECTED
        assert result.error_code == "418"

    def test_unknown_exception(self):
        result = normalize_exception(RuntimeError("boom"), "sentos.sync_products")
        assert result.kind == ResultKind.PROVIDER_REJECTED
        assert result.error_code == "unexpected_error"
        assert "sentos.sync_products" in result.message


class TestOperationResult:
    """Result invariants and serialization."""

    def test_ok_defaults_to_empty_data(self):
        result = OperationResult.ok()
        assert result.success
        assert result.data == {}

    def test_success_must_match_kind(self):
        with pytest.raises(ValidationError):
            OperationResult(success=True, kind=ResultKind.AUTH_ERROR)
        with pytest.raises(ValidationError):
            OperationResult(success=False, kind=ResultKind.SUCCESS)

    def test_failure_cannot_carry_data(self):
        with pytest.raises(ValidationError):
            OperationResult(success=False, kind=ResultKind.PROVIDER_REJECTED, data={"id": 1})

    def test_to_dict(self):
        result = OperationResult.ok(
            "Products synced",
            data={"products": []},
            pagination=Pagination(page=2, per_page=50, has_more=True),
        )
        assert result.to_dict() == {
            "success": True,
            "kind": "success",
            "message": "Products synced",
            "data": {"products": []},
            "pagination": {"page": 2, "per_page": 50, "has_more": True},
        }

    def test_failure_dict_omits_empty(self):
        assert OperationResult.auth_error("expired").to_dict() == {
            "success": False,
            "kind": "auth_error",
            "message": "expired",
        }
