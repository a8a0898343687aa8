"""
Tests for the middleware - app/core/middleware.py

Covers:
- CorrelationIdMiddleware: correlation id propagation
- RequestLoggingMiddleware: request logging with phone numbers masked
- SecurityHeadersMiddleware
- Exception handlers for AppException and unexpected errors
- setup_middleware: the full stack through the app
"""
import json
from unittest.mock import AsyncMock

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from app.core.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    _safe_query_params,
    app_exception_handler,
    generic_exception_handler,
)
from app.core.exceptions import (
    AppException,
    ErrorCode,
    InvalidNDRTransitionError,
    ValidationException,
)


# ============================================================================
# Helpers
# ============================================================================


def _hello(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


def _error(request: Request) -> PlainTextResponse:
    raise ValueError("boom")


def _build_app(*, middlewares: list[tuple] | None = None) -> Starlette:
    """Minimal Starlette app with the given middleware"""
    app = Starlette(routes=[
        Route("/test", _hello),
        Route("/rides/{phone}", _hello),
        Route("/error", _error),
    ])
    for mw_class, kwargs in middlewares or []:
        app.add_middleware(mw_class, **kwargs)
    return app


def _request_with_query(query: str) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/api/rides",
        "query_string": query.encode(),
        "headers": [],
    })


# ============================================================================
# Query parameter masking
# ============================================================================


class TestSafeQueryParams:

    @pytest.mark.unit
    def test_sensitive_keys_are_hidden(self) -> None:
        params = _safe_query_params(_request_with_query("token=abc.def&status=pending"))
        assert params == {"token": "***", "status": "pending"}

    @pytest.mark.unit
    def test_phone_values_are_masked(self) -> None:
        params = _safe_query_params(_request_with_query("q=979-555-0100"))
        assert params["q"] == "***0100"

    @pytest.mark.unit
    def test_phone_key_never_logged(self) -> None:
        params = _safe_query_params(_request_with_query("phone=9795550100"))
        assert params["phone"] == "***"


# ============================================================================
# CorrelationIdMiddleware
# ============================================================================


class TestCorrelationIdMiddleware:

    @pytest.mark.unit
    def test_generates_correlation_id_when_missing(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert response.status_code == 200
            assert len(response.headers["x-correlation-id"]) == 8

    @pytest.mark.unit
    def test_preserves_existing_correlation_id(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test", headers={"X-Correlation-ID": "dispatch-42"})
            assert response.headers["x-correlation-id"] == "dispatch-42"

    @pytest.mark.unit
    def test_correlation_id_unique_per_request(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            first = client.get("/test").headers["x-correlation-id"]
            second = client.get("/test").headers["x-correlation-id"]
            assert first != second


# ============================================================================
# RequestLoggingMiddleware
# ============================================================================


class TestRequestLoggingMiddleware:

    @pytest.mark.unit
    def test_phone_in_path_is_masked_in_logs(self, caplog) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with caplog.at_level("INFO", logger="app.core.middleware"):
            with TestClient(app) as client:
                response = client.get("/rides/9795550100")

        assert response.status_code == 200
        messages = [r.getMessage() for r in caplog.records]
        assert "Request completed: GET /rides/***0100" in messages
        assert not any("9795550100" in m for m in messages)

    @pytest.mark.unit
    def test_exception_in_handler_reraised(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/error")
            assert response.status_code == 500


# ============================================================================
# Exception handlers
# ============================================================================


class TestAppExceptionHandler:

    @pytest.mark.unit
    async def test_handles_app_exception(self) -> None:
        exc = InvalidNDRTransitionError(7, "pending", "completed")

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/ndrs/7/end"

        response = await app_exception_handler(mock_request, exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 409
        assert "x-correlation-id" in response.headers
        body = json.loads(response.body)
        assert body["error"]["code"] == "ERR_2002"

    @pytest.mark.unit
    async def test_handles_validation_exception(self) -> None:
        exc = ValidationException(message="Invalid phone number", field="phone")

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/rides"

        response = await app_exception_handler(mock_request, exc)

        assert response.status_code == 400
        assert json.loads(response.body)["error"]["details"] == {"field": "phone"}

    @pytest.mark.unit
    async def test_custom_status_passthrough(self) -> None:
        exc = AppException("Store down", error_code=ErrorCode.STORE_UNAVAILABLE, status_code=503)
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/ndrs/1/working-copy"

        response = await app_exception_handler(mock_request, exc)
        assert response.status_code == 503


class TestGenericExceptionHandler:

    @pytest.mark.unit
    async def test_handles_unexpected_exception(self) -> None:
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/something"

        response = await generic_exception_handler(mock_request, RuntimeError("unexpected"))

        assert isinstance(response, JSONResponse)
        assert response.status_code == 500
        assert "x-correlation-id" in response.headers

    @pytest.mark.unit
    async def test_does_not_leak_internal_details(self) -> None:
        exc = RuntimeError("database connection failed on host 10.0.0.1")

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/test"

        response = await generic_exception_handler(mock_request, exc)

        body = response.body.decode()
        assert "10.0.0.1" not in body
        assert "database connection" not in body
        assert "ERR_1000" in body


# ============================================================================
# SecurityHeadersMiddleware
# ============================================================================


class TestSecurityHeadersMiddleware:

    @pytest.mark.unit
    def test_nosniff_and_frame_deny(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": False})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert response.headers["x-content-type-options"] == "nosniff"
            assert response.headers["x-frame-options"] == "DENY"

    @pytest.mark.unit
    def test_no_csp_or_hsts_in_debug_mode(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": True})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert "content-security-policy" not in response.headers
            assert "strict-transport-security" not in response.headers

    @pytest.mark.unit
    def test_hsts_includes_subdomains(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": False})])
        with TestClient(app) as client:
            hsts = client.get("/test").headers.get("strict-transport-security", "")
            assert "includeSubDomains" in hsts


# ============================================================================
# setup_middleware
# ============================================================================


class TestSetupMiddleware:

    @pytest.mark.integration
    async def test_full_middleware_stack(self, test_client) -> None:
        response = await test_client.get("/api/health")
        assert response.status_code == 200
        assert "x-correlation-id" in response.headers
        assert response.headers.get("x-content-type-options") == "nosniff"

    @pytest.mark.integration
    async def test_error_responses_carry_correlation_id(self, test_client) -> None:
        response = await test_client.get(
            "/api/ndrs", headers={"X-Correlation-ID": "corr-1234"},
        )
        assert response.status_code == 401
        assert response.headers["x-correlation-id"] == "corr-1234"
