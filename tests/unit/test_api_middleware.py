"""Tests for the route gate — token transport, redirects, fail-closed behaviour."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from src.api.middleware import RouteGateMiddleware, extract_api_key, extract_token, login_redirect
from src.api.routing import RouteDecision, RouteKind
from src.core.exceptions import (
    InfrastructureUnavailableError,
    InvalidApiKeyError,
    PlanUpgradeRequiredError,
    SessionRevokedError,
    TokenExpiredError,
)
from src.core.types import Plan, Principal

_PRINCIPAL = Principal(user_id="user-1", email="jane@example.com", plan=Plan.PRO, session_id="sess_1")


def _gated_app(
    verify: AsyncMock,
    verify_key: AsyncMock | None = None,
    routes: MagicMock | None = None,
) -> FastAPI:
    app = FastAPI()
    app.state.auth = MagicMock()
    app.state.auth.verifier.verify = verify
    app.state.auth.api_keys.verify = verify_key or AsyncMock()
    app.add_middleware(RouteGateMiddleware, routes=routes)

    @app.get("/dashboard")
    async def dashboard(request: Request) -> dict[str, str]:
        return {"user": request.state.principal.user_id}

    @app.get("/pricing")
    async def pricing() -> dict[str, str]:
        return {"page": "pricing"}

    @app.get("/dashboard/my-websites")
    async def my_websites() -> dict[str, str]:
        return {"page": "my-websites"}

    return app


class TestExtractToken:
    def test_cookie_first(self) -> None:
        request = MagicMock()
        request.cookies = {"auth-token": "from-cookie"}
        request.headers = {"authorization": "Bearer from-header"}
        assert extract_token(request) == "from-cookie"

    def test_bearer_fallback(self) -> None:
        request = MagicMock()
        request.cookies = {}
        request.headers = {"authorization": "Bearer abc.def.ghi"}
        assert extract_token(request) == "abc.def.ghi"

    def test_none(self) -> None:
        request = MagicMock()
        request.cookies = {}
        request.headers = {}
        assert extract_token(request) is None

    def test_other_scheme_ignored(self) -> None:
        request = MagicMock()
        request.cookies = {}
        request.headers = {"authorization": "Basic dXNlcjpwYXNz"}
        assert extract_token(request) is None


class TestExtractApiKey:
    def test_header(self) -> None:
        request = MagicMock()
        request.headers = {"X-API-Key": "  ak_live_abc  "}
        assert extract_api_key(request) == "ak_live_abc"

    def test_blank_is_none(self) -> None:
        request = MagicMock()
        request.headers = {"X-API-Key": "   "}
        assert extract_api_key(request) is None


class TestLoginRedirect:
    def test_encodes_original_path(self) -> None:
        response = login_redirect("/dashboard/analytics")
        assert response.status_code == 307
        assert response.headers["location"] == "/login?redirect=%2Fdashboard%2Fanalytics"


class TestRouteGate:
    def test_public_path_skips_verification(self) -> None:
        verify = AsyncMock()
        client = TestClient(_gated_app(verify))
        response = client.get("/pricing")
        assert response.status_code == 200
        verify.assert_not_awaited()

    def test_no_token_redirects(self) -> None:
        client = TestClient(_gated_app(AsyncMock()))
        response = client.get("/dashboard", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/login?redirect=%2Fdashboard"

    def test_valid_token_passes_principal(self) -> None:
        verify = AsyncMock(return_value=_PRINCIPAL)
        client = TestClient(_gated_app(verify))
        response = client.get("/dashboard", headers={"Authorization": "Bearer tok"})
        assert response.status_code == 200
        assert response.json() == {"user": "user-1"}
        verify.assert_awaited_once_with("tok")

    @pytest.mark.parametrize("error", [SessionRevokedError(), TokenExpiredError()])
    def test_rejected_token_redirects_and_clears_cookie(self, error: Exception) -> None:
        client = TestClient(_gated_app(AsyncMock(side_effect=error)))
        response = client.get(
            "/dashboard", headers={"Authorization": "Bearer tok"}, follow_redirects=False,
        )
        assert response.status_code == 307
        assert response.headers["location"].startswith("/login?redirect=")
        set_cookie = response.headers.get("set-cookie", "")
        assert "auth-token=" in set_cookie
        assert "Max-Age=0" in set_cookie

    def test_store_outage_fails_closed_with_503(self) -> None:
        client = TestClient(_gated_app(AsyncMock(side_effect=InfrastructureUnavailableError())))
        response = client.get(
            "/dashboard", headers={"Authorization": "Bearer tok"}, follow_redirects=False,
        )
        assert response.status_code == 503
        assert response.json()["code"] == "SERVICE_UNAVAILABLE"

    def test_legacy_path_redirect_keeps_query(self) -> None:
        client = TestClient(_gated_app(AsyncMock()))
        response = client.get("/my-websites?page=2", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/dashboard/my-websites?page=2"

    def test_redirect_without_target_passes_through(self) -> None:
        routes = MagicMock()
        routes.classify.return_value = RouteDecision(RouteKind.REDIRECT, "/pricing")
        client = TestClient(_gated_app(AsyncMock(), routes=routes))
        response = client.get("/pricing", follow_redirects=False)
        assert response.status_code == 200
        assert response.json() == {"page": "pricing"}


class TestApiKeyGate:
    def test_valid_key_passes_principal(self) -> None:
        key_principal = Principal(
            user_id="user-9", email="ops@example.com", plan=Plan.ENTERPRISE, api_key_id="key-1",
        )
        verify = AsyncMock()
        verify_key = AsyncMock(return_value=key_principal)
        client = TestClient(_gated_app(verify, verify_key))
        response = client.get("/dashboard", headers={"X-API-Key": "ak_live_x"})
        assert response.status_code == 200
        assert response.json() == {"user": "user-9"}
        verify_key.assert_awaited_once_with("ak_live_x")
        verify.assert_not_awaited()

    def test_token_takes_precedence_over_key(self) -> None:
        verify = AsyncMock(return_value=_PRINCIPAL)
        verify_key = AsyncMock()
        client = TestClient(_gated_app(verify, verify_key))
        response = client.get(
            "/dashboard", headers={"Authorization": "Bearer tok", "X-API-Key": "ak_live_x"},
        )
        assert response.status_code == 200
        verify_key.assert_not_awaited()

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [(InvalidApiKeyError(), 401), (PlanUpgradeRequiredError(), 403)],
    )
    def test_rejected_key_is_json_not_redirect(self, error: Exception, status_code: int) -> None:
        client = TestClient(_gated_app(AsyncMock(), AsyncMock(side_effect=error)))
        response = client.get(
            "/dashboard", headers={"X-API-Key": "ak_live_x"}, follow_redirects=False,
        )
        assert response.status_code == status_code
        body = response.json()
        assert body["success"] is False
        assert body["code"] == error.code
        assert "location" not in response.headers

    def test_store_outage_with_key_is_503(self) -> None:
        verify_key = AsyncMock(side_effect=InfrastructureUnavailableError())
        client = TestClient(_gated_app(AsyncMock(), verify_key))
        response = client.get("/dashboard", headers={"X-API-Key": "ak_live_x"})
        assert response.status_code == 503
