"""Route gate — request-time authentication for protected paths."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlencode

from fastapi import Request, Response, status
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from src.api.errors import error_response
from src.api.routing import RouteKind, RouteTable
from src.auth.tokens import IssuedToken
from src.core.constants import (
    API_KEY_HEADER,
    AUTH_COOKIE_NAME,
    BEARER_PREFIX,
    LOGIN_PATH,
    REDIRECT_PARAM,
)
from src.core.exceptions import (
    AUTHENTICATION_ERRORS,
    AffilifyError,
    InfrastructureUnavailableError,
)
from src.core.logging import get_logger

if TYPE_CHECKING:
    from src.auth.service import AuthService

log = get_logger(__name__)


# ── Token transport ──────────────────────────────────────────────


def extract_token(request: Request) -> str | None:
    """Token from the auth cookie, falling back to ``Authorization: Bearer``."""
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if token:
        return token

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip() or None
    return None


def extract_api_key(request: Request) -> str | None:
    return request.headers.get(API_KEY_HEADER, "").strip() or None


def set_auth_cookie(response: Response, issued: IssuedToken, secure: bool) -> None:
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=issued.token,
        httponly=True,
        secure=secure,
        samesite="lax",
        max_age=issued.max_age,
        path="/",
    )


def clear_auth_cookie(response: Response, secure: bool) -> None:
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def login_redirect(original_path: str) -> RedirectResponse:
    url = f"{LOGIN_PATH}?{urlencode({REDIRECT_PARAM: original_path})}"
    return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


# ── Middleware ───────────────────────────────────────────────────


class RouteGateMiddleware(BaseHTTPMiddleware):
    """Gate every request against the route table.

    Protected paths need a token that ``TokenVerifier`` accepts; the
    resulting ``Principal`` is stored on ``request.state.principal``.
    Authentication failures redirect to the login page and clear the
    cookie. An unavailable store answers 503 instead: the user is not
    treated as logged out because the database is down.

    Requests without a token may present an ``X-API-Key`` instead. A
    rejected key answers with the JSON error envelope, not a redirect.
    """

    def __init__(
        self,
        app: ASGIApp,
        routes: RouteTable | None = None,
        secure_cookies: bool = False,
    ) -> None:
        super().__init__(app)
        self._routes = routes or RouteTable.default()
        self._secure = secure_cookies

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        decision = self._routes.classify(request.url.path)

        if decision.kind is RouteKind.REDIRECT and decision.target is not None:
            target = decision.target
            if request.url.query:
                target = f"{target}?{request.url.query}"
            return RedirectResponse(url=target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

        if decision.kind is not RouteKind.PROTECTED:
            return await call_next(request)

        original_path = request.url.path
        auth = request.app.state.auth
        token = extract_token(request)
        if token is None:
            api_key = extract_api_key(request)
            if api_key is None:
                log.info("gate_no_token", path=original_path)
                return login_redirect(original_path)
            return await self._admit_api_key(request, call_next, auth, api_key)

        try:
            principal = await auth.verifier.verify(token)
        except InfrastructureUnavailableError as exc:
            log.error("gate_store_unavailable", path=original_path, **exc.context)
            return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc.message, exc.code)
        except AUTHENTICATION_ERRORS as exc:
            log.info("gate_rejected", path=original_path, code=exc.code)
            response = login_redirect(original_path)
            clear_auth_cookie(response, self._secure)
            return response

        request.state.principal = principal
        return await call_next(request)

    async def _admit_api_key(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
        auth: AuthService,
        api_key: str,
    ) -> Response:
        """Machine clients get a JSON error rather than a login redirect."""
        try:
            principal = await auth.api_keys.verify(api_key)
        except InfrastructureUnavailableError as exc:
            log.error("gate_store_unavailable", path=request.url.path, **exc.context)
            return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc.message, exc.code)
        except AffilifyError as exc:
            log.info("gate_api_key_rejected", path=request.url.path, code=exc.code)
            return error_response(exc.status_code, exc.message, exc.code)

        request.state.principal = principal
        return await call_next(request)
