"""FastAPI dependency injection — shared instances for routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Depends, Request

from src.api.middleware import extract_api_key, extract_token
from src.auth.rate_limit import RateLimiter
from src.auth.service import AuthService
from src.core.exceptions import NotAuthenticatedError, PlanUpgradeRequiredError
from src.core.logging import get_logger
from src.core.types import Plan, Principal
from src.saas.plans import has_access, plan_at_least

log = get_logger(__name__)

# ── Services ──────────────────────────────────────────────────────


def get_auth(request: Request) -> AuthService:
    """The auth service built at startup and held on ``app.state``."""
    return request.app.state.auth


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


# ── Auth dependency ───────────────────────────────────────────────


async def require_principal(
    request: Request,
    auth: AuthService = Depends(get_auth),
) -> Principal:
    """Return the authenticated principal.

    Protected paths already carry one from the route gate; any other route
    that asks for it verifies the presented token here, or failing that an
    ``X-API-Key``.
    """
    principal: Principal | None = getattr(request.state, "principal", None)
    if principal is not None:
        return principal

    token = extract_token(request)
    if token is not None:
        principal = await auth.verifier.verify(token)
    else:
        api_key = extract_api_key(request)
        if api_key is None:
            raise NotAuthenticatedError()
        principal = await auth.api_keys.verify(api_key)
    request.state.principal = principal
    return principal


# ── Plan gating ───────────────────────────────────────────────────


def require_feature(feature: str) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory: the caller's plan must include ``feature``."""

    async def _dep(principal: Principal = Depends(require_principal)) -> Principal:
        if not has_access(principal.plan, feature):
            log.info("feature_denied", user_id=principal.user_id, plan=principal.plan.value, feature=feature)
            raise PlanUpgradeRequiredError(context={"feature": feature, "plan": principal.plan.value})
        return principal

    return _dep


def require_plan(minimum: Plan) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory: the caller's plan must be ``minimum`` or higher."""

    async def _dep(principal: Principal = Depends(require_principal)) -> Principal:
        if not plan_at_least(principal.plan, minimum):
            log.info("plan_denied", user_id=principal.user_id, plan=principal.plan.value, required=minimum.value)
            raise PlanUpgradeRequiredError(
                f"{minimum.value.capitalize()} plan required for this feature",
                context={"required": minimum.value, "plan": principal.plan.value},
            )
        return principal

    return _dep

