"""Account endpoints — plan entitlements and Enterprise API keys."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from config.settings import Settings, get_settings
from src.api.deps import get_auth, get_rate_limiter, require_feature, require_plan, require_principal
from src.api.models.schemas import (
    ApiKeyCreate,
    ApiKeyCreated,
    ApiKeyOut,
    ApiKeysResponse,
    EntitlementsOut,
    MessageResponse,
    PlanResponse,
)
from src.auth.rate_limit import RateLimiter
from src.auth.service import AuthService
from src.core.types import Plan, Principal
from src.saas.plans import PLAN_TABLE, entitlements

router = APIRouter(prefix="/user", tags=["user"])

_require_enterprise = require_plan(Plan.ENTERPRISE)


@router.get("/plan", response_model=PlanResponse)
async def get_plan(principal: Principal = Depends(require_principal)) -> PlanResponse:
    return PlanResponse(
        current_plan=principal.plan,
        entitlements=EntitlementsOut.from_entitlements(entitlements(principal.plan)),
        plans=[EntitlementsOut.from_entitlements(ent) for ent in PLAN_TABLE.values()],
    )


@router.get("/community", response_model=MessageResponse)
async def community_access(
    principal: Principal = Depends(require_feature("discordAccess")),
) -> MessageResponse:
    """Discord community invite, Pro and above."""
    return MessageResponse(message=f"Discord community access granted for {principal.email}")


# ── API keys ─────────────────────────────────────────────────────


@router.get("/api-keys", response_model=ApiKeysResponse)
async def list_api_keys(
    principal: Principal = Depends(_require_enterprise),
    auth: AuthService = Depends(get_auth),
) -> ApiKeysResponse:
    keys = await auth.api_keys.list_keys(principal.user_id)
    return ApiKeysResponse(api_keys=[ApiKeyOut.from_key(k) for k in keys])


@router.post("/api-keys", response_model=ApiKeyCreated, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    body: ApiKeyCreate,
    principal: Principal = Depends(_require_enterprise),
    auth: AuthService = Depends(get_auth),
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ApiKeyCreated:
    """Issue a key. The raw value is in this response and nowhere else."""
    limiter.check("api_key_create:user", principal.user_id, settings.api_key_create_rate_limit)
    raw, key = await auth.api_keys.issue(principal.user_id, body.name, body.expires_in)
    return ApiKeyCreated(
        message="API key created. Store it securely, it will not be shown again.",
        api_key=ApiKeyOut.from_key(key),
        key=raw,
    )


@router.delete("/api-keys/{key_id}", response_model=MessageResponse)
async def revoke_api_key(
    key_id: str,
    principal: Principal = Depends(_require_enterprise),
    auth: AuthService = Depends(get_auth),
) -> MessageResponse:
    await auth.api_keys.revoke(principal.user_id, key_id)
    return MessageResponse(message="API key revoked")
