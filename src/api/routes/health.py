"""Health check endpoints — no auth required."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from config.settings import Settings, get_settings
from src.api.deps import get_auth
from src.api.models.schemas import HealthResponse
from src.auth.service import AuthService

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version="0.1.0",
        environment=settings.affilify_env,
    )


@router.get("/health/database", response_model=HealthResponse)
async def database_health(
    settings: Settings = Depends(get_settings),
    auth: AuthService = Depends(get_auth),
) -> HealthResponse:
    """Round-trip to the user store. Unavailability surfaces as a 503."""
    await auth.store.ping()
    return HealthResponse(
        status="ok",
        version="0.1.0",
        environment=settings.affilify_env,
    )
