"""SaaS layer — plan entitlements and the in-memory user store."""

from src.saas.memory_store import InMemoryUserStore
from src.saas.plans import (
    PLAN_TABLE,
    PlanEntitlements,
    account_defaults,
    entitlements,
    has_access,
    plan_at_least,
    within_quota,
)

__all__ = [
    "InMemoryUserStore",
    "PLAN_TABLE",
    "PlanEntitlements",
    "account_defaults",
    "entitlements",
    "has_access",
    "plan_at_least",
    "within_quota",
]
