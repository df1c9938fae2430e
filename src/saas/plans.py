"""Plan tiers and feature entitlements.

``PLAN_TABLE`` is the only place quotas and features are defined. Account
creation copies its defaults from here and every access check reads it.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.types import Plan


@dataclass(frozen=True)
class PlanEntitlements:
    """What a plan tier is allowed to do."""

    plan: Plan
    website_quota: int | None  # None = unlimited
    features: frozenset[str]
    price_usd: int
    display_features: tuple[str, ...] = ()

    @property
    def unlimited(self) -> bool:
        return self.website_quota is None


_BASIC_FEATURES = frozenset({
    "basic_templates",
    "basic_analytics",
    "community_support",
})

_PRO_FEATURES = _BASIC_FEATURES | frozenset({
    "pro_templates",
    "advanced_analytics",
    "custom_domains",
    "priority_support",
    "ai_optimization",
    "discordAccess",
})

_ENTERPRISE_FEATURES = _PRO_FEATURES | frozenset({
    "all_templates",
    "enterprise_analytics",
    "white_label",
    "api_access",
    "dedicated_support",
    "custom_integrations",
})


PLAN_TABLE: dict[Plan, PlanEntitlements] = {
    Plan.BASIC: PlanEntitlements(
        plan=Plan.BASIC,
        website_quota=3,
        features=_BASIC_FEATURES,
        price_usd=0,
        display_features=(
            "3 affiliate websites",
            "AI-powered content generation",
            "Page speed analysis",
            "Basic analytics",
        ),
    ),
    Plan.PRO: PlanEntitlements(
        plan=Plan.PRO,
        website_quota=10,
        features=_PRO_FEATURES,
        price_usd=29,
        display_features=(
            "10 affiliate websites",
            "Premium templates",
            "Discord community access",
            "Revenue competitions",
        ),
    ),
    Plan.ENTERPRISE: PlanEntitlements(
        plan=Plan.ENTERPRISE,
        website_quota=None,
        features=_ENTERPRISE_FEATURES,
        price_usd=99,
        display_features=(
            "Unlimited websites",
            "API access",
            "VIP Discord access",
            "Clan leadership",
        ),
    ),
}

PLAN_RANK: dict[Plan, int] = {Plan.BASIC: 0, Plan.PRO: 1, Plan.ENTERPRISE: 2}


def _coerce(plan: Plan | str) -> Plan:
    try:
        return Plan(plan)
    except ValueError as exc:
        msg = f"unknown plan: {plan!r}"
        raise ValueError(msg) from exc


def entitlements(plan: Plan | str) -> PlanEntitlements:
    """Look up the entitlements of a plan tier."""
    return PLAN_TABLE[_coerce(plan)]


def has_access(plan: Plan | str, feature: str) -> bool:
    """Whether ``plan`` includes ``feature``."""
    return feature in entitlements(plan).features


def within_quota(plan: Plan | str, current_websites: int) -> bool:
    """Whether one more website may be created under ``plan``."""
    quota = entitlements(plan).website_quota
    return quota is None or current_websites < quota


def plan_at_least(plan: Plan | str, minimum: Plan | str) -> bool:
    return PLAN_RANK[_coerce(plan)] >= PLAN_RANK[_coerce(minimum)]


def account_defaults(plan: Plan | str) -> tuple[int | None, list[str]]:
    """``(website_limit, features)`` stored on a new or re-planned account."""
    ent = entitlements(plan)
    return ent.website_quota, sorted(ent.features)
