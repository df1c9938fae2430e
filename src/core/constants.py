"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

# ── Cookie & headers ─────────────────────────────────────────────
AUTH_COOKIE_NAME = "auth-token"
BEARER_PREFIX = "Bearer "

# ── Lifetimes (seconds) ──────────────────────────────────────────
SESSION_TTL_SECONDS = 7 * 24 * 60 * 60          # 604800
REMEMBER_ME_TTL_SECONDS = 30 * 24 * 60 * 60     # 2592000

# ── Tokens ───────────────────────────────────────────────────────
JWT_ALGORITHM = "HS256"
SESSION_ID_PREFIX = "sess_"

# ── Routes ───────────────────────────────────────────────────────
LOGIN_PATH = "/login"
REDIRECT_PARAM = "redirect"

# Never gated: static assets and the auth endpoints themselves.
EXCLUDED_PREFIXES = ("/_next", "/static", "/api/auth", "/api/health")
EXCLUDED_EXACT = ("/favicon.ico",)

PUBLIC_EXACT = ("/",)
PUBLIC_PREFIXES = (
    "/login",
    "/signup",
    "/pricing",
    "/features",
    "/terms",
    "/privacy",
    "/docs",
    "/about-me",
    "/checkout",
)

PROTECTED_PREFIXES = (
    "/dashboard",
    "/api/user",
    "/api/websites",
    "/api/ai",
)

ROUTE_REDIRECTS: dict[str, str] = {
    "/my-websites": "/dashboard/my-websites",
    "/create-website": "/dashboard/create-website",
}

# ── Response hardening ───────────────────────────────────────────
SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}

# ── API keys ─────────────────────────────────────────────────────
API_KEY_HEADER = "X-API-Key"
API_KEY_PREFIX = "ak_live_"
API_KEY_PREVIEW_CHARS = 12
API_ACCESS_FEATURE = "api_access"
API_KEY_EXPIRY_DAYS: dict[str, int] = {
    "30d": 30,
    "90d": 90,
    "1y": 365,
}
