"""PostgreSQL connection and schema definitions."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config.settings import Settings
from src.core.logging import get_logger

log = get_logger(__name__)

metadata = MetaData()

# ── Tables ───────────────────────────────────────────────────────

users = Table(
    "users",
    metadata,
    Column("user_id", String, primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("full_name", String(100), nullable=False, default=""),
    Column("password_hash", String, nullable=False),
    Column("plan", String, nullable=False, default="basic"),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("website_limit", Integer, nullable=True),
    Column("features", JSONB, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("last_login", DateTime(timezone=True)),
    Column("login_attempts", Integer, nullable=False, default=0),
    Column("locked_until", DateTime(timezone=True)),
)

# Relational rendition of the per-user embedded session list.
user_sessions = Table(
    "user_sessions",
    metadata,
    Column(
        "user_id",
        String,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("session_id", String, primary_key=True),
    Column("issued_at", DateTime(timezone=True), nullable=False, index=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("last_activity", DateTime(timezone=True), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("ip_address", String, nullable=False, default=""),
    Column("user_agent", String, nullable=False, default=""),
    Column("device", JSONB, nullable=False),
    Column("revoked_at", DateTime(timezone=True)),
)

api_keys = Table(
    "api_keys",
    metadata,
    Column("key_id", String, primary_key=True),
    Column(
        "user_id",
        String,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("name", String(100), nullable=False),
    Column("key_hash", String(64), nullable=False, unique=True),
    Column("key_preview", String, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("last_used", DateTime(timezone=True)),
    Column("expires_at", DateTime(timezone=True)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("revoked_at", DateTime(timezone=True)),
)


# ── Engine ───────────────────────────────────────────────────────


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine. The caller owns it and must dispose it."""
    db_url = settings.database_url.get_secret_value()
    engine = create_async_engine(
        db_url,
        echo=False,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_pre_ping=True,
        connect_args={
            "timeout": settings.db_connect_timeout_seconds,
            "command_timeout": settings.db_command_timeout_seconds,
        },
    )
    log.info("database_engine_created", host=db_url.split("@")[-1].split("?")[0])
    return engine


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    log.info("schema_initialized")


async def close_engine(engine: AsyncEngine) -> None:
    """Dispose the database engine."""
    await engine.dispose()
    log.info("database_engine_closed")
