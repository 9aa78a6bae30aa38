"""
auth/schema.py -- SQLAlchemy Core schema and engine factory for the auth core.

One MetaData holds the two tables the core owns: accounts and sessions.
AccountStore and SessionStore share a single Engine built by
create_auth_engine(). Rate-limit counters live in the limiter's own storage.

Timestamps are stored as fixed-width UTC ISO-8601 strings
("2026-01-01T00:00:00.000000+00:00"). Fixed width means lexicographic order is
chronological order, so expiry comparisons can run in SQL on any backend.

Uniqueness guarantees live here, not in application code:
  accounts.email             -- concurrent signups for one address race on this
  sessions.token_hash        -- a refresh token maps to at most one session
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

_metadata = MetaData()

accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # normalized (lowercase)
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="USER"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("verification_token", String(255), unique=True),  # NULL once verified
    Column("verification_sent_at", String(32)),
    Column("account_status", String(20), nullable=False, server_default="active"),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("device_info", Text),
    Column("ip_address", String(64)),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("ix_sessions_user_id", "user_id"),
)

# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_auth_engine(db_url: str) -> Engine:
    """Build the shared Engine and create any missing tables."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def to_iso(value: datetime) -> str:
    """Serialize an aware datetime as fixed-width UTC ISO-8601."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)
