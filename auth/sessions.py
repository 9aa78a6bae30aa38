"""
auth/sessions.py -- Refresh-token session persistence.

A session is a capability: whoever presents the refresh token that hashes to
sessions.token_hash is still logged in as sessions.user_id until expires_at.
Only the HMAC of the token is stored (see auth.tokens.hash_token).

Concurrency cap:
  create_session() counts the user's live sessions and, at capacity, deletes
  the oldest by created_at before inserting. Eviction is by creation order,
  not last use. Count and delete run in the same transaction as the insert,
  but two concurrent logins for one account can still each see "4 live" and
  both insert; the overshoot is bounded by the number of concurrent logins and
  is trimmed by the next create_session() for that user.

Expiry is enforced lazily: find_active_by_token() ignores expired rows, and
delete_expired() is periodic maintenance that only removes rows that are
already logically dead, so it is safe to run alongside anything else.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Session
from auth.schema import from_iso, sessions, to_iso
from auth.tokens import hash_token, utcnow


class SessionStore:
    """Repository for refresh-token sessions."""

    def __init__(self, engine: Engine, max_sessions_per_user: int = 5) -> None:
        self.engine = engine
        self.max_sessions_per_user = max_sessions_per_user

    def create_session(
        self,
        user_id: int,
        refresh_token: str,
        expires_at: datetime,
        now: datetime | None = None,
        device_info: str | None = None,
        ip_address: str | None = None,
    ) -> Session:
        """Persist a new session, evicting the user's oldest live sessions at capacity."""
        now = now or utcnow()
        now_iso = to_iso(now)
        token_hash = hash_token(refresh_token)
        live = (sessions.c.user_id == user_id) & (sessions.c.expires_at > now_iso)
        with self.engine.begin() as conn:
            live_count = conn.execute(select(func.count()).select_from(sessions).where(live)).scalar() or 0
            overflow = live_count - self.max_sessions_per_user + 1
            if overflow > 0:
                oldest = conn.execute(
                    select(sessions.c.id).where(live).order_by(sessions.c.created_at, sessions.c.id).limit(overflow)
                ).fetchall()
                conn.execute(sessions.delete().where(sessions.c.id.in_([r.id for r in oldest])))
            result = conn.execute(
                sessions.insert().values(
                    user_id=user_id,
                    token_hash=token_hash,
                    device_info=device_info,
                    ip_address=ip_address,
                    expires_at=to_iso(expires_at),
                    created_at=now_iso,
                )
            )
            session_id = result.inserted_primary_key[0]
        return Session(
            id=session_id,
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_at=now,
            device_info=device_info,
            ip_address=ip_address,
        )

    def find_active_by_token(self, refresh_token: str, now: datetime | None = None) -> Session | None:
        """Return the non-expired session for this token, or None."""
        now = now or utcnow()
        with self.engine.connect() as conn:
            row = conn.execute(
                sessions.select().where(
                    (sessions.c.token_hash == hash_token(refresh_token)) & (sessions.c.expires_at > to_iso(now))
                )
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_for_user(self, user_id: int, now: datetime | None = None) -> list[Session]:
        """Return the user's live sessions, oldest first."""
        now = now or utcnow()
        with self.engine.connect() as conn:
            rows = conn.execute(
                sessions.select()
                .where((sessions.c.user_id == user_id) & (sessions.c.expires_at > to_iso(now)))
                .order_by(sessions.c.created_at, sessions.c.id)
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def delete_by_token(self, refresh_token: str) -> bool:
        """Delete the session for this token. Idempotent: a missing row is not an error."""
        with self.engine.begin() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.token_hash == hash_token(refresh_token)))
        return result.rowcount > 0

    def delete_for_user(self, user_id: int) -> int:
        """Delete every session owned by the user. Returns the number removed."""
        with self.engine.begin() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.user_id == user_id))
        return result.rowcount

    def delete_expired(self, now: datetime | None = None) -> int:
        """Remove sessions whose expires_at has passed. Returns the number removed."""
        now = now or utcnow()
        with self.engine.begin() as conn:
            result = conn.execute(sessions.delete().where(sessions.c.expires_at <= to_iso(now)))
        return result.rowcount


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=from_iso(row.expires_at),
        created_at=from_iso(row.created_at),
        device_info=row.device_info,
        ip_address=row.ip_address,
    )
