"""
auth/store.py -- SQLAlchemy Core persistence for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository; _row_to_account
is the mapper. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Duplicate signups are rejected by the UNIQUE constraint on accounts.email,
  not by a pre-check: two concurrent requests can both pass a "does it exist?"
  query, only one of them can win the INSERT. The IntegrityError is translated
  to DuplicateEmail here so callers never see SQLAlchemy exceptions.

  verify_email() and record_failed_login() are single-transaction conditional
  updates, so two concurrent verifications of one token cannot both succeed
  and concurrent failed logins cannot lose increments.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy import case, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail, InvalidToken
from auth.models import ROLE_USER, STATUS_ACTIVE, STATUS_LOCKED, Account
from auth.schema import accounts, from_iso, to_iso
from auth.tokens import utcnow


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup: stripped and lowercased."""
    return email.strip().lower()


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore(create_auth_engine("sqlite:///auth.db"))
        account = store.create_account("a@b.com", hash_password("..."), "USER", token)
        store.verify_email(token)
    """

    def __init__(
        self,
        engine: Engine,
        lockout_tiers: Sequence[tuple[int, int]] = ((5, 30), (3, 15)),
        verification_ttl_hours: int = 24,
    ) -> None:
        self.engine = engine
        self.lockout_tiers = sorted(lockout_tiers, reverse=True)
        self.verification_ttl = timedelta(hours=verification_ttl_hours)

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    def create_account(
        self,
        email: str,
        password_hash: str,
        role: str = ROLE_USER,
        verification_token: str | None = None,
        email_verified: bool = False,
        now: datetime | None = None,
    ) -> Account:
        """Insert a new account and return it.

        Raises DuplicateEmail if the normalized email is already registered,
        including when a concurrent request inserted it a moment earlier.
        """
        now = now or utcnow()
        values = {
            "email": normalize_email(email),
            "password_hash": password_hash,
            "role": role,
            "email_verified": 1 if email_verified else 0,
            "verification_token": None if email_verified else verification_token,
            "verification_sent_at": None if email_verified else to_iso(now),
            "account_status": STATUS_ACTIVE,
            "failed_login_attempts": 0,
            "created_at": to_iso(now),
        }
        try:
            with self.engine.begin() as conn:
                result = conn.execute(accounts.insert().values(**values))
                account_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return self.get_by_id(account_id)

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self) -> list[Account]:
        """Return all accounts ordered by id. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(accounts.select().order_by(accounts.c.id)).fetchall()
        return [_row_to_account(r) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(accounts)).scalar() or 0

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def verify_email(self, token: str, now: datetime | None = None) -> Account:
        """Redeem a verification token.

        Succeeds only if exactly one unverified account holds `token` and the
        token is younger than the verification TTL. Unknown, already used and
        expired tokens all raise the same InvalidToken so the response does not
        reveal whether an account exists.
        """
        now = now or utcnow()
        if not token:
            raise InvalidToken()
        with self.engine.begin() as conn:
            row = conn.execute(
                accounts.select().where(
                    (accounts.c.verification_token == token) & (accounts.c.email_verified == 0)
                )
            ).fetchone()
            if row is None:
                raise InvalidToken()
            sent_at = from_iso(row.verification_sent_at)
            if sent_at is not None and now - sent_at >= self.verification_ttl:
                raise InvalidToken()
            result = conn.execute(
                accounts.update()
                .where(
                    (accounts.c.id == row.id)
                    & (accounts.c.verification_token == token)
                    & (accounts.c.email_verified == 0)
                )
                .values(email_verified=1, verification_token=None, verification_sent_at=None)
            )
            if result.rowcount != 1:
                raise InvalidToken()
        return self.get_by_id(row.id)

    def replace_verification_token(self, account_id: int, token: str, now: datetime | None = None) -> bool:
        """Issue a fresh token to a still-unverified account. Returns False if already verified."""
        now = now or utcnow()
        with self.engine.begin() as conn:
            result = conn.execute(
                accounts.update()
                .where((accounts.c.id == account_id) & (accounts.c.email_verified == 0))
                .values(verification_token=token, verification_sent_at=to_iso(now))
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Failed-login tracking and lockout
    # ------------------------------------------------------------------

    def record_failed_login(self, account_id: int, now: datetime | None = None) -> Account:
        """Increment the failed-login counter; lock the account once a tier is reached.

        The highest tier whose attempt threshold has been reached sets the lock
        length, e.g. 3 failures lock for 15 minutes and 5 for 30. A failure
        after an expired lock re-locks at the tier the counter now stands at.

        The increment is done in SQL (failed_login_attempts + 1) so concurrent
        failures are all counted. Returns the account as it stands afterwards.
        """
        now = now or utcnow()
        with self.engine.begin() as conn:
            conn.execute(
                accounts.update()
                .where(accounts.c.id == account_id)
                .values(failed_login_attempts=accounts.c.failed_login_attempts + 1)
            )
            attempts = conn.execute(
                select(accounts.c.failed_login_attempts).where(accounts.c.id == account_id)
            ).scalar()
            minutes = self.lock_minutes(attempts or 0)
            if minutes:
                conn.execute(
                    accounts.update()
                    .where(accounts.c.id == account_id)
                    .values(account_status=STATUS_LOCKED, locked_until=to_iso(now + timedelta(minutes=minutes)))
                )
        return self.get_by_id(account_id)

    def lock_minutes(self, attempts: int) -> int:
        """Lock length for a failure count, 0 below the lowest tier."""
        for threshold, minutes in self.lockout_tiers:
            if attempts >= threshold:
                return minutes
        return 0

    def reset_failed_logins(self, account_id: int, now: datetime | None = None) -> None:
        """Clear the counter and any lock after a successful login; stamp last_login.

        A suspended account stays suspended -- only the "locked" status is
        restored to "active".
        """
        now = now or utcnow()
        with self.engine.begin() as conn:
            conn.execute(
                accounts.update()
                .where(accounts.c.id == account_id)
                .values(
                    failed_login_attempts=0,
                    locked_until=None,
                    account_status=case(
                        (accounts.c.account_status == STATUS_LOCKED, STATUS_ACTIVE),
                        else_=accounts.c.account_status,
                    ),
                    last_login=to_iso(now),
                )
            )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def set_status(self, account_id: int, status: str) -> bool:
        """Set account_status. Reactivating also clears lockout state.

        Returns True if a row was updated, False if account_id was not found.
        """
        values: dict = {"account_status": status}
        if status == STATUS_ACTIVE:
            values.update(failed_login_attempts=0, locked_until=None)
        with self.engine.begin() as conn:
            result = conn.execute(accounts.update().where(accounts.c.id == account_id).values(**values))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        email_verified=bool(row.email_verified),
        verification_token=row.verification_token,
        verification_sent_at=from_iso(row.verification_sent_at),
        account_status=row.account_status,
        failed_login_attempts=row.failed_login_attempts,
        locked_until=from_iso(row.locked_until),
        created_at=from_iso(row.created_at),
        last_login=from_iso(row.last_login),
    )
