"""
auth/service.py -- Credential and session lifecycle flows.

AuthService wires the leaf components together:

  signup   -> policy check -> bcrypt -> AccountStore (pending) -> mailer
  verify   -> AccountStore.verify_email (single use)
  login    -> AccountStore lookup -> lock/status checks -> bcrypt verify
              -> access token + refresh token -> SessionStore
  refresh  -> SessionStore lookup (live only) -> account status -> access token
  logout   -> SessionStore delete (idempotent)

The service holds no per-request state; every call reads and writes the stores,
which are the single source of truth. Errors are raised as auth.errors
subclasses and rendered by the API layer.

Refresh tokens are NOT rotated on refresh unless Settings.rotate_refresh_tokens
is enabled; with rotation on, each refresh replaces the session and returns a
new refresh token.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.engine import Engine

from auth.errors import (
    AccountInactive,
    AccountLocked,
    EmailDeliveryError,
    EmailNotVerified,
    InvalidCredentials,
    InvalidEmailFormat,
    InvalidOrExpiredToken,
    InvalidToken,
    MissingFields,
    MissingToken,
    SessionNotFound,
    WeakPassword,
)
from auth.mailer import EmailSender, redact_email
from auth.models import (
    ACCOUNT_STATUSES,
    ROLE_ADMIN,
    ROLE_DEVELOPER,
    ROLE_USER,
    STATUS_ACTIVE,
    STATUS_SUSPENDED,
    Account,
    Session,
)
from auth.passwords import PasswordPolicy, equalize_timing, hash_password, validate_strength, verify_password
from auth.sessions import SessionStore
from auth.store import AccountStore
from auth.tokens import create_access_token, generate_email_verification_token, issue_refresh_token, utcnow
from core.config import Settings

logger = logging.getLogger("appstore.auth")

SELF_SIGNUP_ROLES = (ROLE_USER, ROLE_DEVELOPER)


@dataclass(frozen=True)
class LoginResult:
    account: Account
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    # Set only when rotation is enabled.
    refresh_token: str | None = None
    refresh_expires_at: datetime | None = None


class AuthService:
    """Signup, verification, login, refresh and logout over the auth stores."""

    def __init__(
        self,
        accounts: AccountStore,
        sessions: SessionStore,
        mailer: EmailSender,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.accounts = accounts
        self.sessions = sessions
        self.mailer = mailer
        self.settings = settings
        self.clock = clock
        self.policy = PasswordPolicy.from_settings(settings)

    # ------------------------------------------------------------------
    # Signup and verification
    # ------------------------------------------------------------------

    def signup(self, email: str | None, password: str | None, role: str = ROLE_USER) -> Account:
        """Create a pending (unverified) account and mail its verification token.

        Raises MissingFields, InvalidEmailFormat, WeakPassword or DuplicateEmail.
        Mail delivery problems are logged, not raised: the account already
        exists and resend_verification() can issue a new link.
        """
        if role not in SELF_SIGNUP_ROLES:
            raise ValueError(f"role {role!r} cannot self-register")
        if not email or not password:
            raise MissingFields()
        try:
            validate_email(email.strip(), check_deliverability=False)
        except EmailNotValidError:
            raise InvalidEmailFormat() from None
        strength = validate_strength(password, self.policy)
        if not strength.is_valid:
            raise WeakPassword(strength.reason)

        token = generate_email_verification_token()
        account = self.accounts.create_account(
            email,
            hash_password(password, self.settings.bcrypt_rounds),
            role,
            verification_token=token,
            now=self.clock(),
        )
        logger.info("Account created: id=%s role=%s", account.id, account.role)
        self._send_verification(account, token)
        return account

    def verify_email(self, token: str | None) -> Account:
        """Redeem a verification token. Raises InvalidToken for unknown, used or expired tokens."""
        if not token:
            raise InvalidToken()
        account = self.accounts.verify_email(token, now=self.clock())
        logger.info("Email verified: id=%s", account.id)
        return account

    def resend_verification(self, email: str | None) -> None:
        """Issue a new verification token to a pending account.

        Silent for unknown and already-verified addresses so the endpoint
        cannot be used to probe which emails are registered.
        """
        if not email:
            raise MissingFields("Email is required.")
        account = self.accounts.find_by_email(email)
        if account is None or account.email_verified:
            return
        token = generate_email_verification_token()
        if self.accounts.replace_verification_token(account.id, token, now=self.clock()):
            self._send_verification(account, token)

    def _send_verification(self, account: Account, token: str) -> None:
        try:
            self.mailer.send_verification(account.email, token, account.role)
        except EmailDeliveryError:
            logger.exception("Verification mail failed for %s", redact_email(account.email))

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(
        self,
        email: str | None,
        password: str | None,
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
        allowed_roles: tuple[str, ...] | None = None,
    ) -> LoginResult:
        """Verify credentials and open a session.

        allowed_roles restricts which accounts may use a given login entry
        point (e.g. the admin console). An account outside it is reported as
        InvalidCredentials, exactly like an unknown email.
        """
        if not email or not password:
            raise MissingFields()
        now = self.clock()
        account = self.accounts.find_by_email(email)
        if account is None or (allowed_roles and account.role not in allowed_roles):
            equalize_timing(password)
            logger.info("Login failed: unknown account (client=%s)", client_ip)
            raise InvalidCredentials()

        if account.is_locked(now):
            raise AccountLocked(account.locked_until)
        if account.account_status == STATUS_SUSPENDED:
            raise AccountInactive()

        if not verify_password(password, account.password_hash):
            updated = self.accounts.record_failed_login(account.id, now=now)
            if updated.is_locked(now):
                logger.warning(
                    "Account locked: id=%s attempts=%d until=%s",
                    updated.id,
                    updated.failed_login_attempts,
                    updated.locked_until.isoformat(),
                )
                raise AccountLocked(updated.locked_until)
            logger.info("Login failed: bad password id=%s (client=%s)", account.id, client_ip)
            raise InvalidCredentials()

        if not account.email_verified:
            raise EmailNotVerified()

        self.accounts.reset_failed_logins(account.id, now=now)
        access_token = create_access_token(account.id, account.email, account.role, now=now)
        refresh_token = issue_refresh_token()
        refresh_expires_at = now + timedelta(seconds=self.settings.refresh_token_expire_seconds)
        self.sessions.create_session(
            account.id,
            refresh_token,
            refresh_expires_at,
            now=now,
            device_info=user_agent or "Unknown device",
            ip_address=client_ip,
        )
        if account.role == ROLE_ADMIN:
            logger.info("Admin login: id=%s from %s", account.id, client_ip)
        else:
            logger.info("Login: id=%s role=%s", account.id, account.role)
        return LoginResult(account, access_token, refresh_token, refresh_expires_at)

    # ------------------------------------------------------------------
    # Refresh and logout
    # ------------------------------------------------------------------

    def refresh(
        self,
        refresh_token: str | None,
        *,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshResult:
        """Exchange a live refresh token for a new access token.

        Raises MissingToken, InvalidOrExpiredToken (no live session for the
        token), SessionNotFound (session outlived its account) or
        AccountInactive (account suspended or locked).
        """
        if not refresh_token:
            raise MissingToken()
        now = self.clock()
        session = self.sessions.find_active_by_token(refresh_token, now=now)
        if session is None:
            logger.info("Refresh denied: no live session (client=%s)", client_ip)
            raise InvalidOrExpiredToken()
        account = self.accounts.get_by_id(session.user_id)
        if account is None:
            raise SessionNotFound()
        if account.account_status != STATUS_ACTIVE:
            raise AccountInactive()

        access_token = create_access_token(account.id, account.email, account.role, now=now)
        if not self.settings.rotate_refresh_tokens:
            return RefreshResult(access_token)

        new_token = issue_refresh_token()
        expires_at = now + timedelta(seconds=self.settings.refresh_token_expire_seconds)
        if not self.sessions.delete_by_token(refresh_token):
            # A concurrent refresh or logout consumed the token first.
            logger.info("Refresh denied: session already rotated (client=%s)", client_ip)
            raise InvalidOrExpiredToken()
        self.sessions.create_session(
            account.id,
            new_token,
            expires_at,
            now=now,
            device_info=user_agent or session.device_info,
            ip_address=client_ip or session.ip_address,
        )
        return RefreshResult(access_token, new_token, expires_at)

    def logout(self, refresh_token: str | None) -> None:
        """End the session for this refresh token. Idempotent."""
        if refresh_token and self.sessions.delete_by_token(refresh_token):
            logger.info("Logout: session removed")

    def logout_all(self, user_id: int) -> int:
        """End every session of the user. Returns the number removed."""
        removed = self.sessions.delete_for_user(user_id)
        logger.info("Logout everywhere: id=%s sessions=%d", user_id, removed)
        return removed

    def list_sessions(self, user_id: int) -> list[Session]:
        return self.sessions.list_for_user(user_id, now=self.clock())

    # ------------------------------------------------------------------
    # Administration and maintenance
    # ------------------------------------------------------------------

    def set_account_status(self, account_id: int, status: str) -> Account | None:
        """Change an account's status. Anything but "active" also ends its sessions.

        Returns the updated account, or None if it does not exist.
        """
        if status not in ACCOUNT_STATUSES:
            raise ValueError(f"unknown account status {status!r}")
        if not self.accounts.set_status(account_id, status):
            return None
        if status != STATUS_ACTIVE:
            self.sessions.delete_for_user(account_id)
        logger.info("Account status changed: id=%s status=%s", account_id, status)
        return self.accounts.get_by_id(account_id)

    def create_verified_account(self, email: str, password: str, role: str) -> Account:
        """Create an already-verified account (operator bootstrap, e.g. the first admin).

        The password still has to satisfy the strength policy.
        """
        try:
            validate_email(email.strip(), check_deliverability=False)
        except EmailNotValidError:
            raise InvalidEmailFormat() from None
        strength = validate_strength(password, self.policy)
        if not strength.is_valid:
            raise WeakPassword(strength.reason)
        return self.accounts.create_account(
            email,
            hash_password(password, self.settings.bcrypt_rounds),
            role,
            email_verified=True,
            now=self.clock(),
        )

    def cleanup(self, now: datetime | None = None) -> int:
        """Delete expired sessions. Returns the number removed.

        Only rows that are already logically dead are touched, so this is safe
        to run at any time. Rate-limit windows expire inside the limiter's
        storage and need no sweep.
        """
        now = now or self.clock()
        removed = self.sessions.delete_expired(now=now)
        logger.info("Cleanup: sessions=%d", removed)
        return removed


def build_auth_service(
    settings: Settings,
    engine: Engine,
    mailer: EmailSender,
) -> AuthService:
    """Wire the stores onto `engine` with the limits from Settings."""
    accounts = AccountStore(
        engine,
        lockout_tiers=settings.lockout_tiers,
        verification_ttl_hours=settings.email_verification_expire_hours,
    )
    sessions = SessionStore(engine, max_sessions_per_user=settings.max_sessions_per_user)
    return AuthService(accounts, sessions, mailer, settings)
