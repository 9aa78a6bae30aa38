"""
auth/ratelimit.py -- Fixed-window rate limiting per (client key, action class).

Built on the `limits` package (the engine under slowapi):

  FixedWindowRateLimiter -- the first hit for a key opens a window of the
                            configured length; every hit inside it increments
                            the counter; hits beyond max are denied. A denied
                            hit never moves the window, and the counter starts
                            again at 1 once the window has expired.
  storage                -- chosen by RATE_LIMIT_STORAGE_URI. "memory://" keeps
                            counters in this process (atomic per key, expired
                            keys are dropped by the storage itself);
                            "redis://host:6379" shares them across instances.

Windows are fixed, not sliding: a client can spend its whole budget at the end
of one window and again at the start of the next, i.e. up to 2 x max requests
in a short span around a boundary.

Action classes (general, auth, review, upload) have independent counters and
thresholds: the action is part of the storage key, so exhausting one never
affects another.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from auth.errors import RateLimited
from auth.models import RateLimitResult
from core.config import Settings

logger = logging.getLogger("appstore.ratelimit")

ACTION_GENERAL = "general"
ACTION_AUTH = "auth"
ACTION_REVIEW = "review"
ACTION_UPLOAD = "upload"


@dataclass(frozen=True)
class WindowPolicy:
    max_requests: int
    window: timedelta

    def as_item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.max_requests, int(self.window.total_seconds()))


def policies_from_settings(settings: Settings) -> dict[str, WindowPolicy]:
    """Build the per-action-class thresholds from Settings."""
    return {
        ACTION_GENERAL: WindowPolicy(
            settings.rate_limit_general_max, timedelta(seconds=settings.rate_limit_general_window_seconds)
        ),
        ACTION_AUTH: WindowPolicy(
            settings.rate_limit_auth_max, timedelta(seconds=settings.rate_limit_auth_window_seconds)
        ),
        ACTION_REVIEW: WindowPolicy(
            settings.rate_limit_review_max, timedelta(seconds=settings.rate_limit_review_window_seconds)
        ),
        ACTION_UPLOAD: WindowPolicy(
            settings.rate_limit_upload_max, timedelta(seconds=settings.rate_limit_upload_window_seconds)
        ),
    }


class RateLimiter:
    """Applies per-action WindowPolicy thresholds on a `limits` storage.

    Usage:
        limiter = RateLimiter(policies_from_settings(settings), "memory://")
        result = limiter.hit("203.0.113.7", "auth")
        limiter.enforce("203.0.113.7", "auth")   # raises RateLimited when denied

    One instance is shared by every route (it lives on app.state); separate
    instances over "memory://" would each count on their own.
    """

    def __init__(self, policies: dict[str, WindowPolicy], storage_uri: str = "memory://") -> None:
        self.policies = policies
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)
        self.items = {action: policy.as_item() for action, policy in policies.items()}

    def hit(self, client_key: str, action: str = ACTION_GENERAL) -> RateLimitResult:
        """Record one attempt and report whether it is admitted.

        reset_at is rounded up to the next whole second so it never precedes
        the end of the window, including on storages that truncate expiry.
        """
        item = self.items[action]
        allowed = self.strategy.hit(item, action, client_key)
        reset_time, remaining = self.strategy.get_window_stats(item, action, client_key)
        return RateLimitResult(
            allowed=allowed,
            remaining=remaining,
            reset_at=datetime.fromtimestamp(math.floor(reset_time) + 1, tz=timezone.utc),
        )

    def enforce(self, client_key: str, action: str = ACTION_GENERAL) -> RateLimitResult:
        """Like hit(), but raise RateLimited when the attempt is denied."""
        result = self.hit(client_key, action)
        if not result.allowed:
            logger.warning("Rate limit exceeded: action=%s client=%s", action, client_key)
            raise RateLimited(result.reset_at, action)
        return result

    def reset(self) -> None:
        """Forget every counter (operator use and tests)."""
        self.storage.reset()


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Limiter with the Settings thresholds on RATE_LIMIT_STORAGE_URI."""
    return RateLimiter(policies_from_settings(settings), settings.rate_limit_storage_uri)
