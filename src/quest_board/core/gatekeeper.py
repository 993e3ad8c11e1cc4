"""
Admission gatekeeper: one-time tokens and per-identity sign-up throttling.

Two independent guards run before any eligibility or ledger work:

1. **One-time tokens.** A form token is issued when the sign-up form loads and
   is valid for one submission within 30 minutes. A cancel-link token is
   issued with each successful sign-up, bound to the registration, and valid
   for one use within 48 hours. Checking a token always consumes it, valid or
   not, so a captured request cannot be replayed.

2. **Rate limiting.** Attempts are counted per normalized email in a fixed
   window that opens on the first attempt. Up to ``max_attempts`` are allowed;
   later attempts in the same window are rejected until it elapses.

Failures are reported, never retried: the caller must fetch a new token or
wait out the window.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from quest_board.core.cache import Cache, InMemoryCache
from quest_board.core.errors import InvalidToken, RateLimited

logger = logging.getLogger(__name__)

_FORM_PREFIX = "form:"
_CANCEL_PREFIX = "cancel:"
_RATE_PREFIX = "rate:"


@dataclass(frozen=True, slots=True)
class CancelGrant:
    """What a consumed cancel-link token was issued for."""

    registration_id: str
    issued_for: str = ""


class TokenStore:
    """Issues and consumes single-use, time-boxed tokens.

    Args:
        cache: Backing cache; tokens are keys, so the cache TTL is the
            validity window.
        form_ttl_seconds: Lifetime of form-submission tokens.
        cancel_ttl_seconds: Lifetime of cancel-by-link tokens.
    """

    def __init__(
        self,
        cache: Cache,
        *,
        form_ttl_seconds: float = 30 * 60,
        cancel_ttl_seconds: float = 48 * 60 * 60,
    ) -> None:
        self._cache = cache
        self.form_ttl_seconds = form_ttl_seconds
        self.cancel_ttl_seconds = cancel_ttl_seconds

    def issue_form_token(self, owner: str = "") -> str:
        token = secrets.token_hex(32)
        self._cache.set(_FORM_PREFIX + token, {"owner": owner}, self.form_ttl_seconds)
        return token

    def check_and_consume_token(self, token: str | None) -> bool:
        """Return True exactly once for a live form token."""
        if not token:
            return False
        return self._cache.pop(_FORM_PREFIX + token) is not None

    def issue_cancel_token(self, registration_id: str, issued_for: str = "") -> str:
        """Issue a cancel-link token for one sign-up of ``registration_id``.

        ``issued_for`` is the sign-up timestamp of the row the link was
        mailed for; a re-registration reuses the id with a new timestamp.
        """
        token = secrets.token_hex(24)
        entry = {"registration_id": registration_id, "issued_for": issued_for}
        self._cache.set(_CANCEL_PREFIX + token, entry, self.cancel_ttl_seconds)
        return token

    def consume_cancel_token(self, token: str | None) -> CancelGrant | None:
        """Return the bound grant exactly once, or ``None``."""
        if not token:
            return None
        entry = self._cache.pop(_CANCEL_PREFIX + token)
        if entry is None:
            return None
        return CancelGrant(str(entry["registration_id"]), str(entry.get("issued_for", "")))


class RateLimiter:
    """Fixed-window attempt counter keyed by normalized identity.

    Args:
        cache: Backing cache for ``{count, window_start}`` entries.
        max_attempts: Attempts allowed per window.
        window_seconds: Window length, measured from the first attempt.
        retention_seconds: Cache TTL for an entry; bounds memory for
            identities that stop sending requests.
        clock: Monotonic seconds source.
    """

    def __init__(
        self,
        cache: Cache,
        *,
        max_attempts: int = 5,
        window_seconds: float = 10 * 60,
        retention_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache = cache
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.retention_seconds = max(retention_seconds, window_seconds)
        self._clock = clock
        # get-then-set on the cache must not interleave between two requests
        self._lock = threading.Lock()

    @staticmethod
    def normalize(identity_key: str | None) -> str:
        return (identity_key or "").strip().lower()

    def check_rate(self, identity_key: str | None) -> bool:
        """Count one attempt for ``identity_key`` and report whether it is allowed."""
        key = self.normalize(identity_key)
        if not key:
            return True
        cache_key = _RATE_PREFIX + key
        with self._lock:
            now = self._clock()
            entry = self._cache.get(cache_key)
            if entry is None or now - entry["window_start"] > self.window_seconds:
                self._cache.set(
                    cache_key, {"count": 1, "window_start": now}, self.retention_seconds
                )
                return True
            if entry["count"] >= self.max_attempts:
                return False
            self._cache.set(
                cache_key,
                {"count": entry["count"] + 1, "window_start": entry["window_start"]},
                self.retention_seconds,
            )
            return True

    def reset(self, identity_key: str) -> None:
        self._cache.expire(_RATE_PREFIX + self.normalize(identity_key))


class AdmissionGatekeeper:
    """Runs the token check, then the rate check, raising on the first failure."""

    def __init__(
        self,
        tokens: TokenStore,
        limiter: RateLimiter,
        *,
        rate_limit_enabled: bool = True,
    ) -> None:
        self.tokens = tokens
        self.limiter = limiter
        self.rate_limit_enabled = rate_limit_enabled

    @classmethod
    def from_config(cls, cache: Cache | None = None) -> AdmissionGatekeeper:
        from quest_board.config import config

        backing = cache if cache is not None else InMemoryCache()
        tokens = TokenStore(
            backing,
            form_ttl_seconds=config.signup.form_token_ttl_minutes * 60,
            cancel_ttl_seconds=config.signup.cancel_token_ttl_hours * 3600,
        )
        limiter = RateLimiter(
            backing,
            max_attempts=config.rate_limit.max_attempts,
            window_seconds=config.rate_limit.window_minutes * 60,
            retention_seconds=config.rate_limit.prune_after_minutes * 60,
        )
        return cls(tokens, limiter, rate_limit_enabled=config.rate_limit.enabled)

    def admit(self, token: str | None, identity_key: str | None) -> None:
        """Validate and consume ``token``, then count an attempt for ``identity_key``.

        Raises:
            InvalidToken: Token unknown, expired or already used.
            RateLimited: Too many attempts in the current window.
        """
        if not self.tokens.check_and_consume_token(token):
            logger.info("Rejected sign-up with invalid or reused form token")
            raise InvalidToken()
        if self.rate_limit_enabled and not self.limiter.check_rate(identity_key):
            logger.info("Rate limited sign-up attempt for %s", RateLimiter.normalize(identity_key))
            raise RateLimited()
