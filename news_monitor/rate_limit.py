# news_monitor/rate_limit.py
"""
Login attempt counter with expiring lockout.

State lives in process memory, so it resets on restart and is per instance.
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass


MAX_ATTEMPTS = 5
LOCKOUT_SECONDS = 15 * 60


@dataclass
class AttemptRecord:
    attempts: int = 0
    last_attempt: float = 0.0
    locked_until: float = 0.0


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: int | None = None


class LoginRateLimiter:
    def __init__(self, *, max_attempts: int = MAX_ATTEMPTS, lockout_seconds: float = LOCKOUT_SECONDS, clock=time.monotonic):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._records: dict[str, AttemptRecord] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitDecision:
        """
        May this client try a password now?

        Reaching max_attempts failures starts a lockout; an expired lockout
        clears the record.
        """
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return RateLimitDecision(allowed=True)

            if record.locked_until > now:
                return RateLimitDecision(allowed=False, retry_after=math.ceil(record.locked_until - now))

            if record.locked_until > 0:
                del self._records[key]
                return RateLimitDecision(allowed=True)

            if record.attempts >= self.max_attempts:
                record.locked_until = now + self.lockout_seconds
                return RateLimitDecision(allowed=False, retry_after=math.ceil(self.lockout_seconds))

            return RateLimitDecision(allowed=True)

    def record(self, key: str, *, success: bool) -> None:
        with self._lock:
            if success:
                self._records.pop(key, None)
                return
            record = self._records.setdefault(key, AttemptRecord())
            record.attempts += 1
            record.last_attempt = self._clock()

    def reset(self) -> None:
        with self._lock:
            self._records.clear()


def client_key(headers, fallback: str | None = None) -> str:
    """
    Identify the caller for rate limiting.

    First X-Forwarded-For hop, then X-Real-IP, then the socket peer, then a
    User-Agent prefix.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if fallback:
        return fallback
    user_agent = headers.get("user-agent")
    return user_agent[:50] if user_agent else "unknown"
