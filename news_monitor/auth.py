"""
Authentication utilities: dashboard password check and signed access tokens.

The dashboard password is configured as a bcrypt hash (APP_PASSWORD_HASH),
never as plaintext. Access tokens are HS256 JWTs whose `exp`/`iat` claims are
epoch milliseconds, so expiry is checked here rather than by PyJWT.
"""
from __future__ import annotations

import time

import bcrypt
import jwt


TOKEN_ALGORITHM = "HS256"
TOKEN_LIFETIME_MS = 180 * 24 * 60 * 60 * 1000

# Claims that mark a key issued by the hosting platform for the scheduler
SYSTEM_TOKEN_ROLES = frozenset({"service_role", "anon"})


class TokenError(Exception):
    """Raised when a bearer token is missing, malformed, forged or expired."""


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Used to produce the APP_PASSWORD_HASH value (and in tests).
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Args:
        password: Plaintext password from user input
        password_hash: Bcrypt hash from configuration

    Returns:
        True if password matches, False otherwise
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        # Invalid hash format
        return False


def now_ms() -> int:
    return int(time.time() * 1000)


def issue_token(secret: str, *, lifetime_ms: int = TOKEN_LIFETIME_MS, issued_at_ms: int | None = None) -> str:
    """Sign a dashboard token valid for lifetime_ms."""
    iat = issued_at_ms if issued_at_ms is not None else now_ms()
    payload = {"authenticated": True, "iat": iat, "exp": iat + lifetime_ms}
    return jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)


def verify_token(token: str | None, secret: str, *, at_ms: int | None = None) -> dict:
    """
    Check signature and expiry. Returns the payload.

    Raises:
        TokenError for a missing, malformed, wrongly signed or expired token.
    """
    if not token:
        raise TokenError("missing token")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[TOKEN_ALGORITHM],
            # exp/iat are milliseconds; PyJWT would read them as seconds
            options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
        )
    except jwt.InvalidTokenError as exc:
        raise TokenError(f"invalid token: {exc}") from exc

    exp = payload.get("exp")
    if exp is not None:
        if not isinstance(exp, (int, float)):
            raise TokenError("invalid exp claim")
        if exp < (at_ms if at_ms is not None else now_ms()):
            raise TokenError("token expired")

    return payload


def is_system_token(token: str | None, *, issuer: str) -> bool:
    """
    True for platform-issued keys (the scheduler's key).

    Only the payload segment is inspected; the signature is not verified.
    """
    if not token:
        return False
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return False
    if not isinstance(claims, dict):
        return False
    return claims.get("role") in SYSTEM_TOKEN_ROLES or claims.get("iss") == issuer


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None
