"""
CSRF, rate limit and role-cookie helpers.
"""
from __future__ import annotations

import hashlib
import hmac
import os
import secrets
import time
from typing import Dict, Optional, Tuple

CSRF_COOKIE_NAME = "csrf_token"
ROLE_COOKIE_NAME = "role"
SECURE_COOKIES = (
    os.getenv("COOKIE_SECURE", "").lower() in ("1", "true", "yes")
    or os.getenv("PUBLIC_BASE_URL", "").lower().startswith("https://")
)

# Fallback key for local runs; a restart invalidates role cookies, which only
# costs the middleware a redirect to login.
_EPHEMERAL_SECRET = secrets.token_urlsafe(32)


def issue_csrf_token(existing: str | None = None) -> str:
    """Return a CSRF token (re-use existing if provided, else create a new one)."""
    return existing or secrets.token_urlsafe(16)


def attach_csrf_cookie(response, token: str) -> None:
    """Attach the CSRF token as a non-HTTPOnly cookie (double-submit pattern)."""
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        samesite="lax",
        secure=SECURE_COOKIES,
    )


def validate_csrf(request, form_token: str | None) -> bool:
    """Compare the submitted token with the cookie value using constant-time compare."""
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME) or ""
    form_token = form_token or ""
    if not cookie_token or not form_token:
        return False
    return hmac.compare_digest(cookie_token, form_token)


# -------- Role cookie --------
def _session_secret() -> bytes:
    return (os.getenv("SESSION_SECRET") or _EPHEMERAL_SECRET).encode("utf-8")


def _role_signature(role: str, session_token: str) -> str:
    msg = f"{role}|{session_token}".encode("utf-8")
    return hmac.new(_session_secret(), msg, hashlib.sha256).hexdigest()


def sign_role(role: str, session_token: str) -> str:
    """
    Cookie value carrying the user's role, bound to their session token so it
    cannot be replayed with another session.
    """
    return f"{role}.{_role_signature(role, session_token)}"


def read_role(cookie_value: str | None, session_token: str | None) -> Optional[str]:
    """Return the role from a signed cookie, or None if missing or tampered with."""
    if not cookie_value or not session_token or "." not in cookie_value:
        return None
    role, _, signature = cookie_value.partition(".")
    if not hmac.compare_digest(signature, _role_signature(role, session_token)):
        return None
    return role


def attach_role_cookie(response, role: str, session_token: str, max_age: int) -> None:
    response.set_cookie(
        key=ROLE_COOKIE_NAME,
        value=sign_role(role, session_token),
        httponly=True,
        max_age=max_age,
        samesite="lax",
        secure=SECURE_COOKIES,
    )


# -------- Rate limiting (in-memory) --------
_rate_state: Dict[str, list[float]] = {}


def allow_request(key: str, limit: int = 5, window_seconds: int = 60) -> bool:
    allowed, _ = allow_request_with_remaining(key, limit=limit, window_seconds=window_seconds)
    return allowed


def allow_request_with_remaining(key: str, limit: int = 5, window_seconds: int = 60) -> Tuple[bool, int]:
    """
    Sliding-window rate limit with remaining-count feedback.
    Returns (allowed, remaining_after).
    """
    now = time.time()
    window_start = now - window_seconds
    history = [t for t in _rate_state.get(key, []) if t > window_start]
    if len(history) >= limit:
        _rate_state[key] = history
        return False, 0
    history.append(now)
    _rate_state[key] = history
    return True, max(0, limit - len(history))


__all__ = [
    "CSRF_COOKIE_NAME",
    "ROLE_COOKIE_NAME",
    "SECURE_COOKIES",
    "issue_csrf_token",
    "attach_csrf_cookie",
    "validate_csrf",
    "sign_role",
    "read_role",
    "attach_role_cookie",
    "allow_request",
    "allow_request_with_remaining",
]
