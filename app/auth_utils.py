"""
Helpers for session cookies, current-user lookup and page-level role checks.
"""
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import RedirectResponse, Response

from app.guard import Allow, Decision, authorize
from app.security import ROLE_COOKIE_NAME, SECURE_COOKIES, attach_role_cookie
from core.database import delete_session, get_session, get_user_by_id, touch_session

SESSION_COOKIE_NAME = "session_id"
SESSION_COOKIE_MAX_AGE = 1800  # 30 minutes

log = logging.getLogger("guard")


def get_current_user(request: Request):
    """
    Read session cookie and return (user_dict, session_token) or (None, None).
    Refreshes inactivity timeout when the session is valid.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None, None

    session = get_session(token)
    if not session:
        return None, token

    user = get_user_by_id(session["user_id"])
    if not user or not user.get("active"):
        delete_session(token)
        return None, token

    touch_session(token)
    return user, token


def set_session_cookie(response: Response, token: str, role: str | None = None) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        max_age=SESSION_COOKIE_MAX_AGE,
        samesite="lax",
        secure=SECURE_COOKIES,
    )
    if role:
        attach_role_cookie(response, role, token, max_age=SESSION_COOKIE_MAX_AGE)


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)
    response.delete_cookie(ROLE_COOKIE_NAME)


def decision_response(decision: Decision) -> Response | None:
    """None when the request may proceed, else the redirect to send."""
    if isinstance(decision, Allow):
        return None
    return RedirectResponse(url=decision.target, status_code=303)


def guard_page(request: Request):
    """
    Page-level guard with a freshly loaded role.
    Returns (user, None) when allowed, else (user, redirect_response).
    """
    user, _ = get_current_user(request)
    role = user.get("role") if user else None
    decision = authorize(request.url.path, role)
    redirect = decision_response(decision)
    if redirect is not None:
        log.info(
            "Page guard blocked request",
            extra={"path": request.url.path, "role": role, "target": decision.target},
        )
    return user, redirect
