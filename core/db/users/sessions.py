"""
Login sessions.

A session is an opaque random token with a sliding 30-minute inactivity window.
Expiry is evaluated by Postgres (`now()`), so app servers with skewed clocks
agree on which sessions are alive.
"""
from __future__ import annotations

import secrets
from typing import Dict, Optional

from core.db.base import get_conn

SESSION_TIMEOUT_MINUTES = 30
_TIMEOUT_SQL = f"interval '{SESSION_TIMEOUT_MINUTES} minutes'"


def create_session(user_id: int) -> str:
    """Start a session for `user_id` and return its token. Expired sessions are pruned here."""
    token = secrets.token_urlsafe(32)

    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM sessions WHERE expires_at <= now()")
    cur.execute(
        f"""
        INSERT INTO sessions (id, user_id, created_at, last_seen_at, expires_at)
        VALUES (?, ?, now(), now(), now() + {_TIMEOUT_SQL})
        """,
        (token, user_id),
    )
    conn.commit()
    conn.close()
    return token


def delete_session(session_id: str) -> None:
    if not session_id:
        return
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
    conn.commit()
    conn.close()


def get_session(session_id: str) -> Optional[Dict]:
    """The live session for a token, or None when it is unknown or past its expiry."""
    if not session_id:
        return None
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, user_id, created_at, last_seen_at, expires_at
        FROM sessions
        WHERE id = ? AND expires_at > now()
        """,
        (session_id,),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def touch_session(session_id: str) -> None:
    if not session_id:
        return
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        UPDATE sessions
        SET last_seen_at = now(), expires_at = now() + {_TIMEOUT_SQL}
        WHERE id = ? AND expires_at > now()
        """,
        (session_id,),
    )
    conn.commit()
    conn.close()


__all__ = [
    "SESSION_TIMEOUT_MINUTES",
    "create_session",
    "delete_session",
    "get_session",
    "touch_session",
]
