"""
In-app notification store.
"""
from __future__ import annotations

from typing import Dict, Iterable, List

from core.db.base import as_json, get_conn


def insert_notifications(notifications: Iterable[Dict]) -> int:
    """
    Insert a batch of notifications in one transaction.

    Each item carries user_id, type, title, message and an optional `data` dict.
    Returns the number of rows written; nothing is written if any row fails.
    """
    rows = [
        (
            n["user_id"],
            n["type"],
            n["title"],
            n["message"],
            as_json(n.get("data") or {}),
        )
        for n in notifications
    ]
    if not rows:
        return 0

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.executemany(
            """
            INSERT INTO notifications (user_id, type, title, message, data, read)
            VALUES (?, ?, ?, ?, ?, FALSE)
            """,
            rows,
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return len(rows)


def get_notifications_for_user(user_id: int, limit: int = 50) -> List[Dict]:
    """Newest first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, user_id, type, title, message, data, read, created_at
        FROM notifications
        WHERE user_id = ?
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        (user_id, int(limit)),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def mark_notifications_read(user_id: int) -> int:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        "UPDATE notifications SET read = TRUE WHERE user_id = ? AND read = FALSE",
        (user_id,),
    )
    updated = cur.rowcount
    conn.commit()
    conn.close()
    return updated


__all__ = [
    "insert_notifications",
    "get_notifications_for_user",
    "mark_notifications_read",
]
