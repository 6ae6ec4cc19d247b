"""
User CRUD helpers.
"""
from __future__ import annotations

from typing import Dict, Optional

from core.db.base import get_conn
from core.db.users.auth import hash_password

ROLES = ("consumer", "supplier", "admin")

_USER_COLUMNS = "id, email, password_hash, name, phone, role, active, created_at"


def create_user(
    email: str,
    raw_password: str,
    role: str = "consumer",
    name: str | None = None,
    phone: str | None = None,
) -> int:
    if role not in ROLES:
        raise ValueError(f"unknown role: {role}")

    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO users (email, password_hash, name, phone, role)
        VALUES (?, ?, ?, ?, ?)
        RETURNING id
        """,
        (email.strip().lower(), hash_password(raw_password), name, phone, role),
    )
    row = cur.fetchone()
    user_id = int(row["id"]) if row else 0

    conn.commit()
    conn.close()
    return user_id


def get_user_by_email(email: str) -> Dict | None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?",
        (email.strip().lower(),),
    )
    row = cur.fetchone()
    conn.close()

    return dict(row) if row else None


def get_user_by_id(user_id: int) -> Optional[Dict]:
    """Look up a user by numeric id. Returns dict or None."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
    row = cur.fetchone()
    conn.close()

    return dict(row) if row else None


__all__ = [
    "ROLES",
    "create_user",
    "get_user_by_email",
    "get_user_by_id",
]
