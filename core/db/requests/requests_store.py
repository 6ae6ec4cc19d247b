"""
Water request storage helpers.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from core.db.base import get_conn

AMOUNT_OPTIONS = {100: 5000, 1000: 15000, 5000: 45000, 10000: 80000}  # litres -> CLP

_REQUEST_COLUMNS = """
    id, consumer_id, guest_name, guest_phone, guest_email, address,
    special_instructions, amount, is_urgent, latitude, longitude,
    tracking_token, status, created_at, accepted_at, timed_out_at
"""


def create_water_request(
    *,
    address: str,
    amount: int,
    guest_name: str | None = None,
    guest_phone: str | None = None,
    guest_email: str | None = None,
    special_instructions: str | None = None,
    is_urgent: bool = False,
    latitude: float | None = None,
    longitude: float | None = None,
    consumer_id: int | None = None,
) -> Dict:
    """Insert a pending request and return id, tracking_token, status and created_at."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO water_requests
          (consumer_id, guest_name, guest_phone, guest_email, address, special_instructions,
           amount, is_urgent, latitude, longitude, tracking_token, status)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending')
        RETURNING id, tracking_token, status, created_at
        """,
        (
            consumer_id,
            guest_name,
            guest_phone,
            guest_email or None,
            address,
            special_instructions,
            int(amount),
            bool(is_urgent),
            latitude,
            longitude,
            str(uuid.uuid4()),
        ),
    )
    row = cur.fetchone()
    conn.commit()
    conn.close()
    return dict(row)


def get_request(request_id: int) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_REQUEST_COLUMNS} FROM water_requests WHERE id = ?", (request_id,))
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def get_request_by_tracking_token(token: str) -> Optional[Dict]:
    if not token:
        return None
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"SELECT {_REQUEST_COLUMNS} FROM water_requests WHERE tracking_token = ?",
        (token,),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def get_requests_for_consumer(consumer_id: int, limit: int = 100) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {_REQUEST_COLUMNS} FROM water_requests
        WHERE consumer_id = ?
        ORDER BY created_at DESC, id DESC
        LIMIT ?
        """,
        (consumer_id, int(limit)),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_open_requests(limit: int = 100) -> List[Dict]:
    """Pending requests suppliers can still bid on, urgent first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {_REQUEST_COLUMNS} FROM water_requests
        WHERE status = 'pending'
        ORDER BY is_urgent DESC, created_at ASC
        LIMIT ?
        """,
        (int(limit),),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_all_requests(limit: int = 200) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"SELECT {_REQUEST_COLUMNS} FROM water_requests ORDER BY created_at DESC, id DESC LIMIT ?",
        (int(limit),),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_stale_pending_requests(threshold: datetime) -> List[Dict]:
    """
    Pending requests created before `threshold`, with the consumer's email/name and a
    flag telling whether any active offer is still waiting on them.
    """
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT
          wr.id, wr.consumer_id, wr.guest_name, wr.guest_email, wr.address,
          wr.amount, wr.tracking_token, wr.created_at,
          u.email AS consumer_email,
          u.name AS consumer_name,
          EXISTS (
            SELECT 1 FROM offers o WHERE o.request_id = wr.id AND o.status = 'active'
          ) AS has_active_offers
        FROM water_requests wr
        LEFT JOIN users u ON u.id = wr.consumer_id
        WHERE wr.status = 'pending' AND wr.created_at < ?
        ORDER BY wr.created_at ASC
        """,
        (threshold,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def mark_requests_timed_out(request_ids: List[int], now: datetime) -> List[int]:
    """
    Move requests that are still pending and still have no active offer to
    'no_offers'. Returns the ids actually moved.
    """
    if not request_ids:
        return []
    conn = get_conn()
    cur = conn.cursor()
    # Wait for offer transactions holding these rows so the UPDATE below sees their offers.
    cur.execute(
        "SELECT id FROM water_requests WHERE id = ANY(?) AND status = 'pending' FOR UPDATE",
        (list(request_ids),),
    )
    cur.execute(
        """
        UPDATE water_requests
        SET status = 'no_offers', timed_out_at = ?
        WHERE id = ANY(?)
          AND status = 'pending'
          AND NOT EXISTS (
            SELECT 1 FROM offers o
            WHERE o.request_id = water_requests.id AND o.status = 'active'
          )
        RETURNING id
        """,
        (now, list(request_ids)),
    )
    moved = [int(r["id"]) for r in cur.fetchall()]
    conn.commit()
    conn.close()
    return moved


def get_stats() -> Dict:
    """Return simple counters for the admin dashboard."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT
          (SELECT COUNT(*) FROM water_requests) AS requests,
          (SELECT COUNT(*) FROM water_requests WHERE status = 'pending') AS pending_requests,
          (SELECT COUNT(*) FROM water_requests WHERE status = 'accepted') AS accepted_requests,
          (SELECT COUNT(*) FROM offers WHERE status = 'active') AS active_offers,
          (SELECT COUNT(*) FROM offers WHERE status = 'expired') AS expired_offers,
          (SELECT COUNT(*) FROM users WHERE role = 'supplier') AS suppliers,
          (SELECT COUNT(*) FROM users WHERE role = 'consumer') AS consumers
        """
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else {}


__all__ = [
    "AMOUNT_OPTIONS",
    "create_water_request",
    "get_request",
    "get_request_by_tracking_token",
    "get_requests_for_consumer",
    "get_open_requests",
    "get_all_requests",
    "get_stale_pending_requests",
    "mark_requests_timed_out",
    "get_stats",
]
