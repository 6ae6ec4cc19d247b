"""
Offer storage helpers.

Offers are created `active` by a supplier, and leave that state exactly once:
accepted by the consumer, cancelled when a sibling offer is accepted, or
expired by the sweep in `worker.sweeps`.
"""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from core.db.base import get_conn
from core.db.errors import OfferError

DEFAULT_OFFER_VALIDITY_MINUTES = 30

_OFFER_COLUMNS = """
    o.id, o.request_id, o.provider_id, o.price, o.delivery_window, o.message,
    o.status, o.created_at, o.expires_at, o.accepted_at
"""


def offer_validity_minutes() -> int:
    raw = os.getenv("OFFER_VALIDITY_MINUTES", "")
    try:
        minutes = int(raw)
    except ValueError:
        return DEFAULT_OFFER_VALIDITY_MINUTES
    return minutes if minutes > 0 else DEFAULT_OFFER_VALIDITY_MINUTES


def create_offer(
    *,
    request_id: int,
    provider_id: int,
    price: int,
    delivery_window: str | None = None,
    message: str | None = None,
    now: datetime | None = None,
) -> Dict:
    """
    Create an active offer on a pending request.

    Raises OfferError("REQUEST_CLOSED") when the request is missing or no longer
    pending, and OfferError("DUPLICATE") when the supplier already has an active
    offer on it.
    """
    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=offer_validity_minutes())

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            "SELECT id, status FROM water_requests WHERE id = ? FOR UPDATE",
            (request_id,),
        )
        req = cur.fetchone()
        if not req or req["status"] != "pending":
            raise OfferError("REQUEST_CLOSED", "This request is no longer accepting offers.")

        cur.execute(
            """
            SELECT 1 FROM offers
            WHERE request_id = ? AND provider_id = ? AND status = 'active'
            """,
            (request_id, provider_id),
        )
        if cur.fetchone():
            raise OfferError("DUPLICATE", "You already have an active offer on this request.")

        cur.execute(
            """
            INSERT INTO offers (request_id, provider_id, price, delivery_window, message,
                                status, created_at, expires_at)
            VALUES (?, ?, ?, ?, ?, 'active', ?, ?)
            RETURNING id, request_id, provider_id, price, status, created_at, expires_at
            """,
            (request_id, provider_id, int(price), delivery_window, message, now, expires_at),
        )
        row = dict(cur.fetchone())
        conn.commit()
        return row
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_offer(offer_id: int) -> Optional[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(f"SELECT {_OFFER_COLUMNS} FROM offers o WHERE o.id = ?", (offer_id,))
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def get_offers_for_request(request_id: int) -> List[Dict]:
    """All offers on a request with the supplier's display name, cheapest first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {_OFFER_COLUMNS}, u.name AS provider_name, u.phone AS provider_phone
        FROM offers o
        JOIN users u ON u.id = o.provider_id
        WHERE o.request_id = ?
        ORDER BY o.price ASC, o.created_at ASC
        """,
        (request_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_offers_for_provider(provider_id: int, limit: int = 100) -> List[Dict]:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {_OFFER_COLUMNS}, wr.address, wr.amount
        FROM offers o
        JOIN water_requests wr ON wr.id = o.request_id
        WHERE o.provider_id = ?
        ORDER BY o.created_at DESC, o.id DESC
        LIMIT ?
        """,
        (provider_id, int(limit)),
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def accept_offer(
    *,
    offer_id: int,
    request_id: int,
    consumer_id: int | None = None,
    now: datetime | None = None,
) -> Dict:
    """
    Accept one offer: the offer becomes `accepted`, its active siblings
    `cancelled`, and the request `accepted`, all in one transaction.
    """
    now = now or datetime.now(timezone.utc)

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            "SELECT id, consumer_id, status FROM water_requests WHERE id = ? FOR UPDATE",
            (request_id,),
        )
        req = cur.fetchone()
        if not req:
            raise OfferError("NOT_FOUND", "Request not found.")
        if req["consumer_id"] is not None and req["consumer_id"] != consumer_id:
            raise OfferError("FORBIDDEN", "This request belongs to another account.")
        if req["status"] != "pending":
            raise OfferError("REQUEST_CLOSED", "This request already has an accepted offer.")

        cur.execute(
            "SELECT id, status, expires_at FROM offers WHERE id = ? AND request_id = ? FOR UPDATE",
            (offer_id, request_id),
        )
        offer = cur.fetchone()
        if not offer:
            raise OfferError("NOT_FOUND", "Offer not found.")
        if offer["status"] != "active":
            raise OfferError("NOT_ACTIVE", "This offer is no longer available.")
        if offer["expires_at"] <= now:
            raise OfferError("EXPIRED", "This offer has expired.")

        cur.execute(
            "UPDATE offers SET status = 'accepted', accepted_at = ? WHERE id = ?",
            (now, offer_id),
        )
        cur.execute(
            """
            UPDATE offers SET status = 'cancelled'
            WHERE request_id = ? AND id <> ? AND status = 'active'
            """,
            (request_id, offer_id),
        )
        cur.execute(
            "UPDATE water_requests SET status = 'accepted', accepted_at = ? WHERE id = ?",
            (now, request_id),
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    return get_offer(offer_id)


def expire_active_offers(now: datetime) -> List[Dict]:
    """
    Move every active offer whose deadline is before `now` to `expired`, in one
    statement, returning the affected offers with the request fields needed to
    word a notification. Rows already expired never match again.
    """
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            UPDATE offers o
            SET status = 'expired'
            FROM water_requests wr
            WHERE wr.id = o.request_id
              AND o.status = 'active'
              AND o.expires_at < ?
            RETURNING o.id, o.provider_id, o.request_id,
                      wr.address, wr.amount, wr.guest_name
            """,
            (now,),
        )
        rows = cur.fetchall()
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return [dict(r) for r in rows]


__all__ = [
    "DEFAULT_OFFER_VALIDITY_MINUTES",
    "offer_validity_minutes",
    "create_offer",
    "get_offer",
    "get_offers_for_request",
    "get_offers_for_provider",
    "accept_offer",
    "expire_active_offers",
]
