"""
Periodic sweeps run by the worker loop and the cron endpoints.

Both sweeps are single-pass and stateless. Their UPDATE statements only match
rows still in the source state, so overlapping or repeated runs never move the
same row twice.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from app.email_utils import public_url, send_text_email
from core.database import (
    expire_active_offers,
    get_stale_pending_requests,
    insert_notifications,
    mark_requests_timed_out,
)

REQUEST_TIMEOUT_HOURS = 4

log = logging.getLogger("cron")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def build_offer_expired_notification(offer: Dict) -> Dict:
    customer = offer.get("guest_name") or "a customer"
    return {
        "user_id": offer["provider_id"],
        "type": "offer_expired",
        "title": "Your offer expired",
        "message": (
            f"Your offer for {customer} ({offer.get('amount')}L at {offer.get('address')}) has expired."
        ),
        "data": {"offer_id": offer["id"], "request_id": offer["request_id"]},
    }


def expire_offers(now: datetime | None = None) -> Dict:
    """
    Expire every active offer past its deadline and notify each provider once.

    Errors from the status update propagate (nothing was changed). A failed
    notification batch is logged and does not undo the expiry.
    """
    start = time.monotonic()
    now = now or datetime.now(timezone.utc)

    expired = expire_active_offers(now)

    if expired:
        notifications = [build_offer_expired_notification(o) for o in expired]
        try:
            insert_notifications(notifications)
            log.info("expire-offers: created notifications", extra={"count": len(notifications)})
        except Exception as exc:
            log.error(
                "expire-offers: failed to create notifications",
                extra={"count": len(notifications), "error": str(exc)},
            )

    duration_ms = _elapsed_ms(start)
    log.info(
        f"Expired {len(expired)} offers in {duration_ms}ms",
        extra={"expired_count": len(expired), "duration_ms": duration_ms},
    )
    return {"expired_count": len(expired), "duration_ms": duration_ms}


def _tracking_link(req: Dict) -> str:
    if req.get("consumer_id"):
        return public_url(f"/request/{req['id']}")
    return public_url(f"/track/{req.get('tracking_token')}")


def _send_timeout_email(req: Dict) -> bool:
    to_email = req.get("guest_email") or req.get("consumer_email")
    if not to_email:
        return False
    name = req.get("guest_name") or req.get("consumer_name") or "there"
    body = "\n".join(
        [
            f"Hi {name},",
            "",
            f"Your request for {req.get('amount')}L at {req.get('address')} did not receive any offers.",
            "You can submit a new request at any time.",
            "",
            f"Request details: {_tracking_link(req)}",
        ]
    )
    try:
        send_text_email(to_email, "Your water request received no offers", body)
    except Exception as exc:
        log.error(
            "request-timeout: failed to send email",
            extra={"request_id": req.get("id"), "error": str(exc)},
        )
        return False
    return True


def time_out_requests(now: datetime | None = None) -> Dict:
    """
    Close pending requests older than REQUEST_TIMEOUT_HOURS that have no active
    offer, then tell the consumer (in-app when registered, email when known).
    """
    start = time.monotonic()
    now = now or datetime.now(timezone.utc)
    threshold = now - timedelta(hours=REQUEST_TIMEOUT_HOURS)

    stale = get_stale_pending_requests(threshold)
    candidates = [r for r in stale if not r.get("has_active_offers")]
    skipped = len(stale) - len(candidates)

    if not candidates:
        duration_ms = _elapsed_ms(start)
        log.info("request-timeout: nothing to time out", extra={"skipped_with_offers": skipped})
        return {
            "timed_out_count": 0,
            "notifications_sent": 0,
            "notifications_failed": 0,
            "skipped_with_offers": skipped,
            "duration_ms": duration_ms,
        }

    moved_ids = set(mark_requests_timed_out([r["id"] for r in candidates], now))
    timed_out: List[Dict] = [r for r in candidates if r["id"] in moved_ids]

    in_app = [
        {
            "user_id": r["consumer_id"],
            "type": "request_timeout",
            "title": "No offers available",
            "message": "Your water request did not receive any offers. Please try again.",
            "data": {"request_id": r["id"], "amount": r.get("amount"), "address": r.get("address")},
        }
        for r in timed_out
        if r.get("consumer_id")
    ]
    in_app_ok = False
    if in_app:
        try:
            insert_notifications(in_app)
            in_app_ok = True
        except Exception as exc:
            log.error(
                "request-timeout: failed to create notifications",
                extra={"count": len(in_app), "error": str(exc)},
            )

    sent = 0
    for req in timed_out:
        notified = bool(req.get("consumer_id")) and in_app_ok
        if _send_timeout_email(req):
            notified = True
        if notified:
            sent += 1

    duration_ms = _elapsed_ms(start)
    log.info(
        f"Timed out {len(timed_out)} requests in {duration_ms}ms",
        extra={"timed_out_count": len(timed_out), "notifications_sent": sent},
    )
    return {
        "timed_out_count": len(timed_out),
        "notifications_sent": sent,
        "notifications_failed": len(timed_out) - sent,
        "skipped_with_offers": skipped,
        "duration_ms": duration_ms,
    }


__all__ = [
    "REQUEST_TIMEOUT_HOURS",
    "build_offer_expired_notification",
    "expire_offers",
    "time_out_requests",
]
