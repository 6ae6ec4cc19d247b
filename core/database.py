"""
Single import point for storage helpers used by routes and the worker.
"""
from core.db.base import get_conn
from core.db.errors import OfferError
from core.db.schema import init_db, truncate_all
from core.db.users import (
    ROLES,
    SESSION_TIMEOUT_MINUTES,
    create_session,
    create_user,
    delete_session,
    get_session,
    get_user_by_email,
    get_user_by_id,
    hash_password,
    touch_session,
    verify_password,
)
from core.db.requests import (
    AMOUNT_OPTIONS,
    create_water_request,
    get_all_requests,
    get_open_requests,
    get_request,
    get_request_by_tracking_token,
    get_requests_for_consumer,
    get_stale_pending_requests,
    get_stats,
    mark_requests_timed_out,
)
from core.db.offers import (
    DEFAULT_OFFER_VALIDITY_MINUTES,
    accept_offer,
    create_offer,
    expire_active_offers,
    get_offer,
    get_offers_for_provider,
    get_offers_for_request,
    offer_validity_minutes,
)
from core.db.notifications import (
    get_notifications_for_user,
    insert_notifications,
    mark_notifications_read,
)

__all__ = [
    "get_conn",
    "OfferError",
    "init_db",
    "truncate_all",
    "ROLES",
    "SESSION_TIMEOUT_MINUTES",
    "create_session",
    "create_user",
    "delete_session",
    "get_session",
    "get_user_by_email",
    "get_user_by_id",
    "hash_password",
    "touch_session",
    "verify_password",
    "AMOUNT_OPTIONS",
    "create_water_request",
    "get_all_requests",
    "get_open_requests",
    "get_request",
    "get_request_by_tracking_token",
    "get_requests_for_consumer",
    "get_stale_pending_requests",
    "get_stats",
    "mark_requests_timed_out",
    "DEFAULT_OFFER_VALIDITY_MINUTES",
    "accept_offer",
    "create_offer",
    "expire_active_offers",
    "get_offer",
    "get_offers_for_provider",
    "get_offers_for_request",
    "offer_validity_minutes",
    "get_notifications_for_user",
    "insert_notifications",
    "mark_notifications_read",
]
