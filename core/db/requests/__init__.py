"""
Water request storage re-exports.
"""
from core.db.requests.requests_store import (
    AMOUNT_OPTIONS,
    create_water_request,
    get_request,
    get_request_by_tracking_token,
    get_requests_for_consumer,
    get_open_requests,
    get_all_requests,
    get_stale_pending_requests,
    mark_requests_timed_out,
    get_stats,
)

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
