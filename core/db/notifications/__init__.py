"""
In-app notifications. Rows are written in batches by the sweeps and read by the
dashboards; `data` holds the related ids as JSON.
"""
from core.db.notifications.notifications_store import (
    insert_notifications,
    get_notifications_for_user,
    mark_notifications_read,
)

__all__ = [
    "insert_notifications",
    "get_notifications_for_user",
    "mark_notifications_read",
]
