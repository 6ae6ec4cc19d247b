"""
Offer storage re-exports.
"""
from core.db.offers.offers_store import (
    DEFAULT_OFFER_VALIDITY_MINUTES,
    offer_validity_minutes,
    create_offer,
    get_offer,
    get_offers_for_request,
    get_offers_for_provider,
    accept_offer,
    expire_active_offers,
)

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
