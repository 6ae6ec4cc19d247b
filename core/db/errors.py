"""
Business-rule errors raised by the storage helpers.
"""
from __future__ import annotations


class OfferError(Exception):
    """An offer could not be created or accepted; `code` is stable for callers."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


__all__ = ["OfferError"]
