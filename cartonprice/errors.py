"""Pricing failures surfaced to callers.

Each error carries the HTTP status the web layer answers with and, where the
operator can fix the gap, the human-readable names of the missing inputs.
"""

from __future__ import annotations


class PricingError(Exception):
    """Base class for failures that stop a price calculation."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        missing_fields: list[str] | None = None,
        item_code: str | None = None,
        item_name: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.missing_fields = missing_fields
        self.item_code = item_code
        self.item_name = item_name

    def to_dict(self) -> dict:
        """Failure payload: {error, message, missingFields?, itemCode?, itemName?}."""
        payload: dict = {"error": True, "message": self.message}
        if self.missing_fields is not None:
            payload["missingFields"] = self.missing_fields
        if self.item_code is not None:
            payload["itemCode"] = self.item_code
        if self.item_name is not None:
            payload["itemName"] = self.item_name
        return payload


class ItemNotFound(PricingError):
    """Raised when the item identifier matches no catalog item."""

    status_code = 404


class MissingPricingData(PricingError):
    """Raised when required structural inputs are absent and not overridden."""


class CategoryMarginMissing(PricingError):
    """Raised when the item's category has no active margin rule."""


class NoCurrencyRateAvailable(PricingError):
    """Raised when no USD->ILS rate was ever stored and the bank fetch failed."""


class InvalidPricingRequest(PricingError):
    """Raised for request parameters outside the supported set (e.g. container size)."""


class BankRateUnavailable(Exception):
    """Raised by the bank client; always handled by the currency resolver."""
