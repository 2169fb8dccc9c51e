# Overview: Exception hierarchy shared by the inventory workflows and the HTTP error handler.

"""
Error kinds raised by the engine.

Each error carries a human-readable message, a stable machine code and an
optional details dict. The HTTP layer maps them to status codes through
``http_status``:

- InvalidInput / NotFound: caller problems (4xx)
- InvalidTransition / InsufficientStock: business-rule conflicts (409)
- InvalidUnitGraph / UnknownUnit / InvalidPricingTiers: master-data integrity
  problems. Always a bug, never coerced, surfaced as 500.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for every error the engine raises on purpose."""

    code = "INVENTORY_ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidInput(InventoryError):
    """Malformed or missing fields."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFound(InventoryError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidTransition(InventoryError):
    """Document state machine precondition violated."""

    code = "INVALID_STATUS_TRANSITION"
    http_status = 409


class InsufficientStock(InventoryError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409


class InvalidUnitGraph(InventoryError):
    """A product's unit conversion chain is cyclic, dangling or has no base unit."""

    code = "INVALID_UNIT_GRAPH"


class UnknownUnit(InventoryError):
    """A unit id that does not belong to the product it was used with."""

    code = "UNKNOWN_UNIT"


class InvalidPricingTiers(InventoryError):
    code = "INVALID_PRICING_TIERS"
