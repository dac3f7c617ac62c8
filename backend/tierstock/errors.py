"""
Domain errors raised by the inventory, settlement and incentive services.

All of these are surfaced to the caller. Routes map them to HTTP responses;
services never swallow them.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for every domain error in this package."""

    status_code = 400


class NotFound(LedgerError):
    status_code = 404


class InvalidQuantity(LedgerError):
    """Quantity is not a positive integer."""

    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer, got {quantity!r}")


class InsufficientInventory(LedgerError):
    """An issue would drive a balance below zero."""

    status_code = 409

    def __init__(self, actor_id: int, product_id: int, available: int, requested: int):
        self.actor_id = actor_id
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient inventory for product {product_id} held by actor {actor_id}. "
            f"Available: {available}, requested: {requested}"
        )


class OrderNotPending(LedgerError):
    """approve/reject called on an order that already left 'pending'."""

    status_code = 409

    def __init__(self, order_id: int, status: str | None):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is not pending (status: {status})")


class InventoryCorruption(LedgerError):
    """A reversal would make a balance negative; the ledger was already inconsistent."""

    status_code = 409


class ExternalGatewayError(LedgerError):
    """Payment gateway unreachable or returned an error."""

    status_code = 502


class ConfigurationMissing(LedgerError):
    """No commission/reward tier or required setting is configured."""

    status_code = 422


class InvalidTransfer(LedgerError):
    """Source and destination are the same, or the destination cannot hold stock."""


class MovementLocked(LedgerError):
    """The movement is tied to a settled order or a transfer and cannot be edited alone."""

    status_code = 409
