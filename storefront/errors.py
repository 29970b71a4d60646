"""
Error taxonomy for the catalog core.

Read paths prefer "found nothing" over raising: an unresolved category or
product type is not an error and never appears here. Cache failures are
swallowed inside the cache layer. Everything below is surfaced to callers.
"""
from typing import Dict, List, Optional


class StorefrontError(Exception):
    """Base class for all catalog core errors."""


class ValidationError(StorefrontError):
    """Raised when a request is malformed (bad price, unknown size, bad quantity)."""

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


class InventoryError(StorefrontError):
    """Base class for stock mutation failures."""


class ProductNotFoundError(InventoryError):
    """Raised when an operation targets a missing or deleted product."""

    def __init__(self, product_id: str):
        super().__init__(f"Product '{product_id}' not found")
        self.product_id = product_id


class InsufficientStockError(InventoryError):
    """Raised when a bucket cannot cover the requested quantity."""

    def __init__(
        self,
        product_id: str,
        size: str,
        requested: int,
        available: int,
        product_name: Optional[str] = None,
    ):
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for {label} size {size}: "
            f"{available} available, {requested} requested"
        )
        self.product_id = product_id
        self.size = size
        self.requested = requested
        self.available = available


class PersistenceError(StorefrontError):
    """Raised when the storage backend fails. Never retried by the core."""
