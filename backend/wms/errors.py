# Overview: Typed failures raised by the stock ledger, document and count engines.

from __future__ import annotations

from typing import Any


class WarehouseError(Exception):
    """
    Base class for every expected, caller-facing failure.

    Each subclass pins a machine-readable `code` and an HTTP status so the
    route layer can render it without knowing the concrete type. `details`
    carries structured context (scanned code, available quantity, ...).
    """
    code = "WAREHOUSE_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(WarehouseError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class InvalidQuantityError(WarehouseError):
    code = "INVALID_QUANTITY"


class ProductNotFoundError(WarehouseError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404


class LocationNotFoundError(WarehouseError):
    code = "LOCATION_NOT_FOUND"
    status_code = 404


class ContainerNotFoundError(WarehouseError):
    code = "CONTAINER_NOT_FOUND"
    status_code = 404


class LocationBlockedError(WarehouseError):
    code = "LOCATION_BLOCKED"
    status_code = 409


class LocationCountingError(WarehouseError):
    code = "LOCATION_COUNTING"
    status_code = 409


class DuplicateBarcodeError(WarehouseError):
    code = "DUPLICATE_BARCODE"
    status_code = 409


class DocumentNotFoundError(WarehouseError):
    code = "DOCUMENT_NOT_FOUND"
    status_code = 404


class DocumentNotDraftError(WarehouseError):
    code = "DOCUMENT_NOT_DRAFT"


class DocumentEmptyError(WarehouseError):
    code = "DOCUMENT_EMPTY"


class InvalidDocumentLineError(WarehouseError):
    """Line does not satisfy the location rules of its document type."""
    code = "INVALID_DOCUMENT_LINE"


class InventoryNotFoundError(WarehouseError):
    code = "INVENTORY_NOT_FOUND"
    status_code = 404


class InventoryNotInProgressError(WarehouseError):
    code = "INVENTORY_NOT_IN_PROGRESS"


class InventoryEmptyError(WarehouseError):
    code = "INVENTORY_EMPTY"


class LineNotFoundError(WarehouseError):
    code = "LINE_NOT_FOUND"
    status_code = 404


class InsufficientStockError(WarehouseError):
    """
    Requested quantity exceeds what the ledger holds.

    `available` and `requested` are always present; `location` and `product`
    are the human-facing codes when the caller knows them.
    """
    code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        available: int,
        requested: int,
        *,
        location: str | None = None,
        product: str | None = None,
    ):
        details: dict[str, Any] = {"available": available, "requested": requested}
        if location is not None:
            details["location"] = location
        if product is not None:
            details["product"] = product
        super().__init__("Insufficient stock", details)
        self.available = available
        self.requested = requested
        self.location = location
        self.product = product
