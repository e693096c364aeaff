"""
Errors raised by the data store.

Lookups and updates of absent ids do not raise; they return None (or False
for deletes). Exceptions are reserved for rejected input and failed writes.
"""


class StorageError(Exception):
    pass


class NotFoundError(StorageError):
    """An entity referenced by the caller does not exist."""


class DataValidationError(StorageError):
    """Input has the wrong shape or breaks a uniqueness rule."""


class InventoryError(StorageError):
    """Order creation was rejected while checking the line items."""


class ProductNotFoundError(InventoryError, NotFoundError):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class InsufficientInventoryError(InventoryError):
    def __init__(self, product_id: int, name: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient inventory for {name}: {available} available, {requested} requested"
        )


class PersistenceError(StorageError):
    """A snapshot file could not be written."""
