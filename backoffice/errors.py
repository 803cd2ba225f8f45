"""Typed failures raised by the data-access and transaction layers.

Route handlers translate these into responses; nothing in here knows about HTTP.
"""


class BackofficeError(Exception):
    """Base class for every failure the core reports to its callers."""


class NotFound(BackofficeError):
    entity = "record"

    def __init__(self, entity_id=None, message: str | None = None):
        self.entity_id = entity_id
        super().__init__(message or f"{self.entity} not found")


class UserNotFound(NotFound):
    entity = "user"


class CategoryNotFound(NotFound):
    entity = "category"


class ProductNotFound(NotFound):
    entity = "product"

    def __init__(self, entity_id=None, message: str | None = None):
        super().__init__(entity_id, message or f"Product not found: {entity_id}")


class OrderNotFound(NotFound):
    entity = "order"


class ValidationFailure(BackofficeError, ValueError):
    """Malformed or out-of-range input; raised before any transaction opens."""


class InsufficientStock(BackofficeError):
    def __init__(self, product_id: int, requested: int, available: int | None = None, name: str | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        label = name or f"product {product_id}"
        if available is None:
            msg = f"Insufficient stock for {label}"
        else:
            msg = f"Insufficient stock for {label}. Available: {available}"
        super().__init__(msg)


class AlreadyCancelled(BackofficeError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order is already cancelled")


class PersistenceFailure(BackofficeError):
    """The store rejected a write or aborted the transaction."""
