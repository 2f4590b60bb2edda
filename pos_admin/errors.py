"""Exceptions raised by the order workflow.

Every class carries the HTTP status the API layer answers with, so routes
never have to inspect error messages to pick one.
"""

from decimal import Decimal


class OrderWorkflowError(Exception):
    """Base exception for all order workflow errors."""

    status_code = 500


class OrderValidationError(OrderWorkflowError):
    """Raised when a request is missing data the workflow needs."""

    status_code = 400


class OrderNotFound(OrderWorkflowError):
    """Raised when an order ID doesn't exist."""

    status_code = 404

    def __init__(self, order_id: int, message: str | None = None):
        self.order_id = order_id
        super().__init__(message or f"Order with ID {order_id} not found.")


class OrderNotFoundOrEmpty(OrderNotFound):
    """Raised when an order has no line items to fulfil, or doesn't exist at all."""

    def __init__(self, order_id: int):
        super().__init__(order_id, f"Order ID {order_id} not found or contains no items.")


class RecipeMissing(OrderWorkflowError):
    """Raised when a sold menu item has no recipe entries to deduct."""

    def __init__(self, menu_item_id: int, order_id: int):
        self.menu_item_id = menu_item_id
        self.order_id = order_id
        super().__init__(
            f"Recipe not found for menu_item_id {menu_item_id}. Cannot deduct inventory."
        )


class InsufficientStock(OrderWorkflowError):
    """Raised when an ingredient cannot cover the quantity an order needs."""

    status_code = 409

    def __init__(self, inv_item_id: int, required: Decimal, order_id: int):
        self.inv_item_id = inv_item_id
        self.required = required
        self.order_id = order_id
        super().__init__(
            f"Insufficient stock for ingredient ID {inv_item_id}. "
            f"Required: {required}. Order {order_id} cancelled."
        )


class InvalidOrderState(OrderWorkflowError):
    """Raised when an order is not in the status an operation starts from."""

    status_code = 409

    def __init__(self, order_id: int, status: str | None, expected: str, action: str):
        self.order_id = order_id
        self.status = status
        self.expected = expected
        super().__init__(
            f"Cannot {action} order {order_id}: status is {status}, expected {expected}."
        )


class BillingUnavailable(OrderWorkflowError):
    """Raised when the bill of a just-paid order cannot be read back."""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Could not retrieve billing details for order {order_id}.")


class TransactionFailure(OrderWorkflowError):
    """Raised when the database rejects a workflow transaction."""

    def __init__(self, action: str, detail: str):
        self.action = action
        self.detail = detail
        super().__init__(f"Internal Server Error: Could not {action}.")
