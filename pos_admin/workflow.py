"""Order lifecycle: placement, fulfilment and payment.

An order moves ``Pending -> Completed -> Paid``. Placement and completion each
run as a single database transaction; payment commits its status change first
and reads the bill back afterwards. Any exception inside a transaction rolls
the whole unit back, so a failed completion leaves every ingredient exactly
where it was.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterator, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pos_admin.errors import (
    BillingUnavailable,
    InsufficientStock,
    InvalidOrderState,
    OrderNotFound,
    OrderNotFoundOrEmpty,
    OrderWorkflowError,
    OrderValidationError,
    RecipeMissing,
    TransactionFailure,
)
from pos_admin.inventory import InventoryLedger
from pos_admin.orders import STATUS_COMPLETED, STATUS_PAID, STATUS_PENDING, OrderStore

logger = logging.getLogger(__name__)


@dataclass
class PlacementResult:
    """ID and confirmation message of a newly placed order."""

    order_id: int
    message: str


@dataclass
class PaymentResult:
    """Confirmation message plus the bill read back after payment committed."""

    message: str
    bill: dict


CENT = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def order_total(items: Sequence[Mapping[str, Any]]) -> Decimal:
    """Sum of quantity x sale price over the line items, nothing else folded in."""
    return sum(
        (_to_decimal(item["quantity"]) * _to_decimal(item["unit_price_at_sale"]) for item in items),
        Decimal("0"),
    )


def _check_prices(items: Sequence[Mapping[str, Any]]) -> None:
    # Money columns hold cents, so finer prices cannot be stored as sent.
    for item in items:
        price = _to_decimal(item["unit_price_at_sale"])
        if price != price.quantize(CENT):
            raise OrderValidationError(
                f"Price {price} for menu_item_id {item.get('menu_item_id')} has more than two decimal places."
            )


class OrderWorkflow:
    """Runs each order operation in its own session from ``session_factory``.

    With ``require_completed_before_payment`` only Completed orders can be
    paid; otherwise payment is accepted from any status.
    """

    def __init__(self, session_factory: sessionmaker, require_completed_before_payment: bool = False):
        self._session_factory = session_factory
        self.require_completed_before_payment = require_completed_before_payment

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        try:
            with self._session_factory() as db, db.begin():
                yield db
        except OrderWorkflowError as exc:
            logger.warning("Could not %s: %s", action, exc)
            raise
        except SQLAlchemyError as exc:
            logger.exception("Transaction failed while trying to %s", action)
            raise TransactionFailure(action, str(exc)) from exc

    def place_order(
        self, order_meta: Mapping[str, Any], items: Sequence[Mapping[str, Any]]
    ) -> PlacementResult:
        if not items:
            raise OrderValidationError("An order must contain at least one item.")
        _check_prices(items)
        final_amount = order_total(items)
        with self._transaction("place new order") as db:
            store = OrderStore(db)
            order_id = store.create_order(
                {**order_meta, "final_amount": final_amount, "status": STATUS_PENDING}
            )
            store.create_order_items(order_id, items)
        logger.info("Placed order %s for %s (%d items)", order_id, final_amount, len(items))
        return PlacementResult(order_id=order_id, message=f"Order {order_id} placed successfully.")

    def complete_order(self, order_id: int) -> str:
        """Deduct every ingredient the order consumes and mark it Completed.

        Items are processed in insertion order and each item's recipe in
        recipe order. The first shortfall aborts the transaction, which also
        undoes the deductions already made for earlier ingredients.
        """
        with self._transaction(f"complete order {order_id}") as db:
            store = OrderStore(db)
            ledger = InventoryLedger(db)

            order_items = store.get_order_items(order_id)
            if not order_items:
                logger.info(
                    "Order %s %s",
                    order_id,
                    "has no items" if store.order_exists(order_id) else "does not exist",
                )
                raise OrderNotFoundOrEmpty(order_id)

            status = store.get_status(order_id)
            if status != STATUS_PENDING:
                raise InvalidOrderState(order_id, status, STATUS_PENDING, "complete")

            for item in order_items:
                recipe = ledger.get_recipe(item.menu_item_id)
                if not recipe:
                    raise RecipeMissing(item.menu_item_id, order_id)
                for line in recipe:
                    required = line.quantity_used * item.quantity
                    if ledger.deduct_stock(line.inv_item_id, required) == 0:
                        raise InsufficientStock(line.inv_item_id, required, order_id)

            # Another request may have completed the order since the check above.
            if store.update_order_status(order_id, STATUS_COMPLETED, expected_status=STATUS_PENDING) == 0:
                raise InvalidOrderState(order_id, store.get_status(order_id), STATUS_PENDING, "complete")

        logger.info("Order %s completed and inventory deducted", order_id)
        return f"Order {order_id} completed and inventory deducted."

    def process_payment(self, order_id: int, payment_method: Optional[str]) -> PaymentResult:
        if not payment_method:
            raise OrderValidationError("Payment method is required.")

        expected = STATUS_COMPLETED if self.require_completed_before_payment else None
        with self._transaction(f"process payment for order {order_id}") as db:
            store = OrderStore(db)
            updated = store.update_order_status(
                order_id, STATUS_PAID, payment_method=payment_method, expected_status=expected
            )
            if updated == 0:
                status = store.get_status(order_id)
                if status is None:
                    raise OrderNotFound(
                        order_id, f"Order ID {order_id} not found or unable to update status to Paid."
                    )
                raise InvalidOrderState(order_id, status, STATUS_COMPLETED, "pay")

        # The bill is read from committed state, outside the payment transaction.
        with self._transaction(f"read the bill of order {order_id}") as db:
            bill = OrderStore(db).get_billing_details(order_id)
        if bill is None:
            raise BillingUnavailable(order_id)

        logger.info("Order %s paid via %s", order_id, payment_method)
        return PaymentResult(
            message=f"Order {order_id} successfully paid via {payment_method}.",
            bill=bill,
        )

    def get_order_details(self, order_id: int) -> dict:
        with self._session_factory() as db:
            details = OrderStore(db).get_order_details(order_id)
        if details is None:
            raise OrderNotFound(order_id)
        return details
