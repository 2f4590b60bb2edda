from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Row
from sqlalchemy.orm import Session

from pos_admin.models import MenuItem, Order, OrderItem

STATUS_PENDING = "Pending"
STATUS_COMPLETED = "Completed"
STATUS_PAID = "Paid"

# Applied to an order header for every field the caller leaves out or sends as None.
ORDER_DEFAULTS = {
    "status": STATUS_PENDING,
    "total_tax": Decimal("0"),
    "total_discount": Decimal("0"),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStore:
    """Order persistence bound to one session; writes join its open transaction."""

    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order_data: Mapping[str, Any]) -> int:
        values = dict(ORDER_DEFAULTS)
        values.update({key: value for key, value in order_data.items() if value is not None})
        values.setdefault("order_date", _now())
        order = Order(**values)
        self.db.add(order)
        self.db.flush()
        return order.order_id

    def create_order_items(self, order_id: int, items: Iterable[Mapping[str, Any]]) -> None:
        rows = [
            {
                "order_id": order_id,
                "menu_item_id": item.get("menu_item_id"),
                "quantity": item.get("quantity"),
                "unit_price_at_sale": item.get("unit_price_at_sale"),
            }
            for item in items
        ]
        if rows:
            self.db.execute(insert(OrderItem), rows)

    def get_order_items(self, order_id: int) -> list[Row]:
        return list(
            self.db.execute(
                select(OrderItem.menu_item_id, OrderItem.quantity)
                .where(OrderItem.order_id == order_id)
                .order_by(OrderItem.order_item_id)
            ).all()
        )

    def order_exists(self, order_id: int) -> bool:
        return self.get_status(order_id) is not None

    def get_status(self, order_id: int) -> Optional[str]:
        return self.db.scalar(select(Order.status).where(Order.order_id == order_id))

    def update_order_status(
        self,
        order_id: int,
        status: str,
        payment_method: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> int:
        """Set an order's status and return how many rows matched.

        ``payment_method`` is only recorded together with the paid status.
        With ``expected_status`` the row is only touched while it still holds
        that status, which makes the transition safe against a concurrent one.
        """
        values: dict[str, Any] = {"status": status}
        if payment_method and status == STATUS_PAID:
            values["payment_method"] = payment_method
        stmt = update(Order).where(Order.order_id == order_id)
        if expected_status is not None:
            stmt = stmt.where(Order.status == expected_status)
        result = self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_billing_details(self, order_id: int) -> Optional[dict]:
        header = self.db.execute(
            select(
                Order.order_id,
                Order.table_id,
                Order.final_amount,
                Order.total_tax,
                Order.total_discount,
                Order.order_date,
                Order.status,
                Order.payment_method,
            ).where(Order.order_id == order_id)
        ).first()
        if header is None:
            return None
        items = self.db.execute(
            select(
                OrderItem.menu_item_id,
                OrderItem.quantity,
                OrderItem.unit_price_at_sale,
                MenuItem.name.label("menu_item_name"),
            )
            .outerjoin(MenuItem, MenuItem.menu_item_id == OrderItem.menu_item_id)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.order_item_id)
        ).all()
        return {**header._asdict(), "items": [item._asdict() for item in items]}

    def get_order_details(self, order_id: int) -> Optional[dict]:
        order = self.db.get(Order, order_id)
        if order is None:
            return None
        items = self.db.scalars(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.order_item_id)
        ).all()
        return {
            "id": order.order_id,
            "total": order.final_amount,
            "status": order.status,
            "created_at": order.order_date,
            "items": [
                {
                    "id": item.order_item_id,
                    "menu_item_id": item.menu_item_id,
                    "quantity": item.quantity,
                    "price_at_time": item.unit_price_at_sale,
                }
                for item in items
            ],
        }
