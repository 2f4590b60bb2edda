from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pos_admin.models import InventoryItem, Recipe


@dataclass(frozen=True)
class RecipeLine:
    inv_item_id: int
    quantity_used: Decimal


class InventoryLedger:
    """Recipe lookups and stock deductions inside the caller's session."""

    def __init__(self, db: Session):
        self.db = db

    def get_recipe(self, menu_item_id: int) -> list[RecipeLine]:
        rows = self.db.execute(
            select(Recipe.inv_item_id, Recipe.quantity_used)
            .where(Recipe.menu_item_id == menu_item_id)
            .order_by(Recipe.recipe_id)
        ).all()
        return [RecipeLine(inv_item_id=row.inv_item_id, quantity_used=row.quantity_used) for row in rows]

    def deduct_stock(self, inv_item_id: int, quantity: Decimal) -> int:
        """Take ``quantity`` off an ingredient's stock if there is enough of it.

        The stock check and the decrement are one UPDATE statement, so two
        transactions can never both pass the check on the same units. Returns
        the number of rows changed: 1 on success, 0 when stock is short or the
        ingredient doesn't exist.
        """
        result = self.db.execute(
            update(InventoryItem)
            .where(
                InventoryItem.inv_item_id == inv_item_id,
                InventoryItem.current_stock >= quantity,
            )
            .values(current_stock=InventoryItem.current_stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
