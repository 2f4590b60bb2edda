from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from pos_admin.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
MONEY_TYPE = Numeric(10, 2)
STOCK_TYPE = Numeric(12, 3)


class DiningTable(Base):
    __tablename__ = "tables"

    table_id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="Free")


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)


class MenuItem(Base):
    __tablename__ = "menu_items"

    menu_item_id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    price: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_non_negative"),
    )

    inv_item_id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(30))
    current_stock: Mapped[Decimal] = mapped_column(STOCK_TYPE, nullable=False, default=0)


class Recipe(Base):
    __tablename__ = "recipes"
    __table_args__ = (Index("ix_recipes_menu_item_id", "menu_item_id"),)

    recipe_id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_items.menu_item_id"), nullable=False
    )
    inv_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_items.inv_item_id"), nullable=False
    )
    quantity_used: Mapped[Decimal] = mapped_column(STOCK_TYPE, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    order_id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    table_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("tables.table_id"))
    waiter_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("users.user_id"))
    final_amount: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False, default=0)
    total_tax: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False, default=0)
    total_discount: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="Pending")
    payment_method: Mapped[str | None] = mapped_column(String(50))
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class OrderItem(Base):
    __tablename__ = "orderitems"
    __table_args__ = (Index("ix_orderitems_order_id", "order_id"),)

    order_item_id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.order_id"), nullable=False
    )
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_items.menu_item_id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_at_sale: Mapped[Decimal] = mapped_column(MONEY_TYPE, nullable=False)
