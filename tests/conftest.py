"""Pytest fixtures for the POS admin tests."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pos_admin.db import init_db
from pos_admin.main import app, get_session_factory
from pos_admin.models import InventoryItem, MenuItem, Recipe

FLOUR, CHEESE, COFFEE = 1, 2, 3
MARGHERITA, ESPRESSO, DAILY_SPECIAL = 5, 7, 9


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def seed_catalog(session_factory) -> None:
    """Menu items 5 and 7 with recipes, 9 without one, and three stocked ingredients."""
    with session_factory() as db, db.begin():
        db.add_all(
            [
                InventoryItem(inv_item_id=FLOUR, name="Flour", unit="kg", current_stock=Decimal("10")),
                InventoryItem(inv_item_id=CHEESE, name="Mozzarella", unit="kg", current_stock=Decimal("4")),
                InventoryItem(inv_item_id=COFFEE, name="Coffee beans", unit="kg", current_stock=Decimal("1")),
                MenuItem(menu_item_id=MARGHERITA, name="Margherita", category="Main Course", price=Decimal("10.00")),
                MenuItem(menu_item_id=ESPRESSO, name="Espresso", category="Beverage", price=Decimal("5.00")),
                MenuItem(menu_item_id=DAILY_SPECIAL, name="Daily special", price=Decimal("8.00")),
            ]
        )
        db.flush()
        db.add_all(
            [
                Recipe(menu_item_id=MARGHERITA, inv_item_id=FLOUR, quantity_used=Decimal("0.5")),
                Recipe(menu_item_id=MARGHERITA, inv_item_id=CHEESE, quantity_used=Decimal("1")),
                Recipe(menu_item_id=ESPRESSO, inv_item_id=COFFEE, quantity_used=Decimal("0.02")),
            ]
        )


@pytest.fixture
def catalog(session_factory):
    seed_catalog(session_factory)
    return session_factory


def stock_of(session_factory, inv_item_id: int) -> Decimal:
    with session_factory() as db:
        return db.get(InventoryItem, inv_item_id).current_stock
