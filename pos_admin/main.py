from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

import bcrypt
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from pos_admin.config import settings
from pos_admin.db import SessionLocal, ping
from pos_admin.errors import OrderWorkflowError
from pos_admin.inventory import InventoryLedger
from pos_admin.models import DiningTable, InventoryItem, MenuItem, Recipe, User
from pos_admin.workflow import OrderWorkflow

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="POS Admin")


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)) -> Session:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_workflow(session_factory: sessionmaker = Depends(get_session_factory)) -> OrderWorkflow:
    return OrderWorkflow(
        session_factory,
        require_completed_before_payment=settings.require_completed_before_payment,
    )


def _paginate(query, column, limit: int, cursor: Optional[int]) -> tuple[list[Any], Optional[int]]:
    if cursor is not None:
        query = query.filter(column > cursor)
    rows = query.order_by(column).limit(limit + 1).all()
    next_cursor = None
    if len(rows) > limit:
        next_cursor = getattr(rows[limit - 1], column.key)
        rows = rows[:limit]
    return rows, next_cursor


def _list_meta(limit: int, cursor: Optional[int], next_cursor: Optional[int]) -> dict:
    meta = _meta()
    if next_cursor is not None:
        meta["page"] = {"limit": limit, "cursor": str(next_cursor)}
    elif cursor is not None:
        meta["page"] = {"limit": limit, "cursor": str(cursor)}
    else:
        meta["page"] = {"limit": limit, "cursor": None}
    return meta


def _commit_or_conflict(db: Session, conflict_detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Constraint rejected write: %s", exc.orig)
        raise HTTPException(status_code=409, detail=conflict_detail) from exc


@app.exception_handler(OrderWorkflowError)
def handle_workflow_error(request: Request, exc: OrderWorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, "detail": str(exc)})


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check(db: Session = Depends(get_db)) -> dict:
    if not ping(db.get_bind()):
        raise HTTPException(status_code=503, detail="database unavailable")
    return {"status": "healthy", "database": "ok"}


# --- Orders ---


class OrderItemIn(BaseModel):
    menu_item_id: int
    quantity: int = Field(ge=0)
    unit_price_at_sale: Decimal = Field(ge=0, decimal_places=2)


class OrderCreate(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "table_id": 3,
                "waiter_id": 2,
                "total_tax": "0.00",
                "total_discount": "0.00",
                "items": [
                    {"menu_item_id": 5, "quantity": 2, "unit_price_at_sale": "10.00"},
                    {"menu_item_id": 7, "quantity": 1, "unit_price_at_sale": "5.00"},
                ],
            }
        }
    }
    table_id: int
    waiter_id: int
    total_tax: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    total_discount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    items: list[OrderItemIn]


class PaymentRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {"payment_method": "Card"}}}
    payment_method: Optional[str] = None


@app.post("/api/orders", status_code=201, tags=["Orders"])
def place_order(payload: OrderCreate, workflow: OrderWorkflow = Depends(get_workflow)) -> dict:
    order_meta = payload.model_dump(exclude={"items"})
    items = [item.model_dump() for item in payload.items]
    result = workflow.place_order(order_meta, items)
    return {
        "data": {"success": True, "order_id": result.order_id, "message": result.message},
        "meta": _meta(),
    }


@app.get("/api/orders/{order_id}", tags=["Orders"])
def get_order_details(order_id: int, workflow: OrderWorkflow = Depends(get_workflow)) -> dict:
    return {"data": workflow.get_order_details(order_id), "meta": _meta()}


@app.post("/api/orders/{order_id}/complete", tags=["Orders"])
def complete_order(order_id: int, workflow: OrderWorkflow = Depends(get_workflow)) -> dict:
    message = workflow.complete_order(order_id)
    return {"data": {"success": True, "message": message}, "meta": _meta()}


@app.post("/api/orders/{order_id}/pay", tags=["Orders"])
def process_payment(
    order_id: int, payload: PaymentRequest, workflow: OrderWorkflow = Depends(get_workflow)
) -> dict:
    result = workflow.process_payment(order_id, payload.payment_method)
    return {
        "data": {"success": True, "message": result.message, "bill": result.bill},
        "meta": _meta(),
    }


# --- Tables ---


class TableCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"name": "T1", "status": "Free"}}}
    name: str = Field(min_length=1)
    status: str = "Free"


class TableUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    status: Optional[str] = None


def _table_data(table: DiningTable) -> dict:
    return {"table_id": table.table_id, "name": table.name, "status": table.status}


@app.get("/api/tables", tags=["Tables"])
def list_tables(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    cursor: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(DiningTable)
    if status is not None:
        query = query.filter(DiningTable.status == status)
    tables, next_cursor = _paginate(query, DiningTable.table_id, limit, cursor)
    return {"data": [_table_data(table) for table in tables], "meta": _list_meta(limit, cursor, next_cursor)}


@app.get("/api/tables/{table_id}", tags=["Tables"])
def get_table(table_id: int, db: Session = Depends(get_db)) -> dict:
    table = db.get(DiningTable, table_id)
    if not table:
        raise HTTPException(status_code=404, detail="table not found")
    return {"data": _table_data(table), "meta": _meta()}


@app.post("/api/tables", status_code=201, tags=["Tables"])
def create_table(payload: TableCreate, db: Session = Depends(get_db)) -> dict:
    table = DiningTable(name=payload.name, status=payload.status)
    db.add(table)
    _commit_or_conflict(db, f"table name '{payload.name}' already exists")
    db.refresh(table)
    return {"data": _table_data(table), "meta": _meta()}


@app.put("/api/tables/{table_id}", tags=["Tables"])
def update_table(table_id: int, payload: TableUpdate, db: Session = Depends(get_db)) -> dict:
    table = db.get(DiningTable, table_id)
    if not table:
        raise HTTPException(status_code=404, detail="table not found")
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="no valid fields provided for update")
    for key, value in changes.items():
        setattr(table, key, value)
    _commit_or_conflict(db, f"table name '{payload.name}' is already taken")
    db.refresh(table)
    return {"data": _table_data(table), "meta": _meta()}


@app.delete("/api/tables/{table_id}", status_code=204, tags=["Tables"])
def delete_table(table_id: int, db: Session = Depends(get_db)) -> None:
    table = db.get(DiningTable, table_id)
    if not table:
        raise HTTPException(status_code=404, detail="table not found")
    db.delete(table)
    _commit_or_conflict(db, "table is referenced by existing orders")


# --- Users ---


BCRYPT_ROUNDS = 10


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


class UserCreate(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "username": "jdoe",
                "first_name": "Jane",
                "last_name": "Doe",
                "role": "Waiter",
                "password": "changeme",
            }
        }
    }
    username: str = Field(min_length=1)
    first_name: str
    last_name: str
    role: str
    password: str = Field(min_length=1)


class UserUpdate(BaseModel):
    username: str = Field(min_length=1)
    first_name: str
    last_name: str
    role: str
    password: Optional[str] = None


def _user_data(user: User) -> dict:
    return {
        "user_id": user.user_id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
    }


@app.get("/api/users", tags=["Users"])
def list_users(
    role: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    cursor: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(User)
    if role is not None:
        query = query.filter(User.role == role)
    users, next_cursor = _paginate(query, User.user_id, limit, cursor)
    return {"data": [_user_data(user) for user in users], "meta": _list_meta(limit, cursor, next_cursor)}


@app.post("/api/users", status_code=201, tags=["Users"])
def create_user(payload: UserCreate, db: Session = Depends(get_db)) -> dict:
    user = User(
        username=payload.username,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
        password_hash=hash_password(payload.password),
    )
    db.add(user)
    _commit_or_conflict(db, "username is already taken")
    db.refresh(user)
    return {"data": _user_data(user), "meta": _meta()}


@app.put("/api/users/{user_id}", tags=["Users"])
def update_user(user_id: int, payload: UserUpdate, db: Session = Depends(get_db)) -> dict:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user not found")
    user.username = payload.username
    user.first_name = payload.first_name
    user.last_name = payload.last_name
    user.role = payload.role
    if payload.password:
        user.password_hash = hash_password(payload.password)
        logger.info("Password updated for user %s", user_id)
    _commit_or_conflict(db, "username is already taken")
    db.refresh(user)
    return {"data": _user_data(user), "meta": _meta()}


@app.delete("/api/users/{user_id}", status_code=204, tags=["Users"])
def delete_user(user_id: int, db: Session = Depends(get_db)) -> None:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user not found")
    db.delete(user)
    _commit_or_conflict(db, "user is referenced by existing orders")


# --- Menu items ---


class MenuItemCreate(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {"name": "Margherita", "price": "10.00", "category": "Main Course", "is_available": True}
        }
    }
    name: str = Field(min_length=1)
    price: Decimal = Field(gt=0)
    description: Optional[str] = None
    category: Optional[str] = None
    is_available: bool = True


def _menu_item_data(item: MenuItem) -> dict:
    return {
        "menu_item_id": item.menu_item_id,
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "price": item.price,
        "is_available": item.is_available,
    }


@app.get("/api/items", tags=["Menu Items"])
def list_menu_items(
    category: Optional[str] = Query(default=None),
    is_available: Optional[bool] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    cursor: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(MenuItem)
    if category is not None:
        query = query.filter(MenuItem.category == category)
    if is_available is not None:
        query = query.filter(MenuItem.is_available == is_available)
    items, next_cursor = _paginate(query, MenuItem.menu_item_id, limit, cursor)
    return {"data": [_menu_item_data(item) for item in items], "meta": _list_meta(limit, cursor, next_cursor)}


@app.post("/api/items", status_code=201, tags=["Menu Items"])
def create_menu_item(payload: MenuItemCreate, db: Session = Depends(get_db)) -> dict:
    item = MenuItem(**payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return {"data": _menu_item_data(item), "meta": _meta()}


@app.put("/api/items/{menu_item_id}", tags=["Menu Items"])
def update_menu_item(menu_item_id: int, payload: MenuItemCreate, db: Session = Depends(get_db)) -> dict:
    item = db.get(MenuItem, menu_item_id)
    if not item:
        raise HTTPException(status_code=404, detail="menu item not found")
    for key, value in payload.model_dump().items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return {"data": _menu_item_data(item), "meta": _meta()}


@app.delete("/api/items/{menu_item_id}", status_code=204, tags=["Menu Items"])
def delete_menu_item(menu_item_id: int, db: Session = Depends(get_db)) -> None:
    item = db.get(MenuItem, menu_item_id)
    if not item:
        raise HTTPException(status_code=404, detail="menu item not found")
    db.delete(item)
    _commit_or_conflict(db, "menu item is referenced by orders or recipes")


class RecipeEntryCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"inv_item_id": 1, "quantity_used": "0.250"}}}
    inv_item_id: int
    quantity_used: Decimal = Field(gt=0)


@app.get("/api/items/{menu_item_id}/recipe", tags=["Recipes"])
def get_menu_item_recipe(menu_item_id: int, db: Session = Depends(get_db)) -> dict:
    if not db.get(MenuItem, menu_item_id):
        raise HTTPException(status_code=404, detail="menu item not found")
    recipe = InventoryLedger(db).get_recipe(menu_item_id)
    return {
        "data": [{"inv_item_id": line.inv_item_id, "quantity_used": line.quantity_used} for line in recipe],
        "meta": _meta(),
    }


@app.post("/api/items/{menu_item_id}/recipe", status_code=201, tags=["Recipes"])
def add_recipe_entry(menu_item_id: int, payload: RecipeEntryCreate, db: Session = Depends(get_db)) -> dict:
    if not db.get(MenuItem, menu_item_id):
        raise HTTPException(status_code=404, detail="menu item not found")
    if not db.get(InventoryItem, payload.inv_item_id):
        raise HTTPException(status_code=404, detail="inventory item not found")
    entry = Recipe(menu_item_id=menu_item_id, inv_item_id=payload.inv_item_id, quantity_used=payload.quantity_used)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return {
        "data": {
            "recipe_id": entry.recipe_id,
            "menu_item_id": entry.menu_item_id,
            "inv_item_id": entry.inv_item_id,
            "quantity_used": entry.quantity_used,
        },
        "meta": _meta(),
    }


# --- Inventory ---


class InventoryItemCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"name": "Mozzarella", "unit": "kg", "current_stock": "12.5"}}}
    name: str = Field(min_length=1)
    unit: Optional[str] = None
    current_stock: Decimal = Field(default=Decimal("0"), ge=0)


def _inventory_item_data(item: InventoryItem) -> dict:
    return {
        "inv_item_id": item.inv_item_id,
        "name": item.name,
        "unit": item.unit,
        "current_stock": item.current_stock,
    }


@app.get("/api/inventory", tags=["Inventory"])
def list_inventory_items(
    limit: int = Query(default=50, ge=1, le=500),
    cursor: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(InventoryItem)
    items, next_cursor = _paginate(query, InventoryItem.inv_item_id, limit, cursor)
    return {
        "data": [_inventory_item_data(item) for item in items],
        "meta": _list_meta(limit, cursor, next_cursor),
    }


@app.get("/api/inventory/{inv_item_id}", tags=["Inventory"])
def get_inventory_item(inv_item_id: int, db: Session = Depends(get_db)) -> dict:
    item = db.get(InventoryItem, inv_item_id)
    if not item:
        raise HTTPException(status_code=404, detail="inventory item not found")
    return {"data": _inventory_item_data(item), "meta": _meta()}


@app.post("/api/inventory", status_code=201, tags=["Inventory"])
def create_inventory_item(payload: InventoryItemCreate, db: Session = Depends(get_db)) -> dict:
    item = InventoryItem(**payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return {"data": _inventory_item_data(item), "meta": _meta()}
