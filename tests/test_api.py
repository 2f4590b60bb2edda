from decimal import Decimal

from conftest import CHEESE, COFFEE, ESPRESSO, FLOUR, MARGHERITA, stock_of
from pos_admin.main import verify_password
from pos_admin.models import Order, OrderItem, User


def _amount(value) -> Decimal:
    return Decimal(str(value))


def _place(client, items, **meta) -> int:
    resp = client.post("/api/orders", json={"table_id": 1, "waiter_id": 1, **meta, "items": items})
    assert resp.status_code == 201
    return resp.json()["data"]["order_id"]


def test_order_lifecycle_flow(client, catalog) -> None:
    place_resp = client.post(
        "/api/orders",
        json={
            "table_id": 3,
            "waiter_id": 2,
            "items": [
                {"menu_item_id": MARGHERITA, "quantity": 2, "unit_price_at_sale": 10.00},
                {"menu_item_id": ESPRESSO, "quantity": 1, "unit_price_at_sale": 5.00},
            ],
        },
    )
    assert place_resp.status_code == 201
    placed = place_resp.json()["data"]
    order_id = placed["order_id"]
    assert placed["success"] is True
    assert placed["message"] == f"Order {order_id} placed successfully."

    details = client.get(f"/api/orders/{order_id}").json()["data"]
    assert details["id"] == order_id
    assert _amount(details["total"]) == Decimal("25.00")
    assert details["status"] == "Pending"
    assert [(i["menu_item_id"], i["quantity"]) for i in details["items"]] == [(MARGHERITA, 2), (ESPRESSO, 1)]

    complete_resp = client.post(f"/api/orders/{order_id}/complete")
    assert complete_resp.status_code == 200
    assert complete_resp.json()["data"]["message"] == f"Order {order_id} completed and inventory deducted."
    assert stock_of(catalog, FLOUR) == Decimal("9")
    assert stock_of(catalog, CHEESE) == Decimal("2")
    assert stock_of(catalog, COFFEE) == Decimal("0.98")

    pay_resp = client.post(f"/api/orders/{order_id}/pay", json={"payment_method": "Card"})
    assert pay_resp.status_code == 200
    paid = pay_resp.json()["data"]
    assert paid["message"] == f"Order {order_id} successfully paid via Card."
    bill = paid["bill"]
    assert bill["status"] == "Paid"
    assert bill["payment_method"] == "Card"
    assert _amount(bill["final_amount"]) == Decimal("25.00")
    assert [(i["menu_item_name"], i["quantity"], _amount(i["unit_price_at_sale"])) for i in bill["items"]] == [
        ("Margherita", 2, Decimal("10.00")),
        ("Espresso", 1, Decimal("5.00")),
    ]

    with catalog() as db:
        order = db.get(Order, order_id)
        assert (order.status, order.payment_method) == ("Paid", "Card")


def test_placement_always_starts_pending(client, catalog) -> None:
    order_id = _place(client, [{"menu_item_id": ESPRESSO, "quantity": 1, "unit_price_at_sale": "5.00"}], status="Paid")

    assert client.get(f"/api/orders/{order_id}").json()["data"]["status"] == "Pending"
    assert stock_of(catalog, COFFEE) == Decimal("1")
    assert client.post(f"/api/orders/{order_id}/complete").status_code == 200
    assert stock_of(catalog, COFFEE) == Decimal("0.98")


def test_sub_cent_prices_are_rejected(client, catalog) -> None:
    resp = client.post(
        "/api/orders",
        json={
            "table_id": 1,
            "waiter_id": 1,
            "items": [{"menu_item_id": ESPRESSO, "quantity": 3, "unit_price_at_sale": "0.125"}],
        },
    )
    assert resp.status_code == 422
    with catalog() as db:
        assert db.query(Order).count() == 0


def test_stored_total_matches_stored_lines(client, catalog) -> None:
    order_id = _place(
        client,
        [
            {"menu_item_id": ESPRESSO, "quantity": 3, "unit_price_at_sale": "0.13"},
            {"menu_item_id": MARGHERITA, "quantity": 7, "unit_price_at_sale": "1.10"},
        ],
    )

    with catalog() as db:
        order = db.get(Order, order_id)
        lines = db.query(OrderItem).filter(OrderItem.order_id == order_id).all()
        assert order.final_amount == sum((line.quantity * line.unit_price_at_sale for line in lines), Decimal("0"))
        assert order.final_amount == Decimal("8.09")


def test_place_order_validation(client, catalog) -> None:
    empty = client.post("/api/orders", json={"table_id": 1, "waiter_id": 1, "items": []})
    assert empty.status_code == 400
    assert empty.json()["success"] is False

    missing_waiter = client.post(
        "/api/orders",
        json={"table_id": 1, "items": [{"menu_item_id": ESPRESSO, "quantity": 1, "unit_price_at_sale": 5}]},
    )
    assert missing_waiter.status_code == 422

    negative_quantity = client.post(
        "/api/orders",
        json={
            "table_id": 1,
            "waiter_id": 1,
            "items": [{"menu_item_id": ESPRESSO, "quantity": -1, "unit_price_at_sale": 5}],
        },
    )
    assert negative_quantity.status_code == 422


def test_get_unknown_order(client) -> None:
    resp = client.get("/api/orders/404")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Order with ID 404 not found."


def test_complete_order_error_statuses(client, catalog) -> None:
    assert client.post("/api/orders/404/complete").status_code == 404

    short = _place(client, [{"menu_item_id": MARGHERITA, "quantity": 5, "unit_price_at_sale": 10}])
    conflict = client.post(f"/api/orders/{short}/complete")
    assert conflict.status_code == 409
    assert conflict.json()["detail"].startswith(f"Insufficient stock for ingredient ID {CHEESE}.")
    assert stock_of(catalog, FLOUR) == Decimal("10")

    no_recipe = _place(client, [{"menu_item_id": 9, "quantity": 1, "unit_price_at_sale": 8}])
    failure = client.post(f"/api/orders/{no_recipe}/complete")
    assert failure.status_code == 500
    assert "Recipe not found for menu_item_id 9" in failure.json()["detail"]


def test_complete_order_twice_conflicts(client, catalog) -> None:
    order_id = _place(client, [{"menu_item_id": ESPRESSO, "quantity": 1, "unit_price_at_sale": 5}])
    assert client.post(f"/api/orders/{order_id}/complete").status_code == 200
    assert client.post(f"/api/orders/{order_id}/complete").status_code == 409


def test_payment_error_statuses(client, catalog) -> None:
    order_id = _place(client, [{"menu_item_id": ESPRESSO, "quantity": 1, "unit_price_at_sale": 5}])

    missing_method = client.post(f"/api/orders/{order_id}/pay", json={})
    assert missing_method.status_code == 400
    assert missing_method.json()["detail"] == "Payment method is required."

    unknown = client.post("/api/orders/404/pay", json={"payment_method": "Cash"})
    assert unknown.status_code == 404


def test_tables_crud(client) -> None:
    create_resp = client.post("/api/tables", json={"name": "T1"})
    assert create_resp.status_code == 201
    table = create_resp.json()["data"]
    assert table["status"] == "Free"

    duplicate = client.post("/api/tables", json={"name": "T1"})
    assert duplicate.status_code == 409

    update_resp = client.put(f"/api/tables/{table['table_id']}", json={"status": "Occupied"})
    assert update_resp.status_code == 200
    assert update_resp.json()["data"] == {"table_id": table["table_id"], "name": "T1", "status": "Occupied"}

    assert client.put(f"/api/tables/{table['table_id']}", json={}).status_code == 400

    list_resp = client.get("/api/tables", params={"status": "Occupied"})
    assert [t["name"] for t in list_resp.json()["data"]] == ["T1"]

    assert client.delete(f"/api/tables/{table['table_id']}").status_code == 204
    assert client.get(f"/api/tables/{table['table_id']}").status_code == 404


def test_users_never_expose_password(client, catalog) -> None:
    payload = {"username": "jdoe", "first_name": "Jane", "last_name": "Doe", "role": "Waiter", "password": "s3cret"}
    create_resp = client.post("/api/users", json=payload)
    assert create_resp.status_code == 201
    user = create_resp.json()["data"]
    assert "password" not in user and "password_hash" not in user

    other = client.post("/api/users", json={**payload, "username": "jroe"}).json()["data"]
    with catalog() as db:
        stored = db.get(User, user["user_id"]).password_hash
        other_stored = db.get(User, other["user_id"]).password_hash
    assert stored.startswith("$2b$10$")
    assert stored != other_stored
    assert verify_password("s3cret", stored)
    assert not verify_password("S3cret", stored)

    assert client.post("/api/users", json=payload).status_code == 409

    update_resp = client.put(
        f"/api/users/{user['user_id']}",
        json={"username": "jdoe", "first_name": "Janet", "last_name": "Doe", "role": "Manager"},
    )
    assert update_resp.status_code == 200
    assert update_resp.json()["data"]["role"] == "Manager"

    users = client.get("/api/users").json()["data"]
    assert [u["first_name"] for u in users] == ["Janet", "Jane"]

    assert client.delete(f"/api/users/{user['user_id']}").status_code == 204
    assert client.delete(f"/api/users/{user['user_id']}").status_code == 404


def test_menu_items_inventory_and_recipes(client) -> None:
    item_resp = client.post("/api/items", json={"name": "Latte", "price": 4.5, "category": "Beverage"})
    assert item_resp.status_code == 201
    menu_item_id = item_resp.json()["data"]["menu_item_id"]

    assert client.post("/api/items", json={"name": "Free lunch", "price": 0}).status_code == 422

    milk_resp = client.post("/api/inventory", json={"name": "Milk", "unit": "l", "current_stock": 3})
    assert milk_resp.status_code == 201
    milk_id = milk_resp.json()["data"]["inv_item_id"]
    assert client.post("/api/inventory", json={"name": "Ghost", "current_stock": -1}).status_code == 422

    recipe_resp = client.post(f"/api/items/{menu_item_id}/recipe", json={"inv_item_id": milk_id, "quantity_used": 0.25})
    assert recipe_resp.status_code == 201
    assert client.post(f"/api/items/{menu_item_id}/recipe", json={"inv_item_id": 999, "quantity_used": 1}).status_code == 404
    assert client.get("/api/items/999/recipe").status_code == 404

    recipe = client.get(f"/api/items/{menu_item_id}/recipe").json()["data"]
    assert [(r["inv_item_id"], _amount(r["quantity_used"])) for r in recipe] == [(milk_id, Decimal("0.25"))]

    order_id = _place(client, [{"menu_item_id": menu_item_id, "quantity": 4, "unit_price_at_sale": 4.5}])
    assert client.post(f"/api/orders/{order_id}/complete").status_code == 200
    assert _amount(client.get(f"/api/inventory/{milk_id}").json()["data"]["current_stock"]) == Decimal("2")

    update_resp = client.put(f"/api/items/{menu_item_id}", json={"name": "Latte", "price": 5, "is_available": False})
    assert update_resp.status_code == 200
    assert client.get("/api/items", params={"is_available": False}).json()["data"][0]["name"] == "Latte"
    assert client.get("/api/inventory/999").status_code == 404


def test_list_pagination(client) -> None:
    for name in ("T1", "T2", "T3"):
        client.post("/api/tables", json={"name": name})

    first = client.get("/api/tables", params={"limit": 2}).json()
    assert [t["name"] for t in first["data"]] == ["T1", "T2"]
    cursor = first["meta"]["page"]["cursor"]

    second = client.get("/api/tables", params={"limit": 2, "cursor": cursor}).json()
    assert [t["name"] for t in second["data"]] == ["T3"]


def test_health(client) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "database": "ok"}
