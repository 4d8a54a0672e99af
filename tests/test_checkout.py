from datetime import timedelta

import pytest

from conftest import run
from utils import utcnow


@pytest.fixture
def products(client, admin):
    created = []
    for name, slug, price, stock in [("Notebook", "notebook", 10.0, 5), ("Pencil", "pencil", 2.5, 100)]:
        response = client.post(
            "/products",
            json={"name": name, "slug": slug, "price": price, "stock": stock},
            headers=admin["headers"],
        )
        created.append(response.json()["product"])
    return created


def add(client, user, product, quantity=1):
    return client.post(
        "/cart",
        json={"product_id": product["id"], "quantity": quantity},
        headers=user["headers"],
    )


def test_cart_merges_quantities(client, user, products):
    add(client, user, products[0], 2)
    response = add(client, user, products[0], 3)
    assert response.status_code == 201
    body = response.json()
    assert len(body["items"]) == 1
    assert body["total_items"] == 5
    assert body["total_price"] == 50.0


def test_cart_update_below_one_removes_line(client, user, products):
    line = add(client, user, products[1], 4).json()["items"][0]
    response = client.put(f"/cart/{line['id']}", json={"quantity": 0}, headers=user["headers"])
    assert response.json()["message"] == "Removed from cart"
    assert response.json()["items"] == []


def test_cart_lines_are_private(client, user, other_user, products):
    line = add(client, user, products[1]).json()["items"][0]
    response = client.delete(f"/cart/{line['id']}", headers=other_user["headers"])
    assert response.status_code == 404


def test_wishlist(client, user, products):
    added = client.post("/wishlist", json={"product_id": products[0]["id"]}, headers=user["headers"])
    assert added.status_code == 201
    duplicate = client.post("/wishlist", json={"product_id": products[0]["id"]}, headers=user["headers"])
    assert duplicate.status_code == 400

    items = client.get("/wishlist", headers=user["headers"]).json()["items"]
    assert items[0]["product"]["name"] == "Notebook"

    entry_id = added.json()["item"]["id"]
    assert client.delete(f"/wishlist/{entry_id}", headers=user["headers"]).status_code == 200


def test_checkout_with_empty_cart(client, user):
    response = client.post("/orders/checkout", json={"shipping_address": "Beirut"}, headers=user["headers"])
    assert response.status_code == 400


def test_checkout_requires_address(client, user, products):
    add(client, user, products[0])
    response = client.post("/orders/checkout", json={"shipping_address": "   "}, headers=user["headers"])
    assert response.status_code == 422


def test_checkout_fans_out(client, db, admin, user, products):
    add(client, user, products[0], 7)
    add(client, user, products[1], 2)

    response = client.post(
        "/orders/checkout",
        json={"shipping_address": "Hamra Street, Beirut"},
        headers=user["headers"],
    )
    assert response.status_code == 201, response.text
    order = response.json()["order"]
    assert order["status"] == "confirmed"
    assert order["total"] == 75.0
    assert {i["product_name"] for i in order["items"]} == {"Notebook", "Pencil"}

    # Stock never goes negative
    notebook = client.get(f"/products/{products[0]['id']}").json()
    pencil = client.get(f"/products/{products[1]['id']}").json()
    assert notebook["stock"] == 0
    assert pencil["stock"] == 98

    assert client.get("/cart", headers=user["headers"]).json()["items"] == []

    transaction = run(db.transactions.find_one({"order_id": order["id"]}))
    assert transaction["status"] == "completed"
    assert transaction["amount"] == 75.0

    mine = client.get("/notifications", headers=user["headers"]).json()
    assert [n["type"] for n in mine] == ["order_placed"]
    admin_notes = client.get("/notifications", headers=admin["headers"]).json()
    assert [n["type"] for n in admin_notes] == ["new_order"]


def test_orders_are_visible_to_owner_and_admin(client, admin, user, other_user, products):
    add(client, user, products[1])
    order = client.post(
        "/orders/checkout", json={"shipping_address": "Tyre"}, headers=user["headers"]
    ).json()["order"]

    assert client.get("/orders", headers=user["headers"]).json()["total_orders"] == 1
    assert client.get(f"/orders/{order['id']}", headers=user["headers"]).status_code == 200
    assert client.get(f"/orders/{order['id']}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/orders/{order['id']}", headers=other_user["headers"]).status_code == 404


def test_admin_updates_order_status(client, admin, user, products):
    add(client, user, products[1])
    order = client.post(
        "/orders/checkout", json={"shipping_address": "Tyre"}, headers=user["headers"]
    ).json()["order"]

    response = client.put(
        f"/admin/orders/{order['id']}/status", json={"status": "shipped"}, headers=admin["headers"]
    )
    assert response.status_code == 200
    assert response.json()["order"]["status"] == "shipped"

    notes = client.get("/notifications", headers=user["headers"]).json()
    assert notes[0]["type"] == "order_status_update"
    assert notes[0]["message"] == f"Your order #{order['id'][:8]} has been shipped."

    shipped = client.get("/admin/orders", params={"status": "shipped"}, headers=admin["headers"]).json()
    assert shipped["total_orders"] == 1


def test_admin_deletes_order_with_items(client, db, admin, user, products):
    add(client, user, products[1])
    order = client.post(
        "/orders/checkout", json={"shipping_address": "Tyre"}, headers=user["headers"]
    ).json()["order"]

    assert client.delete(f"/admin/orders/{order['id']}", headers=admin["headers"]).status_code == 200
    assert run(db.order_items.count_documents({"order_id": order["id"]})) == 0
    assert client.get(f"/orders/{order['id']}", headers=user["headers"]).status_code == 404


class TestDiscounts:
    def create(self, client, admin, **fields):
        payload = {"code": "save10", "name": "Ten percent", "discount_value": 10}
        payload.update(fields)
        return client.post("/admin/discounts", json=payload, headers=admin["headers"])

    def test_code_is_stored_upper_case(self, client, admin):
        response = self.create(client, admin)
        assert response.status_code == 201
        assert response.json()["discount"]["code"] == "SAVE10"
        assert self.create(client, admin).status_code == 400

    def test_percentage_over_100_rejected(self, client, admin):
        assert self.create(client, admin, discount_value=150).status_code == 422

    def test_validate(self, client, admin):
        self.create(client, admin, min_order_amount=20)
        ok = client.post("/discounts/validate", json={"code": "save10", "subtotal": 50})
        assert ok.json() == {"code": "SAVE10", "name": "Ten percent", "discount_amount": 5.0, "total": 45.0}

        too_small = client.post("/discounts/validate", json={"code": "SAVE10", "subtotal": 10})
        assert too_small.status_code == 400

        unknown = client.post("/discounts/validate", json={"code": "NOPE", "subtotal": 10})
        assert unknown.status_code == 400

    def test_inactive_code(self, client, admin):
        discount = self.create(client, admin, code="ONCE", discount_type="fixed", discount_value=3, max_uses=1)
        discount_id = discount.json()["discount"]["id"]
        client.put(f"/admin/discounts/{discount_id}", json={"is_active": False}, headers=admin["headers"])
        inactive = client.post("/discounts/validate", json={"code": "ONCE", "subtotal": 10})
        assert inactive.json()["detail"] == "This discount code is no longer active"

    def test_checkout_applies_code_once(self, client, admin, user, products):
        self.create(client, admin, code="ONCE", discount_type="fixed", discount_value=3, max_uses=1)
        add(client, user, products[0])

        order = client.post(
            "/orders/checkout",
            json={"shipping_address": "Saida", "discount_code": "once"},
            headers=user["headers"],
        ).json()["order"]
        assert order["subtotal"] == 10.0
        assert order["discount_amount"] == 3.0
        assert order["total"] == 7.0

        add(client, user, products[0])
        again = client.post(
            "/orders/checkout",
            json={"shipping_address": "Saida", "discount_code": "ONCE"},
            headers=user["headers"],
        )
        assert again.status_code == 400
        assert "usage limit" in again.json()["detail"]

    def test_fixed_discount_capped_at_subtotal(self, client, admin):
        self.create(client, admin, code="BIG", discount_type="fixed", discount_value=500)
        response = client.post("/discounts/validate", json={"code": "BIG", "subtotal": 12})
        assert response.json()["discount_amount"] == 12
        assert response.json()["total"] == 0

    @pytest.mark.parametrize("window, message", [
        ({"start_date": (utcnow() + timedelta(days=2)).isoformat()}, "This discount code is not active yet"),
        ({"end_date": (utcnow() - timedelta(days=2)).isoformat()}, "This discount code has expired"),
    ])
    def test_code_outside_date_window(self, client, admin, user, products, window, message):
        assert self.create(client, admin, code="WINDOW", **window).status_code == 201

        validated = client.post("/discounts/validate", json={"code": "WINDOW", "subtotal": 50})
        assert validated.status_code == 400
        assert validated.json()["detail"] == message

        add(client, user, products[0])
        checkout = client.post(
            "/orders/checkout",
            json={"shipping_address": "Tyre", "discount_code": "window"},
            headers=user["headers"],
        )
        assert checkout.status_code == 400
        assert checkout.json()["detail"] == message
        assert client.get("/orders", headers=user["headers"]).json()["total_orders"] == 0

    def test_code_inside_date_window(self, client, admin):
        self.create(
            client, admin, code="NOW",
            start_date=(utcnow() - timedelta(days=1)).isoformat(),
            end_date=(utcnow() + timedelta(days=1)).isoformat(),
        )
        response = client.post("/discounts/validate", json={"code": "NOW", "subtotal": 20})
        assert response.status_code == 200
        assert response.json()["discount_amount"] == 2.0

    def test_update_keeps_value_rules(self, client, admin):
        discount_id = self.create(
            client, admin, start_date=(utcnow() + timedelta(days=1)).isoformat()
        ).json()["discount"]["id"]
        url = f"/admin/discounts/{discount_id}"

        too_much = client.put(url, json={"discount_value": 120}, headers=admin["headers"])
        assert too_much.status_code == 422
        backwards = client.put(url, json={"end_date": utcnow().isoformat()}, headers=admin["headers"])
        assert backwards.status_code == 422

        as_fixed = client.put(url, json={"discount_type": "fixed", "discount_value": 120}, headers=admin["headers"])
        assert as_fixed.status_code == 200
        assert as_fixed.json()["discount"]["discount_value"] == 120
