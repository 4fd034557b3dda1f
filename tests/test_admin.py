import csv
from io import StringIO

from conftest import auth_headers, line, order_payload
from models import Discount, Order, Product, User

PRODUCT = {
    "name": "Ankara Midi Skirt",
    "category": "skirts",
    "price": 320.0,
    "originalPrice": 400.0,
    "images": ["https://cdn.example.com/skirt-1.jpg", "https://cdn.example.com/skirt-2.jpg"],
    "sizes": ["S", "M"],
    "description": "Hand-printed cotton",
    "newArrival": True,
    "stock_quantity": 4,
}


def test_create_product_appends_to_display_order(client, admin_headers, make_product):
    make_product(position=7)
    resp = client.post("/admin/products", json=PRODUCT, headers=admin_headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["position"] == 8
    assert body["images"] == PRODUCT["images"]
    assert body["original_price"] == 400.0
    assert body["sold"] is False


def test_product_without_stock_is_sold_out(client, admin_headers):
    resp = client.post("/admin/products", json=dict(PRODUCT, stock_quantity=0), headers=admin_headers)
    assert resp.json()["sold"] is True


def test_update_and_delete_product(client, admin_headers, make_product, reload):
    product = make_product()
    resp = client.put(f"/admin/products/{product.id}", json=dict(PRODUCT, price=299.0), headers=admin_headers)
    assert resp.status_code == 200
    assert reload(Product, product.id).price == 299.0

    assert client.delete(f"/admin/products/{product.id}", headers=admin_headers).status_code == 200
    assert client.get(f"/products/{product.id}").status_code == 404


def test_toggle_sold(client, admin_headers, make_product):
    in_stock = make_product(stock_quantity=3)
    resp = client.patch(f"/admin/products/{in_stock.id}/sold", headers=admin_headers)
    assert resp.json()["sold"] is True
    resp = client.patch(f"/admin/products/{in_stock.id}/sold", headers=admin_headers)
    assert resp.json()["sold"] is False

    empty = make_product(stock_quantity=0, sold=True)
    resp = client.patch(f"/admin/products/{empty.id}/sold", headers=admin_headers)
    assert resp.status_code == 400


def test_reorder_products(client, admin_headers, make_product):
    a = make_product(name="A", position=1)
    b = make_product(name="B", position=2)
    resp = client.patch(
        "/admin/products/reorder",
        json={"products": [{"id": a.id, "position": 2}, {"id": b.id, "position": 1}]},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert [p["name"] for p in client.get("/products").json()] == ["B", "A"]


def test_product_listing_filters_and_sorts(client, make_product):
    make_product(name="Silk Scarf", category="accessories", price=90.0, sales_count=12)
    make_product(name="Linen Shirt", category="shirts", price=250.0, sales_count=3)
    assert [p["name"] for p in client.get("/products", params={"category": "shirts"}).json()] == ["Linen Shirt"]
    assert [p["name"] for p in client.get("/products", params={"q": "silk"}).json()] == ["Silk Scarf"]
    assert client.get("/products", params={"sort": "price_desc"}).json()[0]["name"] == "Linen Shirt"
    assert client.get("/products", params={"sort": "best_selling"}).json()[0]["name"] == "Silk Scarf"
    assert client.get("/products", params={"sort": "random"}).status_code == 400


def test_inventory_update_keeps_sold_flag_consistent(client, admin_headers, make_product):
    product = make_product(stock_quantity=2)
    resp = client.put(f"/admin/inventory/{product.id}", json={"stock_quantity": 0}, headers=admin_headers)
    assert resp.json()["sold"] is True
    resp = client.put(f"/admin/inventory/{product.id}", json={"stock_quantity": 6}, headers=admin_headers)
    assert resp.json()["sold"] is False
    listing = client.get("/admin/inventory", headers=admin_headers).json()
    assert listing[0]["stock_quantity"] == 6


def test_order_status_flow(client, admin_headers, make_product):
    order = client.post("/orders", json=order_payload([line(make_product())])).json()
    url = f"/admin/orders/{order['id']}"

    assert client.patch(url, json={"status": "processing"}, headers=admin_headers).json()["status"] == "processing"
    back = client.patch(url, json={"status": "pending"}, headers=admin_headers)
    assert back.status_code == 400
    assert client.patch(url, json={"status": "cancelled"}, headers=admin_headers).json()["status"] == "cancelled"
    assert client.patch(url, json={"status": "shipped"}, headers=admin_headers).status_code == 400
    assert client.patch(url, json={"status": "lost"}, headers=admin_headers).status_code == 400


def test_admin_order_listing_and_export(client, admin_headers, make_product):
    product = make_product(stock_quantity=10)
    client.post("/orders", json=order_payload([line(product)]))
    client.post("/orders", json=order_payload([line(product)], customerName="Abena Asante", customerEmail="abena@example.com"))

    found = client.get("/admin/orders", params={"q": "abena"}, headers=admin_headers).json()
    assert [o["customer_email"] for o in found] == ["abena@example.com"]
    assert len(client.get("/admin/orders", params={"status": "pending"}, headers=admin_headers).json()) == 2

    exported = client.get("/admin/orders/export", headers=admin_headers).json()["csv"]
    rows = list(csv.reader(StringIO(exported)))
    assert rows[0][0] == "order_number"
    assert len(rows) == 3


def test_delete_order(client, admin_headers, make_product):
    order = client.post("/orders", json=order_payload([line(make_product())])).json()
    assert client.delete(f"/admin/orders/{order['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/admin/orders/{order['id']}", headers=admin_headers).status_code == 404


def test_discount_crud(client, admin_headers):
    resp = client.post(
        "/admin/discounts",
        json={"code": "welcome20", "type": "percentage", "value": 20, "usage_limit": 100},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    discount = resp.json()
    assert discount["code"] == "WELCOME20"
    assert discount["used_count"] == 0

    duplicate = client.post("/admin/discounts", json={"code": "Welcome20", "type": "fixed", "value": 5}, headers=admin_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Discount code already exists"

    too_big = client.patch(f"/admin/discounts/{discount['id']}", json={"value": 150}, headers=admin_headers)
    assert too_big.status_code == 400

    off = client.patch(f"/admin/discounts/{discount['id']}", json={"is_active": False}, headers=admin_headers)
    assert off.json()["is_active"] is False

    assert client.delete(f"/admin/discounts/{discount['id']}", headers=admin_headers).status_code == 200
    assert client.get("/admin/discounts", headers=admin_headers).json() == []


def test_usage_limit_cannot_drop_below_recorded_uses(client, admin_headers, make_discount, reload):
    discount = make_discount(code="TEN", usage_limit=10, used_count=5)
    url = f"/admin/discounts/{discount.id}"

    resp = client.patch(url, json={"usage_limit": 3}, headers=admin_headers)
    assert resp.status_code == 400
    assert reload(Discount, discount.id).usage_limit == 10

    resp = client.patch(url, json={"usage_limit": 5}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["usage_limit"] == 5


def test_customers_listing_counts_orders(client, admin_headers, customer, make_product):
    client.post("/orders", json=order_payload([line(make_product())]), headers=auth_headers(customer))
    users = client.get("/admin/users", headers=admin_headers).json()
    assert [(u["email"], u["order_count"]) for u in users] == [(customer.email, 1)]

    orders = client.get(f"/admin/users/{customer.id}/orders", headers=admin_headers).json()
    assert len(orders) == 1


def test_deleting_customer_keeps_their_orders(client, admin_headers, customer, make_product, reload):
    order = client.post("/orders", json=order_payload([line(make_product())]), headers=auth_headers(customer)).json()

    resp = client.delete(f"/admin/users/{customer.id}", headers=admin_headers)

    assert resp.status_code == 200
    assert reload(User, customer.id) is None
    assert reload(Order, order["id"]).user_id is None


def test_admin_accounts_cannot_be_deleted(client, admin, admin_headers):
    assert client.delete(f"/admin/users/{admin.id}", headers=admin_headers).status_code == 403


def test_settings(client, admin_headers):
    assert client.get("/settings").json()["currency"] == "GHS"
    resp = client.patch(
        "/admin/settings",
        json={"announcement_text": "Free delivery in Accra", "announcement_bar_enabled": True, "popup_delay": 5},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    settings = client.get("/settings").json()
    assert settings["announcement_text"] == "Free delivery in Accra"
    assert settings["popup_delay"] == 5
    assert settings["popup_title"] == "Special Offer!"


def test_wishlist(client, customer_headers, make_product):
    product = make_product()
    assert client.post("/wishlist", json={"productId": product.id}, headers=customer_headers).status_code == 201
    assert client.post("/wishlist", json={"productId": product.id}, headers=customer_headers).status_code == 400
    assert client.post("/wishlist", json={"productId": 999}, headers=customer_headers).status_code == 404
    assert [p["id"] for p in client.get("/wishlist", headers=customer_headers).json()] == [product.id]

    assert client.delete(f"/wishlist/{product.id}", headers=customer_headers).status_code == 200
    assert client.delete(f"/wishlist/{product.id}", headers=customer_headers).status_code == 404
    assert client.get("/wishlist", headers=customer_headers).json() == []
