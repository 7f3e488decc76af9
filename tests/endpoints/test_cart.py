from fastapi.testclient import TestClient
from tests.helpers.asserts import api_call, error_code
from app.core.cache import CacheManager
from app.core.cache_config import cart_key

CART = "/api/cart"
USER_ID = 11


def _add(client, product, quantity=1, user_id=None, price=None):
    payload = {"product_id": product.id, "price": price or str(product.price), "quantity": quantity}
    if user_id is not None:
        payload["user_id"] = user_id
    return api_call(client, "POST", f"{CART}/items", json=payload)


def test_add_and_list_items(client: TestClient, product_factory):
    product = product_factory(price="4.25")

    r = _add(client, product, quantity=2, user_id=USER_ID)
    assert r.json()["message"] == "Product added to cart."
    assert r.json()["data"]["price"] == "8.50"

    r = api_call(client, "GET", f"{CART}/items", params={"user_id": USER_ID})
    body = r.json()
    assert body["message"] == "Cart items retrieved from cache."
    assert body["data"]["total"] == "8.50"
    assert body["data"]["item_count"] == 2
    assert r.headers["X-Request-ID"]


def test_list_items_after_expiry_reads_database(client: TestClient, cache: CacheManager, product_factory):
    product = product_factory()
    _add(client, product)
    cache.backend._cache.pop(cart_key(None))

    r = api_call(client, "GET", f"{CART}/items")

    assert r.json()["data"]["source"] == "database"
    assert len(r.json()["data"]["items"]) == 1


def test_add_requires_product_and_price(client: TestClient):
    r = api_call(client, "POST", f"{CART}/items", json={"quantity": 2}, expected_min=400, expected_max=401)
    assert error_code(r) == "BAD_REQUEST"


def test_duplicate_add_is_server_error(client: TestClient, product_factory):
    product = product_factory()
    _add(client, product, user_id=USER_ID)

    r = api_call(
        client, "POST", f"{CART}/items",
        json={"product_id": product.id, "price": "10.00", "user_id": USER_ID},
        expected_min=500, expected_max=501,
    )
    assert error_code(r) == "INTERNAL_SERVER_ERROR"


def test_quantity_updates(client: TestClient, product_factory):
    product = product_factory(price="3.00")
    _add(client, product, quantity=2, user_id=USER_ID)

    r = api_call(client, "PATCH", f"{CART}/items/{product.id}", params={"user_id": USER_ID}, json={"action": "increment"})
    assert r.json()["message"] == "Cart item quantity updated."
    assert r.json()["data"]["new_quantity"] == 3
    assert r.json()["data"]["new_total_price"] == "9.00"

    api_call(client, "PATCH", f"{CART}/items/{product.id}", params={"user_id": USER_ID}, json={"action": "decrement"})
    api_call(client, "PATCH", f"{CART}/items/{product.id}", params={"user_id": USER_ID}, json={"action": "decrement"})
    r = api_call(client, "PATCH", f"{CART}/items/{product.id}", params={"user_id": USER_ID}, json={"action": "decrement"})
    assert r.json()["message"] == "Item removed from cart."
    assert r.json()["data"]["action"] == "removed"

    r = api_call(client, "GET", f"{CART}/total", params={"user_id": USER_ID})
    assert r.json()["data"] == {"total": "0.00", "item_count": 0}


def test_quantity_update_errors(client: TestClient):
    api_call(client, "PATCH", f"{CART}/items/1", json={"action": "triple"}, expected_min=400, expected_max=401)
    api_call(client, "PATCH", f"{CART}/items/1", json={}, expected_min=400, expected_max=401)
    api_call(client, "PATCH", f"{CART}/items/1", json={"action": "increment"}, expected_min=404, expected_max=405)


def test_remove_and_clear(client: TestClient, product_factory):
    first = product_factory()
    second = product_factory()
    _add(client, first)
    _add(client, second)

    r = api_call(client, "DELETE", f"{CART}/items/{first.id}")
    assert r.json()["data"] == {"product_id": first.id}

    r = api_call(client, "DELETE", f"{CART}/")
    assert r.json()["message"] == "Cart cleared successfully."
    assert r.json()["data"] == {"removed_items": 1}

    r = api_call(client, "GET", f"{CART}/items")
    assert r.json()["data"]["items"] == []


def test_merge_guest_cart(client: TestClient, product_factory):
    shared = product_factory(price="2.00")
    guest_only = product_factory(price="5.00")
    _add(client, shared, quantity=1, user_id=USER_ID)
    _add(client, shared, quantity=2)
    _add(client, guest_only, quantity=1)

    r = api_call(client, "POST", f"{CART}/merge", json={"user_id": USER_ID})
    assert r.json()["message"] == "Carts merged successfully"
    assert r.json()["data"] == {"merged_items": 2, "user_id": USER_ID}

    r = api_call(client, "GET", f"{CART}/items", params={"user_id": USER_ID})
    assert r.json()["data"]["item_count"] == 4
    assert r.json()["data"]["total"] == "11.00"

    r = api_call(client, "GET", f"{CART}/items")
    assert r.json()["data"]["items"] == []

    r = api_call(client, "POST", f"{CART}/merge", json={"user_id": USER_ID})
    assert r.json()["message"] == "No items to merge"


def test_merge_requires_user(client: TestClient):
    r = api_call(client, "POST", f"{CART}/merge", json={}, expected_min=400, expected_max=401)
    assert r.json()["error"]["message"] == "User ID is required."


def test_cart_read_reports_cache_status(client: TestClient, cache: CacheManager, product_factory):
    product = product_factory()
    _add(client, product)

    assert api_call(client, "GET", f"{CART}/items").headers["X-Cache"] == "HIT"
    cache.backend._cache.pop(cart_key(None))
    assert api_call(client, "GET", f"{CART}/items").headers["X-Cache"] == "MISS"


def test_out_of_range_cart_price_is_bad_request(client: TestClient, product_factory):
    product = product_factory()

    r = api_call(client, "POST", f"{CART}/items", json={"product_id": product.id, "price": "1e30"}, expected_min=400, expected_max=401)
    assert error_code(r) == "BAD_REQUEST"

    r = api_call(client, "GET", f"{CART}/items")
    assert r.json()["data"]["items"] == []
