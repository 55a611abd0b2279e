import json

import pytest

from app.client.cart_store import CartItem, CartStore, cart_key
from app.client.storage import JsonFileStore, MemoryStore


def _item(item_id="p1", **overrides):
    data = {"_id": item_id, "title": f"Bouquet {item_id}", "price": 100.0, "quantity": 1}
    data.update(overrides)
    return CartItem.model_validate(data)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def carts(store):
    return CartStore(store)


def test_cart_key():
    assert cart_key("u1") == "cart_u1"
    assert cart_key(None) == "cart"
    assert cart_key("") == "cart"


def test_save_then_load_keeps_product_metadata(carts, store):
    item = _item(images=["a.jpg"], category="roses", careInstructions=["water daily"])
    carts.save([item], "u1")

    stored = json.loads(store.get_item("cart_u1"))
    assert stored[0]["_id"] == "p1"
    assert stored[0]["careInstructions"] == ["water daily"]

    loaded = carts.load("u1")
    assert loaded[0].id == "p1"
    assert loaded[0].images == ["a.jpg"]


def test_load_malformed_json_returns_empty(carts, store):
    store.set_item("cart", "{not json")
    assert carts.load() == []


def test_load_non_list_returns_empty(carts, store):
    store.set_item("cart", json.dumps({"_id": "p1"}))
    assert carts.load() == []


def test_load_drops_invalid_items(carts, store):
    store.set_item(
        "cart_u1",
        json.dumps(
            [
                {"_id": "ok", "title": "Lilies", "price": 80, "quantity": 2},
                {"title": "no id", "price": 10, "quantity": 1},
                {"_id": "no-title", "price": 10, "quantity": 1},
                {"_id": "str-price", "title": "x", "price": "10", "quantity": 1},
                {"_id": "no-qty", "title": "x", "price": 10},
                {"_id": "bool-qty", "title": "x", "price": 10, "quantity": True},
                None,
                "junk",
            ]
        ),
    )
    assert [it.id for it in carts.load("u1")] == ["ok"]


def test_clear_removes_only_that_key(carts, store):
    carts.save([_item()], "u1")
    carts.save([_item("p2")])
    carts.clear("u1")
    assert store.get_item("cart_u1") is None
    assert len(carts.load()) == 1


def test_migrate_moves_anonymous_cart(carts, store):
    carts.save([_item("p1"), _item("p2")])

    migrated = carts.migrate("u1")

    assert [it.id for it in migrated] == ["p1", "p2"]
    assert store.get_item("cart") is None
    assert [it.id for it in carts.load("u1")] == ["p1", "p2"]


def test_migrate_twice_is_a_noop(carts, store):
    carts.save([_item("p1")])
    carts.migrate("u1")
    before = store.get_item("cart_u1")

    again = carts.migrate("u1")

    assert store.get_item("cart_u1") == before
    assert [it.id for it in again] == ["p1"]
    assert store.get_item("cart") is None


def test_migrate_keeps_existing_user_cart(carts, store):
    carts.save([_item("mine")], "u1")
    carts.save([_item("anon")])

    result = carts.migrate("u1")

    assert [it.id for it in result] == ["mine"]
    assert store.get_item("cart") is None


def test_add_item_merges_same_product_and_customizations(carts):
    carts.add_item(_item("p1", quantity=1))
    carts.add_item(_item("p1", quantity=2))
    carts.add_item(_item("p1", quantity=1, customizations={"message": "Love"}))

    items = carts.load()
    assert [(it.id, it.quantity) for it in items] == [("p1", 3), ("p1", 1)]


def test_update_quantity_and_remove(carts):
    carts.save([_item("p1"), _item("p2")], "u1")

    carts.update_quantity("p1", 4, "u1")
    assert carts.load("u1")[0].quantity == 4

    carts.update_quantity("p1", 0, "u1")
    assert [it.id for it in carts.load("u1")] == ["p2"]

    carts.remove_item("p2", "u1")
    assert carts.load("u1") == []


def test_totals():
    totals = CartStore.totals([_item("a", price=99.5, quantity=2), _item("b", price=10, quantity=1)])
    assert totals.item_count == 3
    assert totals.subtotal == 209.0


def test_cleanup_orphaned_keeps_current_and_anonymous(carts, store):
    carts.save([_item()], "u1")
    carts.save([_item()], "u2")
    carts.save([_item()])

    removed = carts.cleanup_orphaned("u1")

    assert removed == ["cart_u2"]
    assert sorted(store.keys()) == ["cart", "cart_u1"]


def test_json_file_store_persists(tmp_path):
    path = tmp_path / "local.json"
    CartStore(JsonFileStore(path)).save([_item("p1")], "u1")

    reopened = CartStore(JsonFileStore(path))
    assert [it.id for it in reopened.load("u1")] == ["p1"]


def test_json_file_store_survives_corrupt_file(tmp_path):
    path = tmp_path / "local.json"
    path.write_text("][", encoding="utf-8")
    assert JsonFileStore(path).keys() == []


def test_numeric_product_ids_are_kept_as_strings(carts, store):
    store.set_item(
        "cart_u1",
        json.dumps([
            {"_id": 42, "title": "Tulips", "price": 120, "quantity": 1},
            {"id": 7, "title": "Lilies", "price": 90, "quantity": 2},
            {"_id": "p3", "title": "Half", "price": 10, "quantity": 1.5},
        ]),
    )

    items = carts.load("u1")

    assert [it.id for it in items] == ["42", "7"]
    carts.save(items, "u1")
    assert [it["_id"] for it in json.loads(store.get_item("cart_u1"))] == ["42", "7"]
