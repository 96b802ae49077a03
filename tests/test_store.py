"""Tests for the storage backends."""

import json
from decimal import Decimal

import pytest

from shopledger.errors import (
    InvalidSchemaVersionError,
    ProductNotFoundError,
    UsernameTakenError,
    UserNotFoundError,
)
from shopledger.models import CartLineItem, User
from shopledger.store import DATA_FILE, JsonFileStore, MemoryStore, open_store


class TestShopStore:
    """Behaviour shared by every backend."""

    def test_catalog_is_seeded(self, store):
        products = store.list_products()

        assert [p.name for p in products] == ["T-shirt", "Jeans", "Sneakers"]
        assert [p.price for p in products] == [
            Decimal("19.99"),
            Decimal("49.99"),
            Decimal("89.99"),
        ]

    def test_get_product(self, store):
        assert store.get_product("2").name == "Jeans"

    def test_get_product_not_found(self, store):
        with pytest.raises(ProductNotFoundError):
            store.get_product("999")

    def test_create_and_get_user(self, store):
        user = store.create_user(User.create(username="alice"))

        loaded = store.get_user(user.id)
        assert loaded.username == "alice"
        assert loaded.balance == Decimal("100.00")

    def test_duplicate_username_raises(self, store):
        store.create_user(User.create(username="alice"))

        with pytest.raises(UsernameTakenError):
            store.create_user(User.create(username="alice"))

    def test_get_user_not_found(self, store):
        with pytest.raises(UserNotFoundError):
            store.get_user("nope")

    def test_find_user_by_username(self, store):
        user = store.create_user(User.create(username="bob"))

        assert store.find_user_by_username("bob").id == user.id
        assert store.find_user_by_username("nobody") is None

    def test_update_user(self, store):
        user = store.create_user(User.create(username="carol"))
        user.balance = Decimal("12.34")
        user.cart.append(CartLineItem(product_id="1", quantity=3))
        store.update_user(user)

        loaded = store.get_user(user.id)
        assert loaded.balance == Decimal("12.34")
        assert loaded.cart == [CartLineItem(product_id="1", quantity=3)]

    def test_update_missing_user_raises(self, store):
        with pytest.raises(UserNotFoundError):
            store.update_user(User.create(username="ghost"))

    def test_get_user_returns_a_copy(self, store):
        user = store.create_user(User.create(username="dave"))

        loaded = store.get_user(user.id)
        loaded.cart.append(CartLineItem(product_id="1", quantity=1))

        assert store.get_user(user.id).cart == []

    def test_locks_are_per_user(self, store):
        a = store.create_user(User.create(username="a"))
        b = store.create_user(User.create(username="b"))

        with store.lock_user(a.id):
            with store.lock_user(b.id):
                store.update_user(store.get_user(b.id))


class TestJsonFileStore:
    def test_persists_across_instances(self, temp_dir):
        first = JsonFileStore(temp_dir)
        user = first.create_user(User.create(username="alice"))

        second = JsonFileStore(temp_dir)
        assert second.get_user(user.id).username == "alice"

    def test_seed_only_once(self, temp_dir):
        JsonFileStore(temp_dir)
        JsonFileStore(temp_dir)

        data = json.loads((temp_dir / DATA_FILE).read_text())
        assert len(data["products"]) == 3

    def test_money_stored_as_text(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.create_user(User.create(username="alice"))

        data = json.loads((temp_dir / DATA_FILE).read_text())
        assert data["users"][0]["balance"] == "100.00"
        assert data["products"][0]["price"] == "19.99"

    def test_wrong_schema_version_raises(self, temp_dir):
        (temp_dir / DATA_FILE).write_text(
            json.dumps({"schema_version": 99, "products": [], "users": []})
        )

        with pytest.raises(InvalidSchemaVersionError):
            JsonFileStore(temp_dir)

    def test_no_temp_files_left(self, temp_dir):
        store = JsonFileStore(temp_dir)
        store.create_user(User.create(username="alice"))

        assert not list(temp_dir.glob(".shop_*.tmp"))


class TestOpenStore:
    def test_memory(self):
        assert isinstance(open_store("memory"), MemoryStore)

    def test_json(self, temp_dir):
        assert isinstance(open_store("json", temp_dir), JsonFileStore)

    def test_json_requires_data_dir(self):
        with pytest.raises(ValueError):
            open_store("json")

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            open_store("mongo")
