"""Storage backends for shopledger.

Both backends expose the same ``ShopStore`` interface: read-only lookup on
the product catalog, and create/find/update on users. ``lock_user`` gives a
caller exclusive access to one user's record for a read-modify-write cycle.
"""

from __future__ import annotations

import copy
import fcntl
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, ContextManager, Iterator, Protocol

from .catalog import seed_products
from .errors import (
    InvalidSchemaVersionError,
    ProductNotFoundError,
    UsernameTakenError,
    UserNotFoundError,
)
from .models import Product, User

SCHEMA_VERSION = 1
DATA_FILE = "shop.json"
LOCK_FILE = ".shop.lock"
USER_LOCKS_DIR = ".user_locks"


class ShopStore(Protocol):
    """Protocol for shop storage backends."""

    def list_products(self) -> list[Product]:
        """Return the catalog in seed order."""
        ...

    def get_product(self, product_id: str) -> Product:
        """Get a product by ID.

        Raises:
            ProductNotFoundError: If the product isn't in the catalog.
        """
        ...

    def create_user(self, user: User) -> User:
        """Insert a new user.

        Raises:
            UsernameTakenError: If the username is already registered.
        """
        ...

    def get_user(self, user_id: str) -> User:
        """Get a user by ID. The returned object is a private copy.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        ...

    def find_user_by_username(self, username: str) -> User | None:
        """Get a user by username, or None."""
        ...

    def update_user(self, user: User) -> User:
        """Replace a stored user record.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        ...

    def lock_user(self, user_id: str) -> ContextManager[None]:
        """Hold exclusive access to one user's record."""
        ...

    def close(self) -> None:
        """Release any resources held by the store."""
        ...


class _UserLocks:
    """Per-user in-process locks, created on demand."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def clear(self) -> None:
        with self._registry_lock:
            self._locks.clear()


class MemoryStore:
    """Keeps all records in process memory. Lives as long as the process."""

    def __init__(self, products: list[Product] | None = None):
        """
        Initialize MemoryStore.

        Args:
            products: Override the seed catalog (for testing).
        """
        catalog = products if products is not None else seed_products()
        self._products: dict[str, Product] = {p.id: p for p in catalog}
        self._users: dict[str, User] = {}
        self._users_lock = threading.Lock()
        self._user_locks = _UserLocks()

    def list_products(self) -> list[Product]:
        return list(self._products.values())

    def get_product(self, product_id: str) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise ProductNotFoundError(product_id)

    def create_user(self, user: User) -> User:
        with self._users_lock:
            for existing in self._users.values():
                if existing.username == user.username:
                    raise UsernameTakenError(user.username)
            self._users[user.id] = copy.deepcopy(user)
        return user

    def get_user(self, user_id: str) -> User:
        with self._users_lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            return copy.deepcopy(user)

    def find_user_by_username(self, username: str) -> User | None:
        with self._users_lock:
            for user in self._users.values():
                if user.username == username:
                    return copy.deepcopy(user)
        return None

    def update_user(self, user: User) -> User:
        with self._users_lock:
            if user.id not in self._users:
                raise UserNotFoundError(user.id)
            self._users[user.id] = copy.deepcopy(user)
        return user

    @contextmanager
    def lock_user(self, user_id: str) -> Iterator[None]:
        with self._user_locks.get(user_id):
            yield

    def close(self) -> None:
        self._user_locks.clear()


class JsonFileStore:
    """Document store kept in a single JSON file under a data directory.

    Writes are atomic (write-to-temp-then-rename) and every read-modify-write
    cycle holds an exclusive file lock, so several processes can share one
    data directory.
    """

    def __init__(self, data_dir: Path | str):
        """
        Initialize JsonFileStore, seeding the catalog if the store is new.

        Args:
            data_dir: Directory holding the data file and lock files.

        Raises:
            InvalidSchemaVersionError: If an existing data file has an
                unsupported schema version.
        """
        self.data_dir = Path(data_dir)
        self.data_path = self.data_dir / DATA_FILE
        self._user_locks = _UserLocks()

        with self._lock():
            data = self._load_data()
            if not data["products"]:
                data["products"] = [p.to_dict() for p in seed_products()]
                self._save_data(data)

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _flock(self, lock_path: Path) -> Iterator[None]:
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the data file for read-modify-write operations."""
        self._ensure_dir()
        with self._flock(self.data_dir / LOCK_FILE):
            yield

    def _load_data(self) -> dict[str, Any]:
        """Load store data from disk."""
        if not self.data_path.exists():
            return {"schema_version": SCHEMA_VERSION, "products": [], "users": []}

        with open(self.data_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)

        data.setdefault("products", [])
        data.setdefault("users", [])
        return data

    def _save_data(self, data: dict[str, Any]) -> None:
        """Save store data to disk atomically."""
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(
            dir=self.data_dir, prefix=".shop_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.data_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def list_products(self) -> list[Product]:
        data = self._load_data()
        return [Product.from_dict(p) for p in data["products"]]

    def get_product(self, product_id: str) -> Product:
        for product in self.list_products():
            if product.id == product_id:
                return product
        raise ProductNotFoundError(product_id)

    def create_user(self, user: User) -> User:
        with self._lock():
            data = self._load_data()
            for u in data["users"]:
                if u["username"] == user.username:
                    raise UsernameTakenError(user.username)
            data["users"].append(user.to_dict())
            self._save_data(data)
        return user

    def get_user(self, user_id: str) -> User:
        data = self._load_data()
        for u in data["users"]:
            if u["id"] == user_id:
                return User.from_dict(u)
        raise UserNotFoundError(user_id)

    def find_user_by_username(self, username: str) -> User | None:
        data = self._load_data()
        for u in data["users"]:
            if u["username"] == username:
                return User.from_dict(u)
        return None

    def update_user(self, user: User) -> User:
        with self._lock():
            data = self._load_data()
            users = data["users"]
            for i, u in enumerate(users):
                if u["id"] == user.id:
                    users[i] = user.to_dict()
                    self._save_data(data)
                    return user
        raise UserNotFoundError(user.id)

    @contextmanager
    def lock_user(self, user_id: str) -> Iterator[None]:
        """Lock one user against other threads and other processes."""
        locks_dir = self.data_dir / USER_LOCKS_DIR
        locks_dir.mkdir(parents=True, exist_ok=True)
        with self._user_locks.get(user_id):
            with self._flock(locks_dir / f"{user_id}.lock"):
                yield

    def close(self) -> None:
        self._user_locks.clear()


def open_store(kind: str, data_dir: Path | str | None = None) -> ShopStore:
    """
    Build a store backend by name.

    Args:
        kind: "memory" or "json".
        data_dir: Data directory, required for the json backend.

    Raises:
        ValueError: If kind is unknown or data_dir is missing for json.
    """
    if kind == "memory":
        return MemoryStore()
    if kind == "json":
        if data_dir is None:
            raise ValueError("json store requires a data directory")
        return JsonFileStore(data_dir)
    raise ValueError(f"Unknown store backend: {kind}")
