"""Data models for shopledger."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .utils import generate_id, round_money, utc_now

DEFAULT_BALANCE = Decimal("100.00")
MAX_BALANCE = Decimal("1000000000.00")
MAX_QUANTITY = 10_000


@dataclass(frozen=True)
class Product:
    """A catalog item. Immutable once seeded."""

    id: str
    name: str
    price: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price=round_money(data["price"]),
        )


@dataclass
class CartLineItem:
    """One product-quantity pair in a user's cart."""

    product_id: str
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLineItem":
        return cls(
            product_id=str(data["product_id"]),
            quantity=int(data["quantity"]),
        )


@dataclass
class User:
    """A registered shopper with a balance and a cart."""

    id: str
    username: str
    balance: Decimal = DEFAULT_BALANCE
    cart: list[CartLineItem] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def find_line(self, product_id: str) -> CartLineItem | None:
        """Return the cart line for a product, if present."""
        for line in self.cart:
            if line.product_id == product_id:
                return line
        return None

    def touch(self) -> None:
        self.updated_at = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "balance": str(self.balance),
            "cart": [line.to_dict() for line in self.cart],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            username=data["username"],
            balance=round_money(data.get("balance", DEFAULT_BALANCE)),
            cart=[CartLineItem.from_dict(line) for line in data.get("cart", [])],
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(cls, username: str, balance: Decimal = DEFAULT_BALANCE) -> "User":
        """Create a new user with generated ID, empty cart and timestamps."""
        now = utc_now()
        return cls(
            id=generate_id(),
            username=username,
            balance=round_money(balance),
            cart=[],
            created_at=now,
            updated_at=now,
        )


# Models for cart valuation and checkout


@dataclass(frozen=True)
class CartLine:
    """A cart line joined with current product details."""

    product_id: str
    name: str
    price: Decimal
    quantity: int
    total_price: Decimal


@dataclass(frozen=True)
class CartView:
    """Valued cart contents."""

    lines: list[CartLine]
    total_amount: Decimal


@dataclass(frozen=True)
class OrderLine:
    """Snapshot of one purchased line at checkout time."""

    product_id: str
    name: str
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class Order:
    """An order produced by a successful checkout. Not persisted."""

    id: str
    user_id: str
    lines: list[OrderLine]
    total: Decimal

    @classmethod
    def create(cls, user_id: str, lines: list[OrderLine], total: Decimal) -> "Order":
        return cls(
            id=generate_id(),
            user_id=user_id,
            lines=lines,
            total=round_money(total),
        )


@dataclass(frozen=True)
class CheckoutResult:
    """Result of a checkout: the order and what's left to spend."""

    order: Order
    remaining_balance: Decimal
