"""Cart and checkout operations."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog

from .errors import (
    CartItemNotFoundError,
    EmptyCartError,
    InsufficientBalanceError,
    UsernameTakenError,
    ValidationError,
)
from .models import (
    DEFAULT_BALANCE,
    MAX_BALANCE,
    MAX_QUANTITY,
    CartLine,
    CartLineItem,
    CartView,
    CheckoutResult,
    Order,
    OrderLine,
    Product,
    User,
)
from .store import ShopStore
from .utils import round_money, to_decimal

logger = structlog.get_logger(__name__)


def _require_quantity(quantity: Any, minimum: int, message: str) -> int:
    # bool is an int subclass; true/false is not a quantity
    if quantity is None or isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(message, field="quantity")
    if quantity < minimum:
        raise ValidationError(message, field="quantity")
    _check_quantity_cap(quantity)
    return quantity


def _check_quantity_cap(quantity: int) -> None:
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity must be at most {MAX_QUANTITY}", field="quantity")


class ShopLedger:
    """Owns every state change to users, carts and balances.

    Mutations run under ``store.lock_user`` so concurrent requests against
    one user are applied one at a time.
    """

    def __init__(self, store: ShopStore, default_balance: Decimal = DEFAULT_BALANCE):
        self.store = store
        self.default_balance = round_money(default_balance)

    # --- Users ---

    def register(self, username: str | None) -> User:
        """
        Register a new user with the default balance and an empty cart.

        Raises:
            ValidationError: If username is missing or blank.
            UsernameTakenError: If username is already registered.
        """
        if not username or not username.strip():
            raise ValidationError("Username required", field="username")
        if self.store.find_user_by_username(username) is not None:
            raise UsernameTakenError(username)

        # create_user re-checks under the store lock for concurrent registers
        user = User.create(username=username, balance=self.default_balance)
        self.store.create_user(user)
        logger.info("user_registered", user_id=user.id, username=username)
        return user

    def get_profile(self, user_id: str) -> User:
        """
        Get a user record.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        return self.store.get_user(user_id)

    def set_balance(self, user_id: str, balance: Any) -> Decimal:
        """
        Replace a user's balance, rounded to 2 decimals.

        The sign is checked before rounding, so -0.001 is rejected rather
        than stored as zero.

        Raises:
            ValidationError: If balance is missing, not a number, negative
                or above MAX_BALANCE.
            UserNotFoundError: If the user doesn't exist.
        """
        if balance is None:
            raise ValidationError("Balance must be non-negative", field="balance")
        if to_decimal(balance) < 0:
            raise ValidationError("Balance must be non-negative", field="balance")
        amount = round_money(balance)
        if amount > MAX_BALANCE:
            raise ValidationError(f"Balance must be at most {MAX_BALANCE}", field="balance")

        self.store.get_user(user_id)
        with self.store.lock_user(user_id):
            user = self.store.get_user(user_id)
            user.balance = amount
            user.touch()
            self.store.update_user(user)

        logger.info("balance_set", user_id=user_id, balance=str(amount))
        return amount

    # --- Catalog ---

    def list_products(self) -> list[Product]:
        return self.store.list_products()

    # --- Cart ---

    def add_to_cart(self, user_id: str, product_id: str | None, quantity: Any = 1) -> list[CartLineItem]:
        """
        Add a product to the cart, merging with an existing line.

        Returns:
            The updated cart.

        Raises:
            ValidationError: If quantity < 1, the line would exceed MAX_QUANTITY, or
                product_id is missing.
            UserNotFoundError: If the user doesn't exist.
            ProductNotFoundError: If the product isn't in the catalog.
        """
        quantity = _require_quantity(quantity, 1, "Quantity must be at least 1")
        if not product_id:
            raise ValidationError("Product ID required", field="productId")

        self.store.get_user(user_id)
        self.store.get_product(product_id)

        with self.store.lock_user(user_id):
            user = self.store.get_user(user_id)
            line = user.find_line(product_id)
            if line is not None:
                _check_quantity_cap(line.quantity + quantity)
                line.quantity += quantity
            else:
                user.cart.append(CartLineItem(product_id=product_id, quantity=quantity))
            user.touch()
            self.store.update_user(user)

        logger.info(
            "cart_item_added",
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
        )
        return user.cart

    def set_cart_quantity(self, user_id: str, product_id: str | None, quantity: Any) -> list[CartLineItem]:
        """
        Set the absolute quantity of a cart line; 0 removes it.

        Returns:
            The updated cart.

        Raises:
            ValidationError: If quantity is missing, negative or above MAX_QUANTITY.
            UserNotFoundError: If the user doesn't exist.
            CartItemNotFoundError: If the product isn't in the cart.
        """
        quantity = _require_quantity(quantity, 0, "Quantity must be non-negative")

        self.store.get_user(user_id)
        with self.store.lock_user(user_id):
            user = self.store.get_user(user_id)
            line = user.find_line(product_id) if product_id else None
            if line is None:
                raise CartItemNotFoundError(user_id, str(product_id))

            if quantity == 0:
                user.cart.remove(line)
            else:
                line.quantity = quantity
            user.touch()
            self.store.update_user(user)

        logger.info(
            "cart_quantity_set",
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
        )
        return user.cart

    def view_cart(self, user_id: str) -> CartView:
        """
        Value a user's cart against current catalog prices.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        user = self.store.get_user(user_id)
        return self._value_cart(user)

    def _value_cart(self, user: User) -> CartView:
        lines = []
        for item in user.cart:
            product = self.store.get_product(item.product_id)
            lines.append(
                CartLine(
                    product_id=product.id,
                    name=product.name,
                    price=product.price,
                    quantity=item.quantity,
                    total_price=round_money(product.price * item.quantity),
                )
            )
        total_amount = round_money(sum((line.total_price for line in lines), Decimal("0")))
        return CartView(lines=lines, total_amount=total_amount)

    # --- Checkout ---

    def checkout(self, user_id: str) -> CheckoutResult:
        """
        Turn the cart into an order and deduct its total from the balance.

        Balance and cart are left untouched when checkout fails.

        Raises:
            UserNotFoundError: If the user doesn't exist.
            EmptyCartError: If the cart has no lines.
            InsufficientBalanceError: If the total exceeds the balance.
        """
        self.store.get_user(user_id)
        with self.store.lock_user(user_id):
            user = self.store.get_user(user_id)
            if not user.cart:
                logger.warning("checkout_rejected", user_id=user_id, reason="cart_empty")
                raise EmptyCartError(user_id)

            cart = self._value_cart(user)
            total = cart.total_amount
            if user.balance < total:
                logger.warning(
                    "checkout_rejected",
                    user_id=user_id,
                    reason="insufficient_balance",
                    balance=str(user.balance),
                    total=str(total),
                )
                raise InsufficientBalanceError(user.balance, total)

            order = Order.create(
                user_id=user.id,
                lines=[
                    OrderLine(
                        product_id=line.product_id,
                        name=line.name,
                        quantity=line.quantity,
                        price=line.price,
                    )
                    for line in cart.lines
                ],
                total=total,
            )
            user.balance = round_money(user.balance - total)
            user.cart = []
            user.touch()
            self.store.update_user(user)

        logger.info(
            "checkout_completed",
            user_id=user_id,
            order_id=order.id,
            total=str(order.total),
            remaining_balance=str(user.balance),
        )
        return CheckoutResult(order=order, remaining_balance=user.balance)
