"""Custom exceptions for shopledger."""

from decimal import Decimal


class ShopError(Exception):
    """Base exception for all shopledger errors."""

    pass


class ValidationError(ShopError):
    """Raised when a request field is missing or violates a constraint."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class EmptyCartError(ValidationError):
    """Raised when checking out a cart with no lines."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("Cart empty")


class NotFoundError(ShopError):
    """Base for lookups that found nothing."""

    pass


class UserNotFoundError(NotFoundError):
    """Raised when a user ID doesn't exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User not found")


class ProductNotFoundError(NotFoundError):
    """Raised when a product ID isn't in the catalog."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Product not found")


class CartItemNotFoundError(NotFoundError):
    """Raised when a product isn't in the user's cart."""

    def __init__(self, user_id: str, product_id: str):
        self.user_id = user_id
        self.product_id = product_id
        super().__init__("Product not in cart")


class UsernameTakenError(ShopError):
    """Raised when registering a username that already exists."""

    def __init__(self, username: str):
        self.username = username
        super().__init__("Username exists")


class InsufficientBalanceError(ShopError):
    """Raised when the cart total exceeds the user's balance."""

    def __init__(self, balance: Decimal, total: Decimal):
        self.balance = balance
        self.total = total
        super().__init__("Insufficient balance")


class InvalidSchemaVersionError(ShopError):
    """Raised when the data file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )
