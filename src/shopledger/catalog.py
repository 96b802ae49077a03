"""The fixed product catalog."""

from decimal import Decimal

from .models import Product

SEED_PRODUCTS: tuple[Product, ...] = (
    Product(id="1", name="T-shirt", price=Decimal("19.99")),
    Product(id="2", name="Jeans", price=Decimal("49.99")),
    Product(id="3", name="Sneakers", price=Decimal("89.99")),
)


def seed_products() -> list[Product]:
    """Return the catalog every store starts with."""
    return list(SEED_PRODUCTS)
