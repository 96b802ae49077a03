"""Command-line interface for shopledger."""

import argparse
import json
import sys

from . import __version__
from .config import get_settings
from .errors import ShopError
from .ledger import ShopLedger
from .logging_config import configure_logging
from .store import open_store
from .utils import format_money, money_to_json


def get_ledger() -> ShopLedger:
    """Get a ShopLedger over the configured store."""
    settings = get_settings()
    store = open_store(settings.STORE, settings.DATA_DIR)
    return ShopLedger(store, default_balance=settings.DEFAULT_BALANCE)


def cmd_products(args: argparse.Namespace) -> int:
    """List the catalog."""
    try:
        products = get_ledger().list_products()

        if args.json:
            output = [
                {"id": p.id, "name": p.name, "price": money_to_json(p.price)}
                for p in products
            ]
            print(json.dumps(output, indent=2))
            return 0

        for p in products:
            print(f"{p.id:>4}  {p.name:<20} {format_money(p.price):>10}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_register(args: argparse.Namespace) -> int:
    """Register a new user."""
    try:
        user = get_ledger().register(args.username)

        print(f"Registered user: {user.username}")
        print(f"  ID: {user.id}")
        print(f"  Balance: {format_money(user.balance)}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_balance(args: argparse.Namespace) -> int:
    """Set a user's balance."""
    try:
        balance = get_ledger().set_balance(args.user_id, args.amount)

        print(f"Balance updated: {format_money(balance)}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cart(args: argparse.Namespace) -> int:
    """Show a user's cart with totals."""
    try:
        view = get_ledger().view_cart(args.user_id)

        if args.json:
            output = {
                "cart": [
                    {
                        "productId": line.product_id,
                        "name": line.name,
                        "price": money_to_json(line.price),
                        "quantity": line.quantity,
                        "totalPrice": money_to_json(line.total_price),
                    }
                    for line in view.lines
                ],
                "totalAmount": money_to_json(view.total_amount),
            }
            print(json.dumps(output, indent=2))
            return 0

        if not view.lines:
            print("Cart is empty.")
            return 0

        for line in view.lines:
            print(
                f"{line.name:<20} {line.quantity:>3} x {format_money(line.price):>9}"
                f"  = {format_money(line.total_price):>10}"
            )
        print(f"{'Total':<38}{format_money(view.total_amount):>10}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_checkout(args: argparse.Namespace) -> int:
    """Check out a user's cart."""
    try:
        result = get_ledger().checkout(args.user_id)
        order = result.order

        print(f"Order placed: {order.id}")
        for line in order.lines:
            print(f"  {line.quantity} x {line.name} @ {format_money(line.price)}")
        print(f"  Total: {format_money(order.total)}")
        print(f"Remaining balance: {format_money(result.remaining_balance)}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = get_settings()
        host = args.host or settings.HOST
        port = args.port or settings.PORT

        print("Starting shopledger API server...")
        print(f"Store: {settings.STORE}")
        print(f"API docs: http://{host}:{port}/docs")
        print()

        uvicorn.run(
            "shopledger.api:build_default_app",
            factory=True,
            host=host,
            port=port,
            reload=args.reload,
            workers=1,  # Single worker: the memory store lives in-process
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="shopledger",
        description="Minimal online-shop backend: users, carts, balances and checkout.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default=None, help="Host to bind to (default: SHOPLEDGER_HOST)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=None, help="Port to bind to (default: SHOPLEDGER_PORT)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # products
    products_parser = subparsers.add_parser("products", help="List the catalog")
    products_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # register
    register_parser = subparsers.add_parser("register", help="Register a user")
    register_parser.add_argument("username", help="Username (must be unique)")

    # balance
    balance_parser = subparsers.add_parser("balance", help="Set a user's balance")
    balance_parser.add_argument("user_id", help="User ID")
    balance_parser.add_argument("amount", help="New balance, e.g. 100.00")

    # cart
    cart_parser = subparsers.add_parser("cart", help="Show a user's cart")
    cart_parser.add_argument("user_id", help="User ID")
    cart_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # checkout
    checkout_parser = subparsers.add_parser("checkout", help="Check out a user's cart")
    checkout_parser.add_argument("user_id", help="User ID")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    # Keep stdout clean for --json output
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON, stream=sys.stderr)

    commands = {
        "serve": cmd_serve,
        "products": cmd_products,
        "register": cmd_register,
        "balance": cmd_balance,
        "cart": cmd_cart,
        "checkout": cmd_checkout,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
