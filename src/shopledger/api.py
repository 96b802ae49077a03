"""FastAPI REST API for the shop."""

from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, BeforeValidator, Field

from .config import Settings, get_settings
from .errors import (
    CartItemNotFoundError,
    EmptyCartError,
    InsufficientBalanceError,
    InvalidSchemaVersionError,
    NotFoundError,
    ProductNotFoundError,
    ShopError,
    UsernameTakenError,
    UserNotFoundError,
    ValidationError,
)
from .ledger import ShopLedger
from .logging_config import configure_logging
from .models import MAX_BALANCE, MAX_QUANTITY, CartLineItem, CartView, CheckoutResult
from .store import ShopStore, open_store
from .utils import money_to_json

logger = structlog.get_logger(__name__)


# --- Pydantic Schemas ---


def _normalize_product_id(value: Any) -> Any:
    # Clients send catalog IDs as JSON numbers or strings
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


ProductId = Annotated[Optional[str], BeforeValidator(_normalize_product_id)]


class RegisterRequest(BaseModel):
    username: Optional[str] = None


class RegisterResponse(BaseModel):
    message: str
    userId: str
    balance: float


class ProfileResponse(BaseModel):
    username: str
    balance: float


class ProductSchema(BaseModel):
    id: str
    name: str
    price: float


class CartAddRequest(BaseModel):
    """Request body for adding a product to the cart."""

    productId: ProductId = None
    quantity: Optional[int] = Field(default=1, le=MAX_QUANTITY)


class CartUpdateRequest(BaseModel):
    """Request body for setting a cart line's quantity (0 removes it)."""

    productId: ProductId = None
    quantity: Optional[int] = Field(default=None, le=MAX_QUANTITY)


class BalanceUpdateRequest(BaseModel):
    balance: Optional[float] = Field(default=None, le=float(MAX_BALANCE))


class CartItemSchema(BaseModel):
    productId: str
    quantity: int


class CartMutationResponse(BaseModel):
    message: str
    cart: list[CartItemSchema]


class BalanceResponse(BaseModel):
    message: str
    balance: float


class CartLineSchema(BaseModel):
    productId: str
    name: str
    price: float
    quantity: int
    totalPrice: float


class CartResponse(BaseModel):
    cart: list[CartLineSchema]
    totalAmount: float


class OrderLineSchema(BaseModel):
    productId: str
    name: str
    quantity: int
    price: float


class OrderSchema(BaseModel):
    orderId: str
    userId: str
    products: list[OrderLineSchema]
    total: float


class CheckoutResponse(BaseModel):
    message: str
    order: OrderSchema
    remainingBalance: float


class ErrorResponse(BaseModel):
    error: str
    error_type: str


# --- Helper Functions ---


def get_ledger(request: Request) -> ShopLedger:
    """Get the ledger bound to the running app."""
    return request.app.state.ledger


def cart_to_schema(cart: list[CartLineItem]) -> list[CartItemSchema]:
    return [CartItemSchema(productId=line.product_id, quantity=line.quantity) for line in cart]


def cart_view_to_schema(view: CartView) -> CartResponse:
    return CartResponse(
        cart=[
            CartLineSchema(
                productId=line.product_id,
                name=line.name,
                price=money_to_json(line.price),
                quantity=line.quantity,
                totalPrice=money_to_json(line.total_price),
            )
            for line in view.lines
        ],
        totalAmount=money_to_json(view.total_amount),
    )


def checkout_to_schema(result: CheckoutResult) -> CheckoutResponse:
    order = result.order
    return CheckoutResponse(
        message="Order placed",
        order=OrderSchema(
            orderId=order.id,
            userId=order.user_id,
            products=[
                OrderLineSchema(
                    productId=line.product_id,
                    name=line.name,
                    quantity=line.quantity,
                    price=money_to_json(line.price),
                )
                for line in order.lines
            ],
            total=money_to_json(order.total),
        ),
        remainingBalance=money_to_json(result.remaining_balance),
    )


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    EmptyCartError: 400,
    UsernameTakenError: 400,
    InsufficientBalanceError: 400,
    NotFoundError: 404,
    UserNotFoundError: 404,
    ProductNotFoundError: 404,
    CartItemNotFoundError: 404,
    InvalidSchemaVersionError: 500,
}


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    msg = first.get("msg", "invalid value")
    return f"Invalid request: {loc}: {msg}" if loc else f"Invalid request: {msg}"


# --- FastAPI App ---


def create_app(settings: Settings | None = None, store: ShopStore | None = None) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Override settings (defaults to environment).
        store: Override the storage backend (for testing).
    """
    settings = settings or get_settings()
    if store is None:
        store = open_store(settings.STORE, settings.DATA_DIR)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("shop_api_starting", store=type(store).__name__)
        yield
        store.close()
        logger.info("shop_api_stopped")

    app = FastAPI(
        title="shopledger API",
        description="Users, catalog, carts, balances and checkout",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.ledger = ShopLedger(store, default_balance=settings.DEFAULT_BALANCE)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception Handlers ---

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
        """Map ShopError subclasses to appropriate HTTP responses."""
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        if status_code >= 500:
            logger.error("shop_error", error=str(exc), path=request.url.path)
            message = "Internal server error"
        else:
            message = str(exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": message, "error_type": type(exc).__name__},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": _describe_validation_error(exc),
                "error_type": "RequestValidationError",
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "error_type": "InternalError"},
        )

    # --- Endpoints ---

    @app.get("/health")
    def health_check(ledger: ShopLedger = Depends(get_ledger)):
        """Health check endpoint."""
        return {
            "status": "ok",
            "product_count": len(ledger.list_products()),
        }

    @app.get("/products", response_model=list[ProductSchema])
    def list_products(ledger: ShopLedger = Depends(get_ledger)):
        """List the catalog."""
        return [
            ProductSchema(id=p.id, name=p.name, price=money_to_json(p.price))
            for p in ledger.list_products()
        ]

    # --- User Endpoints ---

    @app.post(
        "/users/register",
        response_model=RegisterResponse,
        responses={400: {"model": ErrorResponse}},
    )
    def register_user(request: RegisterRequest, ledger: ShopLedger = Depends(get_ledger)):
        """Register a user with the default balance."""
        user = ledger.register(request.username)
        return RegisterResponse(
            message="User registered",
            userId=user.id,
            balance=money_to_json(user.balance),
        )

    @app.get(
        "/users/{user_id}/profile",
        response_model=ProfileResponse,
        responses={404: {"model": ErrorResponse}},
    )
    def get_profile(user_id: str, ledger: ShopLedger = Depends(get_ledger)):
        """Get username and balance."""
        user = ledger.get_profile(user_id)
        return ProfileResponse(username=user.username, balance=money_to_json(user.balance))

    @app.put(
        "/users/{user_id}/balance",
        response_model=BalanceResponse,
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def set_balance(
        user_id: str,
        request: BalanceUpdateRequest,
        ledger: ShopLedger = Depends(get_ledger),
    ):
        """Replace the user's balance."""
        balance = ledger.set_balance(user_id, request.balance)
        return BalanceResponse(message="Balance updated", balance=money_to_json(balance))

    # --- Cart Endpoints ---

    @app.get(
        "/users/{user_id}/cart",
        response_model=CartResponse,
        responses={404: {"model": ErrorResponse}},
    )
    def view_cart(user_id: str, ledger: ShopLedger = Depends(get_ledger)):
        """View the cart with product details and totals."""
        return cart_view_to_schema(ledger.view_cart(user_id))

    @app.post(
        "/users/{user_id}/cart",
        response_model=CartMutationResponse,
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def add_to_cart(
        user_id: str,
        request: CartAddRequest,
        ledger: ShopLedger = Depends(get_ledger),
    ):
        """Add a product to the cart, merging with an existing line."""
        cart = ledger.add_to_cart(user_id, request.productId, request.quantity)
        return CartMutationResponse(message="Product added to cart", cart=cart_to_schema(cart))

    @app.put(
        "/users/{user_id}/cart",
        response_model=CartMutationResponse,
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def update_cart(
        user_id: str,
        request: CartUpdateRequest,
        ledger: ShopLedger = Depends(get_ledger),
    ):
        """Set a cart line's quantity; 0 removes the line."""
        cart = ledger.set_cart_quantity(user_id, request.productId, request.quantity)
        return CartMutationResponse(message="Cart updated", cart=cart_to_schema(cart))

    @app.post(
        "/users/{user_id}/checkout",
        response_model=CheckoutResponse,
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def checkout(user_id: str, ledger: ShopLedger = Depends(get_ledger)):
        """Place an order for the whole cart."""
        return checkout_to_schema(ledger.checkout(user_id))

    return app


def build_default_app() -> FastAPI:
    """Build the app from environment settings, with logging configured."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    return create_app(settings)
