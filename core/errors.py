"""
Error taxonomy for the order lifecycle and the structured result every
core operation returns instead of raising across the router boundary.
"""
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel


class StorefrontError(Exception):
    """Base class for recoverable order-lifecycle failures."""

    code = "storefront_error"
    status_code = 400
    redirect_to: Optional[str] = None
    # Shown to the user instead of the detailed message when set
    public_message: Optional[str] = None

    def __init__(self, message: str = "", **details: Any):
        self.message = message or self.code.replace("_", " ").capitalize()
        self.details = details
        super().__init__(self.message)


# --- Validation (bad input shape) ---

class ValidationError(StorefrontError):
    code = "validation_error"
    status_code = 400

    def __init__(self, message: str = "", field: Optional[str] = None, **details: Any):
        self.field = field
        super().__init__(message, **details)


class InvalidQuantity(ValidationError):
    code = "invalid_quantity"

    def __init__(self, quantity: Any):
        super().__init__(f"Quantity must be a non-negative integer, got {quantity!r}", field="qty", quantity=quantity)


class InsufficientStock(ValidationError):
    code = "insufficient_stock"

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__("Not enough stock", field="qty", product_id=product_id, requested=requested, available=available)


class UnknownPaymentMethod(ValidationError):
    code = "unknown_payment_method"

    def __init__(self, label: str):
        super().__init__(f"Unsupported payment method: {label}", field="payment_method", label=label)


# --- Preconditions (redirect the user to the step that needs completing) ---

class PreconditionError(StorefrontError):
    code = "precondition_failed"
    status_code = 400


class Unauthenticated(PreconditionError):
    code = "unauthenticated"
    status_code = 401
    redirect_to = "/sign-in"

    def __init__(self):
        super().__init__("User is not authenticated")


class EmptyCart(PreconditionError):
    code = "empty_cart"
    redirect_to = "/cart"

    def __init__(self):
        super().__init__("Your cart is empty")


class MissingAddress(PreconditionError):
    code = "missing_address"
    redirect_to = "/shipping-address"

    def __init__(self):
        super().__init__("Please add a shipping address")


class MissingPaymentMethod(PreconditionError):
    code = "missing_payment_method"
    redirect_to = "/payment-method"

    def __init__(self):
        super().__init__("Please select a payment method")


# --- Not found ---

class NotFoundError(StorefrontError):
    code = "not_found"
    status_code = 404


class OrderNotFound(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found", order_id=order_id)


class ProductNotFound(NotFoundError):
    code = "product_not_found"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Product not found", product_id=product_id)


# --- Conflicts (already in the desired or an incompatible state) ---

class ConflictError(StorefrontError):
    code = "conflict"
    status_code = 409


class AlreadyPaid(ConflictError):
    code = "already_paid"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order is already paid", order_id=order_id)


class NotPaid(ConflictError):
    code = "not_paid"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order is not paid", order_id=order_id)


class AlreadyDelivered(ConflictError):
    code = "already_delivered"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order is already delivered", order_id=order_id)


class CartChanged(ConflictError):
    code = "cart_changed"
    redirect_to = "/cart"

    def __init__(self):
        super().__init__("Your cart changed while placing the order, please review it")


# --- Payments ---

class PaymentVerificationFailed(StorefrontError):
    code = "payment_verification_failed"
    status_code = 402

    def __init__(self, reason: str, **details: Any):
        self.reason = reason
        super().__init__(f"Payment could not be verified: {reason}", **details)


class PaymentProviderError(StorefrontError):
    code = "payment_provider_error"
    status_code = 502
    public_message = "Payment provider is unavailable, please try again"

    def __init__(self, provider: str, status: Optional[int] = None, body: Any = None, message: str = ""):
        self.provider = provider
        self.status = status
        self.body = body
        msg = message or f"{provider} request failed" + (f" with status {status}" if status is not None else "")
        super().__init__(msg, provider=provider, status=status)


# --- Storage ---

class PersistenceError(StorefrontError):
    code = "persistence_error"
    status_code = 503
    public_message = "Something went wrong saving your request, please try again"


class OrderVanished(Exception):
    """An order disappeared inside a transaction that had just locked it.

    Not a StorefrontError: nothing can recover from it, so it propagates.
    """

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} vanished mid-transaction")


class ActionResult(BaseModel):
    success: bool
    message: str = ""
    code: Optional[str] = None
    redirect_to: Optional[str] = None
    data: Dict[str, Any] = {}

    @classmethod
    def ok(cls, message: str = "", redirect_to: Optional[str] = None, **data: Any) -> "ActionResult":
        return cls(success=True, message=message, redirect_to=redirect_to, data=data)

    @classmethod
    def fail(cls, err: StorefrontError) -> "ActionResult":
        data: Dict[str, Any] = {k: v for k, v in err.details.items() if v is not None}
        if isinstance(err, ValidationError) and err.field:
            data["field"] = err.field
        return cls(
            success=False,
            message=err.public_message or err.message,
            code=err.code,
            redirect_to=err.redirect_to,
            data=data,
        )

    def to_response(self, status_code: int = 200) -> JSONResponse:
        return JSONResponse(self.model_dump(mode="json"), status_code=status_code)


# HTTP status for each failure code, used when rendering a failed result
_STATUS_BY_CODE: Dict[str, int] = {}


def _register(cls) -> None:
    if "code" in cls.__dict__:
        _STATUS_BY_CODE[cls.code] = cls.status_code
    for sub in cls.__subclasses__():
        _register(sub)


_register(StorefrontError)


def result_response(result: ActionResult, success_status: int = 200) -> JSONResponse:
    if result.success:
        return result.to_response(success_status)
    return result.to_response(_STATUS_BY_CODE.get(result.code or "", 400))
