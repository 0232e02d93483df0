"""
errors.py — Exception Taxonomy of the Checkout Service

    • StockValidationError   (validation)      cart problems, returned in bulk, user-correctable
    • InvalidSignatureError  (authentication)  webhook hash mismatch, never retried from our side
    • PaymentFailedError     (outcome)         gateway reported the payment as not successful
    • GatewayError           (upstream)        gateway unreachable or request rejected
    • OrderNotFoundError     (data)            webhook refers to an unknown checkout
    • InsufficientStockError (data)            conditional stock decrement failed at commit time
    • DuplicateOrderError    (idempotency)     an order already exists for the correlation id
    • UserNotFoundError      (data)            order refers to an unknown buyer

The HTTP layer (main.py) is the only place these are turned into responses.
"""

from typing import List, Optional


class CheckoutError(Exception):
    """Base class for all domain errors raised by the service."""


class StockValidationError(CheckoutError):
    """
    Raised when one or more cart lines cannot be served from current stock.

    Attributes:
        errors (list): One entry per offending cart line.
    """
    def __init__(self, errors: List[dict]):
        super().__init__(f"{len(errors)} cart line(s) failed stock validation")
        self.errors = errors


class InvalidSignatureError(CheckoutError):
    """Webhook signature did not match the recomputed hash."""


class PaymentFailedError(CheckoutError):
    """Gateway reported a payment outcome other than success."""

    def __init__(self, correlation_id: str, status: str):
        super().__init__(f"Payment {correlation_id} reported status '{status}'")
        self.correlation_id = correlation_id
        self.status = status


class GatewayError(CheckoutError):
    """
    The payment gateway could not be reached or rejected the request.

    Attributes:
        status_code (int | None): Upstream HTTP status, if a response was received.
    """
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OrderNotFoundError(CheckoutError):
    """No checkout record exists for the correlation id carried by a webhook."""


class InsufficientStockError(CheckoutError):
    """A color variant no longer holds enough stock for a paid order line."""

    def __init__(self, product_id: str, product_color_id: str, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} color {product_color_id} (requested {requested})"
        )
        self.product_id = product_id
        self.product_color_id = product_color_id
        self.requested = requested


class DuplicateOrderError(CheckoutError):
    """An order for this correlation id has already been committed."""

    def __init__(self, merchant_oid: str):
        super().__init__(f"Order for {merchant_oid} already exists")
        self.merchant_oid = merchant_oid


class UserNotFoundError(CheckoutError):
    """The buyer referenced by an order no longer exists."""
