"""
checkout.py — Checkout Session Creation

Workflow Overview:
1. Validate every cart line against live stock (all problems collected)
2. Build the provider-neutral payment session (amounts, correlation token, basket)
3. Store the pending checkout record the webhook will be reconciled against
4. Hand the session to the active gateway and return its answer unmodified
"""

import logging
import time
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .config import Settings
from .gateways import PaymentGateway
from .inventory import InventoryValidator
from .models import (
    BasketLine,
    Buyer,
    CheckoutRecord,
    CheckoutRequest,
    OrderColor,
    OrderItem,
    PaymentSession,
)
from .store import CommerceStore

log = logging.getLogger(__name__)


def to_minor_units(amount) -> int:
    """Major to minor currency units, rounding half up (19.995 -> 2000)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_merchant_oid() -> str:
    """Alphanumeric correlation token: millisecond timestamp plus random suffix."""
    return f"oid{int(time.time() * 1000)}{uuid.uuid4().hex[:8]}"


class PaymentRequestBuilder:
    """Turns a validated cart into a `PaymentSession` for the configured provider."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def build(self, request: CheckoutRequest, buyer: Buyer, user_ip: str,
              merchant_oid: Optional[str] = None) -> PaymentSession:
        s = self.settings
        merchant_oid = merchant_oid or generate_merchant_oid()

        items_price = sum(Decimal(str(item.price)) * item.amount for item in request.orderItems)
        if request.itemsPrice is not None and to_minor_units(request.itemsPrice) != to_minor_units(items_price):
            log.warning(
                f"[Order: {merchant_oid}] Client itemsPrice {request.itemsPrice} differs from cart total "
                f"{items_price}; using cart total."
            )
        total = items_price + Decimal(str(request.taxAmount)) + Decimal(str(request.shippingAmount))

        basket = [
            BasketLine(name=item.name, price=to_minor_units(item.price), amount=item.amount)
            for item in request.orderItems
        ]
        provider = s.payment_provider
        return PaymentSession(
            merchantOid=merchant_oid,
            buyer=buyer,
            userIp=user_ip,
            paymentAmount=to_minor_units(total),
            currency=s.currency,
            basket=basket,
            items=request.orderItems,
            shippingInfo=request.shippingInfo,
            shippingInvoiceInfo=request.shippingInvoiceInfo,
            okUrl=f"{s.frontend_url}/me/orders/{provider}-success",
            failUrl=f"{s.frontend_url}/me/orders/{provider}-fail",
            callbackUrl=f"{s.backend_url}/api/v1/payment/webhook",
        )


def checkout_record(session: PaymentSession, request: CheckoutRequest, provider: str) -> CheckoutRecord:
    """Pending snapshot of the session; prices are frozen at checkout time."""
    order_items = [
        OrderItem(
            product=item.product,
            name=item.name,
            price=item.price,
            amount=item.amount,
            image=item.image,
            colors=[OrderColor(productColorID=item.productColorID, color=item.color, amount=item.amount)],
        )
        for item in session.items
    ]
    items_price = sum(line.price * line.amount for line in session.basket) / 100
    return CheckoutRecord(
        merchantOid=session.merchantOid,
        user=session.buyer.id,
        provider=provider,
        orderItems=order_items,
        itemsPrice=items_price,
        taxAmount=request.taxAmount,
        shippingAmount=request.shippingAmount,
        totalAmount=session.paymentAmount / 100,
        paymentAmount=session.paymentAmount,
        shippingInfo=session.shippingInfo,
        shippingInvoiceInfo=session.shippingInvoiceInfo,
    )


class CheckoutService:
    def __init__(self, store: CommerceStore, gateway: PaymentGateway, settings: Settings):
        self.store = store
        self.gateway = gateway
        self.settings = settings
        self.validator = InventoryValidator(store)
        self.builder = PaymentRequestBuilder(settings)

    async def start_checkout(self, request: CheckoutRequest, buyer: Buyer, user_ip: str):
        """
        Runs the checkout for one cart.

        Returns:
            dict | str: The gateway's response body (token JSON or payment form HTML).
        Raises:
            StockValidationError: If any cart line cannot be served.
            GatewayError: If the gateway is unreachable or rejects the request.
        """
        log.info(f"Checkout requested by user {buyer.id} with {len(request.orderItems)} line(s).")
        await self.validator.validate(request.orderItems)

        session = self.builder.build(request, buyer, user_ip)
        log_prefix = f"[Order: {session.merchantOid}]"
        log.info(f"{log_prefix} Payment session built: {session.paymentAmount} minor units via {self.gateway.name}.")

        await self.store.save_checkout(checkout_record(session, request, self.gateway.name))

        try:
            response = await self.gateway.create_checkout(session)
        except Exception:
            await self.store.set_checkout_status(session.merchantOid, "gateway_error")
            raise

        log.info(f"{log_prefix} Handed over to {self.gateway.name}.")
        return response
