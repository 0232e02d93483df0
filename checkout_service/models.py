"""
models.py — Data Models for Checkout and Order Reconciliation

This module defines the data structures exchanged with the storefront, the
catalog/order store and the payment gateways. Field names follow the
storefront's JSON contract (camelCase).

Models:
    - CartLineItem: A single line of the submitted cart.
    - ShippingInfo: Delivery / invoice address snapshot.
    - CheckoutRequest: Body of POST /payment/checkout_session.
    - ColorVariant, Product: Catalog documents (read and decremented only).
    - Buyer: The authenticated user placing the order.
    - PaymentSession: Transient, provider-neutral payment request.
    - CheckoutRecord: Pending snapshot the webhook is reconciled against.
    - OrderItem, PaymentInfo, Order: The persisted order.
    - RawWebhook, WebhookData: Gateway callback before and after verification.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CartLineItem(BaseModel):
    """
    Represents a single cart line as submitted by the storefront.

    Attributes:
        product (str): Product id.
        productColorID (str): Identifier of the chosen color variant.
        name (str): Display name.
        price (float): Unit price in major currency units.
        amount (int): Quantity. Must be greater than zero.
        image (str | None): Image reference.
        color (str | None): Color label as shown to the buyer.
    """
    product: str
    productColorID: str
    name: str
    price: float = Field(..., ge=0)
    amount: int = Field(..., gt=0)
    image: Optional[str] = None
    color: Optional[str] = None


class ShippingInfo(BaseModel):
    fullName: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    zipCode: Optional[str] = None
    country: Optional[str] = "Turkey"
    phoneNo: Optional[str] = None
    email: Optional[str] = None


class CheckoutRequest(BaseModel):
    """
    Checkout payload sent by the storefront.

    `itemsPrice` is informational; the service recomputes it from the lines.
    """
    orderItems: List[CartLineItem] = Field(..., min_length=1)
    itemsPrice: Optional[float] = None
    taxAmount: float = Field(0.0, ge=0)
    shippingAmount: float = Field(0.0, ge=0)
    shippingInfo: ShippingInfo = Field(default_factory=ShippingInfo)
    shippingInvoiceInfo: Optional[ShippingInfo] = None


class ColorVariant(BaseModel):
    productColorID: str
    color: str
    colorStock: int = Field(..., ge=0)


class Product(BaseModel):
    id: str
    name: str
    price: float = 0.0
    stock: int = 0
    colors: List[ColorVariant] = Field(default_factory=list)

    def find_color(self, product_color_id: str) -> Optional[ColorVariant]:
        for variant in self.colors:
            if variant.productColorID == product_color_id:
                return variant
        return None


class Buyer(BaseModel):
    id: str
    name: str
    email: str


class BasketLine(BaseModel):
    """One basket snapshot entry: name, unit price in minor units, quantity."""
    name: str
    price: int
    amount: int

    def as_triple(self) -> Tuple[str, int, int]:
        return (self.name, self.price, self.amount)


class PaymentSession(BaseModel):
    """
    Provider-neutral payment request for a single checkout attempt.

    Never persisted; the gateway adapter turns it into the provider payload.

    Attributes:
        merchantOid (str): Correlation token, unique per attempt.
        paymentAmount (int): Total payable in minor currency units.
        basket (list[BasketLine]): Snapshot of the cart at checkout time.
        userIp (str): Buyer IP as seen by the service.
    """
    merchantOid: str
    buyer: Buyer
    userIp: str
    paymentAmount: int
    currency: str
    basket: List[BasketLine]
    items: List[CartLineItem]
    shippingInfo: ShippingInfo
    shippingInvoiceInfo: Optional[ShippingInfo] = None
    okUrl: str
    failUrl: str
    callbackUrl: str
    signature: Optional[str] = None


class OrderColor(BaseModel):
    productColorID: str
    color: Optional[str] = None
    amount: int = Field(..., gt=0)


class OrderItem(BaseModel):
    product: str
    name: str
    price: float
    amount: int
    image: Optional[str] = None
    colors: List[OrderColor] = Field(default_factory=list)


class CheckoutRecord(BaseModel):
    """
    Pending checkout snapshot keyed by the correlation token.

    Stored when the payment session is handed to the gateway; the webhook
    builds the order from it because most gateways only echo the token back.
    """
    merchantOid: str
    user: str
    provider: str
    orderItems: List[OrderItem]
    itemsPrice: float
    taxAmount: float = 0.0
    shippingAmount: float = 0.0
    totalAmount: float
    paymentAmount: int
    shippingInfo: ShippingInfo
    shippingInvoiceInfo: Optional[ShippingInfo] = None
    status: str = "pending"
    createdAt: datetime = Field(default_factory=utcnow)


class PaymentInfo(BaseModel):
    id: str
    status: str
    transactionId: Optional[str] = None


class Order(BaseModel):
    """
    Persisted order, created exactly once per successful payment.

    Attributes:
        merchantOid (str): Correlation token; unique across orders.
        buyerNotified, sellerNotified (bool): Set per recipient once its e-mail went out.
    """
    id: Optional[str] = None
    user: str
    merchantOid: str
    orderItems: List[OrderItem]
    shippingInfo: ShippingInfo
    shippingInvoiceInfo: Optional[ShippingInfo] = None
    itemsPrice: float
    taxAmount: float = 0.0
    shippingAmount: float = 0.0
    totalAmount: float
    paymentInfo: PaymentInfo
    paymentMethod: str
    orderStatus: str = "Processing"
    buyerNotified: bool = False
    sellerNotified: bool = False
    paidAt: datetime = Field(default_factory=utcnow)
    createdAt: datetime = Field(default_factory=utcnow)

    @property
    def notificationsSent(self) -> bool:
        return self.buyerNotified and self.sellerNotified


class RawWebhook(BaseModel):
    """
    Gateway callback as received.

    Attributes:
        body (bytes): Raw request body, needed by gateways that sign the body itself.
        headers (dict): Lower-cased request headers.
        fields (dict): Parsed form or JSON fields.
    """
    body: bytes = b""
    headers: Dict[str, str] = Field(default_factory=dict)
    fields: Dict[str, object] = Field(default_factory=dict)


class WebhookData(BaseModel):
    """
    Canonical, verified webhook content.

    Attributes:
        merchantOid (str): Correlation token echoed by the gateway.
        status (str): Normalized status, 'success' for a captured payment.
        totalAmount (int | None): Amount the gateway reports, minor units.
        transactionId (str | None): Gateway-side payment identifier.
    """
    merchantOid: str
    status: str
    totalAmount: Optional[int] = None
    transactionId: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == "success"
