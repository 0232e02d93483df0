"""
Payment gateway adapters.

Only one adapter is active per deployment; `get_gateway` picks it from
`Settings.payment_provider`.
"""

from typing import Optional

import httpx

from ..config import Settings
from .base import PaymentGateway
from .iyzico import IyzicoGateway
from .paytr import PayTRGateway
from .shopier import ShopierGateway
from .stripe_checkout import StripeGateway

GATEWAYS = {
    PayTRGateway.name: PayTRGateway,
    ShopierGateway.name: ShopierGateway,
    IyzicoGateway.name: IyzicoGateway,
    StripeGateway.name: StripeGateway,
}


def get_gateway(settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> PaymentGateway:
    """
    Instantiates the configured gateway adapter.

    Raises:
        ValueError: If `settings.payment_provider` names no known gateway.
    """
    try:
        gateway_cls = GATEWAYS[settings.payment_provider]
    except KeyError:
        raise ValueError(
            f"Unknown payment provider '{settings.payment_provider}'. Choose one of: {', '.join(GATEWAYS)}"
        )
    return gateway_cls(settings, http_client)


__all__ = ["GATEWAYS", "PaymentGateway", "get_gateway"]
