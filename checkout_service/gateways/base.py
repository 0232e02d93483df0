"""
base.py — Gateway Adapter Interface

Each payment provider gets one adapter that turns the provider-neutral
`PaymentSession` into the provider's request format and turns the provider's
callback back into a verified `WebhookData`. The rest of the service never
sees provider field names.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, Union

import httpx

from ..config import Settings
from ..errors import GatewayError
from ..models import PaymentSession, RawWebhook, WebhookData

log = logging.getLogger(__name__)

CheckoutResponse = Union[dict, str]


class PaymentGateway(ABC):
    """
    Capability set shared by all providers.

    Attributes:
        name (str): Configuration key of the provider.
        payment_method (str): Label stored on orders paid through this provider.
    """
    name = ""
    payment_method = ""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.http_client = http_client

    @abstractmethod
    async def create_checkout(self, session: PaymentSession) -> CheckoutResponse:
        """
        Starts the payment at the provider.

        Returns:
            dict | str: Provider response body (JSON) or HTML form content, unmodified.
        Raises:
            GatewayError: If the provider cannot be reached or rejects the request.
        """

    @abstractmethod
    def verify_and_parse_webhook(self, raw: RawWebhook) -> WebhookData:
        """
        Authenticates a provider callback and maps it to canonical fields.

        Raises:
            InvalidSignatureError: If the callback signature does not match.
        """

    def acknowledgement(self) -> CheckoutResponse:
        """Body returned to the provider after a callback was processed."""
        return {"success": True}

    # --- helpers shared by the adapters ---

    def buyer_contact(self, session: PaymentSession) -> Tuple[str, str, str]:
        """
        Name, address and phone the provider requires for the buyer.

        Missing values fall back to the configured placeholders. Production
        traffic should never hit the fallback; it is logged when it does.
        """
        shipping = session.shippingInfo
        address = ", ".join(part for part in (shipping.address, shipping.city) if part)

        name = shipping.fullName or session.buyer.name
        placeholders: List[str] = []
        if not name:
            name = self.settings.placeholder_user_name
            placeholders.append("name")
        if not address:
            address = self.settings.placeholder_user_address
            placeholders.append("address")
        phone = shipping.phoneNo
        if not phone:
            phone = self.settings.placeholder_user_phone
            placeholders.append("phone")

        if placeholders:
            log.warning(
                f"[Order: {session.merchantOid}] Placeholder buyer data sent to {self.name}: {', '.join(placeholders)}"
            )
        return name, address, phone

    async def _post(self, merchant_oid: str, url: str, **kwargs) -> httpx.Response:
        """POSTs to the provider and maps transport/HTTP failures to GatewayError."""
        if self.http_client is None:
            raise GatewayError(f"No HTTP client configured for {self.name}")
        try:
            response = await self.http_client.post(url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            message = _upstream_message(e.response)
            log.error(f"[Order: {merchant_oid}] {self.name} HTTP {e.response.status_code}: {message}")
            raise GatewayError(message, status_code=e.response.status_code)
        except httpx.TransportError as e:
            log.error(f"[Order: {merchant_oid}] {self.name} not reachable: {e!r}")
            raise GatewayError(str(e) or type(e).__name__)


def _upstream_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        for key in ("reason", "errorMessage", "message"):
            if body.get(key):
                return str(body[key])
    return response.text


def major_units(amount_minor: int) -> str:
    """Formats a minor-unit amount as a decimal string, e.g. 2050 -> '20.50'."""
    return f"{amount_minor // 100}.{amount_minor % 100:02d}"
