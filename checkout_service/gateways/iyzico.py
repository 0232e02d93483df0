"""
iyzico.py — iyzico Checkout Form Adapter

Checkout: JSON POST to the checkout-form initialize endpoint, authorized with
an IYZWSv2 header. Callback: JSON webhook whose `X-IYZ-SIGNATURE-V3` header
is a hex HMAC over the event fields.
"""

import base64
import json
import logging
import secrets
import time

from ..errors import GatewayError, InvalidSignatureError
from ..models import PaymentSession, RawWebhook, WebhookData
from ..signatures import HEX, hmac_digest, verify
from .base import PaymentGateway, major_units

log = logging.getLogger(__name__)

INITIALIZE_PATH = "/payment/iyzipos/checkoutform/initialize/auth/ecom"


class IyzicoGateway(PaymentGateway):
    name = "iyzico"
    payment_method = "Iyzico"

    def _address(self, info, fallback_name: str, fallback_address: str) -> dict:
        return {
            "contactName": info.fullName or fallback_name,
            "city": info.city or "Istanbul",
            "country": info.country or "Turkey",
            "address": info.address or fallback_address,
            "zipCode": info.zipCode or "",
        }

    def build_request(self, session: PaymentSession) -> dict:
        name, address, phone = self.buyer_contact(session)
        first_name, _, last_name = name.partition(" ")
        shipping = session.shippingInfo
        billing = session.shippingInvoiceInfo or shipping

        basket_items = []
        basket_total = 0
        for index, (item, line) in enumerate(zip(session.items, session.basket)):
            line_total = line.price * line.amount
            basket_total += line_total
            basket_items.append({
                "id": f"{item.product}-{item.productColorID}-{index}",
                "name": line.name,
                "category1": "General",
                "itemType": "PHYSICAL",
                "price": major_units(line_total),
            })

        return {
            "locale": "tr",
            "conversationId": session.merchantOid,
            "price": major_units(basket_total),
            "paidPrice": major_units(session.paymentAmount),
            "currency": session.currency,
            "basketId": session.merchantOid,
            "paymentGroup": "PRODUCT",
            "callbackUrl": session.okUrl,
            "enabledInstallments": [1],
            "buyer": {
                "id": session.buyer.id,
                "name": first_name,
                "surname": last_name or first_name,
                "gsmNumber": phone,
                "email": session.buyer.email,
                "identityNumber": "11111111111",
                "registrationAddress": address,
                "ip": session.userIp,
                "city": shipping.city or "Istanbul",
                "country": shipping.country or "Turkey",
            },
            "shippingAddress": self._address(shipping, name, address),
            "billingAddress": self._address(billing, name, address),
            "basketItems": basket_items,
        }

    def authorization_headers(self, uri_path: str, body: str) -> dict:
        """IYZWSv2 header: base64 of apiKey, random key and hex HMAC over random key + path + body."""
        s = self.settings
        random_key = f"{int(time.time() * 1000)}{secrets.token_hex(4)}"
        signature = hmac_digest(s.iyzico_secret_key, random_key, uri_path, body, encoding=HEX)
        auth = f"apiKey:{s.iyzico_api_key}&randomKey:{random_key}&signature:{signature}"
        return {
            "Authorization": "IYZWSv2 " + base64.b64encode(auth.encode("utf-8")).decode("ascii"),
            "x-iyzi-rnd": random_key,
            "Content-Type": "application/json",
        }

    async def create_checkout(self, session: PaymentSession) -> dict:
        body = json.dumps(self.build_request(session), ensure_ascii=False, separators=(",", ":"))
        headers = self.authorization_headers(INITIALIZE_PATH, body)
        session.signature = headers["Authorization"]
        response = await self._post(
            session.merchantOid,
            self.settings.iyzico_base_url.rstrip("/") + INITIALIZE_PATH,
            content=body.encode("utf-8"),
            headers=headers,
        )
        result = response.json()
        if result.get("status") != "success":
            message = result.get("errorMessage", "iyzico rejected the request")
            log.error(f"[Order: {session.merchantOid}] iyzico initialize failed: {message}")
            raise GatewayError(message, status_code=response.status_code)
        log.info(f"[Order: {session.merchantOid}] iyzico checkout form initialized.")
        return result

    def expected_signature(self, fields: dict) -> str:
        secret = self.settings.iyzico_secret_key
        return hmac_digest(
            secret,
            secret,
            fields.get("iyziEventType", ""),
            fields.get("iyziPaymentId", ""),
            fields.get("token", ""),
            fields.get("paymentConversationId", ""),
            fields.get("status", ""),
            encoding=HEX,
        )

    def verify_and_parse_webhook(self, raw: RawWebhook) -> WebhookData:
        fields = raw.fields
        supplied = (raw.headers.get("x-iyz-signature-v3") or "").lower()
        if not verify(self.expected_signature(fields), supplied):
            raise InvalidSignatureError("Invalid Hash")

        status = str(fields.get("status", "")).lower()
        payment_id = fields.get("iyziPaymentId")
        return WebhookData(
            merchantOid=str(fields.get("paymentConversationId", "")),
            status="success" if status == "success" else status or "failed",
            transactionId=str(payment_id) if payment_id else None,
        )
