"""
shopier.py — Shopier Payment Form Adapter

Shopier has no token endpoint: the buyer's browser posts a signed form
directly to Shopier. The adapter therefore returns the auto-submitting HTML
form instead of calling out. Callbacks are form posts signed over
random_nr + platform_order_id.
"""

import html
import logging
import secrets

from ..errors import InvalidSignatureError
from ..models import PaymentSession, RawWebhook, WebhookData
from ..signatures import hmac_digest, verify
from .base import PaymentGateway, major_units

log = logging.getLogger(__name__)

CURRENCY_CODES = {"TRY": "0", "USD": "1", "EUR": "2"}


class ShopierGateway(PaymentGateway):
    name = "shopier"
    payment_method = "Shopier"

    def build_request(self, session: PaymentSession, random_nr: str = None) -> dict:
        s = self.settings
        random_nr = random_nr or str(100000 + secrets.randbelow(900000))
        name, address, phone = self.buyer_contact(session)
        first_name, _, last_name = name.partition(" ")
        shipping = session.shippingInfo
        billing = session.shippingInvoiceInfo or shipping
        total = major_units(session.paymentAmount)
        currency = CURRENCY_CODES.get(session.currency, "0")

        data = {
            "API_key": s.shopier_api_key,
            "website_index": str(s.shopier_website_index),
            "platform_order_id": session.merchantOid,
            "product_name": ", ".join(line.name for line in session.basket)[:255],
            "product_type": "0",
            "buyer_name": first_name,
            "buyer_surname": last_name or first_name,
            "buyer_email": session.buyer.email,
            "buyer_account_age": "0",
            "buyer_id_nr": session.buyer.id,
            "buyer_phone": phone,
            "billing_address": billing.address or address,
            "billing_city": billing.city or "",
            "billing_country": billing.country or "Turkey",
            "billing_postcode": billing.zipCode or "",
            "shipping_address": shipping.address or address,
            "shipping_city": shipping.city or "",
            "shipping_country": shipping.country or "Turkey",
            "shipping_postcode": shipping.zipCode or "",
            "total_order_value": total,
            "currency": currency,
            "platform": "0",
            "is_in_frame": "0",
            "current_language": "0",
            "modul_version": "1.0.4",
            "random_nr": random_nr,
        }
        data["signature"] = hmac_digest(s.shopier_api_secret, random_nr, session.merchantOid, total, currency)
        return data

    def render_form(self, data: dict) -> str:
        inputs = "\n".join(
            f'<input type="hidden" name="{html.escape(key)}" value="{html.escape(str(value))}"/>'
            for key, value in data.items()
        )
        return (
            "<!doctype html>\n<html><body>\n"
            f'<form id="shopier_payment_form" method="post" action="{html.escape(self.settings.shopier_payment_url)}">\n'
            f"{inputs}\n</form>\n"
            '<script>document.getElementById("shopier_payment_form").submit();</script>\n'
            "</body></html>"
        )

    async def create_checkout(self, session: PaymentSession) -> str:
        data = self.build_request(session)
        session.signature = data["signature"]
        log.info(f"[Order: {session.merchantOid}] Shopier payment form prepared.")
        return self.render_form(data)

    def verify_and_parse_webhook(self, raw: RawWebhook) -> WebhookData:
        fields = raw.fields
        order_id = str(fields.get("platform_order_id", ""))
        random_nr = str(fields.get("random_nr", ""))
        expected = hmac_digest(self.settings.shopier_api_secret, random_nr, order_id)

        if not verify(expected, fields.get("signature")):
            raise InvalidSignatureError("Invalid Hash")

        status = str(fields.get("status", "")).lower()
        payment_id = fields.get("payment_id")
        return WebhookData(
            merchantOid=order_id,
            status="success" if status == "success" else status or "failed",
            transactionId=str(payment_id) if payment_id else None,
        )
