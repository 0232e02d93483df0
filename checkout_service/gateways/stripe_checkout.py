"""
stripe_checkout.py — Stripe Checkout Adapter

Kept for deployments that select PAYMENT_PROVIDER=stripe. Sessions are
created and webhook events authenticated with the stripe library; the
correlation token doubles as Stripe idempotency key.
"""

import logging

import stripe

from ..errors import GatewayError, InvalidSignatureError
from ..models import PaymentSession, RawWebhook, WebhookData
from .base import PaymentGateway

log = logging.getLogger(__name__)

COMPLETED_EVENT = "checkout.session.completed"


def _field(obj, key):
    """Item access that works on StripeObjects and plain dicts alike."""
    if obj is None or key not in obj:
        return None
    return obj[key]


class StripeGateway(PaymentGateway):
    name = "stripe"
    payment_method = "Card"

    def build_request(self, session: PaymentSession) -> dict:
        return {
            "mode": "payment",
            "success_url": session.okUrl,
            "cancel_url": session.failUrl,
            "customer_email": session.buyer.email,
            "client_reference_id": session.merchantOid,
            "metadata": {"merchant_oid": session.merchantOid, "user": session.buyer.id},
            "line_items": [
                {
                    "quantity": line.amount,
                    "price_data": {
                        "currency": session.currency.lower(),
                        "unit_amount": line.price,
                        "product_data": {"name": line.name},
                    },
                }
                for line in session.basket
            ],
        }

    async def create_checkout(self, session: PaymentSession) -> dict:
        log_prefix = f"[Order: {session.merchantOid}]"
        try:
            checkout = await stripe.checkout.Session.create_async(
                api_key=self.settings.stripe_secret_key,
                idempotency_key=session.merchantOid,
                **self.build_request(session),
            )
        except stripe.StripeError as e:
            message = e.user_message or str(e)
            log.error(f"{log_prefix} Stripe rejected checkout session ({type(e).__name__}): {message}")
            raise GatewayError(message, status_code=e.http_status)

        log.info(f"{log_prefix} Stripe checkout session {checkout['id']} created.")
        return {"id": checkout["id"], "url": checkout["url"]}

    def verify_and_parse_webhook(self, raw: RawWebhook) -> WebhookData:
        signature = raw.headers.get("stripe-signature", "")
        try:
            event = stripe.Webhook.construct_event(raw.body, signature, self.settings.stripe_webhook_secret)
        except stripe.SignatureVerificationError as e:
            log.warning(f"Stripe webhook signature rejected: {e}")
            raise InvalidSignatureError("Invalid Hash")
        except ValueError as e:
            log.warning(f"Stripe webhook payload unreadable: {e}")
            raise InvalidSignatureError("Invalid Hash")

        event_type = _field(event, "type")
        obj = _field(_field(event, "data"), "object")
        paid = event_type == COMPLETED_EVENT and _field(obj, "payment_status") == "paid"
        merchant_oid = _field(obj, "client_reference_id") or _field(_field(obj, "metadata"), "merchant_oid")
        return WebhookData(
            merchantOid=merchant_oid or "",
            status="success" if paid else str(event_type),
            totalAmount=_field(obj, "amount_total"),
            transactionId=_field(obj, "payment_intent"),
        )
