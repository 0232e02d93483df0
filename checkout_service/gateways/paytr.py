"""
paytr.py — PayTR iFrame API Adapter

Checkout: form-encoded POST to the get-token endpoint, signed with
`paytr_token`. Callback: form-encoded POST carrying `hash`; PayTR expects the
literal body "OK" once the callback was handled.
"""

import base64
import json
import logging

from ..errors import GatewayError, InvalidSignatureError
from ..models import PaymentSession, RawWebhook, WebhookData
from ..signatures import hmac_digest, verify
from .base import PaymentGateway

log = logging.getLogger(__name__)

CURRENCY_CODES = {"TRY": "TL"}


class PayTRGateway(PaymentGateway):
    name = "paytr"
    payment_method = "PayTR"

    def encode_basket(self, session: PaymentSession) -> str:
        basket = [line.as_triple() for line in session.basket]
        raw = json.dumps(basket, ensure_ascii=False, separators=(",", ":"))
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def build_request(self, session: PaymentSession) -> dict:
        """Maps the session to PayTR fields and attaches `paytr_token`."""
        s = self.settings
        user_name, user_address, user_phone = self.buyer_contact(session)
        data = {
            "merchant_id": s.paytr_merchant_id,
            "user_ip": session.userIp,
            "merchant_oid": session.merchantOid,
            "email": session.buyer.email,
            "payment_amount": str(session.paymentAmount),
            "user_basket": self.encode_basket(session),
            "no_installment": "0",
            "max_installment": "0",
            "currency": CURRENCY_CODES.get(session.currency, session.currency),
            "test_mode": "1" if s.paytr_test_mode else "0",
            "merchant_ok_url": session.okUrl,
            "merchant_fail_url": session.failUrl,
            "user_name": user_name,
            "user_address": user_address,
            "user_phone": user_phone,
            "timeout_limit": "30",
            "debug_on": "1" if s.paytr_test_mode else "0",
            "lang": "tr",
        }
        data["paytr_token"] = hmac_digest(
            s.paytr_merchant_key,
            data["merchant_id"],
            data["user_ip"],
            data["merchant_oid"],
            data["email"],
            data["payment_amount"],
            data["user_basket"],
            data["no_installment"],
            data["max_installment"],
            data["currency"],
            data["test_mode"],
            s.paytr_merchant_salt,
        )
        return data

    async def create_checkout(self, session: PaymentSession) -> dict:
        data = self.build_request(session)
        session.signature = data["paytr_token"]
        response = await self._post(session.merchantOid, self.settings.paytr_api_url, data=data)
        body = response.json()
        if body.get("status") != "success":
            reason = body.get("reason", "PayTR rejected the request")
            log.error(f"[Order: {session.merchantOid}] PayTR token request failed: {reason}")
            raise GatewayError(reason, status_code=response.status_code)
        log.info(f"[Order: {session.merchantOid}] PayTR token received.")
        return body

    def expected_hash(self, merchant_oid: str, status: str, total_amount: str) -> str:
        s = self.settings
        return hmac_digest(s.paytr_merchant_key, merchant_oid, s.paytr_merchant_salt, status, total_amount)

    def verify_and_parse_webhook(self, raw: RawWebhook) -> WebhookData:
        fields = raw.fields
        merchant_oid = str(fields.get("merchant_oid", ""))
        status = str(fields.get("status", ""))
        total_amount = str(fields.get("total_amount", ""))

        if not verify(self.expected_hash(merchant_oid, status, total_amount), fields.get("hash")):
            raise InvalidSignatureError("Invalid Hash")

        return WebhookData(
            merchantOid=merchant_oid,
            status="success" if status == "success" else status or "failed",
            totalAmount=int(total_amount) if total_amount.isdigit() else None,
            transactionId=merchant_oid,
        )

    def acknowledgement(self) -> str:
        return "OK"
