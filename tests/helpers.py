import json
from urllib.parse import parse_qs

import httpx

from checkout_service.signatures import hmac_digest


class RecordingEmailClient:
    """Collects e-mails instead of sending them; can be told to fail, for everyone or per recipient."""

    def __init__(self):
        self.sent = []
        self.fail_with = None
        self.fail_for = set()

    async def send(self, email, subject, message, name):
        if self.fail_with is not None:
            raise self.fail_with
        if email in self.fail_for:
            raise RuntimeError(f"mailbox {email} unavailable")
        self.sent.append({"email": email, "subject": subject, "message": message, "name": name})
        return {"messageId": str(len(self.sent))}

    async def close(self):
        pass


class GatewayStub:
    """httpx.MockTransport handler standing in for the payment provider."""

    def __init__(self):
        self.requests = []
        self.response = httpx.Response(200, json={"status": "success", "token": "tok123"})
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    def last_form(self) -> dict:
        body = self.requests[-1].content.decode("utf-8")
        return {k: v[0] for k, v in parse_qs(body, keep_blank_values=True).items()}

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def paytr_callback(settings, merchant_oid, status="success", total_amount="2000", hash_value=None):
    """Form fields of a PayTR callback, signed unless `hash_value` is given."""
    fields = {
        "merchant_oid": merchant_oid,
        "status": status,
        "total_amount": total_amount,
        "payment_type": "card",
        "currency": "TL",
    }
    fields["hash"] = hash_value or hmac_digest(
        settings.paytr_merchant_key, merchant_oid, settings.paytr_merchant_salt, status, total_amount
    )
    return fields
