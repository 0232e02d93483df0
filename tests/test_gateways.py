import base64
import hashlib
import hmac
import json
import time

import httpx
import pytest
import stripe

from checkout_service.checkout import PaymentRequestBuilder
from checkout_service.errors import GatewayError, InvalidSignatureError
from checkout_service.gateways import get_gateway
from checkout_service.gateways.iyzico import INITIALIZE_PATH, IyzicoGateway
from checkout_service.gateways.paytr import PayTRGateway
from checkout_service.gateways.shopier import ShopierGateway
from checkout_service.gateways.stripe_checkout import StripeGateway
from checkout_service.models import CartLineItem, CheckoutRequest, RawWebhook, ShippingInfo
from checkout_service.signatures import HEX, hmac_digest

from .helpers import paytr_callback


@pytest.fixture
def session(settings, buyer):
    request = CheckoutRequest(
        orderItems=[
            CartLineItem(product="P1", productColorID="red", name="Linen Shirt", price=10.0, amount=2),
            CartLineItem(product="P2", productColorID="black", name="Canvas Bag", price=25.5, amount=1),
        ],
        shippingInfo=ShippingInfo(fullName="Ayşe Yılmaz", address="Bağdat Cd. 1", city="İstanbul",
                                  zipCode="34728", phoneNo="5321234567"),
    )
    return PaymentRequestBuilder(settings).build(request, buyer, "10.0.0.1", merchant_oid="oid100")


def test_get_gateway_by_configuration(settings):
    assert isinstance(get_gateway(settings), PayTRGateway)
    for name, cls in [("shopier", ShopierGateway), ("iyzico", IyzicoGateway), ("stripe", StripeGateway)]:
        assert isinstance(get_gateway(settings.model_copy(update={"payment_provider": name})), cls)


def test_unknown_gateway_is_rejected(settings):
    with pytest.raises(ValueError, match="Unknown payment provider"):
        get_gateway(settings.model_copy(update={"payment_provider": "paypal"}))


# --- PayTR ---

def test_paytr_webhook_success(settings):
    gateway = PayTRGateway(settings)
    data = gateway.verify_and_parse_webhook(RawWebhook(fields=paytr_callback(settings, "oid100")))
    assert data.merchantOid == "oid100"
    assert data.is_success
    assert data.totalAmount == 2000
    assert gateway.acknowledgement() == "OK"


def test_paytr_webhook_failed_status_is_parsed(settings):
    data = PayTRGateway(settings).verify_and_parse_webhook(
        RawWebhook(fields=paytr_callback(settings, "oid100", status="failed"))
    )
    assert not data.is_success


def test_paytr_webhook_tampered_amount(settings):
    fields = paytr_callback(settings, "oid100")
    fields["total_amount"] = "1"
    with pytest.raises(InvalidSignatureError):
        PayTRGateway(settings).verify_and_parse_webhook(RawWebhook(fields=fields))


def test_paytr_webhook_signed_with_salt_only_is_rejected(settings):
    forged = hmac_digest(settings.paytr_merchant_salt, "oid100", settings.paytr_merchant_salt, "success", "2000")
    with pytest.raises(InvalidSignatureError):
        PayTRGateway(settings).verify_and_parse_webhook(
            RawWebhook(fields=paytr_callback(settings, "oid100", hash_value=forged))
        )


# --- Shopier ---

@pytest.mark.asyncio
async def test_shopier_returns_signed_form(settings, session):
    gateway = ShopierGateway(settings)
    data = gateway.build_request(session, random_nr="123456")

    assert data["total_order_value"] == "45.50"
    assert data["currency"] == "0"
    assert data["buyer_name"] == "Ayşe"
    assert data["buyer_surname"] == "Yılmaz"
    assert data["signature"] == hmac_digest(settings.shopier_api_secret, "123456", "oid100", "45.50", "0")

    form = await gateway.create_checkout(session)
    assert settings.shopier_payment_url in form
    assert 'name="platform_order_id" value="oid100"' in form
    assert session.signature is not None


def test_shopier_callback(settings):
    gateway = ShopierGateway(settings)
    fields = {
        "platform_order_id": "oid100",
        "status": "success",
        "payment_id": "987",
        "installment": "0",
        "random_nr": "654321",
        "signature": hmac_digest(settings.shopier_api_secret, "654321", "oid100"),
    }
    data = gateway.verify_and_parse_webhook(RawWebhook(fields=fields))
    assert data.merchantOid == "oid100"
    assert data.is_success
    assert data.transactionId == "987"

    fields["platform_order_id"] = "oid101"
    with pytest.raises(InvalidSignatureError):
        gateway.verify_and_parse_webhook(RawWebhook(fields=fields))


# --- iyzico ---

@pytest.mark.asyncio
async def test_iyzico_initialize_request(settings, session, gateway_stub, http_client):
    gateway_stub.response = httpx.Response(
        200, json={"status": "success", "token": "t1", "checkoutFormContent": "<script></script>"}
    )
    gateway = IyzicoGateway(settings, http_client)

    result = await gateway.create_checkout(session)

    assert result["token"] == "t1"
    request = gateway_stub.requests[-1]
    assert request.url.path == INITIALIZE_PATH
    body = gateway_stub.last_json()
    assert body["conversationId"] == "oid100"
    assert body["price"] == "45.50"
    assert body["paidPrice"] == "45.50"
    assert [item["price"] for item in body["basketItems"]] == ["20.00", "25.50"]

    random_key = request.headers["x-iyzi-rnd"]
    expected_signature = hmac_digest(
        settings.iyzico_secret_key, random_key, INITIALIZE_PATH, request.content.decode("utf-8"), encoding=HEX
    )
    assert request.headers["authorization"].startswith("IYZWSv2 ")
    decoded = base64.b64decode(request.headers["authorization"][len("IYZWSv2 "):]).decode()
    assert decoded == f"apiKey:{settings.iyzico_api_key}&randomKey:{random_key}&signature:{expected_signature}"


@pytest.mark.asyncio
async def test_iyzico_failure_response(settings, session, gateway_stub, http_client):
    gateway_stub.response = httpx.Response(200, json={"status": "failure", "errorMessage": "Invalid request"})
    with pytest.raises(GatewayError, match="Invalid request"):
        await IyzicoGateway(settings, http_client).create_checkout(session)


def test_iyzico_webhook(settings):
    fields = {
        "paymentConversationId": "oid100",
        "merchantId": 1,
        "token": "t1",
        "status": "SUCCESS",
        "iyziReferenceCode": "ref",
        "iyziEventType": "CHECKOUT_FORM_AUTH",
        "iyziEventTime": 1700000000000,
        "iyziPaymentId": 555,
    }
    secret = settings.iyzico_secret_key
    signature = hmac_digest(secret, secret, "CHECKOUT_FORM_AUTH", 555, "t1", "oid100", "SUCCESS", encoding=HEX)
    gateway = IyzicoGateway(settings)

    data = gateway.verify_and_parse_webhook(RawWebhook(fields=fields, headers={"x-iyz-signature-v3": signature}))
    assert data.merchantOid == "oid100"
    assert data.is_success
    assert data.transactionId == "555"

    with pytest.raises(InvalidSignatureError):
        gateway.verify_and_parse_webhook(RawWebhook(fields={**fields, "status": "FAILURE"},
                                                    headers={"x-iyz-signature-v3": signature}))


# --- Stripe ---

def _stripe_header(secret: str, payload: bytes) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode() + payload
    return f"t={timestamp},v1={hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()}"


def _stripe_event(status="paid"):
    return json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1",
            "object": "checkout.session",
            "client_reference_id": "oid100",
            "payment_status": status,
            "amount_total": 4550,
            "payment_intent": "pi_1",
            "metadata": {"merchant_oid": "oid100"},
        }},
    }).encode()


def test_stripe_webhook(settings):
    payload = _stripe_event()
    raw = RawWebhook(body=payload, headers={"stripe-signature": _stripe_header(settings.stripe_webhook_secret, payload)})

    data = StripeGateway(settings).verify_and_parse_webhook(raw)

    assert data.merchantOid == "oid100"
    assert data.is_success
    assert data.totalAmount == 4550
    assert data.transactionId == "pi_1"


def test_stripe_unpaid_session_is_not_success(settings):
    payload = _stripe_event(status="unpaid")
    raw = RawWebhook(body=payload, headers={"stripe-signature": _stripe_header(settings.stripe_webhook_secret, payload)})
    assert not StripeGateway(settings).verify_and_parse_webhook(raw).is_success


def test_stripe_bad_signature(settings):
    payload = _stripe_event()
    raw = RawWebhook(body=payload, headers={"stripe-signature": _stripe_header("whsec_other", payload)})
    with pytest.raises(InvalidSignatureError):
        StripeGateway(settings).verify_and_parse_webhook(raw)


def test_stripe_reference_falls_back_to_metadata(settings):
    event = json.loads(_stripe_event())
    event["data"]["object"]["client_reference_id"] = None
    event["type"] = "checkout.session.expired"
    payload = json.dumps(event).encode()
    raw = RawWebhook(body=payload, headers={"stripe-signature": _stripe_header(settings.stripe_webhook_secret, payload)})

    data = StripeGateway(settings).verify_and_parse_webhook(raw)

    assert data.merchantOid == "oid100"
    assert data.status == "checkout.session.expired"
    assert not data.is_success


@pytest.mark.asyncio
async def test_stripe_session_request(settings, session, monkeypatch):
    calls = []

    async def create_async(**params):
        calls.append(params)
        return {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1", "object": "checkout.session"}

    monkeypatch.setattr(stripe.checkout.Session, "create_async", create_async)

    result = await StripeGateway(settings).create_checkout(session)

    assert result == {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}
    params = calls[0]
    assert params["api_key"] == settings.stripe_secret_key
    assert params["idempotency_key"] == "oid100"
    assert params["client_reference_id"] == "oid100"
    assert params["line_items"][1]["price_data"]["unit_amount"] == 2550
    assert params["line_items"][0]["quantity"] == 2
    assert params["line_items"][0]["price_data"]["currency"] == "try"


@pytest.mark.asyncio
async def test_stripe_error_message_is_extracted(settings, session, monkeypatch):
    async def create_async(**params):
        raise stripe.InvalidRequestError("Invalid currency", param="currency", http_status=400)

    monkeypatch.setattr(stripe.checkout.Session, "create_async", create_async)

    with pytest.raises(GatewayError, match="Invalid currency") as excinfo:
        await StripeGateway(settings).create_checkout(session)
    assert excinfo.value.status_code == 400
