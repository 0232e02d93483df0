import httpx
import pytest

from checkout_service.config import Settings
from checkout_service.models import Buyer, ColorVariant, Product
from checkout_service.notifications import Notifier
from checkout_service.store import InMemoryStore

from .helpers import GatewayStub, RecordingEmailClient


@pytest.fixture
def settings():
    return Settings(
        payment_provider="paytr",
        frontend_url="http://shop.test",
        backend_url="http://api.shop.test",
        paytr_merchant_id="123456",
        paytr_merchant_key="merchant-key",
        paytr_merchant_salt="merchant-salt",
        shopier_api_key="shopier-key",
        shopier_api_secret="shopier-secret",
        iyzico_api_key="iyzico-key",
        iyzico_secret_key="iyzico-secret",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        seller_email="seller@shop.test",
        seller_name="Seller",
        log_file=None,
    )


@pytest.fixture
def buyer():
    return Buyer(id="u1", name="Ayşe Yılmaz", email="ayse@example.com")


@pytest.fixture
def store(buyer):
    store = InMemoryStore()
    store.add_user(buyer)
    store.add_product(Product(
        id="P1",
        name="Linen Shirt",
        price=10.0,
        stock=6,
        colors=[
            ColorVariant(productColorID="red", color="Kırmızı", colorStock=5),
            ColorVariant(productColorID="blue", color="Mavi", colorStock=1),
        ],
    ))
    store.add_product(Product(
        id="P2",
        name="Canvas Bag",
        price=25.5,
        stock=3,
        colors=[ColorVariant(productColorID="black", color="Siyah", colorStock=3)],
    ))
    return store


@pytest.fixture
def email_client():
    return RecordingEmailClient()


@pytest.fixture
def notifier(email_client, settings):
    return Notifier(email_client, settings)


@pytest.fixture
def gateway_stub():
    return GatewayStub()


@pytest.fixture
def http_client(gateway_stub):
    return httpx.AsyncClient(transport=httpx.MockTransport(gateway_stub))
