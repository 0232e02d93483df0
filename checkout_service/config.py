"""
config.py — Runtime Configuration for the Checkout Service

All credentials, URLs and switches are collected into a single `Settings`
object at startup and handed to the components that need them (gateway
adapters, store, e-mail transport). Nothing below the application factory
reads the environment on its own, so tests can build a `Settings` with fake
credentials directly.
"""

import os
from typing import Optional

from pydantic import BaseModel


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """
    Service settings.

    Attributes:
        payment_provider (str): Active gateway variant ('paytr', 'shopier', 'iyzico', 'stripe').
        frontend_url (str): Storefront origin, used for redirect URLs and CORS.
        backend_url (str): Public URL of this service, used for gateway callback URLs.
        currency (str): ISO 4217 currency code of all prices.
    """
    payment_provider: str = "paytr"
    frontend_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:5000"
    currency: str = "TRY"

    # PayTR
    paytr_merchant_id: str = ""
    paytr_merchant_key: str = ""
    paytr_merchant_salt: str = ""
    paytr_api_url: str = "https://www.paytr.com/odeme/api/get-token"
    paytr_test_mode: bool = True

    # Shopier
    shopier_api_key: str = ""
    shopier_api_secret: str = ""
    shopier_website_index: int = 1
    shopier_payment_url: str = "https://www.shopier.com/ShowProduct/api_pay4.php"

    # Iyzico
    iyzico_api_key: str = ""
    iyzico_secret_key: str = ""
    iyzico_base_url: str = "https://sandbox-api.iyzipay.com"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Buyer fields some gateways require but the storefront may not collect yet
    placeholder_user_name: str = "Test User"
    placeholder_user_address: str = "Test Address"
    placeholder_user_phone: str = "5555555555"

    # Persistence
    mongo_uri: str = "mongodb://localhost:27017"
    database_name: str = "shop"

    # E-mail
    email_transport: str = "brevo"
    brevo_api_key: str = ""
    brevo_api_url: str = "https://api.brevo.com/v3/smtp/email"
    mail_sender_email: str = "no-reply@example.com"
    mail_sender_name: str = "Shop"
    seller_email: str = "seller@example.com"
    seller_name: str = "Seller"
    rabbitmq_host: str = "localhost"
    rabbitmq_user: str = "guest"
    rabbitmq_password: str = "guest"
    mail_queue: str = "mail.outgoing"

    # Outbound HTTP
    http_connect_timeout: float = 5.0
    http_read_timeout: float = 8.0

    log_file: Optional[str] = "checkout_service.log"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Builds settings from process environment variables.

        Unset variables keep the defaults declared on the model.
        """
        env = os.environ
        defaults = cls()
        return cls(
            payment_provider=env.get("PAYMENT_PROVIDER", defaults.payment_provider).lower(),
            frontend_url=env.get("FRONTEND_URL", defaults.frontend_url),
            backend_url=env.get("BACKEND_URL", defaults.backend_url),
            currency=env.get("CURRENCY", defaults.currency),
            paytr_merchant_id=env.get("PAYTR_MERCHANT_ID", ""),
            paytr_merchant_key=env.get("PAYTR_MERCHANT_KEY", ""),
            paytr_merchant_salt=env.get("PAYTR_MERCHANT_SALT", ""),
            paytr_api_url=env.get("PAYTR_API_URL", defaults.paytr_api_url),
            paytr_test_mode=_env_bool("PAYTR_TEST_MODE", defaults.paytr_test_mode),
            shopier_api_key=env.get("SHOPIER_API_KEY", ""),
            shopier_api_secret=env.get("SHOPIER_API_SECRET", ""),
            shopier_website_index=int(env.get("SHOPIER_WEBSITE_INDEX", defaults.shopier_website_index)),
            shopier_payment_url=env.get("SHOPIER_PAYMENT_URL", defaults.shopier_payment_url),
            iyzico_api_key=env.get("IYZICO_API_KEY", ""),
            iyzico_secret_key=env.get("IYZICO_SECRET_KEY", ""),
            iyzico_base_url=env.get("IYZICO_BASE_URL", defaults.iyzico_base_url),
            stripe_secret_key=env.get("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET", ""),
            mongo_uri=env.get("MONGO_URI", defaults.mongo_uri),
            database_name=env.get("DATABASE_NAME", defaults.database_name),
            email_transport=env.get("EMAIL_TRANSPORT", defaults.email_transport).lower(),
            brevo_api_key=env.get("BREVO_API_KEY", ""),
            brevo_api_url=env.get("BREVO_API_URL", defaults.brevo_api_url),
            mail_sender_email=env.get("MAIL_SENDER_EMAIL", defaults.mail_sender_email),
            mail_sender_name=env.get("MAIL_SENDER_NAME", defaults.mail_sender_name),
            seller_email=env.get("SELLER_EMAIL", defaults.seller_email),
            seller_name=env.get("SELLER_NAME", defaults.seller_name),
            rabbitmq_host=env.get("RABBITMQ_HOST", defaults.rabbitmq_host),
            rabbitmq_user=env.get("RABBITMQ_USER", defaults.rabbitmq_user),
            rabbitmq_password=env.get("RABBITMQ_PASSWORD", defaults.rabbitmq_password),
            mail_queue=env.get("MAIL_QUEUE", defaults.mail_queue),
            http_connect_timeout=float(env.get("HTTP_CONNECT_TIMEOUT", defaults.http_connect_timeout)),
            http_read_timeout=float(env.get("HTTP_READ_TIMEOUT", defaults.http_read_timeout)),
            log_file=env.get("LOG_FILE", defaults.log_file) or None,
        )
