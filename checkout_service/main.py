"""
main.py — FastAPI Entry Point for the Checkout Service

This module provides the REST API between the storefront, the payment gateway
and the checkout/reconciliation workflows.

Responsibilities:
    • Accept checkout requests from authenticated buyers
    • Receive gateway webhooks and reconcile them into orders
    • Wire store, gateway adapter and e-mail transport from configuration
    • Provide system health information
"""

import json
from typing import Optional
from urllib.parse import parse_qs

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from .checkout import CheckoutService
from .clients import get_email_client
from .config import Settings
from .errors import (
    GatewayError,
    InvalidSignatureError,
    OrderNotFoundError,
    PaymentFailedError,
    StockValidationError,
    UserNotFoundError,
)
from .gateways import get_gateway
from .logging_config import get_logger, setup_logging
from .models import Buyer, CheckoutRequest, RawWebhook
from .notifications import Notifier
from .store import CommerceStore, MongoStore
from .workflow import PaymentWorkflow

log = get_logger(__name__)


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, otherwise the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


async def read_webhook(request: Request) -> RawWebhook:
    """Keeps the raw body for signature checks and parses form or JSON fields."""
    body = await request.body()
    headers = {key.lower(): value for key, value in request.headers.items()}
    content_type = headers.get("content-type", "")

    fields = {}
    text = body.decode("utf-8", errors="replace")
    if "json" in content_type:
        try:
            parsed = json.loads(text or "{}")
            fields = parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            log.warning("Webhook body announced as JSON could not be parsed.")
    else:
        fields = {key: values[0] for key, values in parse_qs(text, keep_blank_values=True).items()}
    return RawWebhook(body=body, headers=headers, fields=fields)


async def get_current_user(request: Request, x_user_id: Optional[str] = Header(None)) -> Buyer:
    """
    Resolves the authenticated buyer.

    Authentication itself happens upstream; the authentication layer forwards
    the user id in `X-User-Id`. Unknown or missing ids are rejected with 401.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Login first to access this resource")
    buyer = await request.app.state.store.get_user(x_user_id)
    if buyer is None:
        raise HTTPException(status_code=401, detail="Login first to access this resource")
    return buyer


def create_app(
        settings: Optional[Settings] = None,
        store: Optional[CommerceStore] = None,
        email_client=None,
        http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Builds the application.

    Collaborators that are not passed in are created at startup from
    `settings`: a MongoStore, a shared httpx client with the configured
    timeouts and the configured e-mail transport.

    Raises:
        ValueError: If the configured payment provider or e-mail transport is unknown.
    """
    settings = settings or Settings.from_env()
    app = FastAPI(title="Storefront Checkout Service")
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Fail at build time, not on the first request
    get_gateway(settings)

    @app.on_event("startup")
    async def on_startup():
        """
        Creates the shared HTTP client, the store and the e-mail transport,
        then wires the checkout service and the webhook workflow.
        """
        log.info("Checkout service starting...")
        state = app.state
        state.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_connect_timeout, read=settings.http_read_timeout)
        )
        if store is None:
            mongo_store = MongoStore(settings.mongo_uri, settings.database_name)
            await mongo_store.ensure_indexes()
            state.store = mongo_store
        else:
            state.store = store
        state.email_client = email_client or get_email_client(settings, state.http_client)

        gateway = get_gateway(settings, state.http_client)
        state.checkout = CheckoutService(state.store, gateway, settings)
        state.workflow = PaymentWorkflow(state.store, gateway, Notifier(state.email_client, settings))
        log.info(f"Active payment provider: {gateway.name}.")

    @app.on_event("shutdown")
    async def on_shutdown():
        state = app.state
        if email_client is None:
            await state.email_client.close()
        if store is None:
            await state.store.close()
        if http_client is None:
            await state.http_client.aclose()
        log.info("Checkout service stopped.")

    # API Endpoint: Storefront → Checkout
    @app.post("/api/v1/payment/checkout_session")
    async def checkout_session(
            body: CheckoutRequest,
            request: Request,
            buyer: Buyer = Depends(get_current_user),
    ):
        """
        Validates the cart and starts a payment at the active gateway.

        Returns:
            The gateway's response: token JSON or an HTML payment form.
            400 {"success": false, "errors": [...]} when stock validation fails.
            500 {"success": false, "message": ...} when the gateway fails.
        """
        try:
            result = await request.app.state.checkout.start_checkout(body, buyer, client_ip(request))
        except StockValidationError as e:
            return JSONResponse(status_code=400, content={"success": False, "errors": e.errors})
        except GatewayError as e:
            return JSONResponse(status_code=500, content={"success": False, "message": str(e)})

        if isinstance(result, str):
            return HTMLResponse(result)
        return result

    # API Endpoint: Gateway → Webhook
    @app.post("/api/v1/payment/webhook")
    async def payment_webhook(request: Request):
        """
        Receives the gateway callback. Trust comes from the signature only.

        Returns:
            200 with the gateway's acknowledgement ("OK" or {"success": true}).
            400 on invalid signature, failed payment or processing errors.
            404 when the checkout or buyer cannot be found.
        """
        raw = await read_webhook(request)
        try:
            ack = await request.app.state.workflow.reconcile_webhook(raw)
        except InvalidSignatureError:
            return PlainTextResponse("Invalid Hash", status_code=400)
        except PaymentFailedError:
            return PlainTextResponse("Payment Failed", status_code=400)
        except (OrderNotFoundError, UserNotFoundError) as e:
            return PlainTextResponse(str(e), status_code=404)
        except Exception as e:
            log.error(f"Webhook processing failed: {e}")
            return PlainTextResponse(f"Webhook Error: {e}", status_code=400)

        if isinstance(ack, str):
            return PlainTextResponse(ack)
        return JSONResponse(ack)

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint for monitoring systems and container orchestrators.
        """
        return {"status": "ok"}

    return app


def build_default_app() -> FastAPI:
    settings = Settings.from_env()
    setup_logging(settings.log_file)
    return create_app(settings)


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(build_default_app(), host="0.0.0.0", port=int(os.getenv("PORT", 5000)))
