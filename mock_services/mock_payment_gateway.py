"""
mock_payment_gateway.py — Mock Implementation of the PayTR Gateway (REST API)

This module provides a simulated PayTR endpoint for local end-to-end runs of the
checkout service. It issues iFrame tokens and can post signed callbacks back
to the service, like PayTR does after the buyer paid.

Simulation Scenarios:
    • Successful token issue
    • Rejected token request (buyer e-mail starts with "decline")
    • Timeout simulation (buyer e-mail starts with "timeout")
    • Successful or failed payment callback, optionally delivered twice

Endpoints:
    POST /odeme/api/get-token           — Token request from the checkout service.
    POST /simulate/{merchant_oid}       — Sends the payment callback to the webhook.

Port:
    Default: 8001 (HTTP)
"""

import asyncio
import logging
import os
import uuid
from urllib.parse import parse_qs

import httpx
from fastapi import FastAPI, HTTPException, Request

from checkout_service.signatures import hmac_digest

app = FastAPI(title="Mock PayTR Gateway")
logging.basicConfig(level=logging.INFO)

MERCHANT_KEY = os.environ.get("PAYTR_MERCHANT_KEY", "test-key")
MERCHANT_SALT = os.environ.get("PAYTR_MERCHANT_SALT", "test-salt")
WEBHOOK_URL = os.environ.get("WEBHOOK_URL", "http://localhost:5000/api/v1/payment/webhook")

# merchant_oid -> payment_amount of issued tokens
issued = {}


@app.post("/odeme/api/get-token")
async def get_token(request: Request):
    """
    Issues a payment token.

    Returns:
        dict: {"status": "success", "token": ...} or {"status": "failed", "reason": ...}
    """
    form = {k: v[0] for k, v in parse_qs((await request.body()).decode("utf-8")).items()}
    merchant_oid = form.get("merchant_oid", "")
    email = form.get("email", "")
    logging.info(f"[PayTR] Token request for {merchant_oid} ({email})")

    if email.startswith("decline"):
        logging.warning(f"[PayTR] Token request for {merchant_oid} declined.")
        return {"status": "failed", "reason": "paytr_token gecersiz"}

    if email.startswith("timeout"):
        logging.info(f"[PayTR] Simulating timeout for {merchant_oid}...")
        await asyncio.sleep(10)

    issued[merchant_oid] = form.get("payment_amount", "0")
    return {"status": "success", "token": uuid.uuid4().hex}


@app.post("/simulate/{merchant_oid}")
async def simulate_callback(merchant_oid: str, status: str = "success", repeat: int = 1):
    """
    Posts the signed callback for an issued token to the checkout service.

    Args:
        status (str): "success" or "failed".
        repeat (int): Number of deliveries, to exercise replay handling.
    """
    if merchant_oid not in issued:
        raise HTTPException(status_code=404, detail="Unknown merchant_oid")

    total_amount = issued[merchant_oid]
    fields = {
        "merchant_oid": merchant_oid,
        "status": status,
        "total_amount": total_amount,
        "payment_type": "card",
        "currency": "TL",
        "hash": hmac_digest(MERCHANT_KEY, merchant_oid, MERCHANT_SALT, status, total_amount),
    }
    results = []
    async with httpx.AsyncClient(timeout=10.0) as client:
        for attempt in range(repeat):
            response = await client.post(WEBHOOK_URL, data=fields)
            logging.info(f"[PayTR] Callback {attempt + 1} for {merchant_oid}: {response.status_code} {response.text}")
            results.append({"status_code": response.status_code, "body": response.text})
    return {"deliveries": results}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
