"""
workflow.py — Webhook Reconciliation for Paid Checkouts

This module turns a gateway callback into a persisted order.
It coordinates signature verification, order creation, stock adjustment and
the confirmation e-mails in the correct sequence.

Workflow Overview:
1. Verify the callback signature (gateway adapter)
2. Skip deliveries whose order already exists (webhooks are retried)
3. Check the gateway-declared payment status
4. Build the order from the pending checkout record
5. Create the order and decrement stock in one atomic commit
6. Send buyer and seller notifications
"""

import logging
from typing import Union

from .errors import (
    CheckoutError,
    DuplicateOrderError,
    InsufficientStockError,
    InvalidSignatureError,
    OrderNotFoundError,
    PaymentFailedError,
    UserNotFoundError,
)
from .gateways import PaymentGateway
from .models import CheckoutRecord, Order, PaymentInfo, RawWebhook, WebhookData
from .notifications import Notifier
from .store import CommerceStore

log = logging.getLogger(__name__)


def build_order(record: CheckoutRecord, data: WebhookData, payment_method: str) -> Order:
    """Order for a verified, successful payment of `record`."""
    return Order(
        user=record.user,
        merchantOid=record.merchantOid,
        orderItems=record.orderItems,
        shippingInfo=record.shippingInfo,
        shippingInvoiceInfo=record.shippingInvoiceInfo,
        itemsPrice=record.itemsPrice,
        taxAmount=record.taxAmount,
        shippingAmount=record.shippingAmount,
        totalAmount=record.totalAmount,
        paymentInfo=PaymentInfo(id=record.merchantOid, status="Paid", transactionId=data.transactionId),
        paymentMethod=payment_method,
    )


class PaymentWorkflow:
    def __init__(self, store: CommerceStore, gateway: PaymentGateway, notifier: Notifier):
        self.store = store
        self.gateway = gateway
        self.notifier = notifier

    async def reconcile_webhook(self, raw: RawWebhook) -> Union[dict, str]:
        """
        Processes one webhook delivery from the active gateway.

        Every delivery is safe to repeat: the order is keyed on the
        correlation token, so a replay is acknowledged without creating a
        second order or touching stock again.

        Args:
            raw (RawWebhook): Body, headers and parsed fields of the callback.

        Returns:
            dict | str: The gateway's expected acknowledgement body.

        Raises:
            InvalidSignatureError: Signature mismatch; nothing was written.
            PaymentFailedError: Gateway reported a failed payment; no order created.
            OrderNotFoundError: No checkout record for the correlation token.
            InsufficientStockError: A variant cannot cover a paid line; nothing was written.
            UserNotFoundError: Buyer of a committed order is missing; buyer e-mail not sent.
            Exception: Store or e-mail transport failures, re-raised after logging.

        Workflow Steps:
            Step 1 – Verification:
                - Recomputes the gateway hash with the shared secret.
            Step 2 – Replay check:
                - Existing order → acknowledge; resend only the e-mails that never went out.
                - A non-success delivery for an existing order is stale and changes nothing.
            Step 3 – Status:
                - Anything but success marks a still pending checkout record failed.
            Step 4/5 – Commit:
                - Order insert and conditional stock decrements in one unit.
                - Missing catalog entries are skipped and logged; a stock guard failure aborts.
            Step 6 – Notify:
                - Buyer confirmation and seller notice, each flagged once sent.
        """
        # --- 1. Verification ---
        try:
            data = self.gateway.verify_and_parse_webhook(raw)
        except InvalidSignatureError:
            log.warning(f"Rejected {self.gateway.name} webhook with invalid signature: {raw.fields}")
            raise

        merchant_oid = data.merchantOid
        log_prefix = f"[Order: {merchant_oid}]"
        log.info(f"{log_prefix} Verified {self.gateway.name} webhook, status '{data.status}'.")

        try:
            # --- 2. Replay check ---
            existing = await self.store.find_order(merchant_oid)
            if existing is not None:
                if not data.is_success:
                    log.warning(
                        f"{log_prefix} Ignoring '{data.status}' delivery, order {existing.id} is already paid."
                    )
                    return self.gateway.acknowledgement()
                log.info(f"{log_prefix} Duplicate webhook delivery, order {existing.id} already exists.")
                if not existing.notificationsSent:
                    log.info(f"{log_prefix} Notifications of earlier delivery missing, sending now.")
                    await self._notify(existing)
                return self.gateway.acknowledgement()

            # --- 3. Status ---
            if not data.is_success:
                await self.store.set_checkout_status(merchant_oid, "failed", only_from="pending")
                log.warning(f"{log_prefix} Payment not successful ({data.status}). No order created.")
                raise PaymentFailedError(merchant_oid, data.status)

            # --- 4. Build order ---
            record = await self.store.get_checkout(merchant_oid)
            if record is None:
                log.error(f"{log_prefix} No checkout record for verified webhook.")
                raise OrderNotFoundError(f"Order not found: {merchant_oid}")

            if data.totalAmount is not None and data.totalAmount != record.paymentAmount:
                log.warning(
                    f"{log_prefix} Amount mismatch: gateway reports {data.totalAmount}, "
                    f"checkout expected {record.paymentAmount}."
                )

            order = build_order(record, data, self.gateway.payment_method)

            # --- 5. Commit ---
            try:
                order, skipped = await self.store.commit_order(order)
            except DuplicateOrderError:
                log.info(f"{log_prefix} Concurrent delivery committed the order first. Acknowledging.")
                return self.gateway.acknowledgement()
            except InsufficientStockError as e:
                log.critical(f"{log_prefix} Paid order cannot be fulfilled: {e}. Refund needs manual action!")
                await self.store.set_checkout_status(merchant_oid, "stock_conflict")
                raise

            await self.store.set_checkout_status(merchant_oid, "completed")
            if skipped:
                log.warning(f"{log_prefix} Order {order.id} created, stock untouched for {len(skipped)} line(s): {skipped}")
            else:
                log.info(f"{log_prefix} Order {order.id} created and stock adjusted.")

            # --- 6. Notify ---
            await self._notify(order)
            return self.gateway.acknowledgement()

        except CheckoutError:
            raise
        except Exception as e:
            log.critical(f"{log_prefix} Unexpected error during webhook reconciliation: {e}", exc_info=True)
            raise

    async def _notify(self, order: Order):
        log_prefix = f"[Order: {order.merchantOid}]"

        if not order.buyerNotified:
            buyer = await self.store.get_user(order.user)
            if buyer is None:
                log.error(f"{log_prefix} Buyer {order.user} not found, buyer confirmation not sent.")
                raise UserNotFoundError(f"User not found: {order.user}")
            try:
                await self.notifier.send_buyer_confirmation(order, buyer)
            except Exception as e:
                log.critical(f"{log_prefix} Order committed but buyer confirmation failed: {e}")
                raise
            await self.store.mark_order_notified(order.merchantOid, "buyer")

        if not order.sellerNotified:
            try:
                await self.notifier.send_seller_notice(order)
            except Exception as e:
                log.critical(f"{log_prefix} Order committed but seller notice failed: {e}")
                raise
            await self.store.mark_order_notified(order.merchantOid, "seller")
