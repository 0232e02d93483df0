"""
notifications.py — Order Confirmation E-mails

Two independent templates render the buyer-facing and the seller-facing
message from the same inputs (shipping info, order summary, line items).
`Notifier` hands the rendered bodies to the configured e-mail transport.
"""

import html
import logging
from typing import List

from .config import Settings
from .models import Buyer, Order, OrderItem, ShippingInfo

log = logging.getLogger(__name__)

CUSTOMER_SUBJECT = "Siparişiniz Onaylandı"
SELLER_SUBJECT = "Yeni Sipariş"


def order_summary(order: Order) -> dict:
    """Totals block shared by both templates."""
    items_price = sum(item.price * item.amount for item in order.orderItems)
    return {
        "itemsPrice": f"{items_price:.2f}",
        "taxAmount": f"{order.taxAmount:.2f}",
        "shippingAmount": f"{order.shippingAmount:.2f}",
        "totalAmount": f"{order.totalAmount:.2f}",
        "orderNumber": order.id or order.merchantOid,
        "paymentMethod": order.paymentMethod,
    }


def _e(value) -> str:
    return html.escape("" if value is None else str(value))


def _item_rows(items: List[OrderItem]) -> str:
    rows = []
    for item in items:
        colors = ", ".join(f"{_e(c.color or c.productColorID)} x{c.amount}" for c in item.colors)
        rows.append(
            "<tr>"
            f"<td>{_e(item.name)}</td><td>{colors}</td>"
            f"<td>{item.amount}</td><td>{item.price:.2f}</td><td>{item.price * item.amount:.2f}</td>"
            "</tr>"
        )
    return "\n".join(rows)


def _address_block(info: ShippingInfo) -> str:
    return (
        f"<p>{_e(info.fullName)}<br/>{_e(info.address)}<br/>"
        f"{_e(info.zipCode)} {_e(info.city)} / {_e(info.country)}<br/>"
        f"Tel: {_e(info.phoneNo)}</p>"
    )


def _totals_block(summary: dict) -> str:
    return (
        f"<p>Ürünler: {summary['itemsPrice']}<br/>"
        f"KDV: {summary['taxAmount']}<br/>"
        f"Kargo: {summary['shippingAmount']}<br/>"
        f"<strong>Toplam: {summary['totalAmount']}</strong></p>"
    )


ITEM_TABLE_HEAD = "<tr><th>Ürün</th><th>Renk</th><th>Adet</th><th>Birim Fiyat</th><th>Tutar</th></tr>"


def order_detail_template_for_customer(shipping_info: ShippingInfo, summary: dict, items: List[OrderItem]) -> str:
    return f"""<html><body>
<h2>Siparişiniz için teşekkürler!</h2>
<p>Sipariş numaranız: <strong>{_e(summary['orderNumber'])}</strong></p>
<p>Ödeme yöntemi: {_e(summary['paymentMethod'])}</p>
<h3>Teslimat Adresi</h3>
{_address_block(shipping_info)}
<h3>Sipariş Detayı</h3>
<table border="1" cellpadding="4" cellspacing="0">
{ITEM_TABLE_HEAD}
{_item_rows(items)}
</table>
{_totals_block(summary)}
<p>Siparişiniz hazırlandığında kargo bilgileri ile birlikte size tekrar haber vereceğiz.</p>
</body></html>"""


def order_detail_template_for_seller(shipping_info: ShippingInfo, summary: dict, items: List[OrderItem]) -> str:
    return f"""<html><body>
<h2>Yeni sipariş alındı</h2>
<p>Sipariş numarası: <strong>{_e(summary['orderNumber'])}</strong> ({_e(summary['paymentMethod'])})</p>
<h3>Gönderim Adresi</h3>
{_address_block(shipping_info)}
<h3>Hazırlanacak Ürünler</h3>
<table border="1" cellpadding="4" cellspacing="0">
{ITEM_TABLE_HEAD}
{_item_rows(items)}
</table>
{_totals_block(summary)}
</body></html>"""


class Notifier:
    """
    Sends the buyer confirmation and the seller notice for a paid order.

    `email_client` is any object with `async send(email, subject, message, name)`.
    Delivery errors are not caught here; the caller decides what a failed
    notification means for the surrounding step.
    """

    def __init__(self, email_client, settings: Settings):
        self.email_client = email_client
        self.settings = settings

    async def send_buyer_confirmation(self, order: Order, buyer: Buyer):
        message = order_detail_template_for_customer(order.shippingInfo, order_summary(order), order.orderItems)
        await self.email_client.send(
            email=buyer.email,
            subject=CUSTOMER_SUBJECT,
            message=message,
            name=buyer.name,
        )
        log.info(f"[Order: {order.merchantOid}] Buyer confirmation sent to {buyer.email}.")

    async def send_seller_notice(self, order: Order):
        message = order_detail_template_for_seller(order.shippingInfo, order_summary(order), order.orderItems)
        await self.email_client.send(
            email=self.settings.seller_email,
            subject=SELLER_SUBJECT,
            message=message,
            name=self.settings.seller_name,
        )
        log.info(f"[Order: {order.merchantOid}] Seller notice sent to {self.settings.seller_email}.")
