"""
inventory.py — Cart Validation Against Live Stock

Every cart line is checked, with quantities summed per color variant. Problems
are collected rather than raised at the first hit so the storefront can show
the buyer all of them at once.
"""

import logging
from typing import Dict, List, Tuple

from .errors import StockValidationError
from .models import CartLineItem
from .store import CommerceStore

log = logging.getLogger(__name__)


class InventoryValidator:
    def __init__(self, store: CommerceStore):
        self.store = store

    async def collect_errors(self, items: List[CartLineItem]) -> List[dict]:
        """
        Checks the cart against each product's color variant.

        Lines for the same variant are summed before comparing with its stock,
        so a split line cannot order more than is on hand.

        Returns:
            list[dict]: One entry per offending line with keys
                msg, name, product, color, productColorID. Empty when the cart is servable.
        """
        products = {}
        requested: Dict[Tuple[str, str], int] = {}
        for item in items:
            key = (item.product, item.productColorID)
            if key not in products:
                products[key] = await self.store.get_product(item.product, item.productColorID)
            requested[key] = requested.get(key, 0) + item.amount

        errors = []
        for item in items:
            key = (item.product, item.productColorID)
            product = products[key]
            if product is None:
                errors.append({
                    "msg": f"Product not found: {item.name}",
                    "name": item.name,
                    "product": item.product,
                    "color": "",
                    "productColorID": item.productColorID,
                })
                continue

            variant = product.find_color(item.productColorID)
            if variant.colorStock < requested[key]:
                errors.append({
                    "msg": f"Insufficient stock for product: {item.name}",
                    "name": item.name,
                    "product": item.product,
                    "color": variant.color,
                    "productColorID": item.productColorID,
                })
        return errors

    async def validate(self, items: List[CartLineItem]):
        """
        Raises:
            StockValidationError: If any cart line cannot be served.
        """
        errors = await self.collect_errors(items)
        if errors:
            log.warning(f"Cart rejected, {len(errors)} stock problem(s): {errors}")
            raise StockValidationError(errors)
