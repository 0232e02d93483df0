"""
store.py — Persistence Seam for Catalog, Checkout Records and Orders

The service talks to its object-document store only through `CommerceStore`.
Two implementations are provided:

    • MongoStore    — production store on MongoDB (pymongo async client).
                      Order creation and stock decrements run in one
                      transaction; every decrement is a conditional update
                      guarded by `colorStock >= amount`.
    • InMemoryStore — same contract backed by dicts and an asyncio lock;
                      used by the test-suite and for local runs.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import AsyncMongoClient
from pymongo.errors import DuplicateKeyError

from .errors import DuplicateOrderError, InsufficientStockError
from .models import Buyer, CheckoutRecord, Order, Product

log = logging.getLogger(__name__)

# (product id, productColorID) pairs left untouched during a commit
SkippedLines = List[Tuple[str, str]]

NOTIFIED_FIELDS = {"buyer": "buyerNotified", "seller": "sellerNotified"}


def _log_skipped(merchant_oid: str, product_id: str, product_color_id: str):
    log.warning(
        f"[Order: {merchant_oid}] Stock adjustment skipped: product {product_id} / color "
        f"{product_color_id} not in catalog. Order kept, inventory needs review."
    )


class CommerceStore(ABC):
    """Abstract store used by the checkout and webhook workflows."""

    @abstractmethod
    async def get_product(self, product_id: str, product_color_id: str) -> Optional[Product]:
        """Returns the product only if it carries the requested color variant."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[Buyer]:
        pass

    @abstractmethod
    async def save_checkout(self, record: CheckoutRecord) -> None:
        pass

    @abstractmethod
    async def get_checkout(self, merchant_oid: str) -> Optional[CheckoutRecord]:
        pass

    @abstractmethod
    async def set_checkout_status(self, merchant_oid: str, status: str, only_from: Optional[str] = None) -> None:
        """Updates the record status; with `only_from`, only while the record is still in that status."""

    @abstractmethod
    async def find_order(self, merchant_oid: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def commit_order(self, order: Order) -> Tuple[Order, SkippedLines]:
        """
        Creates the order and decrements stock as one atomic unit.

        Raises:
            DuplicateOrderError: An order with the same merchantOid exists.
            InsufficientStockError: A variant cannot cover its line; nothing is written.
        """

    @abstractmethod
    async def mark_order_notified(self, merchant_oid: str, recipient: str) -> None:
        """Flags the e-mail to `recipient` ('buyer' or 'seller') as sent."""

    async def close(self):
        pass


class InMemoryStore(CommerceStore):
    """Dict-backed store. A single asyncio lock serializes commits."""

    def __init__(self):
        self.products: Dict[str, Product] = {}
        self.users: Dict[str, Buyer] = {}
        self.checkouts: Dict[str, CheckoutRecord] = {}
        self.orders: Dict[str, Order] = {}
        self._lock = asyncio.Lock()
        self._next_id = 1

    def add_product(self, product: Product):
        self.products[product.id] = product.model_copy(deep=True)

    def add_user(self, buyer: Buyer):
        self.users[buyer.id] = buyer

    async def get_product(self, product_id: str, product_color_id: str) -> Optional[Product]:
        product = self.products.get(product_id)
        if product is None or product.find_color(product_color_id) is None:
            return None
        return product.model_copy(deep=True)

    async def get_user(self, user_id: str) -> Optional[Buyer]:
        return self.users.get(user_id)

    async def save_checkout(self, record: CheckoutRecord) -> None:
        self.checkouts[record.merchantOid] = record.model_copy(deep=True)

    async def get_checkout(self, merchant_oid: str) -> Optional[CheckoutRecord]:
        record = self.checkouts.get(merchant_oid)
        return record.model_copy(deep=True) if record else None

    async def set_checkout_status(self, merchant_oid: str, status: str, only_from: Optional[str] = None) -> None:
        record = self.checkouts.get(merchant_oid)
        if record is not None and (only_from is None or record.status == only_from):
            record.status = status

    async def find_order(self, merchant_oid: str) -> Optional[Order]:
        order = self.orders.get(merchant_oid)
        return order.model_copy(deep=True) if order else None

    async def commit_order(self, order: Order) -> Tuple[Order, SkippedLines]:
        async with self._lock:
            # Give concurrent callers a chance to interleave, as a real store would.
            await asyncio.sleep(0)
            if order.merchantOid in self.orders:
                raise DuplicateOrderError(order.merchantOid)

            # Plan every decrement first so a failing guard leaves nothing applied.
            pending: Dict[Tuple[str, str], int] = {}
            skipped: SkippedLines = []
            for item in order.orderItems:
                for color in item.colors:
                    product = self.products.get(item.product)
                    variant = product.find_color(color.productColorID) if product else None
                    if variant is None:
                        _log_skipped(order.merchantOid, item.product, color.productColorID)
                        skipped.append((item.product, color.productColorID))
                        continue
                    key = (item.product, color.productColorID)
                    requested = pending.get(key, 0) + color.amount
                    if variant.colorStock < requested:
                        raise InsufficientStockError(item.product, color.productColorID, color.amount)
                    pending[key] = requested

            for (product_id, product_color_id), amount in pending.items():
                product = self.products[product_id]
                product.find_color(product_color_id).colorStock -= amount
                product.stock -= amount

            saved = order.model_copy(deep=True)
            saved.id = str(self._next_id)
            self._next_id += 1
            self.orders[saved.merchantOid] = saved
            return copy.deepcopy(saved), skipped

    async def mark_order_notified(self, merchant_oid: str, recipient: str) -> None:
        if merchant_oid in self.orders:
            setattr(self.orders[merchant_oid], NOTIFIED_FIELDS[recipient], True)


def _object_id(value: str):
    """Catalog ids are ObjectIds in production; fall back to the raw string."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return value


def _from_doc(doc: dict) -> dict:
    data = dict(doc)
    if data.get("_id") is not None:
        data["id"] = str(data.pop("_id"))
    return data


class MongoStore(CommerceStore):
    """
    MongoDB-backed store.

    Collections: products, users, checkouts, orders. `orders.merchantOid` and
    `checkouts.merchantOid` carry unique indexes; the order index is what makes
    a replayed webhook fail instead of creating a second order. Transactions
    require a replica set (a single-node replica set is enough).
    """

    def __init__(self, uri: str, database_name: str, client: Optional[AsyncMongoClient] = None):
        self.client = client or AsyncMongoClient(uri)
        self.db = self.client[database_name]
        self.products = self.db["products"]
        self.users = self.db["users"]
        self.checkouts = self.db["checkouts"]
        self.orders = self.db["orders"]

    async def ensure_indexes(self):
        await self.orders.create_index("merchantOid", unique=True)
        await self.checkouts.create_index("merchantOid", unique=True)
        log.info("MongoDB indexes ensured.")

    async def get_product(self, product_id: str, product_color_id: str) -> Optional[Product]:
        doc = await self.products.find_one(
            {"_id": _object_id(product_id), "colors.productColorID": product_color_id}
        )
        return Product(**_from_doc(doc)) if doc else None

    async def get_user(self, user_id: str) -> Optional[Buyer]:
        doc = await self.users.find_one({"_id": _object_id(user_id)}, {"name": 1, "email": 1})
        return Buyer(**_from_doc(doc)) if doc else None

    async def save_checkout(self, record: CheckoutRecord) -> None:
        await self.checkouts.insert_one(record.model_dump(mode="python"))

    async def get_checkout(self, merchant_oid: str) -> Optional[CheckoutRecord]:
        doc = await self.checkouts.find_one({"merchantOid": merchant_oid}, {"_id": 0})
        return CheckoutRecord(**doc) if doc else None

    async def set_checkout_status(self, merchant_oid: str, status: str, only_from: Optional[str] = None) -> None:
        query = {"merchantOid": merchant_oid}
        if only_from is not None:
            query["status"] = only_from
        await self.checkouts.update_one(query, {"$set": {"status": status}})

    async def find_order(self, merchant_oid: str) -> Optional[Order]:
        doc = await self.orders.find_one({"merchantOid": merchant_oid})
        return Order(**_from_doc(doc)) if doc else None

    async def _decrement(self, session, merchant_oid: str, product_id: str, color) -> bool:
        """Conditional decrement of one color variant; False when the product is absent."""
        _id = _object_id(product_id)
        result = await self.products.update_one(
            {
                "_id": _id,
                "colors": {
                    "$elemMatch": {
                        "productColorID": color.productColorID,
                        "colorStock": {"$gte": color.amount},
                    }
                },
            },
            {"$inc": {"colors.$.colorStock": -color.amount, "stock": -color.amount}},
            session=session,
        )
        if result.modified_count == 1:
            return True

        exists = await self.products.count_documents(
            {"_id": _id, "colors.productColorID": color.productColorID}, session=session
        )
        if not exists:
            _log_skipped(merchant_oid, product_id, color.productColorID)
            return False
        raise InsufficientStockError(product_id, color.productColorID, color.amount)

    async def commit_order(self, order: Order) -> Tuple[Order, SkippedLines]:
        document = order.model_dump(mode="python", exclude={"id"})

        async def _transaction(session):
            try:
                inserted = await self.orders.insert_one(document, session=session)
            except DuplicateKeyError:
                raise DuplicateOrderError(order.merchantOid)

            skipped: SkippedLines = []
            for item in order.orderItems:
                for color in item.colors:
                    if not await self._decrement(session, order.merchantOid, item.product, color):
                        skipped.append((item.product, color.productColorID))
            return str(inserted.inserted_id), skipped

        async with self.client.start_session() as session:
            order_id, skipped = await session.with_transaction(_transaction)

        return order.model_copy(update={"id": order_id}), skipped

    async def mark_order_notified(self, merchant_oid: str, recipient: str) -> None:
        await self.orders.update_one({"merchantOid": merchant_oid}, {"$set": {NOTIFIED_FIELDS[recipient]: True}})

    async def close(self):
        await self.client.close()
