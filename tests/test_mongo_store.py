import logging

import pytest
import pytest_asyncio
from bson import ObjectId

from checkout_service.errors import DuplicateOrderError, InsufficientStockError
from checkout_service.models import (
    CheckoutRecord,
    Order,
    OrderColor,
    OrderItem,
    PaymentInfo,
    ShippingInfo,
)
from checkout_service.store import MongoStore

from .fake_mongo import FakeAsyncMongoClient

SHIRT_ID = ObjectId()
USER_ID = ObjectId()


@pytest.fixture
def mongo():
    return FakeAsyncMongoClient()


@pytest_asyncio.fixture
async def mongo_store(mongo):
    store = MongoStore("mongodb://unused", "shop", client=mongo)
    await store.ensure_indexes()
    store.products.docs.append({
        "_id": SHIRT_ID,
        "name": "Linen Shirt",
        "price": 10.0,
        "stock": 6,
        "colors": [
            {"productColorID": "red", "color": "Kırmızı", "colorStock": 5},
            {"productColorID": "blue", "color": "Mavi", "colorStock": 1},
        ],
    })
    store.users.docs.append({"_id": USER_ID, "name": "Ayşe Yılmaz", "email": "ayse@example.com", "password": "x"})
    return store


def shirt(color="red", amount=2, product=str(SHIRT_ID)):
    return OrderItem(product=product, name="Linen Shirt", price=10.0, amount=amount,
                     colors=[OrderColor(productColorID=color, amount=amount)])


def paid_order(*items, merchant_oid="oid100"):
    items = items or (shirt(),)
    total = sum(item.price * item.amount for item in items)
    return Order(
        user=str(USER_ID),
        merchantOid=merchant_oid,
        orderItems=list(items),
        shippingInfo=ShippingInfo(fullName="Ayşe Yılmaz"),
        itemsPrice=total,
        totalAmount=total,
        paymentInfo=PaymentInfo(id=merchant_oid, status="Paid"),
        paymentMethod="PayTR",
    )


def variant_stock(store, color):
    doc = store.products.docs[0]
    return next(c["colorStock"] for c in doc["colors"] if c["productColorID"] == color), doc["stock"]


@pytest.mark.asyncio
async def test_lookups(mongo_store):
    product = await mongo_store.get_product(str(SHIRT_ID), "blue")
    assert product.id == str(SHIRT_ID)
    assert product.find_color("blue").colorStock == 1
    assert await mongo_store.get_product(str(SHIRT_ID), "green") is None
    assert await mongo_store.get_product("not-an-object-id", "red") is None

    buyer = await mongo_store.get_user(str(USER_ID))
    assert (buyer.id, buyer.email) == (str(USER_ID), "ayse@example.com")
    assert await mongo_store.get_user(str(ObjectId())) is None


@pytest.mark.asyncio
async def test_commit_decrements_variant_and_total(mongo_store):
    order, skipped = await mongo_store.commit_order(paid_order())

    assert skipped == []
    assert order.id == str(mongo_store.orders.docs[0]["_id"])
    assert variant_stock(mongo_store, "red") == (3, 4)
    assert variant_stock(mongo_store, "blue") == (1, 4)

    stored = await mongo_store.find_order("oid100")
    assert stored.id == order.id
    assert not stored.notificationsSent


@pytest.mark.asyncio
async def test_duplicate_merchant_oid_is_rejected_without_touching_stock(mongo_store):
    await mongo_store.commit_order(paid_order())

    with pytest.raises(DuplicateOrderError):
        await mongo_store.commit_order(paid_order())

    assert len(mongo_store.orders.docs) == 1
    assert variant_stock(mongo_store, "red") == (3, 4)


@pytest.mark.asyncio
async def test_stock_guard_failure_rolls_back_everything(mongo_store):
    with pytest.raises(InsufficientStockError):
        await mongo_store.commit_order(paid_order(shirt("red", 2), shirt("blue", 2)))

    assert mongo_store.orders.docs == []
    assert variant_stock(mongo_store, "red") == (5, 6)
    assert variant_stock(mongo_store, "blue") == (1, 6)


@pytest.mark.asyncio
async def test_missing_catalog_entries_are_skipped(mongo_store, caplog):
    ghost_id = str(ObjectId())
    caplog.set_level(logging.WARNING, logger="checkout_service.store")

    order, skipped = await mongo_store.commit_order(
        paid_order(shirt("red", 1), shirt("green", 1), shirt("red", 1, product=ghost_id))
    )

    assert skipped == [(str(SHIRT_ID), "green"), (ghost_id, "red")]
    assert order.id is not None
    assert variant_stock(mongo_store, "red") == (4, 5)
    assert sum("Stock adjustment skipped" in r.getMessage() for r in caplog.records) == 2


@pytest.mark.asyncio
async def test_checkout_record_status_and_notification_flags(mongo_store, mongo):
    record = CheckoutRecord(
        merchantOid="oid100",
        user=str(USER_ID),
        provider="paytr",
        orderItems=[shirt()],
        itemsPrice=20.0,
        totalAmount=20.0,
        paymentAmount=2000,
        shippingInfo=ShippingInfo(fullName="Ayşe Yılmaz"),
    )
    await mongo_store.save_checkout(record)

    await mongo_store.set_checkout_status("oid100", "completed")
    await mongo_store.set_checkout_status("oid100", "failed", only_from="pending")
    assert (await mongo_store.get_checkout("oid100")).status == "completed"
    assert await mongo_store.get_checkout("oid404") is None

    await mongo_store.commit_order(paid_order())
    await mongo_store.mark_order_notified("oid100", "buyer")
    stored = await mongo_store.find_order("oid100")
    assert stored.buyerNotified and not stored.sellerNotified

    await mongo_store.close()
    assert mongo.closed
