"""
Order creation, queries and status transitions.

Orders are snapshots: items, shipping address and totals are written once
at creation and never recomputed. Only order_status, delivered_at and
updated_at change afterwards.
"""
import logging
from datetime import datetime
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import catalog
import database
from errors import NotFoundError, OrderNotCancellable, StoreError, ValidationError
from schemas import (
    ACTIVE_STATUSES,
    CANCELLABLE_STATUSES,
    ORDER_STATUSES,
    Order,
    OrderItem,
    SalesSummary,
    ShippingAddress,
    from_doc,
)

logger = logging.getLogger(__name__)


def _orders(db: Database):
    return db[database.ORDER]


def create_order(db: Database, user_id: str, items: List[OrderItem], shipping_address: ShippingAddress,
                 payment_method: str, total_amount: float, applied_coupon_code: Optional[str] = None,
                 coupon_discount_amount: Optional[float] = None) -> Order:
    """Insert a new Pending order. ``total_amount`` is stored as given."""
    if not items:
        raise ValidationError("Cannot place an order with an empty cart.")
    if not payment_method:
        raise ValidationError("Payment method is required.")

    doc = {
        "user_id": user_id,
        "items": [item.model_dump() for item in items],
        "total_amount": total_amount,
        "shipping_address": shipping_address.model_dump(),
        "payment_method": payment_method,
        "order_status": "Pending",
        "applied_coupon_code": applied_coupon_code.strip().upper() if applied_coupon_code else None,
        "coupon_discount_amount": coupon_discount_amount,
        "delivered_at": None,
    }
    order_id = database.create_document(db, database.ORDER, doc)
    logger.info("Order %s created for user %s (total %.2f)", order_id, user_id, total_amount)
    return get_order(db, order_id)


def get_order(db: Database, order_id: str) -> Order:
    doc = _orders(db).find_one({"_id": database.to_object_id(order_id)})
    if not doc:
        logger.warning("Order %s not found", order_id)
        raise NotFoundError("Order not found.")
    return from_doc(Order, doc)


def list_orders(db: Database) -> List[Order]:
    docs = database.get_documents(db, database.ORDER, sort=[("created_at", -1)])
    return [from_doc(Order, d) for d in docs]


def get_user_orders(db: Database, user_id: str) -> List[Order]:
    docs = database.get_documents(db, database.ORDER, {"user_id": user_id}, sort=[("created_at", -1)])
    return [from_doc(Order, d) for d in docs]


def get_user_order(db: Database, order_id: str, user_id: str) -> Order:
    doc = _orders(db).find_one({"_id": database.to_object_id(order_id), "user_id": user_id})
    if not doc:
        logger.warning("Order %s not found for user %s", order_id, user_id)
        raise NotFoundError("Order not found.")
    return from_doc(Order, doc)


def cancel_order(db: Database, order_id: str, user_id: str) -> Order:
    """Cancel one of the caller's orders while it is Pending or Processing.

    The status check and the update are one conditional write, so a
    concurrent admin update cannot slip in between.
    """
    oid = database.to_object_id(order_id)
    doc = _orders(db).find_one_and_update(
        {"_id": oid, "user_id": user_id, "order_status": {"$in": list(CANCELLABLE_STATUSES)}},
        {"$set": {"order_status": "Cancelled", "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc:
        logger.info("Order %s cancelled by user %s", order_id, user_id)
        return from_doc(Order, doc)

    existing = _orders(db).find_one({"_id": oid, "user_id": user_id}, {"order_status": 1})
    if not existing:
        logger.warning("Order %s not found for user %s", order_id, user_id)
        raise NotFoundError("Order not found.")
    status = existing.get("order_status")
    logger.warning("Order %s cannot be cancelled, status is %s", order_id, status)
    raise OrderNotCancellable(f"Order cannot be cancelled as it is already {status}.")


def update_order_status(db: Database, order_id: str, new_status: str, now: Optional[datetime] = None) -> Order:
    """Admin status change. Any status may be set from any other.

    Entering Delivered stamps delivered_at and takes each item's quantity
    off its product's stock. Stock updates are best effort per item:
    failures are logged and skipped, the status change stands.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError("Invalid order status provided.")
    oid = database.to_object_id(order_id)
    now = now or datetime.utcnow()

    changes = {"order_status": new_status, "updated_at": now}
    if new_status == "Delivered":
        changes["delivered_at"] = now

    before = _orders(db).find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.BEFORE
    )
    if not before:
        logger.warning("Order %s not found for status update", order_id)
        raise NotFoundError("Order not found.")
    logger.info("Order %s status %s -> %s", order_id, before.get("order_status"), new_status)

    if new_status == "Delivered" and before.get("order_status") != "Delivered":
        _take_stock(db, order_id, before.get("items", []))

    after = dict(before)
    after.update(changes)
    return from_doc(Order, after)


def _take_stock(db: Database, order_id: str, items: List[dict]) -> None:
    logger.info("Order %s delivered, updating stock for %d items", order_id, len(items))
    for item in items:
        product_id = item.get("product_id")
        quantity = item.get("quantity", 0)
        try:
            if not catalog.decrement_stock(db, product_id, quantity):
                logger.warning("Product %s not found for stock update (order %s, item %s)",
                               product_id, order_id, item.get("name"))
                continue
            logger.info("Stock for product %s decremented by %d", product_id, quantity)
        except (StoreError, PyMongoError) as exc:
            logger.error("Error updating stock for product %s (order %s): %s", product_id, order_id, exc)


def sales_summary(db: Database) -> SalesSummary:
    orders = _orders(db)
    pipeline = [
        {"$match": {"order_status": "Delivered"}},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}, "count": {"$sum": 1}}},
    ]
    delivered = list(orders.aggregate(pipeline))
    total = delivered[0]["total"] if delivered else 0.0
    count = delivered[0]["count"] if delivered else 0
    active = orders.count_documents({"order_status": {"$in": list(ACTIVE_STATUSES)}})
    return SalesSummary(total_sales=round(total, 2), completed_orders_count=count, active_orders_count=active)
