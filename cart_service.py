"""
Per-user shopping cart persisted in the ``cart`` collection.

One document per user. Lines are identified by their cart key
(product id + size + color) so variants of one product stay separate.
"""
import logging
from datetime import datetime
from typing import Optional

from pymongo import ReturnDocument
from pymongo.database import Database

import database
from errors import InvalidQuantity, ItemNotFound
from schemas import Cart, CartItem, from_doc

logger = logging.getLogger(__name__)


def make_cart_key(product_id: str, size: Optional[str] = None, color: Optional[str] = None) -> str:
    return f"{product_id}-{size or 'onesize'}-{color or 'defaultcolor'}"


def _carts(db: Database):
    return db[database.CART]


def _ensure_cart(db: Database, user_id: str) -> None:
    now = datetime.utcnow()
    _carts(db).update_one(
        {"user_id": user_id},
        {"$setOnInsert": {"items": [], "created_at": now, "updated_at": now}},
        upsert=True,
    )


def get_cart(db: Database, user_id: str) -> Cart:
    """Return the user's cart, or an empty one if nothing was added yet."""
    doc = _carts(db).find_one({"user_id": user_id})
    if not doc:
        return Cart(user_id=user_id, items=[])
    return from_doc(Cart, doc)


def add_item(db: Database, user_id: str, item: CartItem) -> Cart:
    """Add a line, merging into an existing line with the same cart key."""
    if item.quantity < 1:
        raise InvalidQuantity("Quantity must be at least 1.")
    cart_key = make_cart_key(item.product_id, item.size, item.color)
    line = item.model_copy(update={"cart_key": cart_key}).model_dump()

    _ensure_cart(db, user_id)
    carts = _carts(db)
    now = datetime.utcnow()
    merge = {"$inc": {"items.$.quantity": item.quantity}, "$set": {"updated_at": now}}

    result = carts.update_one({"user_id": user_id, "items.cart_key": cart_key}, merge)
    if result.matched_count == 0:
        result = carts.update_one(
            {"user_id": user_id, "items.cart_key": {"$ne": cart_key}},
            {"$push": {"items": line}, "$set": {"updated_at": now}},
        )
        if result.matched_count == 0:
            # another request pushed the same key in between
            carts.update_one({"user_id": user_id, "items.cart_key": cart_key}, merge)

    logger.info("Added %s x%d to cart of user %s", cart_key, item.quantity, user_id)
    return get_cart(db, user_id)


def update_item_quantity(db: Database, user_id: str, cart_key: str, quantity: int) -> Cart:
    if quantity < 1:
        raise InvalidQuantity("Quantity must be at least 1.")
    doc = _carts(db).find_one_and_update(
        {"user_id": user_id, "items.cart_key": cart_key},
        {"$set": {"items.$.quantity": quantity, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        logger.warning("Cart item %s not found for user %s", cart_key, user_id)
        raise ItemNotFound("Item not found in cart.")
    return from_doc(Cart, doc)


def remove_item(db: Database, user_id: str, cart_key: str) -> Cart:
    """Remove a line. Removing a key that is not in the cart is a no-op."""
    doc = _carts(db).find_one_and_update(
        {"user_id": user_id},
        {"$pull": {"items": {"cart_key": cart_key}}, "$set": {"updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        return Cart(user_id=user_id, items=[])
    return from_doc(Cart, doc)


def clear_cart(db: Database, user_id: str) -> Cart:
    now = datetime.utcnow()
    doc = _carts(db).find_one_and_update(
        {"user_id": user_id},
        {"$set": {"items": [], "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Cleared cart of user %s", user_id)
    return from_doc(Cart, doc)
