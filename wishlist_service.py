"""Per-user wishlist: a set of product ids."""
import logging
from datetime import datetime

from pymongo import ReturnDocument
from pymongo.database import Database

import database
from schemas import Wishlist, from_doc

logger = logging.getLogger(__name__)


def _wishlists(db: Database):
    return db[database.WISHLIST]


def get_wishlist(db: Database, user_id: str) -> Wishlist:
    doc = _wishlists(db).find_one({"user_id": user_id})
    if not doc:
        return Wishlist(user_id=user_id, product_ids=[])
    return from_doc(Wishlist, doc)


def add_to_wishlist(db: Database, user_id: str, product_id: str) -> Wishlist:
    now = datetime.utcnow()
    doc = _wishlists(db).find_one_and_update(
        {"user_id": user_id},
        {
            "$addToSet": {"product_ids": product_id},
            "$set": {"updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Product %s in wishlist of user %s", product_id, user_id)
    return from_doc(Wishlist, doc)


def remove_from_wishlist(db: Database, user_id: str, product_id: str) -> Wishlist:
    doc = _wishlists(db).find_one_and_update(
        {"user_id": user_id},
        {"$pull": {"product_ids": product_id}, "$set": {"updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        return Wishlist(user_id=user_id, product_ids=[])
    return from_doc(Wishlist, doc)
