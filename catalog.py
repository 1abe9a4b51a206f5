"""Product lookups and stock adjustments used by the commerce core."""
import logging
from typing import Optional

from bson import ObjectId
from pymongo.database import Database

import database
from errors import NotFoundError
from pricing import PriceQuote, effective_price, validate_discount
from schemas import Product, from_doc

logger = logging.getLogger(__name__)


def get_product_by_id(db: Database, product_id: str) -> Optional[Product]:
    if not ObjectId.is_valid(product_id):
        return None
    doc = db[database.PRODUCT].find_one({"_id": ObjectId(product_id)})
    return from_doc(Product, doc) if doc else None


def decrement_stock(db: Database, product_id: str, quantity: int) -> bool:
    """Atomically take ``quantity`` off a product's stock.

    Stock is allowed to go negative. Returns False when the product does
    not exist.
    """
    result = db[database.PRODUCT].update_one(
        {"_id": database.to_object_id(product_id)},
        {"$inc": {"stock": -quantity}},
    )
    return result.matched_count > 0


def quote_product(db: Database, product_id: str) -> PriceQuote:
    product = get_product_by_id(db, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    validate_discount(product.price, product.discount_type, product.discount_value)
    return effective_price(product.price, product.discount_type, product.discount_value)
