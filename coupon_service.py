"""
Coupon validation, redemption and admin management.

Codes are case-insensitive and stored uppercase. A coupon can be used
while it is active, not expired, under its usage limit and the cart
subtotal meets its minimum purchase amount.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import database
from errors import ConflictError, CouponRejected, DuplicateCouponCode, NotFoundError, ValidationError
from pricing import coupon_discount_amount
from schemas import Coupon, CouponCreate, CouponUpdate, ValidatedCoupon, from_doc

logger = logging.getLogger(__name__)

NOT_FOUND = "not found"
INACTIVE = "inactive"
EXPIRED = "expired"
USAGE_LIMIT_REACHED = "usage limit reached"
MINIMUM_NOT_MET = "minimum purchase not met"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _coupons(db: Database):
    return db[database.COUPON]


def get_coupon_by_code(db: Database, code: str) -> Optional[Coupon]:
    doc = _coupons(db).find_one({"code": normalize_code(code)})
    return from_doc(Coupon, doc) if doc else None


def validate_coupon(db: Database, code: str, cart_subtotal: float, now: Optional[datetime] = None) -> ValidatedCoupon:
    """Check a code against a cart subtotal and compute its discount.

    Raises CouponRejected carrying one of the reason constants above. The
    discount is capped at the subtotal; the checkout layer may cap again
    at subtotal + shipping.
    """
    if not code or not code.strip():
        raise ValidationError("Coupon code is required.")
    if cart_subtotal is None or cart_subtotal < 0:
        raise ValidationError("Valid cart subtotal is required.")
    now = _naive_utc(now or datetime.utcnow())

    coupon = get_coupon_by_code(db, code)
    if coupon is None:
        logger.info("Coupon %r not found", code)
        raise CouponRejected(NOT_FOUND, "Coupon code not found.")
    if not coupon.is_active:
        logger.info("Coupon %s is not active", coupon.code)
        raise CouponRejected(INACTIVE, "This coupon is not active.")
    if now >= _naive_utc(coupon.expiry_date):
        logger.info("Coupon %s has expired", coupon.code)
        raise CouponRejected(EXPIRED, "This coupon has expired.")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        logger.info("Coupon %s has reached its usage limit", coupon.code)
        raise CouponRejected(USAGE_LIMIT_REACHED, "This coupon has reached its usage limit.")
    if coupon.min_purchase_amount is not None and cart_subtotal < coupon.min_purchase_amount:
        raise CouponRejected(
            MINIMUM_NOT_MET,
            f"Minimum purchase of ৳{coupon.min_purchase_amount:.2f} required for this coupon. "
            f"Your subtotal is ৳{cart_subtotal:.2f}.",
        )

    return ValidatedCoupon(
        id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        min_purchase_amount=coupon.min_purchase_amount,
        discount_amount=coupon_discount_amount(coupon.discount_type, coupon.discount_value, cart_subtotal),
    )


def redeem_coupon(db: Database, coupon_id: str, order_id: str) -> bool:
    """Count one use of a coupon for ``order_id``.

    The increment is a single conditional update: it only applies when the
    order has not redeemed this coupon before and the usage limit still
    has room. Returns True when a use was recorded.
    """
    oid = database.to_object_id(coupon_id)
    coupons = _coupons(db)
    current = coupons.find_one({"_id": oid}, {"usage_limit": 1})
    if not current:
        raise NotFoundError("Coupon not found")

    filt = {"_id": oid, "redeemed_order_ids": {"$ne": order_id}}
    if current.get("usage_limit") is not None:
        filt["usage_count"] = {"$lt": current["usage_limit"]}
    result = coupons.update_one(
        filt,
        {
            "$inc": {"usage_count": 1},
            "$push": {"redeemed_order_ids": order_id},
            "$set": {"updated_at": datetime.utcnow()},
        },
    )
    if result.modified_count == 0:
        logger.warning("Coupon %s not redeemed for order %s (already redeemed or limit reached)",
                       coupon_id, order_id)
        return False
    logger.info("Coupon %s redeemed for order %s", coupon_id, order_id)
    return True


# Admin management

def list_coupons(db: Database) -> List[Coupon]:
    docs = database.get_documents(db, database.COUPON, sort=[("created_at", -1)])
    return [from_doc(Coupon, d) for d in docs]


def get_coupon(db: Database, coupon_id: str) -> Coupon:
    doc = _coupons(db).find_one({"_id": database.to_object_id(coupon_id)})
    if not doc:
        raise NotFoundError("Coupon not found")
    return from_doc(Coupon, doc)


def create_coupon(db: Database, payload: CouponCreate) -> Coupon:
    code = normalize_code(payload.code)
    if _coupons(db).find_one({"code": code}):
        raise DuplicateCouponCode(f'Coupon code "{code}" already exists.')
    doc = payload.model_dump()
    doc.update({
        "code": code,
        "expiry_date": _naive_utc(payload.expiry_date),
        "usage_count": 0,
        "redeemed_order_ids": [],
    })
    try:
        coupon_id = database.create_document(db, database.COUPON, doc)
    except DuplicateKeyError:
        raise DuplicateCouponCode(f'Coupon code "{code}" already exists.')
    logger.info("Created coupon %s (%s)", code, coupon_id)
    return get_coupon(db, coupon_id)


def update_coupon(db: Database, coupon_id: str, payload: CouponUpdate) -> Coupon:
    """Apply a partial update.

    Fields left out of the payload are untouched. An explicit null for
    min_purchase_amount or usage_limit clears the constraint; an explicit
    null for any other field is ignored.
    """
    oid = database.to_object_id(coupon_id)
    changes = payload.model_dump(exclude_unset=True)
    update = {}
    for field, value in changes.items():
        if value is None and field not in ("min_purchase_amount", "usage_limit"):
            continue
        update[field] = value

    if "code" in update:
        update["code"] = normalize_code(update["code"])
        if _coupons(db).find_one({"code": update["code"], "_id": {"$ne": oid}}):
            raise DuplicateCouponCode(f'Coupon code "{update["code"]}" already exists.')
    if "expiry_date" in update:
        update["expiry_date"] = _naive_utc(update["expiry_date"])
    update["updated_at"] = datetime.utcnow()

    query = {"_id": oid}
    if update.get("usage_limit") is not None:
        query["usage_count"] = {"$lte": update["usage_limit"]}
    try:
        doc = _coupons(db).find_one_and_update(query, {"$set": update}, return_document=ReturnDocument.AFTER)
    except DuplicateKeyError:
        raise DuplicateCouponCode(f'Coupon code "{update["code"]}" already exists.')
    if not doc:
        existing = _coupons(db).find_one({"_id": oid}, {"usage_count": 1})
        if not existing:
            raise NotFoundError("Coupon not found")
        logger.warning("Coupon %s usage limit %s is below its usage count %s",
                       coupon_id, update["usage_limit"], existing.get("usage_count"))
        raise ConflictError("Usage limit cannot be lower than the current usage count.")
    logger.info("Updated coupon %s", coupon_id)
    return from_doc(Coupon, doc)


def delete_coupon(db: Database, coupon_id: str) -> None:
    result = _coupons(db).delete_one({"_id": database.to_object_id(coupon_id)})
    if result.deleted_count == 0:
        raise NotFoundError("Coupon not found")
    logger.info("Deleted coupon %s", coupon_id)
