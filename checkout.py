"""
Order placement: create the order, redeem its coupon, empty the cart.
"""
import logging
import os

from pymongo.database import Database
from pymongo.errors import PyMongoError

import cart_service
import coupon_service
import order_service
from errors import StoreError, ValidationError
from pricing import checkout_totals, subtotal_of
from schemas import Order, OrderCreate

logger = logging.getLogger(__name__)

VERIFY_ORDER_TOTALS = os.getenv("VERIFY_ORDER_TOTALS", "0").lower() in ("1", "true", "yes")
TOLERANCE = 0.01


def verify_totals(db: Database, payload: OrderCreate) -> None:
    """Recompute the order total from its item snapshots and the coupon as it stands now."""
    if payload.applied_coupon_code:
        subtotal = subtotal_of(payload.items)
        coupon = coupon_service.validate_coupon(db, payload.applied_coupon_code, subtotal)
        totals = checkout_totals(payload.items, coupon.discount_type, coupon.discount_value)
    else:
        totals = checkout_totals(payload.items)
    if abs(totals.grand_total - payload.total_amount) > TOLERANCE:
        logger.warning("Order total mismatch: submitted %.2f, computed %.2f",
                       payload.total_amount, totals.grand_total)
        raise ValidationError("Order total does not match the cart contents.")


def place_order(db: Database, user_id: str, payload: OrderCreate, verify: bool = VERIFY_ORDER_TOTALS) -> Order:
    if not payload.items:
        raise ValidationError("Cannot place an order with an empty cart.")
    if verify:
        verify_totals(db, payload)

    order = order_service.create_order(
        db,
        user_id,
        payload.items,
        payload.shipping_address,
        payload.payment_method,
        payload.total_amount,
        applied_coupon_code=payload.applied_coupon_code,
        coupon_discount_amount=payload.coupon_discount_amount,
    )

    if order.applied_coupon_code:
        try:
            coupon = coupon_service.get_coupon_by_code(db, order.applied_coupon_code)
            if coupon is None:
                logger.warning("Coupon %s not found after order %s was placed", order.applied_coupon_code, order.id)
            else:
                coupon_service.redeem_coupon(db, coupon.id, order.id)
        except (StoreError, PyMongoError) as exc:
            logger.error("Error redeeming coupon %s for order %s: %s", order.applied_coupon_code, order.id, exc)

    try:
        cart_service.clear_cart(db, user_id)
    except PyMongoError as exc:
        logger.error("Failed to clear cart of user %s after order %s: %s", user_id, order.id, exc)
    return order
