"""
Price arithmetic for the storefront.

Everything here is pure: no database access, no clock. Amounts are plain
floats rounded to two decimals, the same way the rest of the API stores
money.
"""
import os
from typing import Iterable, NamedTuple, Optional

from errors import ValidationError

FLAT_SHIPPING_FEE = float(os.getenv("FLAT_SHIPPING_FEE", "50"))
NO_DISCOUNT = "none"


class PriceQuote(NamedTuple):
    effective_price: float
    original_price_display: Optional[float] = None
    discount_label: Optional[str] = None


class CheckoutTotals(NamedTuple):
    subtotal: float
    shipping: float
    coupon_discount: float
    grand_total: float


def money(amount: float) -> float:
    return round(float(amount), 2)


def discount_label(discount_type: str, discount_value: float) -> str:
    if discount_type == "percentage":
        return f"{discount_value:g}% OFF"
    return f"৳{discount_value:.0f} OFF"


def validate_discount(base_price: float, discount_type: Optional[str], discount_value: Optional[float]) -> None:
    """Reject discount settings a product cannot carry."""
    if not discount_type or discount_type == NO_DISCOUNT:
        return
    if discount_type not in ("percentage", "fixed"):
        raise ValidationError(f"Unknown discount type: {discount_type}")
    if discount_value is None or discount_value <= 0:
        raise ValidationError("Discount value must be greater than 0.")
    if discount_type == "percentage" and not 1 <= discount_value <= 99:
        raise ValidationError("Percentage discount must be between 1 and 99.")
    if discount_type == "fixed" and discount_value >= base_price:
        raise ValidationError("Fixed discount must be less than the product price.")


def effective_price(base_price: float, discount_type: Optional[str] = None,
                    discount_value: Optional[float] = None) -> PriceQuote:
    """Unit price after the product's own discount.

    Inputs are expected to have passed validate_discount already.
    """
    if not discount_type or discount_type == NO_DISCOUNT or not discount_value:
        return PriceQuote(money(base_price))

    if discount_type == "percentage":
        price = base_price * (1 - discount_value / 100)
    else:
        price = base_price - discount_value
    return PriceQuote(
        effective_price=money(max(0.0, price)),
        original_price_display=base_price,
        discount_label=discount_label(discount_type, discount_value),
    )


def coupon_discount_amount(discount_type: str, discount_value: float, subtotal: float,
                           cap: Optional[float] = None) -> float:
    if discount_type == "percentage":
        amount = subtotal * discount_value / 100
    else:
        amount = discount_value
    limit = subtotal if cap is None else cap
    return money(max(0.0, min(amount, limit)))


def subtotal_of(items: Iterable) -> float:
    return money(sum(item.price * item.quantity for item in items))


def shipping_for(subtotal: float) -> float:
    return FLAT_SHIPPING_FEE if subtotal > 0 else 0.0


def checkout_totals(items: Iterable, discount_type: Optional[str] = None,
                    discount_value: Optional[float] = None) -> CheckoutTotals:
    """Subtotal, shipping, coupon discount and grand total for a set of lines.

    The coupon discount is capped at subtotal + shipping so the grand
    total never goes negative.
    """
    subtotal = subtotal_of(items)
    shipping = shipping_for(subtotal)
    discount = 0.0
    if discount_type and discount_value:
        discount = coupon_discount_amount(discount_type, discount_value, subtotal, cap=subtotal + shipping)
    return totals_from(subtotal, shipping, discount)


def totals_from(subtotal: float, shipping: float, coupon_discount: float) -> CheckoutTotals:
    coupon_discount = min(coupon_discount, subtotal + shipping)
    grand_total = max(0.0, subtotal + shipping - coupon_discount)
    return CheckoutTotals(money(subtotal), money(shipping), money(coupon_discount), money(grand_total))
