"""
Database Schemas for the Storefront

Each Pydantic model corresponds to a MongoDB collection. The collection name is the lowercase of the class name.

Example: class Cart -> collection "cart"

Documents are stored with snake_case keys; the API speaks camelCase through
the alias generator on StoreModel.
"""
from typing import Annotated, List, Optional, Literal
import logging

import pydantic
from pydantic import BaseModel, ConfigDict, Field, BeforeValidator
from pydantic.alias_generators import to_camel
from datetime import datetime

from errors import InternalError

logger = logging.getLogger(__name__)

DiscountType = Literal["percentage", "fixed"]
OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled", "Failed"]

ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled", "Failed")
CANCELLABLE_STATUSES = ("Pending", "Processing")
ACTIVE_STATUSES = ("Pending", "Processing")


class StoreModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def from_doc(model_cls, doc: dict):
    """Build a schema instance from a raw mongo document."""
    data = dict(doc)
    if data.get("_id") is not None:
        data["id"] = str(data.pop("_id"))
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as exc:
        logger.error("Malformed %s document %s: %s", model_cls.__name__, data.get("id"), exc)
        raise InternalError(f"Stored {model_cls.__name__.lower()} data is malformed.")


def no_discount_as_none(value):
    """Stored products may say "none" where no discount applies."""
    if value == "none":
        return None
    return value


SnapshotDiscountType = Annotated[Optional[DiscountType], BeforeValidator(no_discount_as_none)]


# Catalog (read-only to the commerce core)

class ProductColor(StoreModel):
    name: str
    hex: str
    image: Optional[str] = None


class Product(StoreModel):
    id: Optional[str] = None
    name: str
    price: float = Field(..., ge=0)
    discount_type: SnapshotDiscountType = None
    discount_value: Optional[float] = None
    stock: int = 0
    image_urls: List[str] = Field(default_factory=list)
    colors: List[ProductColor] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)


# Cart

class CartItem(StoreModel):
    product_id: str = Field(..., min_length=1)
    name: str
    price: float = Field(..., ge=0, description="Effective unit price when added")
    original_price: Optional[float] = Field(None, description="Base price if a discount applied")
    image: Optional[str] = None
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    color_hex: Optional[str] = None
    applied_discount_type: SnapshotDiscountType = None
    applied_discount_value: Optional[float] = None
    cart_key: Optional[str] = None


class Cart(StoreModel):
    id: Optional[str] = None
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CartItemQuantity(StoreModel):
    cart_key: str = Field(..., min_length=1)
    quantity: int


class CartItemKey(StoreModel):
    cart_key: str = Field(..., min_length=1)


# Coupons

class Coupon(StoreModel):
    id: Optional[str] = None
    code: str
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0)
    expiry_date: datetime
    min_purchase_amount: Optional[float] = None
    usage_limit: Optional[int] = None
    usage_count: int = Field(0, ge=0)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CouponCreate(StoreModel):
    code: str = Field(..., min_length=1)
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0)
    expiry_date: datetime
    min_purchase_amount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: bool = True


class CouponUpdate(StoreModel):
    code: Optional[str] = Field(None, min_length=1)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(None, gt=0)
    expiry_date: Optional[datetime] = None
    min_purchase_amount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class ValidateCouponRequest(StoreModel):
    coupon_code: str
    cart_subtotal: float = Field(..., ge=0)


class ValidatedCoupon(StoreModel):
    id: Optional[str] = None
    code: str
    discount_type: DiscountType
    discount_value: float
    min_purchase_amount: Optional[float] = None
    discount_amount: float
    message: str = "Coupon applied successfully."


# Orders

class ShippingAddress(StoreModel):
    full_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    street_address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderItem(StoreModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    original_price: Optional[float] = None
    image: Optional[str] = None
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    applied_discount_type: SnapshotDiscountType = None
    applied_discount_value: Optional[float] = None


class Order(StoreModel):
    id: Optional[str] = None
    user_id: str
    items: List[OrderItem]
    total_amount: float
    shipping_address: ShippingAddress
    payment_method: str
    order_status: OrderStatus = "Pending"
    applied_coupon_code: Optional[str] = None
    coupon_discount_amount: Optional[float] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderCreate(StoreModel):
    items: List[OrderItem] = Field(default_factory=list)
    total_amount: float = Field(..., ge=0)
    shipping_address: ShippingAddress
    payment_method: str = Field(..., min_length=1)
    order_status: Literal["Pending"] = "Pending"
    applied_coupon_code: Optional[str] = None
    coupon_discount_amount: Optional[float] = Field(None, ge=0)


class OrderCreated(StoreModel):
    message: str = "Order created successfully"
    order_id: str


class OrderStatusUpdate(StoreModel):
    new_status: str


class SalesSummary(StoreModel):
    total_sales: float = 0.0
    completed_orders_count: int = 0
    active_orders_count: int = 0


# Wishlist

class Wishlist(StoreModel):
    id: Optional[str] = None
    user_id: str
    product_ids: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WishlistProduct(StoreModel):
    product_id: str = Field(..., min_length=1)


class WishlistOut(StoreModel):
    product_ids: List[str] = Field(default_factory=list)
