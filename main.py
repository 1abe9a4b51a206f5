import os
import logging
from typing import List

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
import cart_service
import catalog
import checkout
import coupon_service
import order_service
import wishlist_service
from auth import Caller, get_current_user, require_admin
from database import get_db
from errors import StoreError
from schemas import (
    Cart, CartItem, CartItemKey, CartItemQuantity,
    Coupon, CouponCreate, CouponUpdate, ValidateCouponRequest, ValidatedCoupon,
    Order, OrderCreate, OrderCreated, OrderStatusUpdate, SalesSummary,
    WishlistOut, WishlistProduct,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# App setup
app = FastAPI(title="Storefront API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error responses
@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"message": "Invalid request. " + "; ".join(problems)})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"message": "Database error."})


@app.on_event("startup")
def prepare_indexes():
    if database.db is not None:
        database.ensure_indexes(database.db)


# Health and helpers
@app.get("/")
def root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


# Products
@app.get("/products/{product_id}/quote")
def product_quote(product_id: str, db: Database = Depends(get_db)):
    quote = catalog.quote_product(db, product_id)
    return {
        "effectivePrice": quote.effective_price,
        "originalPriceDisplay": quote.original_price_display,
        "discountLabel": quote.discount_label,
    }


# Cart
@app.get("/cart", response_model=Cart)
def get_cart(user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_service.get_cart(db, user.user_id)


@app.post("/cart/item", response_model=Cart)
def cart_add(item: CartItem, user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_service.add_item(db, user.user_id, item)


@app.put("/cart/item", response_model=Cart)
def cart_update(payload: CartItemQuantity, user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_service.update_item_quantity(db, user.user_id, payload.cart_key, payload.quantity)


@app.delete("/cart/item", response_model=Cart)
def cart_remove(payload: CartItemKey, user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_service.remove_item(db, user.user_id, payload.cart_key)


@app.delete("/cart", response_model=Cart)
def cart_clear(user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return cart_service.clear_cart(db, user.user_id)


# Coupons
@app.post("/coupons/validate-checkout", response_model=ValidatedCoupon, response_model_exclude={"id"})
def validate_checkout_coupon(payload: ValidateCouponRequest, user: Caller = Depends(get_current_user),
                             db: Database = Depends(get_db)):
    coupon = coupon_service.validate_coupon(db, payload.coupon_code, payload.cart_subtotal)
    logger.info("Coupon %s validated for user %s (subtotal %.2f)", coupon.code, user.user_id, payload.cart_subtotal)
    return coupon


@app.get("/admin/coupons", response_model=List[Coupon])
def admin_list_coupons(admin: Caller = Depends(require_admin), db: Database = Depends(get_db)):
    return coupon_service.list_coupons(db)


@app.post("/admin/coupons", response_model=Coupon, status_code=201)
def admin_create_coupon(payload: CouponCreate, admin: Caller = Depends(require_admin), db: Database = Depends(get_db)):
    return coupon_service.create_coupon(db, payload)


@app.get("/admin/coupons/{coupon_id}", response_model=Coupon)
def admin_get_coupon(coupon_id: str, admin: Caller = Depends(require_admin), db: Database = Depends(get_db)):
    return coupon_service.get_coupon(db, coupon_id)


@app.put("/admin/coupons/{coupon_id}", response_model=Coupon)
def admin_update_coupon(coupon_id: str, payload: CouponUpdate, admin: Caller = Depends(require_admin),
                        db: Database = Depends(get_db)):
    return coupon_service.update_coupon(db, coupon_id, payload)


@app.delete("/admin/coupons/{coupon_id}")
def admin_delete_coupon(coupon_id: str, admin: Caller = Depends(require_admin), db: Database = Depends(get_db)):
    coupon_service.delete_coupon(db, coupon_id)
    return {"message": "Coupon deleted successfully"}


# Checkout & Orders
@app.post("/orders", response_model=OrderCreated, status_code=201)
def create_order(payload: OrderCreate, user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    order = checkout.place_order(db, user.user_id, payload)
    return OrderCreated(order_id=order.id)


@app.get("/my-orders", response_model=List[Order])
def my_orders(user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return order_service.get_user_orders(db, user.user_id)


@app.get("/my-orders/{order_id}", response_model=Order)
def my_order(order_id: str, user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return order_service.get_user_order(db, order_id, user.user_id)


@app.post("/my-orders/{order_id}/cancel", response_model=Order)
def cancel_my_order(order_id: str, user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    return order_service.cancel_order(db, order_id, user.user_id)


@app.put("/orders/{order_id}/status", response_model=Order)
def update_order_status(order_id: str, payload: OrderStatusUpdate, admin: Caller = Depends(require_admin),
                        db: Database = Depends(get_db)):
    return order_service.update_order_status(db, order_id, payload.new_status)


@app.get("/admin/orders", response_model=List[Order])
def admin_orders(admin: Caller = Depends(require_admin), db: Database = Depends(get_db)):
    return order_service.list_orders(db)


@app.get("/admin/orders/{order_id}", response_model=Order)
def admin_order(order_id: str, admin: Caller = Depends(require_admin), db: Database = Depends(get_db)):
    return order_service.get_order(db, order_id)


@app.get("/admin/dashboard", response_model=SalesSummary)
def admin_dashboard(admin: Caller = Depends(require_admin), db: Database = Depends(get_db)):
    return order_service.sales_summary(db)


# Wishlist
@app.get("/wishlist", response_model=WishlistOut)
def get_wishlist(user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = wishlist_service.get_wishlist(db, user.user_id)
    return WishlistOut(product_ids=wishlist.product_ids)


@app.post("/wishlist/add", response_model=WishlistOut)
def wishlist_add(payload: WishlistProduct, user: Caller = Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = wishlist_service.add_to_wishlist(db, user.user_id, payload.product_id)
    return WishlistOut(product_ids=wishlist.product_ids)


@app.post("/wishlist/remove", response_model=WishlistOut)
def wishlist_remove(payload: WishlistProduct, user: Caller = Depends(get_current_user),
                    db: Database = Depends(get_db)):
    wishlist = wishlist_service.remove_from_wishlist(db, user.user_id, payload.product_id)
    return WishlistOut(product_ids=wishlist.product_ids)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
