from datetime import datetime, timedelta

import jwt
from bson import ObjectId

import auth
import database

ADDRESS = {
    "fullName": "Nadia Rahman",
    "phone": "01700000000",
    "streetAddress": "12 Lake Road",
    "city": "Dhaka",
    "postalCode": "1205",
    "country": "Bangladesh",
}


def shirt(quantity=1, size="M"):
    return {"productId": "p-1", "name": "Linen Shirt", "price": 500, "quantity": quantity,
            "size": size, "color": "Navy", "colorHex": "#000080"}


def place_order(client, headers, total=1050, **extra):
    body = {
        "items": [{"productId": "p-1", "name": "Linen Shirt", "price": 500, "quantity": 2}],
        "totalAmount": total,
        "shippingAddress": ADDRESS,
        "paymentMethod": "Cash on Delivery",
        "orderStatus": "Pending",
    }
    body.update(extra)
    return client.post("/orders", json=body, headers=headers)


class TestHealth:
    def test_root(self, client):
        assert client.get("/").json() == {"message": "Storefront API running"}


class TestAuth:
    def test_missing_token(self, client):
        response = client.get("/cart")
        assert response.status_code == 401
        assert "message" in response.json()

    def test_expired_token(self, client):
        token = jwt.encode({"sub": "user-1", "exp": datetime.utcnow() - timedelta(minutes=1)},
                           auth.JWT_SECRET, algorithm="HS256")
        response = client.get("/cart", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json() == {"message": "Token expired"}

    def test_bad_signature(self, client):
        token = jwt.encode({"sub": "user-1"}, "wrong-secret", algorithm="HS256")
        response = client.get("/wishlist", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_admin_route_needs_admin(self, client, user_headers):
        assert client.get("/admin/coupons", headers=user_headers).status_code == 403


class TestCartRoutes:
    def test_cart_flow(self, client, user_headers):
        assert client.get("/cart", headers=user_headers).json()["items"] == []

        client.post("/cart/item", json=shirt(quantity=1), headers=user_headers)
        response = client.post("/cart/item", json=shirt(quantity=2), headers=user_headers)
        assert response.status_code == 200
        items = response.json()["items"]
        assert len(items) == 1
        assert items[0]["cartKey"] == "p-1-M-Navy"
        assert items[0]["quantity"] == 3

        response = client.put("/cart/item", json={"cartKey": "p-1-M-Navy", "quantity": 5}, headers=user_headers)
        assert response.json()["items"][0]["quantity"] == 5

        response = client.request("DELETE", "/cart/item", json={"cartKey": "p-1-M-Navy"}, headers=user_headers)
        assert response.json()["items"] == []

    def test_zero_quantity_rejected(self, client, user_headers):
        client.post("/cart/item", json=shirt(), headers=user_headers)
        response = client.put("/cart/item", json={"cartKey": "p-1-M-Navy", "quantity": 0}, headers=user_headers)
        assert response.status_code == 400
        assert client.get("/cart", headers=user_headers).json()["items"][0]["quantity"] == 1

    def test_update_unknown_item(self, client, user_headers):
        response = client.put("/cart/item", json={"cartKey": "nope", "quantity": 2}, headers=user_headers)
        assert response.status_code == 404
        assert response.json() == {"message": "Item not found in cart."}

    def test_malformed_item(self, client, user_headers):
        response = client.post("/cart/item", json={"name": "No product"}, headers=user_headers)
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid request.")

    def test_clear(self, client, user_headers):
        client.post("/cart/item", json=shirt(), headers=user_headers)
        assert client.delete("/cart", headers=user_headers).json()["items"] == []


class TestCouponRoutes:
    def test_validate_checkout(self, client, user_headers, make_coupon):
        make_coupon(code="SAVE10", discount_value=10)
        response = client.post("/coupons/validate-checkout",
                               json={"couponCode": "save10", "cartSubtotal": 1000}, headers=user_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["code"] == "SAVE10"
        assert body["discountType"] == "percentage"
        assert body["discountValue"] == 10
        assert body["discountAmount"] == 100
        assert "id" not in body

    def test_validate_checkout_rejection(self, client, user_headers, make_coupon):
        make_coupon(code="OLD", expiry_date=datetime.utcnow() - timedelta(days=1))
        response = client.post("/coupons/validate-checkout",
                               json={"couponCode": "OLD", "cartSubtotal": 1000}, headers=user_headers)
        assert response.status_code == 400
        assert response.json() == {"message": "This coupon has expired."}

    def test_admin_crud(self, client, admin_headers):
        body = {"code": "winter", "discountType": "fixed", "discountValue": 150,
                "expiryDate": (datetime.utcnow() + timedelta(days=5)).isoformat(), "minPurchaseAmount": None}
        created = client.post("/admin/coupons", json=body, headers=admin_headers)
        assert created.status_code == 201
        coupon = created.json()
        assert coupon["code"] == "WINTER"
        assert coupon["minPurchaseAmount"] is None
        assert coupon["usageCount"] == 0

        assert client.post("/admin/coupons", json=body, headers=admin_headers).status_code == 409

        updated = client.put(f"/admin/coupons/{coupon['id']}", json={"usageLimit": 3}, headers=admin_headers)
        assert updated.json()["usageLimit"] == 3

        assert len(client.get("/admin/coupons", headers=admin_headers).json()) == 1
        assert client.delete(f"/admin/coupons/{coupon['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/admin/coupons/{coupon['id']}", headers=admin_headers).status_code == 404
        assert client.get("/admin/coupons/bad-id", headers=admin_headers).status_code == 400


class TestOrderRoutes:
    def test_place_order_redeems_coupon_and_clears_cart(self, client, db, user_headers, make_coupon):
        coupon_id = make_coupon(code="SAVE10", discount_value=10)
        client.post("/cart/item", json=shirt(quantity=2), headers=user_headers)

        response = place_order(client, user_headers, total=950, appliedCouponCode="SAVE10",
                               couponDiscountAmount=100)

        assert response.status_code == 201
        order_id = response.json()["orderId"]
        assert client.get("/cart", headers=user_headers).json()["items"] == []
        assert db[database.COUPON].find_one({"_id": ObjectId(coupon_id)})["usage_count"] == 1

        order = client.get(f"/my-orders/{order_id}", headers=user_headers).json()
        assert order["orderStatus"] == "Pending"
        assert order["totalAmount"] == 950
        assert order["appliedCouponCode"] == "SAVE10"

    def test_empty_items(self, client, user_headers):
        response = place_order(client, user_headers, items=[])
        assert response.status_code == 400

    def test_incomplete_address(self, client, user_headers):
        response = place_order(client, user_headers, shippingAddress={**ADDRESS, "city": ""})
        assert response.status_code == 400

    def test_my_orders_are_private(self, client, user_headers, other_user_headers):
        order_id = place_order(client, user_headers).json()["orderId"]
        assert len(client.get("/my-orders", headers=user_headers).json()) == 1
        assert client.get("/my-orders", headers=other_user_headers).json() == []
        assert client.get(f"/my-orders/{order_id}", headers=other_user_headers).status_code == 404

    def test_cancel(self, client, user_headers, admin_headers):
        order_id = place_order(client, user_headers).json()["orderId"]
        response = client.post(f"/my-orders/{order_id}/cancel", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["orderStatus"] == "Cancelled"

    def test_cancel_shipped(self, client, user_headers, admin_headers):
        order_id = place_order(client, user_headers).json()["orderId"]
        client.put(f"/orders/{order_id}/status", json={"newStatus": "Shipped"}, headers=admin_headers)
        response = client.post(f"/my-orders/{order_id}/cancel", headers=user_headers)
        assert response.status_code == 400
        assert response.json() == {"message": "Order cannot be cancelled as it is already Shipped."}

    def test_cancel_someone_elses_order(self, client, user_headers, other_user_headers):
        order_id = place_order(client, user_headers).json()["orderId"]
        assert client.post(f"/my-orders/{order_id}/cancel", headers=other_user_headers).status_code == 404

    def test_admin_delivers(self, client, db, user_headers, admin_headers, make_product):
        product_id = make_product(stock=10)
        body = [{"productId": product_id, "name": "Linen Shirt", "price": 500, "quantity": 3}]
        order_id = place_order(client, user_headers, total=1550, items=body).json()["orderId"]

        response = client.put(f"/orders/{order_id}/status", json={"newStatus": "Delivered"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["deliveredAt"] is not None
        assert db[database.PRODUCT].find_one({"_id": ObjectId(product_id)})["stock"] == 7
        summary = client.get("/admin/dashboard", headers=admin_headers).json()
        assert summary == {"totalSales": 1550, "completedOrdersCount": 1, "activeOrdersCount": 0}

    def test_admin_status_validation(self, client, user_headers, admin_headers):
        order_id = place_order(client, user_headers).json()["orderId"]
        bad = client.put(f"/orders/{order_id}/status", json={"newStatus": "Lost"}, headers=admin_headers)
        assert bad.status_code == 400
        missing = client.put(f"/orders/{ObjectId()}/status", json={"newStatus": "Shipped"}, headers=admin_headers)
        assert missing.status_code == 404
        assert client.put(f"/orders/{order_id}/status", json={"newStatus": "Shipped"},
                          headers=user_headers).status_code == 403

    def test_admin_lists_all_orders(self, client, user_headers, other_user_headers, admin_headers):
        first = place_order(client, user_headers).json()["orderId"]
        place_order(client, other_user_headers)
        assert len(client.get("/admin/orders", headers=admin_headers).json()) == 2
        assert client.get(f"/admin/orders/{first}", headers=admin_headers).json()["id"] == first


class TestWishlistRoutes:
    def test_add_and_remove(self, client, user_headers):
        client.post("/wishlist/add", json={"productId": "p-1"}, headers=user_headers)
        response = client.post("/wishlist/add", json={"productId": "p-1"}, headers=user_headers)
        assert response.json() == {"productIds": ["p-1"]}
        response = client.post("/wishlist/remove", json={"productId": "p-1"}, headers=user_headers)
        assert response.json() == {"productIds": []}
        assert client.get("/wishlist", headers=user_headers).json() == {"productIds": []}


class TestProductQuote:
    def test_quote(self, client, make_product):
        product_id = make_product(price=1000, discount_type="percentage", discount_value=20)
        body = client.get(f"/products/{product_id}/quote").json()
        assert body == {"effectivePrice": 800.0, "originalPriceDisplay": 1000, "discountLabel": "20% OFF"}

    def test_unknown_product(self, client):
        assert client.get(f"/products/{ObjectId()}/quote").status_code == 404

    def test_none_discount_type(self, client, make_product):
        product_id = make_product(price=500, discount_type="none", discount_value=100)
        body = client.get(f"/products/{product_id}/quote").json()
        assert body == {"effectivePrice": 500.0, "originalPriceDisplay": None, "discountLabel": None}

    def test_malformed_product(self, client, db):
        product_id = db[database.PRODUCT].insert_one({"name": "Tee", "price": "free"}).inserted_id
        response = client.get(f"/products/{product_id}/quote")
        assert response.status_code == 500
        assert "message" in response.json()
