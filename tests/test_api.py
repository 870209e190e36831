"""Tests for the FastAPI API."""

import hashlib
import hmac
import json
import time

import pytest

from beadshop.errors import UpstreamServiceError
from beadshop.models import OrderItem, OrderStatus, PaymentStatus

from conftest import WEBHOOK_SECRET, auth_header

ADDRESS = {
    "name": "Jane Doe",
    "street1": "42 Garden Lane",
    "city": "Portland",
    "state": "OR",
    "zip": "97201",
}
PACKAGE = {"weight": 0.5, "length": 6, "width": 4, "height": 2}
GROUND = {"rateId": "rate_ground", "carrier": "USPS", "service": "Ground Advantage", "amount": 8.5}


@pytest.fixture
def admin_headers():
    return auth_header("user_admin", "admin", "admin@butterfliesbeading.com")


@pytest.fixture
def owner_headers():
    return auth_header("user_owner", "owner", "owner@butterfliesbeading.com")


@pytest.fixture
def customer_headers():
    return auth_header("user_cust", email="jane@example.com")


@pytest.fixture
def placed(api_client, customer_headers, necklace):
    """An order for two necklaces ($120) awaiting approval."""
    response = api_client.post(
        "/api/orders",
        json={"items": [{"productId": necklace.id, "quantity": 2}], "shippingAddress": ADDRESS},
        headers=customer_headers,
    )
    assert response.status_code == 201
    return response.json()


class TestHealthCheck:
    def test_health(self, api_client):
        response = api_client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data


class TestAuthentication:
    def test_missing_token(self, api_client):
        response = api_client.get("/api/orders")
        assert response.status_code == 401
        assert response.json()["error_type"] == "AuthenticationError"

    def test_garbage_token(self, api_client):
        response = api_client.get("/api/cart", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_customer_cannot_use_admin_actions(self, api_client, customer_headers, placed):
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/accept", headers=customer_headers
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_owner_can_read_but_not_mutate(self, api_client, owner_headers, placed):
        assert api_client.get("/api/admin/orders", headers=owner_headers).status_code == 200
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/accept", headers=owner_headers
        )
        assert response.status_code == 403

    def test_me(self, api_client, admin_headers):
        data = api_client.get("/api/me", headers=admin_headers).json()
        assert data["isAuthenticated"] is True
        assert data["role"] == "admin"
        assert data["profile"]["email"] == "admin@butterfliesbeading.com"


class TestCustomerOrders:
    def test_create_order(self, api_client, customer_headers, placed):
        assert placed["orderNumber"].startswith("ORD-")

        data = api_client.get("/api/orders", headers=customer_headers).json()
        assert data["count"] == 1
        order = data["orders"][0]
        assert order["total"] == 120.0
        assert order["status"] == "pending_approval"
        assert "paymentToken" not in order
        assert "adminApproval" not in order

    def test_get_by_number(self, api_client, customer_headers, placed):
        response = api_client.get(
            f"/api/orders/by-number/{placed['orderNumber']}", headers=customer_headers
        )
        assert response.status_code == 200
        assert response.json()["id"] == placed["orderId"]

    def test_other_customer_gets_404(self, api_client, placed):
        headers = auth_header("user_other", email="other@example.com")
        response = api_client.get(f"/api/orders/by-number/{placed['orderNumber']}", headers=headers)
        assert response.status_code == 404

    def test_missing_address(self, api_client, customer_headers, necklace):
        response = api_client.post(
            "/api/orders", json={"items": [{"productId": necklace.id}]}, headers=customer_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Shipping address is required"

    def test_insufficient_stock(self, api_client, customer_headers, necklace):
        response = api_client.post(
            "/api/orders",
            json={"items": [{"productId": necklace.id, "quantity": 9}], "shippingAddress": ADDRESS},
            headers=customer_headers,
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "InsufficientStockError"

    def test_checkout_returns_client_secret(self, api_client, customer_headers, necklace):
        response = api_client.post(
            "/api/checkout",
            json={"items": [{"productId": necklace.id}], "shippingAddress": ADDRESS},
            headers=customer_headers,
        )
        assert response.status_code == 201
        assert response.json()["clientSecret"] == "pi_1_secret"

    def test_custom_order(self, api_client, customer_headers):
        response = api_client.post(
            "/api/orders/custom",
            json={
                "category": "necklace",
                "title": "Birthstone necklace",
                "sizes": ["18in"],
                "referenceImages": ["https://img.test/1.jpg"],
                "shippingAddress": ADDRESS,
            },
            headers=customer_headers,
        )
        assert response.status_code == 201
        assert response.json()["orderNumber"].startswith("CO-")


class TestAdminOrders:
    def test_list_and_filter(self, api_client, admin_headers, placed):
        data = api_client.get(
            "/api/admin/orders", params={"status": "pending_approval"}, headers=admin_headers
        ).json()
        assert [o["id"] for o in data["orders"]] == [placed["orderId"]]
        assert data["pagination"]["total"] == 1

    def test_invalid_status_filter(self, api_client, admin_headers):
        response = api_client.get(
            "/api/admin/orders", params={"status": "lost"}, headers=admin_headers
        )
        assert response.status_code == 400

    def test_accept_twice(self, api_client, admin_headers, placed):
        url = f"/api/admin/orders/{placed['orderId']}/accept"
        first = api_client.post(url, json={"adminNotes": "Looks good"}, headers=admin_headers)
        assert first.status_code == 200
        assert first.json()["order"]["status"] == "accepted"

        second = api_client.post(url, headers=admin_headers)
        assert second.status_code == 400
        assert second.json()["detail"] == "Order is not pending approval. Current status: accepted"

    def test_reject(self, api_client, admin_headers, placed):
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/reject",
            json={"reason": "Out of materials"},
            headers=admin_headers,
        )
        order = response.json()["order"]
        assert order["status"] == "rejected"
        assert order["adminApproval"]["rejectionReason"] == "Out of materials"

    def test_remove_requires_exact_confirmation(self, api_client, admin_headers, placed):
        url = f"/api/admin/orders/{placed['orderId']}/remove"
        response = api_client.post(url, json={"confirmation": "Remove"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error_type"] == "ConfirmationMismatchError"
        assert api_client.get(
            f"/api/admin/orders/{placed['orderId']}", headers=admin_headers
        ).status_code == 200

        response = api_client.post(url, json={"confirmation": "remove"}, headers=admin_headers)
        assert response.json() == {
            "success": True,
            "message": f"Order {placed['orderNumber']} removed",
            "orderId": placed["orderId"],
        }
        assert api_client.get(
            f"/api/admin/orders/{placed['orderId']}", headers=admin_headers
        ).status_code == 404

    def test_edit_tax_rejects_negative(self, api_client, admin_headers, placed):
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/edit-tax",
            json={"newTaxAmount": -1},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid tax amount provided"

    def test_malformed_json_body(self, api_client, admin_headers, placed):
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/edit-tax",
            content=b"not json",
            headers={**admin_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {
            "detail": "Malformed JSON body",
            "error_type": "ValidationError",
        }

    def test_missing_required_field(self, api_client, admin_headers, make_order):
        order = make_order(status=OrderStatus.ACCEPTED, payment_status=PaymentStatus.PENDING_PAYMENT)
        response = api_client.post(
            f"/api/admin/orders/{order.id}/edit-custom-item",
            json={"updatedItem": {"price": 10}},
            headers=admin_headers,
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error_type"] == "ValidationError"
        assert body["field"] == "itemIndex"
        assert body["detail"].startswith("itemIndex: ")

    def test_edit_custom_item(self, api_client, admin_headers, make_order):
        order = make_order(status=OrderStatus.ACCEPTED, payment_status=PaymentStatus.PENDING_PAYMENT)
        response = api_client.post(
            f"/api/admin/orders/{order.id}/edit-custom-item",
            json={"itemIndex": 0, "updatedItem": {"price": 45}},
            headers=admin_headers,
        )
        data = response.json()["order"]
        assert data["total"] == 45.0
        assert data["status"] == "pending_payment_adjustment"

    def test_rate_failure_is_502_with_details(self, api_client, admin_headers, shipping, placed):
        shipping.fail_rates = True
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/shipping", json=PACKAGE, headers=admin_headers
        )
        assert response.status_code == 502
        assert response.json()["details"] == "carrier timeout"

    def test_invalid_package(self, api_client, admin_headers, placed):
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/shipping",
            json={**PACKAGE, "weight": "heavy"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert "weight" in response.json()["detail"]

    def test_send_email(self, api_client, admin_headers, mailer, placed):
        response = api_client.post(
            f"/api/admin/orders/{placed['orderId']}/send-email",
            json={"subject": "Your beads", "content": "Shipping Friday"},
            headers=admin_headers,
        )
        data = response.json()
        assert data["emailSent"] is True
        assert data["order"]["emailHistory"][-1]["type"] == "custom"
        assert mailer.sent[-1].subject == "Your beads"

    def test_update_details(self, api_client, admin_headers, placed):
        response = api_client.patch(
            f"/api/admin/orders/{placed['orderId']}",
            json={"customerPhone": "503-555-0100"},
            headers=admin_headers,
        )
        assert response.json()["order"]["customerPhone"] == "503-555-0100"


class TestPaymentLinkFlow:
    def test_end_to_end(self, api_client, admin_headers, payments, mailer, shop, necklace, placed):
        order_id = placed["orderId"]
        admin_url = f"/api/admin/orders/{order_id}"

        api_client.post(f"{admin_url}/accept", headers=admin_headers)

        rates = api_client.post(f"{admin_url}/shipping", json=PACKAGE, headers=admin_headers).json()
        assert [r["rateId"] for r in rates["rates"]] == ["rate_ground", "rate_priority"]
        assert rates["packageDetails"] == PACKAGE

        selected = api_client.post(
            f"{admin_url}/shipping/select-rate", json={"rate": GROUND}, headers=admin_headers
        ).json()
        assert selected["freeShippingApplied"] is True
        assert selected["labelPurchased"] is True
        assert selected["order"]["shippingCost"] == 0.0
        assert selected["order"]["shippoShipment"]["carrierCost"] == 8.5

        taxed = api_client.post(
            f"{admin_url}/edit-tax", json={"newTaxAmount": "9.60"}, headers=admin_headers
        ).json()
        assert taxed["oldTotal"] == 120.0
        assert taxed["newTotal"] == 129.6

        link = api_client.post(
            f"{admin_url}/generate-payment-link", json={"sendEmail": True}, headers=admin_headers
        ).json()
        assert link["emailSent"] is True
        assert link["order"]["status"] == "pending_payment"
        token = link["paymentLink"].split("token=")[1]

        verified = api_client.get(
            f"/api/orders/{order_id}/verify", headers={"Authorization": f"Bearer {token}"}
        ).json()
        assert verified["valid"] is True
        assert "paymentToken" not in verified["order"]

        session = api_client.post(
            f"/api/orders/{order_id}/create-stripe-session", json={"token": token}
        ).json()
        assert session["url"].startswith("https://checkout.test/")

        payments.pay(session["sessionId"])
        paid = api_client.post(
            "/api/payment/verify-success",
            json={"sessionId": session["sessionId"], "orderId": order_id},
        ).json()
        assert paid["order"]["status"] == "processing"
        assert paid["order"]["paymentStatus"] == "captured"
        assert shop.catalog.get_product(necklace.id).stock == 3

        shipped = api_client.post(f"{admin_url}/mark-shipped", headers=admin_headers).json()
        assert shipped["order"]["status"] == "shipped"
        delivered = api_client.post(f"{admin_url}/mark-delivered", headers=admin_headers).json()
        assert delivered["order"]["status"] == "delivered"

    def test_verify_bad_token(self, api_client, placed):
        response = api_client.get(
            f"/api/orders/{placed['orderId']}/verify", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_verify_missing_header(self, api_client, placed):
        response = api_client.get(f"/api/orders/{placed['orderId']}/verify")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing or invalid authorization header"

    def test_create_payment_link_for_approved_order(self, api_client, admin_headers, mailer, make_order):
        order = make_order(
            items=[OrderItem(product_id="custom-ring-1", name="Ring", price=45.0, quantity=1)],
            status=OrderStatus.APPROVED,
            payment_status=PaymentStatus.PENDING_PAYMENT,
            total=45.0,
            subtotal=45.0,
        )
        data = api_client.post(
            f"/api/admin/orders/{order.id}/create-payment-link", headers=admin_headers
        ).json()
        assert data["emailSent"] is True
        assert data["order"]["status"] == "approved"
        assert mailer.sent[-1].to == "jane@example.com"

    def test_webhook(self, api_client, shop, payments, make_order):
        order = make_order(
            status=OrderStatus.PENDING_PAYMENT, payment_status=PaymentStatus.PENDING_PAYMENT
        )
        session = payments.create_checkout_session([], {"orderId": order.id}, "s", "c")
        order.checkout_session_id = session.id
        shop.orders.save(order)
        payments.pay(session.id)
        payload = json.dumps({
            "type": "checkout.session.completed",
            "data": {"object": {"id": session.id, "metadata": {"orderId": order.id}}},
        }).encode()
        timestamp = int(time.time())
        digest = hmac.new(
            WEBHOOK_SECRET.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256
        ).hexdigest()

        response = api_client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": f"t={timestamp},v1={digest}"},
        )

        assert response.json() == {"received": True, "handled": True}

    def test_webhook_bad_signature(self, api_client):
        response = api_client.post(
            "/api/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=00"}
        )
        assert response.status_code == 400


class TestCartEndpoints:
    def test_add_update_remove(self, api_client, customer_headers, necklace):
        added = api_client.post(
            "/api/cart/add", json={"productId": necklace.id, "quantity": 2}, headers=customer_headers
        ).json()
        key = added["items"][0]["cartItemId"]
        assert added["items"][0]["quantity"] == 2

        updated = api_client.post(
            "/api/cart/update", json={"cartItemId": key, "quantity": 3}, headers=customer_headers
        ).json()
        assert updated["items"][0]["quantity"] == 3

        removed = api_client.post(
            "/api/cart/remove", json={"cartItemId": key}, headers=customer_headers
        ).json()
        assert removed["items"] == []

    def test_remove_missing(self, api_client, customer_headers):
        response = api_client.post(
            "/api/cart/remove", json={"cartItemId": "x_default"}, headers=customer_headers
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Item not found in cart"

    def test_add_custom_item(self, api_client, customer_headers):
        data = api_client.post(
            "/api/cart/add",
            json={"productId": "custom-ring-9", "name": "Stacking Ring", "price": 28,
                  "customDetails": {"size": "7"}},
            headers=customer_headers,
        ).json()
        assert data["items"][0]["name"] == "Stacking Ring"

    def test_sync(self, api_client, customer_headers, ring):
        response = api_client.post(
            "/api/cart/sync",
            json={
                "items": [{"productId": ring.id, "unitId": "size-6", "name": "Ring", "quantity": 5}],
                "policy": "local_wins",
            },
            headers=customer_headers,
        )
        data = response.json()
        assert data["policy"] == "local_wins"
        assert data["adjusted"] == [f"{ring.id}_size-6"]
        assert data["items"][0]["quantity"] == 2

        cart = api_client.get("/api/cart", headers=customer_headers).json()
        assert len(cart["items"]) == 1

    def test_clear(self, api_client, customer_headers, necklace):
        api_client.post("/api/cart/add", json={"productId": necklace.id}, headers=customer_headers)
        assert api_client.post("/api/cart/clear", headers=customer_headers).json()["items"] == []


class TestCatalogEndpoints:
    def test_list_products(self, api_client, necklace, ring):
        data = api_client.get(
            "/api/products", params={"sortBy": "price-high", "maxPrice": 100}
        ).json()
        assert [p["id"] for p in data["products"]] == [necklace.id, ring.id]
        assert data["products"][0]["effectivePrice"] == 60.0
        assert data["pagination"]["total"] == 2

    def test_invalid_sort(self, api_client):
        assert api_client.get("/api/products", params={"sortBy": "random"}).status_code == 400

    def test_inactive_product_hidden(self, api_client, shop, necklace):
        necklace.is_active = False
        shop.catalog.update_product(necklace)
        assert api_client.get(f"/api/products/{necklace.id}").status_code == 404

    def test_reviews(self, api_client, customer_headers, necklace):
        url = f"/api/products/{necklace.id}/reviews"
        created = api_client.post(url, json={"rating": 5, "title": "Gorgeous"}, headers=customer_headers)
        assert created.status_code == 201

        duplicate = api_client.post(url, json={"rating": 4}, headers=customer_headers)
        assert duplicate.status_code == 409

        assert api_client.get(url).json()["count"] == 1
        assert api_client.get(f"/api/products/{necklace.id}").json()["rating"] == 5.0

    def test_admin_product_crud(self, api_client, admin_headers):
        created = api_client.post(
            "/api/admin/products",
            json={
                "name": "Pearl Studs",
                "price": 32,
                "category": "earrings",
                "units": [{"unitId": "white", "price": 32, "stock": 4, "color": "white"}],
                "saleConfig": {"isOnSale": True, "saleType": "amount", "saleValue": 2},
            },
            headers=admin_headers,
        )
        assert created.status_code == 201
        product = created.json()
        assert product["units"][0]["effectivePrice"] == 30.0

        updated = api_client.put(
            f"/api/admin/products/{product['id']}", json={"featured": True}, headers=admin_headers
        ).json()
        assert updated["featured"] is True
        assert updated["name"] == "Pearl Studs"

        bulk = api_client.post(
            "/api/admin/products/bulk-sale",
            json={"productIds": [product["id"]], "action": "removeSale"},
            headers=admin_headers,
        ).json()
        assert bulk == {"success": True, "updatedCount": 1}

        deleted = api_client.delete(f"/api/admin/products/{product['id']}", headers=admin_headers)
        assert deleted.json()["success"] is True
        assert api_client.get(f"/api/products/{product['id']}").status_code == 404

    def test_bulk_price(self, api_client, admin_headers, necklace):
        data = api_client.post(
            "/api/admin/products/bulk-update",
            json={"productIds": [necklace.id], "setPrice": 55},
            headers=admin_headers,
        ).json()
        assert data["updatedCount"] == 1

    def test_categories(self, api_client, admin_headers):
        created = api_client.post(
            "/api/admin/categories", json={"name": "Hair Pins"}, headers=admin_headers
        )
        assert created.json()["slug"] == "hair-pins"
        assert [c["slug"] for c in api_client.get("/api/categories").json()["categories"]] == [
            "hair-pins"
        ]


class TestShippingQuote:
    def _add(self, api_client, headers, product_id, quantity):
        api_client.post(
            "/api/cart/add", json={"productId": product_id, "quantity": quantity}, headers=headers
        )

    def test_estimates_parcel_from_cart(self, api_client, customer_headers, shipping, necklace):
        self._add(api_client, customer_headers, necklace.id, 1)

        data = api_client.post(
            "/api/shipping/rates", json={"address": ADDRESS}, headers=customer_headers
        ).json()

        assert [r["rateId"] for r in data["rates"]] == ["rate_ground", "rate_priority"]
        assert data["rates"][0]["cost"] == 8.5
        assert data["rates"][0]["isFreeShipping"] is False
        assert data["cartSubtotal"] == 60.0
        assert data["qualifiesForFreeShipping"] is False
        assert data["package"] == {"weight": 0.2, "length": 6.0, "width": 6.0, "height": 2.0}
        assert shipping.parcels[-1].weight == 0.2

    def test_free_shipping_over_threshold(self, api_client, customer_headers, necklace):
        self._add(api_client, customer_headers, necklace.id, 2)

        data = api_client.post(
            "/api/shipping/rates", json={"address": ADDRESS}, headers=customer_headers
        ).json()

        assert data["qualifiesForFreeShipping"] is True
        assert [r["cost"] for r in data["rates"]] == [0.0, 0.0]
        assert data["rates"][0]["originalCost"] == 8.5

    def test_metric_package_converted(self, api_client, customer_headers, shipping, necklace):
        self._add(api_client, customer_headers, necklace.id, 1)

        api_client.post(
            "/api/shipping/rates",
            json={
                "address": ADDRESS,
                "units": "metric",
                "package": {"weight": 1, "length": 10, "width": 10, "height": 5},
            },
            headers=customer_headers,
        )

        parcel = shipping.parcels[-1]
        assert (parcel.weight, parcel.length) == (2.2, 3.94)

    def test_empty_cart(self, api_client, customer_headers):
        response = api_client.post(
            "/api/shipping/rates", json={"address": ADDRESS}, headers=customer_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Cart is empty"

    def test_requires_session(self, api_client):
        response = api_client.post("/api/shipping/rates", json={"address": ADDRESS})
        assert response.status_code == 401


class TestContactAndProfile:
    def test_contact(self, api_client, mailer):
        response = api_client.post(
            "/api/contact",
            json={"name": "Bo", "email": "bo@example.com", "message": "Do you do anklets?"},
        )
        assert response.json() == {"success": True, "autoReplySent": True}
        assert [m.to for m in mailer.sent] == ["hello@butterfliesbeading.com", "bo@example.com"]

    def test_contact_requires_fields(self, api_client):
        response = api_client.post("/api/contact", json={"name": "Bo", "email": "bo@example.com"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Name, email, and message are required"

    def test_contact_auto_reply_best_effort(self, api_client, mailer, monkeypatch):
        original = mailer.send

        def flaky_send(message):
            if message.to == "bo@example.com":
                raise UpstreamServiceError("Resend", "send failed")
            return original(message)

        monkeypatch.setattr(mailer, "send", flaky_send)
        response = api_client.post(
            "/api/contact", json={"name": "Bo", "email": "bo@example.com", "message": "Hi"}
        )
        assert response.json() == {"success": True, "autoReplySent": False}

    def test_contact_business_failure(self, api_client, mailer):
        mailer.fail = True
        response = api_client.post(
            "/api/contact", json={"name": "Bo", "email": "bo@example.com", "message": "Hi"}
        )
        assert response.status_code == 502

    def test_validate_address(self, api_client):
        response = api_client.post(
            "/api/shipping/validate-address", json={**ADDRESS, "street1": "P.O. Box 9"}
        )
        assert response.json()["isValid"] is False

    def test_shipping_address(self, api_client, customer_headers):
        empty = api_client.get("/api/user/shipping-address", headers=customer_headers).json()
        assert empty == {"shippingAddress": None}

        api_client.post("/api/user/shipping-address", json=ADDRESS, headers=customer_headers)
        saved = api_client.get("/api/user/shipping-address", headers=customer_headers).json()
        assert saved["shippingAddress"]["city"] == "Portland"


class TestRoles:
    def test_owner_assigns_role(self, api_client, owner_headers, shop):
        response = api_client.post(
            "/api/admin/roles",
            json={"email": "New.Admin@Example.com", "role": "admin"},
            headers=owner_headers,
        )
        assert response.status_code == 201
        assert response.json()["email"] == "new.admin@example.com"

        listed = api_client.get("/api/admin/roles", headers=owner_headers).json()
        assert [a["assignedBy"] for a in listed["assignments"]] == ["owner@butterfliesbeading.com"]

    def test_customer_cannot_assign(self, api_client, customer_headers):
        response = api_client.post(
            "/api/admin/roles", json={"email": "x@example.com", "role": "admin"},
            headers=customer_headers,
        )
        assert response.status_code == 403
