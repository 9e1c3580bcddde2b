"""Tests for the FastAPI application endpoints.

Integration tests over HTTP: health checks, the response envelopes, the QR
login handshake and the recommendation endpoints.
"""

from bson import ObjectId

from conftest import auth_headers, make_product, make_user


def test_ping_endpoint(client):
    """Test that the /ping endpoint returns correct status and JSON."""
    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


def test_metrics_endpoint(client):
    """Test that /metrics counts handled requests."""
    client.get("/ping")
    response = client.get("/metrics")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["request_count"] >= 1
    assert "recommendation_cache" in body["data"]


def test_register_and_me(client):
    """Test that a registered user can call /auth/me with the issued token."""
    response = client.post(
        "/auth/register",
        json={"email": "grace@example.com", "password": "hopper1906", "name": "Grace"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["status"] == 201

    token = body["data"]["accessToken"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["email"] == "grace@example.com"


def test_register_duplicate_email_envelope(client):
    payload = {"email": "grace@example.com", "password": "hopper1906", "name": "Grace"}
    client.post("/auth/register", json=payload)

    response = client.post("/auth/register", json=payload)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "Conflict"


def test_missing_token_is_unauthorized(client):
    """Test that protected endpoints answer 401 in the error envelope."""
    response = client.get("/cart")

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "status": 401,
        "error": {"code": "Unauthorized", "message": "Authentication required"},
    }


def test_garbage_token_is_unauthorized(client):
    response = client.get("/cart", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_customer_cannot_create_products(client, container, database):
    customer = make_user(database)

    response = client.post(
        "/products", json={"title": "Lamp", "price": 100}, headers=auth_headers(container, customer)
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "Forbidden"


def test_unknown_product_is_not_found(client):
    response = client.get(f"/products/{ObjectId()}")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NotFound"


def test_malformed_id_is_bad_request(client):
    response = client.get("/products/not-an-id")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BadRequest"


def test_validation_error_envelope(client):
    response = client.post("/auth/login", json={"email": "not-an-email"})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "ValidationError"
    assert body["error"]["details"]["errors"]


def test_unknown_route_envelope(client):
    response = client.get("/nowhere")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NotFound"


def test_product_listing_meta(client, database):
    for price in (100, 200, 300):
        make_product(database, price=price)

    response = client.get("/products", params={"limit": 2, "sort": "price:asc"})

    body = response.json()
    assert [p["price"] for p in body["data"]] == [100, 200]
    assert body["meta"]["totalItems"] == 3
    assert body["meta"]["hasNext"] is True
    assert "id" in body["data"][0]
    assert "_id" not in body["data"][0]


def test_checkout_over_http(client, container, database):
    """Test that a cart becomes an order with totals and an order number."""
    shopper = make_user(database)
    headers = auth_headers(container, shopper)
    lamp = make_product(database, price=2500, stock=4)

    cart = client.post("/cart/items", json={"productId": str(lamp["_id"]), "quantity": 2}, headers=headers)
    assert cart.json()["data"]["subtotal"] == 5000

    response = client.post(
        "/orders",
        json={
            "shippingAddress": {
                "fullName": "Ada Lovelace",
                "addressLine1": "12 St James's Square",
                "city": "London",
                "postalCode": "SW1Y 4JH",
                "country": "GB",
            },
            "paymentMethod": "card",
        },
        headers=headers,
    )

    assert response.status_code == 201
    order = response.json()["data"]
    assert order["orderNumber"].startswith("ORD-")
    assert order["total"] == 5000 + 1000 + 500

    tracked = client.get(f"/orders/track/{order['orderNumber']}", headers=headers)
    assert tracked.json()["data"]["id"] == order["id"]


def test_qr_login_flow(client, container, database):
    """Test the desktop/phone QR handshake end to end."""
    generated = client.post("/auth/qr/generate")
    assert generated.status_code == 201
    data = generated.json()["data"]
    assert "qrToken" not in data
    assert data["expiresInSeconds"] == 300

    session_id = data["sessionId"]
    # The phone reads the token out of the QR code
    qr_token = database.qr_sessions.find_one({"sessionId": session_id})["qrToken"]

    status = client.get(f"/auth/qr/status/{session_id}").json()["data"]
    assert status == {"status": "pending"}

    scanned = client.post("/auth/qr/scan", json={"sessionId": session_id, "qrToken": qr_token})
    assert scanned.status_code == 200
    assert client.get(f"/auth/qr/status/{session_id}").json()["data"]["status"] == "scanned"

    phone_user = make_user(database)
    approved = client.post(
        "/auth/qr/authenticate",
        json={"sessionId": session_id, "qrToken": qr_token},
        headers=auth_headers(container, phone_user),
    )
    assert approved.status_code == 200

    status = client.get(f"/auth/qr/status/{session_id}").json()["data"]
    assert status["status"] == "authenticated"
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {status['accessToken']}"})
    assert me.json()["data"]["id"] == str(phone_user["_id"])


def test_qr_authenticate_requires_login(client, database):
    session_id = client.post("/auth/qr/generate").json()["data"]["sessionId"]
    qr_token = database.qr_sessions.find_one({"sessionId": session_id})["qrToken"]

    response = client.post("/auth/qr/authenticate", json={"sessionId": session_id, "qrToken": qr_token})

    assert response.status_code == 401


def test_qr_status_after_expiry(client, clock):
    session_id = client.post("/auth/qr/generate").json()["data"]["sessionId"]

    clock.advance(minutes=6)

    assert client.get(f"/auth/qr/status/{session_id}").json()["data"] == {"status": "expired"}


def test_track_unknown_event_type(client, container, database):
    headers = auth_headers(container, make_user(database))

    response = client.post("/behavior/track", json={"eventType": "teleport"}, headers=headers)

    assert response.status_code == 400


def test_track_and_read_behavior(client, container, database):
    headers = auth_headers(container, make_user(database))
    product = make_product(database)

    tracked = client.post(
        "/behavior/track",
        json={"eventType": "product_view", "productId": str(product["_id"]), "eventData": {"price": 10000}},
        headers=headers,
    )
    assert tracked.status_code == 201

    events = client.get("/behavior", headers=headers).json()
    assert events["meta"]["totalItems"] == 1
    stats = client.get("/behavior/stats", headers=headers).json()["data"]
    assert stats["productViews"] == 1


def test_trending_endpoint(client, container, database):
    popular = make_product(database)
    make_product(database)
    container.tracker.track(str(ObjectId()), "purchase", product_id=str(popular["_id"]))

    response = client.get("/recommendations/trending", params={"limit": 5})

    body = response.json()
    assert [p["id"] for p in body["data"]] == [str(popular["_id"])]
    assert body["meta"]["totalItems"] == 1


def test_similar_endpoint_unknown_product(client):
    response = client.get(f"/recommendations/similar/{ObjectId()}")

    assert response.status_code == 404


def test_personalized_requires_login(client):
    assert client.get("/recommendations/personalized").status_code == 401


def test_for_you_for_new_user_is_empty(client, container, database):
    headers = auth_headers(container, make_user(database))

    body = client.get("/recommendations/for-you", headers=headers).json()

    assert body["data"] == []
    assert body["meta"]["totalItems"] == 0


def test_refresh_recommendations_admin_only(client, container, database):
    container.recommendations.get_trending_products()
    customer_headers = auth_headers(container, make_user(database))
    admin_headers = auth_headers(container, make_user(database, role="admin"))

    assert client.post("/recommendations/refresh", json={}, headers=customer_headers).status_code == 403

    response = client.post("/recommendations/refresh", json={"type": "trending"}, headers=admin_headers)
    assert response.json()["data"] == {"deleted": 1}


def test_scraper_routes_admin_only(client, container, database):
    headers = auth_headers(container, make_user(database, role="seller"))

    assert client.get("/scraper/jobs", headers=headers).status_code == 403


def test_signed_in_search_is_tracked(client, container, database):
    shopper = make_user(database)
    make_product(database, title="Desk Lamp")

    client.get("/products", params={"q": "lamp"}, headers=auth_headers(container, shopper))
    client.get("/products", params={"q": "lamp"})
    container.background.drain(timeout=5)

    events = list(database.user_behavior.find({"eventType": "search_query"}))
    assert len(events) == 1
    assert events[0]["userId"] == shopper["_id"]
    assert events[0]["eventData"] == {"query": "lamp", "resultCount": 1}


def test_category_routes(client, container, database):
    admin_headers = auth_headers(container, make_user(database, role="admin"))
    customer_headers = auth_headers(container, make_user(database))

    denied = client.post("/categories", json={"name": "Lighting"}, headers=customer_headers)
    assert denied.status_code == 403

    created = client.post("/categories", json={"name": "Lighting"}, headers=admin_headers)
    assert created.status_code == 201
    category = created.json()["data"]
    assert category["slug"] == "lighting"

    child = client.post(
        "/categories", json={"name": "Lamps", "parentId": category["id"]}, headers=admin_headers
    )
    assert child.status_code == 201

    tree = client.get("/categories/tree").json()["data"]
    assert [node["name"] for node in tree] == ["Lighting"]
    assert [node["name"] for node in tree[0]["children"]] == ["Lamps"]

    by_slug = client.get("/categories/slug/lighting", params={"includeProductCount": True})
    assert by_slug.json()["data"]["productCount"] == 0

    blocked = client.delete(f"/categories/{category['id']}", headers=admin_headers)
    assert blocked.status_code == 400
    assert blocked.json()["success"] is False


def test_checkout_with_coupon_over_http(client, container, database):
    admin_headers = auth_headers(container, make_user(database, role="admin"))
    shopper = make_user(database)
    headers = auth_headers(container, shopper)
    lamp = make_product(database, price=2500, stock=4)
    client.post("/cart/items", json={"productId": str(lamp["_id"]), "quantity": 2}, headers=headers)

    created = client.post(
        "/coupons",
        json={
            "code": "flat10",
            "discountType": "fixed",
            "discountValue": 1000,
            "validUntil": "2100-01-01T00:00:00Z",
        },
        headers=admin_headers,
    )
    assert created.status_code == 201
    assert client.get("/coupons", headers=headers).status_code == 403

    checked = client.post("/coupons/validate", json={"code": "FLAT10"}, headers=headers)
    assert checked.json()["data"]["discountAmount"] == 1000

    response = client.post(
        "/orders",
        json={
            "shippingAddress": {
                "fullName": "Ada Lovelace",
                "addressLine1": "12 St James's Square",
                "city": "London",
                "postalCode": "SW1Y 4JH",
                "country": "GB",
            },
            "paymentMethod": "card",
            "couponCode": "flat10",
        },
        headers=headers,
    )

    assert response.status_code == 201
    order = response.json()["data"]
    assert order["discountAmount"] == 1000
    assert order["total"] == 4000 + 1000 + 400
