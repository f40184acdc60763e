# =============================================================================
# tests/test_routes.py - API Route Tests
# =============================================================================
# End-to-end requests through the FastAPI app with the in-memory services
# injected via dependency_overrides (see conftest.api_client).
#
# Run with: pytest tests/test_routes.py -v
# =============================================================================

import json

import pytest
from jose import jwt

from tests.conftest import BRAND_ID, CREATOR_ID, OUTSIDER_ID
from tests.test_payments import checkout_completed_event, sign_payload

API = "/api/v1"


@pytest.fixture
def brand(auth_headers):
    return auth_headers(BRAND_ID)


@pytest.fixture
def creator(auth_headers):
    return auth_headers(CREATOR_ID)


def open_conversation(client, brand) -> str:
    response = client.post(f"{API}/conversations", json={"recipient_id": CREATOR_ID}, headers=brand)
    assert response.status_code == 200
    return response.json()["conversation_id"]


def send_offer(client, brand, conversation_id, trip, price=450.0) -> str:
    response = client.post(
        f"{API}/conversations/{conversation_id}/offers",
        json={"trip": trip, "description": "Two reels and ten photos", "price": price},
        headers=brand,
    )
    assert response.status_code == 201
    return response.json()["offer_id"]


# =============================================================================
# Health & Auth
# =============================================================================

class TestHealth:
    """Tests for the health endpoints."""

    def test_health(self, api_client):
        data = api_client.get(f"{API}/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"

    def test_ready(self, api_client):
        data = api_client.get(f"{API}/health/ready").json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": "healthy", "storage": "healthy"}

    def test_degraded(self, api_client, store, storage):
        store.fail_on.add(("ping", "users"))
        storage.bucket_ok = False

        data = api_client.get(f"{API}/health/ready").json()

        assert data["status"] == "degraded"
        assert data["checks"]["database"].startswith("unhealthy:")
        assert data["checks"]["storage"] == "unhealthy: bucket not found"

    def test_live(self, api_client):
        assert api_client.get(f"{API}/health/live").json()["status"] == "alive"

    def test_root(self, api_client):
        assert api_client.get("/").json()["name"] == "Lumo API"


class TestAuth:
    """Tests for token verification."""

    def test_verify(self, api_client, brand):
        data = api_client.get(f"{API}/auth/verify", headers=brand).json()
        assert data == {"valid": True, "user_id": BRAND_ID, "email": f"{BRAND_ID}@lumo.test"}

    def test_missing_token(self, api_client):
        assert api_client.get(f"{API}/auth/verify").status_code in (401, 403)

    def test_expired_token(self, api_client, make_token):
        token = make_token(BRAND_ID, expires_in=-60)
        response = api_client.get(f"{API}/auth/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Token has expired"

    def test_wrong_audience(self, api_client, make_token):
        token = make_token(BRAND_ID, aud="anon")
        response = api_client.get(f"{API}/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_secret_comes_from_injected_settings(self, api_client, services, settings, make_token):
        services.settings = settings.model_copy(update={"SUPABASE_JWT_SECRET": "rotated-jwt-secret-for-tests"})
        claims = jwt.get_unverified_claims(make_token(BRAND_ID))
        rotated = jwt.encode(claims, "rotated-jwt-secret-for-tests", algorithm="HS256")

        stale = api_client.get(f"{API}/auth/verify", headers={"Authorization": f"Bearer {make_token(BRAND_ID)}"})
        fresh = api_client.get(f"{API}/auth/verify", headers={"Authorization": f"Bearer {rotated}"})

        assert stale.status_code == 401
        assert fresh.json()["user_id"] == BRAND_ID

    def test_me_without_profile_row(self, api_client, brand):
        data = api_client.get(f"{API}/auth/me", headers=brand).json()
        assert data["id"] == BRAND_ID
        assert data["role"] is None


# =============================================================================
# Users
# =============================================================================

class TestUsers:
    """Tests for profile setup and public profiles."""

    def test_setup_creator_profile(self, api_client, creator, store):
        response = api_client.put(
            f"{API}/users/me/profile",
            json={
                "role": "creator",
                "first_name": "Ola",
                "last_name": "Nowak",
                "instagram_handle": "@ola.travels",
            },
            headers=creator,
        )

        assert response.status_code == 200
        assert response.json()["instagram_handle"] == "ola.travels"
        assert store.get("users", CREATOR_ID)["role"] == "creator"

    def test_brand_needs_brand_name(self, api_client, brand):
        response = api_client.put(f"{API}/users/me/profile", json={"role": "brand"}, headers=brand)

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_my_profile_missing(self, api_client, brand):
        response = api_client.get(f"{API}/users/me", headers=brand)
        assert response.status_code == 404
        assert response.json()["code"] == "USER_NOT_FOUND"

    def test_public_profile_hides_email(self, api_client, brand, seeded_users):
        data = api_client.get(f"{API}/users/{CREATOR_ID}", headers=brand).json()

        assert data["display_name"] == "Ola Nowak"
        assert "email" not in data


# =============================================================================
# Conversations
# =============================================================================

class TestConversationRoutes:
    """Tests for the messaging and offer flow over HTTP."""

    def test_message_flow(self, api_client, brand, creator, seeded_users, publisher):
        conversation_id = open_conversation(api_client, brand)

        sent = api_client.post(
            f"{API}/conversations/{conversation_id}/messages",
            json={"text": "Hi Ola, are you in Lisbon in May?"},
            headers=brand,
        )
        assert sent.status_code == 201

        inbox = api_client.get(f"{API}/conversations", headers=creator).json()
        assert len(inbox) == 1
        assert inbox[0]["other_user_id"] == BRAND_ID
        assert inbox[0]["last_message"]["text"] == "Hi Ola, are you in Lisbon in May?"

        read = api_client.post(f"{API}/conversations/{conversation_id}/read", headers=creator)
        assert read.json() == {"marked": 1}

        messages = api_client.get(f"{API}/conversations/{conversation_id}/messages", headers=creator).json()
        assert [m["text"] for m in messages] == ["Hi Ola, are you in Lisbon in May?"]
        assert publisher.of_type("message_created")

    def test_blank_message(self, api_client, brand, seeded_users):
        conversation_id = open_conversation(api_client, brand)

        response = api_client.post(
            f"{API}/conversations/{conversation_id}/messages", json={"text": "   "}, headers=brand
        )
        assert response.status_code == 422

    def test_outsider_gets_404(self, api_client, brand, auth_headers, seeded_users):
        conversation_id = open_conversation(api_client, brand)

        response = api_client.get(
            f"{API}/conversations/{conversation_id}", headers=auth_headers(OUTSIDER_ID)
        )
        assert response.status_code == 404
        assert response.json()["code"] == "CONVERSATION_NOT_FOUND"

    def test_self_conversation(self, api_client, brand):
        response = api_client.post(f"{API}/conversations", json={"recipient_id": BRAND_ID}, headers=brand)
        assert response.status_code == 400

    def test_accept_offer_returns_pending_order(self, api_client, brand, creator, seeded_users, trip):
        conversation_id = open_conversation(api_client, brand)
        offer_id = send_offer(api_client, brand, conversation_id, trip)

        response = api_client.post(
            f"{API}/conversations/{conversation_id}/offers/{offer_id}/accept", headers=creator
        )

        assert response.status_code == 200
        data = response.json()
        assert data["offer"]["offer_status"] == "accepted"
        assert data["order"]["id"] == offer_id
        assert data["order"]["status"] == "pending"

    def test_reject_then_accept_conflicts(self, api_client, brand, creator, seeded_users, trip):
        conversation_id = open_conversation(api_client, brand)
        offer_id = send_offer(api_client, brand, conversation_id, trip)
        base = f"{API}/conversations/{conversation_id}/offers/{offer_id}"

        assert api_client.post(f"{base}/reject", headers=creator).json()["offer_status"] == "rejected"
        assert api_client.post(f"{base}/accept", headers=creator).status_code == 409

    def test_store_failure_is_database_error(self, api_client, brand, store, seeded_users):
        store.fail_on.add(("insert", "conversations"))

        response = api_client.post(f"{API}/conversations", json={"recipient_id": CREATOR_ID}, headers=brand)

        assert response.status_code == 500
        assert response.json()["code"] == "DATABASE_ERROR"


# =============================================================================
# Orders & delivery
# =============================================================================

@pytest.fixture
def paid_order_id(api_client, brand, creator, seeded_users, trip, services):
    conversation_id = open_conversation(api_client, brand)
    offer_id = send_offer(api_client, brand, conversation_id, trip)
    api_client.post(f"{API}/conversations/{conversation_id}/offers/{offer_id}/accept", headers=creator)
    services.payments.handle_event(checkout_completed_event(offer_id))
    return offer_id


class TestOrderRoutes:
    """Tests for order listing, stats and transitions."""

    def test_lists_by_profile_role(self, api_client, brand, creator, paid_order_id):
        brand_orders = api_client.get(f"{API}/orders", headers=brand).json()
        creator_orders = api_client.get(f"{API}/orders", headers=creator).json()

        assert [o["id"] for o in brand_orders] == [paid_order_id]
        assert [o["id"] for o in creator_orders] == [paid_order_id]

    def test_stats_per_role(self, api_client, brand, creator, paid_order_id):
        brand_stats = api_client.get(f"{API}/orders/stats", headers=brand).json()
        creator_stats = api_client.get(f"{API}/orders/stats", params={"as": "creator"}, headers=creator).json()

        assert brand_stats["total_spent"] == 450.0
        assert brand_stats["paid"] == 1
        assert creator_stats["pending_payment"] == 450.0
        assert creator_stats["total_earned"] == 450.0

    def test_start_and_complete(self, api_client, brand, creator, paid_order_id):
        started = api_client.post(f"{API}/orders/{paid_order_id}/start", headers=creator)
        assert started.json()["status"] == "in_progress"

        completed = api_client.post(f"{API}/orders/{paid_order_id}/complete", headers=brand)
        assert completed.json()["status"] == "completed"

    def test_brand_cannot_start(self, api_client, brand, paid_order_id):
        response = api_client.post(f"{API}/orders/{paid_order_id}/start", headers=brand)
        assert response.status_code == 403

    def test_outsider_cannot_read(self, api_client, auth_headers, paid_order_id):
        response = api_client.get(f"{API}/orders/{paid_order_id}", headers=auth_headers(OUTSIDER_ID))
        assert response.status_code == 404


class TestDeliveryRoutes:
    """Tests for the multipart delivery upload."""

    def test_deliver_and_fetch(self, api_client, brand, creator, paid_order_id, storage, publisher):
        response = api_client.post(
            f"{API}/orders/{paid_order_id}/delivery",
            files=[
                ("files[]", ("reel.mp4", b"m" * 2048, "video/mp4")),
                ("files[]", ("cover.jpg", b"j" * 512, "image/jpeg")),
            ],
            data={"note_to_brand": "Raw files on the drive", "external_links": "https://drive.test/x"},
            headers=creator,
        )

        assert response.status_code == 200
        delivery = response.json()
        assert delivery["state"] == "committed"
        assert [f["name"] for f in delivery["files"]] == ["reel.mp4", "cover.jpg"]
        assert delivery["files"][0]["size"] == 2048
        assert len(storage.uploaded) == 2

        progress = publisher.of_type("delivery_progress")
        assert progress
        assert all(event["conversation_id"] == f"{BRAND_ID}_{CREATOR_ID}" for event in progress)

        fetched = api_client.get(f"{API}/orders/{paid_order_id}/delivery", headers=brand).json()
        assert fetched["note_to_brand"] == "Raw files on the drive"

        order = api_client.get(f"{API}/orders/{paid_order_id}", headers=brand).json()
        assert order["status"] == "delivered"
        assert order["has_delivery"] is True

    def test_partial_upload_failure(self, api_client, creator, paid_order_id, storage):
        storage.fail_names.add("b.jpg")

        response = api_client.post(
            f"{API}/orders/{paid_order_id}/delivery",
            files=[
                ("files", ("a.jpg", b"a", "image/jpeg")),
                ("files", ("b.jpg", b"b", "image/jpeg")),
                ("files", ("c.jpg", b"c", "image/jpeg")),
            ],
            headers=creator,
        )

        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "DELIVERY_UPLOAD_FAILED"
        assert list(body["details"]["failed"]) == ["b.jpg"]
        assert len(body["details"]["uploaded"]) == 2

    def test_no_files(self, api_client, creator, paid_order_id):
        response = api_client.post(
            f"{API}/orders/{paid_order_id}/delivery",
            data={"note_to_brand": "just a note"},
            headers=creator,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "EMPTY_DELIVERY"

    def test_order_update_failure_is_500(self, api_client, creator, paid_order_id, store):
        store.fail_on.add(("update", "orders"))

        response = api_client.post(
            f"{API}/orders/{paid_order_id}/delivery",
            files=[("files[]", ("a.jpg", b"a", "image/jpeg"))],
            headers=creator,
        )

        assert response.status_code == 500
        assert response.json()["code"] == "DELIVERY_PERSISTENCE_FAILED"

    def test_missing_delivery(self, api_client, brand, paid_order_id):
        response = api_client.get(f"{API}/orders/{paid_order_id}/delivery", headers=brand)
        assert response.status_code == 404


# =============================================================================
# Payments
# =============================================================================

class TestWebhookRoute:
    """Tests for POST /payments/webhook."""

    def test_signed_event(self, api_client, settings):
        payload = json.dumps({"id": "evt_1", "type": "customer.created", "data": {"object": {}}}).encode()

        response = api_client.post(
            f"{API}/payments/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload, settings.STRIPE_WEBHOOK_SECRET)},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "event_type": "customer.created"}

    def test_bad_signature(self, api_client):
        response = api_client.post(
            f"{API}/payments/webhook",
            content=b"{}",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_WEBHOOK_SIGNATURE"


# =============================================================================
# Intake
# =============================================================================

class TestIntakeRoutes:
    """Tests for the landing-page endpoints."""

    def test_brand_waitlist_redirects(self, api_client, store):
        response = api_client.post(
            "/api/waitlist/brand",
            data={"brandName": "Acme", "email": "team@acme.test", "websiteOrIg": "acme.test", "consent": "on"},
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == "https://lumo.test/pl/lumo?ok=brand"
        assert len(store.all("waitlist_brands")) == 1

    def test_creator_waitlist_error_redirects(self, api_client, store):
        response = api_client.post(
            "/api/waitlist/creator",
            data={"fullName": "Ola", "email": "bad", "instagram": "@ola", "consent": "on"},
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"].endswith("?ok=err")
        assert store.all("waitlist_creators") == []

    def test_store_failure_redirects_err(self, api_client, store):
        store.fail_on.add(("insert", "waitlist_creators"))

        response = api_client.post(
            "/api/waitlist/creator",
            data={"fullName": "Ola", "email": "ola@creator.test", "instagram": "@ola", "consent": "on"},
            follow_redirects=False,
        )
        assert response.headers["location"].endswith("?ok=err")

    @pytest.mark.parametrize("path", ["/api/waitlist/brand", "/api/waitlist/creator"])
    def test_malformed_multipart_redirects_err(self, api_client, store, path):
        boundary = "lumo-boundary"
        body = (
            f"--{boundary}\r\n"
            "Content-Disposition: form-data\r\n"
            "\r\n"
            "Acme\r\n"
            f"--{boundary}--\r\n"
        ).encode()

        response = api_client.post(
            path,
            content=body,
            headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == "https://lumo.test/pl/lumo?ok=err"
        assert store.all("waitlist_brands") == []
        assert store.all("waitlist_creators") == []

    def test_quick_signup(self, api_client):
        response = api_client.post("/api/quick-signup", json={"email": "new@brand.test", "role": "brand"})

        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.parametrize("body, message", [
        ({"role": "brand"}, "Email and role are required"),
        ({"email": "new@brand.test"}, "Email and role are required"),
        ({"email": "nope", "role": "brand"}, "Invalid email format"),
    ])
    def test_quick_signup_errors_are_400(self, api_client, body, message):
        response = api_client.post("/api/quick-signup", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == message

    def test_quick_signup_unknown_role(self, api_client):
        response = api_client.post("/api/quick-signup", json={"email": "a@b.co", "role": "admin"})
        assert response.status_code == 400

    def test_quick_signup_not_json(self, api_client):
        response = api_client.post(
            "/api/quick-signup", content=b"email=a", headers={"Content-Type": "text/plain"}
        )
        assert response.status_code == 400

    def test_early_access_ok_even_when_store_fails(self, api_client, store):
        store.fail_on.add(("insert", "early_access_waitlist"))

        response = api_client.post("/api/early-access", json={"email": "fan@lumo.test"})

        assert response.status_code == 200
        assert response.json() == {"ok": True}


# =============================================================================
# Instagram
# =============================================================================

class TestInstagramRoutes:
    """Tests for the Instagram endpoints."""

    def test_connect_url(self, api_client, creator):
        data = api_client.get(f"{API}/instagram/connect", headers=creator).json()
        assert data["auth_url"].startswith("https://api.instagram.com/oauth/authorize?")

    def test_callback_redirect(self, api_client):
        response = api_client.get("/api/auth/instagram/callback", follow_redirects=False)

        assert response.status_code in (302, 307)
        assert response.headers["location"].endswith("?error=missing_code")

    def test_media_not_connected(self, api_client, seeded_users):
        response = api_client.get(f"{API}/instagram/media", params={"user_id": CREATOR_ID})
        assert response.status_code == 400

    def test_posts_crud(self, api_client, creator):
        created = api_client.post(
            f"{API}/instagram/posts",
            json={"post_url": "https://www.instagram.com/p/Cabc123/"},
            headers=creator,
        )
        assert created.status_code == 201
        post_id = created.json()["id"]

        listed = api_client.get(f"{API}/instagram/posts", params={"creator_id": CREATOR_ID}).json()
        assert [p["id"] for p in listed] == [post_id]

        deleted = api_client.delete(f"{API}/instagram/posts/{post_id}", headers=creator)
        assert deleted.status_code == 204
