"""HTTP routes."""

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from recordshop.api import create_app, deps
from recordshop.api.deps import (
    get_cache_service,
    get_discogs_client,
    get_reconciler,
    get_seller_auth_service,
    get_shipping_service,
)
from recordshop.data.database import get_db
from recordshop.data.models.cart import CartModel
from recordshop.repos.seller_credential_repo import SellerCredentialRepo
from recordshop.services import payment_webhook_service
from recordshop.services.notification_service import NotificationService
from recordshop.services.seller_auth_service import SellerAuthService
from recordshop.services.shipping_service import ShippingService
from recordshop.utils.settings import GUEST_CART_COOKIE, OAUTH_SECRET_COOKIE
from tests.conftest import make_response, sample_record
from tests.test_payment_webhook_service import SECRET, session_event, sign

USER = {"X-User-Id": "u1"}
ADMIN_KEY = "admin-secret"
ADMIN = {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def reconciler():
    reconciler = MagicMock()
    reconciler.update_inventory.return_value = True
    reconciler.reconcile_items.return_value = (2, 0)
    return reconciler


@pytest.fixture
def oauth():
    session = MagicMock()
    session.fetch_request_token.return_value = {"oauth_token": "rt", "oauth_token_secret": "rts"}
    session.authorization_url.return_value = "https://www.discogs.test/oauth/authorize?oauth_token=rt"
    session.fetch_access_token.return_value = {"oauth_token": "at", "oauth_token_secret": "ats"}
    return session


@pytest.fixture
def app(session_factory, cache, discogs, reconciler, oauth):
    app = create_app()

    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_cache_service] = lambda: cache
    app.dependency_overrides[get_discogs_client] = lambda: discogs
    app.dependency_overrides[get_shipping_service] = lambda: ShippingService(cache)
    app.dependency_overrides[get_reconciler] = lambda: reconciler

    def override_seller_auth(db=Depends(get_db)):
        return SellerAuthService(db, discogs, consumer_key="ck", consumer_secret="cs", session_factory=MagicMock(return_value=oauth))

    app.dependency_overrides[get_seller_auth_service] = override_seller_auth
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def add(client, headers=None, **record):
    quantity = record.pop("quantity", 1)
    return client.post("/carts/items", json={"item": sample_record(**record), "quantity": quantity}, headers=headers)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "cache": "up"}


class TestUsersAPI:
    def test_create_is_idempotent(self, client):
        payload = {"id": "u1", "email": "a@b.test", "name": "Ann"}
        assert client.post("/users/", json=payload).json()["email"] == "a@b.test"
        assert client.post("/users/", json=payload).status_code == 200
        assert client.get("/users/u1").json()["name"] == "Ann"

    def test_unknown_user(self, client):
        assert client.get("/users/nobody").status_code == 404

    def test_email_conflict(self, client):
        client.post("/users/", json={"id": "u1", "email": "a@b.test"})
        assert client.post("/users/", json={"id": "u2", "email": "a@b.test"}).status_code == 409


class TestCartsAPI:
    def test_guest_gets_cookie(self, client):
        response = add(client)

        assert response.status_code == 200
        assert GUEST_CART_COOKIE in response.cookies
        body = response.json()
        assert body["items"][0]["discogs_id"] == "1001"
        assert body["guest_id"] == response.cookies[GUEST_CART_COOKIE]

    def test_guest_cookie_keeps_cart(self, client):
        add(client, listing_id=1)
        response = add(client, listing_id=2)
        assert len(response.json()["items"]) == 2

    def test_user_cart(self, client):
        add(client, headers=USER, quantity=10)
        body = client.get("/carts/", headers=USER).json()
        assert body["user_id"] == "u1"
        assert body["item_count"] == 4

    def test_update_and_remove(self, client):
        add(client, headers=USER, listing_id=1)
        add(client, headers=USER, listing_id=2)

        assert client.put("/carts/items/1", json={"quantity": 3}, headers=USER).json()["item_count"] == 4
        assert client.put("/carts/items/2", json={"quantity": 0}, headers=USER).json()["item_count"] == 3
        assert client.delete("/carts/items/1", headers=USER).json()["items"] == []

    def test_unknown_item_is_404(self, client):
        assert client.put("/carts/items/42", json={"quantity": 1}, headers=USER).status_code == 404
        assert client.delete("/carts/items/42", headers=USER).status_code == 404

    def test_bad_id_is_400(self, client):
        assert client.delete("/carts/items/abc", headers=USER).status_code == 400

    def test_unavailable_record_is_400(self, client):
        assert add(client, headers=USER, quantity_available=0).status_code == 400

    def test_clear(self, client):
        add(client, headers=USER)
        assert client.delete("/carts/items", headers=USER).json()["items"] == []

    def test_sync(self, client):
        items = [dict(sample_record(listing_id=1), quantity=2), {"id": "bad"}]
        body = client.post("/carts/sync", json={"items": items}, headers=USER).json()
        assert body["failed"] == 1
        assert body["cart"]["item_count"] == 2

    def test_shipping(self, client):
        add(client, headers=USER, quantity=2)
        body = client.get("/carts/shipping", params={"country": "Estonia"}, headers=USER).json()
        assert body["weight"] == 460
        assert body["cost"] == "2.99"

    def test_shipping_unknown_method(self, client):
        add(client, headers=USER)
        response = client.get("/carts/shipping", params={"country": "Estonia", "method": "PIGEON"}, headers=USER)
        assert response.status_code == 400

    def test_refresh(self, client, http):
        add(client, headers=USER, quantity=3, quantity_available=5)
        http.request.return_value = make_response(
            200, {"id": 1001, "status": "For Sale", "quantity": 2, "release": {"title": "Record"}}
        )

        body = client.post("/carts/refresh", headers=USER).json()

        assert body["updated"] == 1
        assert body["cart"]["items"][0]["quantity"] == 2

    def test_anonymous_reads_create_no_cart(self, client, session_factory):
        for _ in range(3):
            body = client.get("/carts/").json()
            assert body["cart_id"] is None
            assert body["items"] == []
        assert client.get("/carts/shipping", params={"country": "Estonia"}).json()["weight"] == 0
        assert client.post("/carts/refresh").json()["updated"] == 0
        assert client.delete("/carts/items").json()["item_count"] == 0
        assert client.delete("/carts/items/42").status_code == 404

        assert GUEST_CART_COOKIE not in client.cookies
        db = session_factory()
        try:
            assert db.query(CartModel).count() == 0
        finally:
            db.close()

    def test_user_read_creates_no_cart(self, client, session_factory):
        assert client.get("/carts/", headers=USER).json()["user_id"] == "u1"
        db = session_factory()
        try:
            assert db.query(CartModel).count() == 0
        finally:
            db.close()

    def test_guest_cart_created_on_first_add(self, client, session_factory):
        guest_id = add(client).json()["guest_id"]
        assert client.get("/carts/").json()["guest_id"] == guest_id
        db = session_factory()
        try:
            assert db.query(CartModel).count() == 1
        finally:
            db.close()


class TestMergeAPI:
    def test_requires_login(self, client):
        assert client.post("/carts/merge").status_code == 401

    def test_merges_cookie_cart(self, client):
        add(client, listing_id=1, quantity=2)
        add(client, headers=USER, listing_id=1, quantity=1)

        response = client.post("/carts/merge", headers=USER)

        body = response.json()
        assert body["merged"] is True
        assert body["cart"]["items"][0]["quantity"] == 3

    def test_guest_id_in_body(self, client):
        guest_id = add(client).json()["guest_id"]
        client.cookies.clear()

        body = client.post("/carts/merge", json={"guest_id": guest_id}, headers=USER).json()
        assert body["merged"] is True

    def test_nothing_to_merge(self, client):
        body = client.post("/carts/merge", json={"guest_id": "nobody"}, headers=USER).json()
        assert body == {"merged": False, "cart": None, "merged_items": 0, "failed": 0}


class TestOrdersAPI:
    @pytest.fixture
    def order_id(self, client):
        payload = json.dumps(session_event()).encode()
        with patch.object(payment_webhook_service, "STRIPE_WEBHOOK_SECRET", SECRET), patch.object(
            NotificationService, "send_order_confirmation"
        ):
            return client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign(payload)}).json()["order_id"]

    def test_list_and_get(self, client, order_id):
        orders = client.get("/orders/", headers=USER).json()
        assert [o["id"] for o in orders] == [order_id]
        assert orders[0]["items"][0]["discogs_id"] == "555"

        assert client.get(f"/orders/{order_id}", headers=USER).json()["status"] == "paid"

    def test_other_user_forbidden(self, client, order_id):
        assert client.get(f"/orders/{order_id}", headers={"X-User-Id": "u2"}).status_code == 403

    def test_missing_order(self, client):
        assert client.get("/orders/999", headers=USER).status_code == 404

    def test_requires_login(self, client):
        assert client.get("/orders/").status_code == 401


class TestWebhookAPI:
    @pytest.fixture(autouse=True)
    def configured(self):
        with patch.object(payment_webhook_service, "STRIPE_WEBHOOK_SECRET", SECRET), patch.object(
            NotificationService, "send_order_confirmation"
        ) as send:
            yield send

    def post(self, client, event, signature=None):
        payload = json.dumps(event).encode()
        return client.post("/webhooks/stripe", content=payload, headers={"Stripe-Signature": signature or sign(payload)})

    def test_redelivery_is_acknowledged_once(self, client, reconciler, configured):
        first = self.post(client, session_event()).json()
        second = self.post(client, session_event()).json()

        assert first["created"] is True
        assert second["created"] is False
        assert reconciler.reconcile_items.call_count == 1
        configured.assert_called_once_with(first["order_id"])

    def test_bad_signature(self, client):
        assert self.post(client, session_event(), signature="t=1,v1=deadbeef").status_code == 400

    def test_malformed_metadata(self, client):
        event = session_event()
        event["data"]["object"]["metadata"] = {"items": "oops"}
        assert self.post(client, event).status_code == 400

    def test_unconfigured_secret(self, client):
        with patch.object(payment_webhook_service, "STRIPE_WEBHOOK_SECRET", None):
            assert self.post(client, session_event()).status_code == 500


class TestRecordsAPI:
    def test_get_record(self, client, http):
        http.request.return_value = make_response(200, {"id": 77, "status": "For Sale", "release": {"title": "X"}})
        body = client.get("/records/77").json()
        assert body["id"] == 77
        assert body["title"] == "X"

    def test_record_gone(self, client, http):
        http.request.return_value = make_response(404)
        assert client.get("/records/77").status_code == 404

    def test_bad_id(self, client):
        assert client.get("/records/x1").status_code == 400

    def test_search(self, client, http):
        http.request.return_value = make_response(
            200,
            {
                "listings": [{"id": 1, "price": {"value": 9}, "release": {"title": "Mezzanine", "artist": "Massive Attack"}}],
                "pagination": {"pages": 1},
            },
        )
        body = client.get("/records/", params={"search": "massive", "category": "artists"}).json()
        assert [r["id"] for r in body["records"]] == [1]

    def test_unknown_sort(self, client):
        assert client.get("/records/", params={"sort": "random"}).status_code == 400


class TestAdminAPI:
    @pytest.fixture(autouse=True)
    def admin_key(self):
        with patch.object(deps, "ADMIN_API_KEY", ADMIN_KEY):
            yield

    def test_inventory_update(self, client, reconciler):
        body = client.post("/inventory/update", json={"listing_id": "555", "quantity": 2}, headers=ADMIN).json()
        assert body == {"success": True, "listing_id": "555", "quantity": 2}
        reconciler.update_inventory.assert_called_once_with(555, 2)

    def test_cache_clear(self, client, cache):
        cache.set("inventory:a", "[]", 60)
        cache.set("record:1", "{}", 60)
        assert client.post("/cache/clear", json={"pattern": "inventory:*"}, headers=ADMIN).json() == {"cleared": 1}
        assert client.post("/cache/clear", headers=ADMIN).json() == {"cleared": 1}

    @pytest.mark.parametrize("path", ["/inventory/update", "/cache/clear"])
    def test_anonymous_is_401(self, client, reconciler, path):
        response = client.post(path, json={"listing_id": "555", "quantity": 1})
        assert response.status_code == 401
        reconciler.update_inventory.assert_not_called()

    @pytest.mark.parametrize("path", ["/inventory/update", "/cache/clear"])
    def test_wrong_key_is_403(self, client, cache, reconciler, path):
        cache.set("record:1", "{}", 60)
        response = client.post(path, json={"listing_id": "555", "quantity": 1}, headers={"X-Admin-Key": "guess"})
        assert response.status_code == 403
        reconciler.update_inventory.assert_not_called()
        assert "record:1" in cache.store

    def test_unconfigured_key_locks_admin_routes(self, client, reconciler):
        with patch.object(deps, "ADMIN_API_KEY", None):
            response = client.post("/inventory/update", json={"listing_id": "555"}, headers=ADMIN)
        assert response.status_code == 403
        reconciler.update_inventory.assert_not_called()


class TestSellerConnectAPI:
    @pytest.fixture(autouse=True)
    def admin_key(self):
        with patch.object(deps, "ADMIN_API_KEY", ADMIN_KEY):
            yield

    def test_start_sets_secret_cookie(self, client):
        response = client.get("/auth/discogs", params={"callback_url": "https://shop.test/cb"}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["oauth_token"] == "rt"
        assert response.json()["authorize_url"].endswith("oauth_token=rt")
        assert response.cookies[OAUTH_SECRET_COOKIE] == "rts"

    def test_start_requires_admin(self, client):
        assert client.get("/auth/discogs", params={"callback_url": "https://shop.test/cb"}).status_code == 401

    def test_callback_stores_credential(self, client, session_factory, http):
        client.get("/auth/discogs", params={"callback_url": "https://shop.test/cb"}, headers=ADMIN)
        http.request.return_value = make_response(200, {"username": "shop"})

        response = client.get("/auth/discogs/callback", params={"oauth_token": "rt", "oauth_verifier": "v"})

        assert response.status_code == 200
        assert response.json()["connected"] is True
        assert response.json()["username"] == "shop"
        db = session_factory()
        try:
            assert SellerCredentialRepo(db).get_by_username("shop").access_token == "at"
        finally:
            db.close()

        status = client.get("/auth/discogs/status", headers=ADMIN).json()
        assert status["connected"] is True
        assert status["username"] == "shop"

    def test_callback_without_secret_cookie(self, client):
        response = client.get("/auth/discogs/callback", params={"oauth_token": "rt", "oauth_verifier": "v"})
        assert response.status_code == 400

    def test_callback_with_rejected_token(self, client, http):
        client.get("/auth/discogs", params={"callback_url": "https://shop.test/cb"}, headers=ADMIN)
        http.request.return_value = make_response(401)

        response = client.get("/auth/discogs/callback", params={"oauth_token": "rt", "oauth_verifier": "v"})
        assert response.status_code == 502

    def test_status_not_connected(self, client):
        assert client.get("/auth/discogs/status", headers=ADMIN).json() == {
            "connected": False,
            "username": None,
            "last_verified": None,
        }
