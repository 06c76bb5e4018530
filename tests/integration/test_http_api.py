"""
Integration tests for the HTTP surface.

Runs the FastAPI app over an in-memory store with FastAPI's TestClient.

Tests cover:
- Identity from the X-User-ID header
- Collection routes and their error statuses
- Order and back-office routes
- Error body shape
"""

import pytest
from fastapi.testclient import TestClient

from storefront.mall_core.api import Settings, create_app, error_status
from storefront.mall_core.config import AppConfig, StoreBackend
from storefront.mall_core.errors import (
    AuthenticationRequired,
    Conflict,
    MallCoreError,
    NotFound,
    RemoteFailure,
    ValidationError,
)
from storefront.mall_core.main import build_service

U1 = {"X-User-ID": "u1"}
U2 = {"X-User-ID": "u2"}


def test_error_status_mapping():
    assert error_status(AuthenticationRequired()) == 401
    assert error_status(Conflict("dup")) == 409
    assert error_status(NotFound("gone", "ypanier", 1)) == 404
    assert error_status(RemoteFailure("down")) == 502
    assert error_status(ValidationError("bad")) == 422
    assert error_status(MallCoreError("other")) == 500


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("MALL_API_USER_HEADER", "X-Account")

    settings = Settings()

    assert settings.user_header == "X-Account"
    assert set(Settings.model_fields) == {"user_header", "cors_origins"}


class TestHttpApi:
    """Tests for the Mall Core HTTP routes."""

    @pytest.fixture
    def service(self):
        service = build_service(AppConfig(store_backend=StoreBackend.MEMORY))
        store = service.gateway
        store.seed("yprod", [
            {"yprodid": 1, "yprodstatut": "not_approved"},
            {"yprodid": 2, "yprodstatut": "approved"},
        ])
        store.seed("yvarprod", [
            {"yvarprodid": 10, "yprodidfk": 2, "yvarprodstatut": "approved"},
            {"yvarprodid": 11, "yprodidfk": 2, "yvarprodstatut": "not_approved"},
        ])
        store.seed("ycompte", [{"ycompteid": 5, "yuseridfk": "u1"}])
        store.seed("zdetailscommande", [
            {"zcommandeid": 1, "zcommandeno": "A", "zcommandedate": "2024-01-01",
             "zcommandestatut": "paid", "ycompteidfk": 5, "yvarprodidfk": 10},
        ])
        return service

    @pytest.fixture
    def client(self, service):
        app = create_app(service=service, settings=Settings())
        with TestClient(app) as client:
            yield client

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_custom_user_header(self, service):
        app = create_app(service=service, settings=Settings(user_header="X-Account"))

        with TestClient(app) as client:
            assert client.get("/api/v1/orders", headers={"X-Account": "u1"}).status_code == 200
            assert client.get("/api/v1/orders", headers=U1).status_code == 401

    def test_missing_user_is_401(self, client):
        response = client.get("/api/v1/collections/cart")

        assert response.status_code == 401
        body = response.json()
        assert body["error_code"] == "AUTHENTICATION_REQUIRED"
        assert body["error"] == "User not authenticated"

    def test_cart_add_merges(self, client):
        first = client.post("/api/v1/collections/cart", json={"item_key": 10, "quantity": 2}, headers=U1)
        second = client.post("/api/v1/collections/cart", json={"item_key": 10, "quantity": 3}, headers=U1)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["ypanierqte"] == 5

        entries = client.get("/api/v1/collections/cart", headers=U1).json()
        assert len(entries) == 1
        assert entries[0]["yvarprod"]["yvarprodid"] == 10

    def test_wishlist_duplicate_is_409(self, client):
        client.post("/api/v1/collections/wishlist", json={"item_key": 10}, headers=U1)

        response = client.post("/api/v1/collections/wishlist", json={"item_key": 10}, headers=U1)

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "CONFLICT"
        assert body["details"]["constraint"] == "ywishlist_yuseridfk_yvarprodidfk_key"

    def test_update_entry(self, client):
        entry = client.post("/api/v1/collections/cart", json={"item_key": 10}, headers=U1).json()

        response = client.patch(
            f"/api/v1/collections/cart/{entry['ypanierid']}", json={"quantity": 4}, headers=U1
        )

        assert response.status_code == 200
        assert response.json()["ypanierqte"] == 4

    def test_other_owner_cannot_touch_entry(self, client):
        entry = client.post("/api/v1/collections/cart", json={"item_key": 10}, headers=U1).json()
        path = f"/api/v1/collections/cart/{entry['ypanierid']}"

        assert client.patch(path, json={"quantity": 4}, headers=U2).status_code == 404
        assert client.delete(path, headers=U2).status_code == 404
        assert len(client.get("/api/v1/collections/cart", headers=U1).json()) == 1

    def test_remove_by_entry_and_item(self, client):
        entry = client.post("/api/v1/collections/wishlist", json={"item_key": 10}, headers=U1).json()
        client.post("/api/v1/collections/wishlist", json={"item_key": 11}, headers=U1)

        by_id = client.delete(f"/api/v1/collections/wishlist/{entry['ywishlistid']}", headers=U1)
        by_item = client.delete("/api/v1/collections/wishlist", params={"item_key": 11}, headers=U1)

        assert by_id.status_code == 200
        assert by_item.status_code == 200
        assert client.get("/api/v1/collections/wishlist", headers=U1).json() == []

    def test_remove_without_target_is_422(self, client):
        response = client.delete("/api/v1/collections/cart", headers=U1)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_unknown_collection_type_is_422(self, client):
        assert client.get("/api/v1/collections/basket", headers=U1).status_code == 422

    def test_invalid_quantity_is_422(self, client):
        response = client.post("/api/v1/collections/cart", json={"item_key": 10, "quantity": 0}, headers=U1)

        assert response.status_code == 422

    def test_membership(self, client):
        path = "/api/v1/collections/wishlist/membership/10"
        assert client.get(path, headers=U1).json()["member"] is False

        client.post("/api/v1/collections/wishlist", json={"item_key": 10}, headers=U1)

        assert client.get(path, headers=U1).json() == {
            "collection_type": "wishlist",
            "item_key": 10,
            "member": True,
        }
        assert client.get(path).json()["member"] is False

    def test_customer_orders(self, client):
        response = client.get("/api/v1/orders", headers=U1)

        assert response.status_code == 200
        orders = response.json()
        assert [o["order_number"] for o in orders] == ["A"]
        assert orders[0]["status"] == "paid"

    def test_update_order_status(self, client):
        response = client.patch("/api/v1/admin/orders/A", json={"status": "shipped"}, headers=U2)

        assert response.status_code == 200
        assert response.json()["status"] == "shipped"
        orders = client.get("/api/v1/admin/orders", headers=U2).json()
        assert orders[0]["status"] == "shipped"

    def test_update_unknown_order_is_404(self, client):
        response = client.patch("/api/v1/admin/orders/ZZZ", json={"status": "shipped"}, headers=U2)

        assert response.status_code == 404
        assert response.json()["details"]["resource_id"] == "ZZZ"

    def test_approval_stats(self, client):
        response = client.get("/api/v1/admin/approval-stats", headers=U2)

        assert response.status_code == 200
        assert response.json() == {"pending": 1, "rejected": 0, "variantApprovals": 1, "total": 2}

    def test_store_failure_is_502(self, client, service):
        service.gateway.fail_next(RemoteFailure("store down", status=503))

        response = client.get("/api/v1/collections/cart", headers=U1)

        assert response.status_code == 502
        assert response.json()["details"]["status"] == 503
