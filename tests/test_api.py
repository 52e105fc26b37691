"""Tests for the delivery and checkout HTTP endpoints."""

from datetime import timedelta

import pytest
import requests

from sellisy.common.models import DownloadToken
from sellisy.common.services.download_token_service import DownloadTokenService
from sellisy.services.object_store import ReplitObjectStore


def issue(token_service, order):
    return token_service.issue_token(order["id"]).raw_token


class TestHealth:
    def test_reports_storage_backend(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok", "storage": "fake"}


class TestDownload:
    def test_single_file_redirects_to_presigned_url(self, client, token_service, make_order):
        token = issue(token_service, make_order([["ebook.pdf"]]))

        response = client.get(f"/api/download/{token}")

        assert response.status_code == 302
        assert response.headers["Location"].startswith("https://storage.test/products/")

    def test_single_file_as_json(self, client, token_service, make_order):
        token = issue(token_service, make_order([["ebook.pdf"]]))

        response = client.get(f"/api/download/{token}?format=json")

        assert response.status_code == 200
        data = response.get_json()
        assert [f["name"] for f in data["files"]] == ["ebook.pdf"]
        assert response.headers["Cache-Control"] == "no-store"

    def test_multiple_files_return_listing(self, client, token_service, make_order):
        token = issue(token_service, make_order([["guide.pdf"], ["presets.zip"]]))

        first = client.get(f"/api/download/{token}")
        second = client.get(f"/api/download/{token}")

        assert first.status_code == 200
        data = first.get_json()
        assert [f["name"] for f in data["files"]] == ["guide.pdf", "presets.zip"]
        assert all(f["url"].startswith("https://storage.test/") for f in data["files"])
        assert data["order"]["status"] == "COMPLETED"
        assert second.get_json()["files"] == data["files"]

    def test_no_files_is_ok(self, client, token_service, make_order):
        token = issue(token_service, make_order([[]]))

        response = client.get(f"/api/download/{token}")

        assert response.status_code == 200
        data = response.get_json()
        assert data["files"] == []
        assert "no downloadable files" in data["message"]

    def test_files_endpoint_always_json(self, client, token_service, make_order):
        token = issue(token_service, make_order([["ebook.pdf"]]))

        response = client.get(f"/api/download/{token}/files")

        assert response.status_code == 200
        assert len(response.get_json()["files"]) == 1

    def test_invalid_token_is_404(self, client):
        response = client.get("/api/download/not-a-real-token")
        assert response.status_code == 404
        assert response.get_json()["error"] == "This link is invalid"

    def test_expired_token_is_410(self, client, token_service, make_order, clock, delivery_config):
        token = issue(token_service, make_order([["ebook.pdf"]]))
        clock.advance(seconds=delivery_config.token_ttl_seconds + 1)

        response = client.get(f"/api/download/{token}")

        assert response.status_code == 410
        assert "expired" in response.get_json()["error"]

    def test_storage_outage_is_503_with_retry_after(self, client, token_service, make_order, object_store):
        token = issue(token_service, make_order([["ebook.pdf"]]))
        client.get(f"/api/download/{token}?format=json")
        key = object_store.calls[-1][0]
        object_store.fail_next(key, times=2)

        response = client.get(f"/api/download/{token}")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert "Location" not in response.headers


class TestCheckout:
    def test_create_pending_order(self, client, catalog):
        product = catalog.create_product(title="Guide", price_cents=1500)

        response = client.post(
            "/api/checkout",
            json={"store_id": "store-1", "buyer_email": "b@example.com", "product_ids": [product["id"]]},
        )

        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["status"] == "PENDING"
        assert order["total_cents"] == 1500

    def test_create_with_single_product_id(self, client, catalog):
        product = catalog.create_product(title="Guide", price_cents=1500)
        response = client.post(
            "/api/checkout",
            json={"store_id": "store-1", "buyer_email": "b@example.com", "product_id": product["id"]},
        )
        assert response.status_code == 201

    def test_create_rejects_bad_payload(self, client):
        response = client.post("/api/checkout", json={"store_id": "s", "buyer_email": "b@example.com", "product_ids": "x"})
        assert response.status_code == 400

    def test_create_unknown_product(self, client):
        response = client.post(
            "/api/checkout",
            json={"store_id": "s", "buyer_email": "b@example.com", "product_ids": ["ghost"]},
        )
        assert response.status_code == 404

    def test_success_for_pending_order_asks_client_to_poll(self, client, make_order):
        order = make_order([["ebook.pdf"]], complete=False)

        response = client.get(f"/api/checkout/success/{order['id']}")

        assert response.status_code == 202
        body = response.get_json()
        assert body["status"] == "PENDING"
        assert "download_token" not in body

    def test_success_for_completed_order_issues_working_token(self, client, make_order, clock, delivery_config):
        order = make_order([["ebook.pdf"]])

        response = client.get(f"/api/checkout/success/{order['id']}")

        assert response.status_code == 200
        body = response.get_json()
        assert body["order"]["id"] == order["id"]
        expected_expiry = clock.now + timedelta(seconds=delivery_config.token_ttl_seconds)
        assert body["expires_at"] == expected_expiry.isoformat() + "Z"
        assert body["download_url"] == f"http://sellisy.test/api/download/{body['download_token']}"
        download = client.get(f"/api/download/{body['download_token']}")
        assert download.status_code == 302

    def test_refresh_reuses_active_token(self, client, make_order, session_factory):
        order = make_order([["ebook.pdf"]])

        first = client.get(f"/api/checkout/success/{order['id']}").get_json()
        second = client.get(f"/api/checkout/success/{order['id']}").get_json()

        assert second["download_token"] == first["download_token"]
        assert second["expires_at"] == first["expires_at"]
        with session_factory() as session:
            assert session.query(DownloadToken).count() == 1

    def test_refresh_after_revoke_issues_new_token(self, client, make_order, token_service):
        order = make_order([["ebook.pdf"]])
        first = client.get(f"/api/checkout/success/{order['id']}").get_json()
        token_service.revoke_token(first["download_token"])

        second = client.get(f"/api/checkout/success/{order['id']}").get_json()

        assert second["download_token"] != first["download_token"]
        assert client.get(f"/api/download/{second['download_token']}").status_code == 302

    def test_success_for_failed_order(self, client, make_order, orders):
        order = make_order([["ebook.pdf"]], complete=False)
        orders.fail_order(order["id"])

        response = client.get(f"/api/checkout/success/{order['id']}")

        assert response.status_code == 409

    def test_success_for_unknown_order(self, client):
        response = client.get("/api/checkout/success/ghost")
        assert response.status_code == 404


class TestReplitBackedDownload:
    @pytest.fixture
    def replit_client(self, app_config, catalog, orders, integrity, session_factory, clock, delivery_config):
        from sellisy.app import create_app

        store = ReplitObjectStore(private_object_dir="/bucket-1/.private")
        tokens = DownloadTokenService(store, delivery_config, session_factory, clock=clock)
        components = {
            "object_store": store,
            "catalog_service": catalog,
            "order_service": orders,
            "token_service": tokens,
            "integrity_service": integrity,
        }
        flask_app = create_app(app_config, components)
        flask_app.config["TESTING"] = True
        return flask_app.test_client(), tokens

    def test_malformed_sidecar_reply_is_503(self, monkeypatch, replit_client, make_order):
        client, tokens = replit_client
        attempts = []

        def fake_post(url, json=None, timeout=None):
            attempts.append(json["object_name"])
            return SidecarReply(["not", "an", "object"])

        monkeypatch.setattr(requests, "post", fake_post)
        token = tokens.issue_token(make_order([["ebook.pdf"]])["id"]).raw_token

        response = client.get(f"/api/download/{token}")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert len(attempts) == 2


class SidecarReply:
    status_code = 200
    ok = True

    def __init__(self, body):
        self._body = body

    def json(self):
        return self._body
