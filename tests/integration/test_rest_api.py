"""Integration tests for the REST API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from kv_store import __version__
from kv_store.adapters.inbound.rest_api import create_app
from kv_store.application import BulkOperationEngine
from kv_store.infrastructure.config import Config, ServerConfig

AUTH = ("zack", "123")


@pytest.fixture
def client(engine: BulkOperationEngine, test_config: Config) -> TestClient:
    """Create a test client over the test engine."""
    return TestClient(create_app(engine, test_config.server))


def _call(client: TestClient, method: str, body: dict, auth=AUTH):
    return client.request(method, "/v1", json=body, auth=auth)


@pytest.mark.integration
class TestKeystoreEndpoint:
    """POST/GET/DELETE on /v1."""

    def test_write_read_delete(self, client: TestClient) -> None:
        response = _call(
            client, "POST", {"db": "shop", "bucket": "food", "keystore": {"apple": "red", "pear": "green"}}
        )
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Updated 2 keys in food",
            "keystore": {"apple": "red", "pear": "green"},
        }

        response = _call(client, "GET", {"db": "shop", "bucket": "food", "keystore": {}})
        assert response.json() == {
            "success": True,
            "message": "Got 2 keys in food",
            "keystore": {"apple": "red", "pear": "green"},
        }

        response = _call(client, "DELETE", {"db": "shop", "bucket": "food", "keystore": {"apple": ""}})
        assert response.json()["message"] == "Deleted 1 keys in food"

        response = _call(client, "GET", {"db": "shop", "bucket": "food", "keystore": {"apple": ""}})
        assert response.json()["keystore"] == {}

    def test_read_selected_keys(self, client: TestClient) -> None:
        _call(client, "POST", {"db": "shop", "bucket": "food", "keystore": {"apple": "red", "fig": "purple"}})

        response = _call(client, "GET", {"db": "shop", "bucket": "food", "keystore": {"fig": "", "kiwi": ""}})

        assert response.json()["keystore"] == {"fig": "purple"}
        assert response.json()["message"] == "Got 1 keys in food"

    def test_missing_bucket_is_reported_in_body(self, client: TestClient) -> None:
        response = _call(client, "GET", {"db": "shop", "bucket": "ghost"})

        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "message": "Error: 'Bucket does not exist'",
            "keystore": {},
        }

    def test_write_failure_echoes_request(self, client: TestClient) -> None:
        response = _call(client, "POST", {"db": "shop", "bucket": "food", "keystore": {"": "x"}})

        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Error: 'Key required'"
        assert body["keystore"] == {"": "x"}


@pytest.mark.integration
class TestRequestValidation:
    """Malformed bodies get 406."""

    @pytest.mark.parametrize(
        "body",
        [
            {"bucket": "food"},
            {"db": "shop"},
            {"db": "", "bucket": "food"},
            {"db": "shop", "bucket": "food", "keystore": ["apple"]},
        ],
    )
    def test_bad_body(self, client: TestClient, body: dict) -> None:
        response = _call(client, "POST", body)

        assert response.status_code == 406
        assert response.json() == {"success": False, "message": "Cannot bind JSON", "keystore": {}}

    def test_not_json(self, client: TestClient) -> None:
        response = client.request("GET", "/v1", content=b"apple=red", auth=AUTH)

        assert response.status_code == 406


@pytest.mark.integration
class TestAuthentication:
    """HTTP Basic auth on /v1."""

    def test_wrong_password(self, client: TestClient) -> None:
        response = _call(client, "GET", {"db": "shop", "bucket": "food"}, auth=("zack", "nope"))

        assert response.status_code == 403
        assert response.json() == {"success": False, "message": "Incorrect credentials"}

    def test_missing_credentials(self, client: TestClient) -> None:
        response = client.request("POST", "/v1", json={"db": "shop", "bucket": "food"})

        assert response.status_code == 403

    def test_auth_checked_before_body(self, client: TestClient) -> None:
        response = client.request("POST", "/v1", content=b"garbage", auth=("x", "y"))

        assert response.status_code == 403

    def test_rejected_write_changes_nothing(
        self, client: TestClient, engine: BulkOperationEngine
    ) -> None:
        _call(client, "POST", {"db": "shop", "bucket": "food", "keystore": {"a": "1"}}, auth=("zack", "x"))

        assert engine.read_many("shop", "food").success is False

    def test_app_requires_credentials(self, engine: BulkOperationEngine) -> None:
        with pytest.raises(ValueError):
            create_app(engine, ServerConfig())


@pytest.mark.integration
class TestHealth:
    """Health endpoint needs no auth."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}
