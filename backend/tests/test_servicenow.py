"""
Tests for the ServiceNow client and pass-through proxy.
"""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app
from app.api.deps import get_servicenow_client
from app.services.servicenow import (
    ServiceNowClient,
    ServiceNowError,
    ServiceNowNotConfigured,
    forwarded_headers,
)

INSTANCE = "https://dev.service-now.test"


def mock_client(handler, instance: str = INSTANCE) -> ServiceNowClient:
    return ServiceNowClient(
        instance, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


class TestServiceNowClient:
    """Test Table API calls."""

    def test_get_record(self):
        """Test the result envelope is unwrapped and the token forwarded."""
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/now/table/incident/abc"
            assert request.url.params["sysparm_display_value"] == "true"
            assert request.headers["authorization"] == "Bearer tok"
            return httpx.Response(200, json={"result": {"number": "INC0010001"}})

        record = asyncio.run(mock_client(handler).get_record("incident", "abc", token="tok"))
        assert record == {"number": "INC0010001"}

    def test_session_expired(self):
        client = mock_client(lambda request: httpx.Response(401))
        with pytest.raises(ServiceNowError) as exc:
            asyncio.run(client.get_record("incident", "abc"))
        assert exc.value.status_code == 401
        assert "Session expired" in str(exc.value)

    def test_access_denied_includes_detail(self):
        client = mock_client(
            lambda request: httpx.Response(403, json={"error": {"message": "Insufficient rights"}})
        )
        with pytest.raises(ServiceNowError) as exc:
            asyncio.run(client.update_record("incident", "abc", {"state": "2"}))
        assert exc.value.status_code == 403
        assert "Insufficient rights" in str(exc.value)

    def test_server_error(self):
        client = mock_client(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(ServiceNowError) as exc:
            asyncio.run(client.get_record("incident", "abc"))
        assert exc.value.status_code == 500

    def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ServiceNowError) as exc:
            asyncio.run(mock_client(handler).get_record("incident", "abc"))
        assert exc.value.status_code is None

    def test_unconfigured_instance(self):
        client = mock_client(lambda request: httpx.Response(200), instance="")
        assert client.configured is False
        with pytest.raises(ServiceNowNotConfigured):
            asyncio.run(client.get_record("incident", "abc"))


class TestForwardedHeaders:
    """Test proxy header selection."""

    def test_only_allowed_headers_forwarded(self):
        headers = forwarded_headers({
            "Authorization": "Bearer tok",
            "Accept": "application/json",
            "X-Domain": "global",
            "Host": "localhost:8000",
            "Cookie": "session=1",
        })
        assert headers == {
            "authorization": "Bearer tok",
            "accept": "application/json",
            "x-domain": "global",
        }


class TestProxy:
    """Test the /servicenow-api pass-through."""

    def test_forwards_request_and_response(self, client: TestClient):
        """Test method, path, headers and body pass through unchanged."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                201,
                content=b'{"result":{"sys_id":"new"}}',
                headers={"content-type": "application/json;charset=UTF-8"},
            )

        app.dependency_overrides[get_servicenow_client] = lambda: mock_client(handler)
        response = client.post(
            "/servicenow-api",
            params={"path": "/api/now/table/incident?sysparm_limit=1"},
            content=b'{"short_description":"x"}',
            headers={"Authorization": "Bearer tok", "Content-Type": "application/json"},
        )

        assert response.status_code == 201
        assert response.json() == {"result": {"sys_id": "new"}}
        assert response.headers["content-type"].startswith("application/json")
        assert seen[0].method == "POST"
        assert str(seen[0].url) == f"{INSTANCE}/api/now/table/incident?sysparm_limit=1"
        assert seen[0].headers["authorization"] == "Bearer tok"
        assert seen[0].content == b'{"short_description":"x"}'

    def test_upstream_errors_pass_through(self, client: TestClient):
        app.dependency_overrides[get_servicenow_client] = lambda: mock_client(
            lambda request: httpx.Response(404, json={"error": {"message": "No Record found"}})
        )
        response = client.get("/servicenow-api", params={"path": "/api/now/table/incident/missing"})
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "No Record found"

    def test_transport_failure_is_bad_gateway(self, client: TestClient):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        app.dependency_overrides[get_servicenow_client] = lambda: mock_client(handler)
        response = client.get("/servicenow-api", params={"path": "/api/now/table/incident"})
        assert response.status_code == 502

    def test_missing_instance(self, client: TestClient):
        app.dependency_overrides[get_servicenow_client] = lambda: mock_client(
            lambda request: httpx.Response(200), instance=""
        )
        response = client.get("/servicenow-api", params={"path": "/api/now/table/incident"})
        assert response.status_code == 500

    def test_path_is_required(self, client: TestClient):
        response = client.get("/servicenow-api")
        assert response.status_code == 422
