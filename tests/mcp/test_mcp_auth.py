"""
Integration tests for MCP Server authentication.

Tests the health endpoint and API key enforcement on the SSE transport.
"""

import pytest

from mcp_gateway.auth import ApiKeyValidator


class TestMCPHealth:
    """Tests for MCP health endpoint."""

    @pytest.mark.mcp
    def test_health_endpoint(self, mcp_client, context):
        """Health check needs no API key."""
        response = mcp_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "mcp-server"


class TestMCPApiKey:
    """Tests for API key enforcement."""

    @pytest.mark.mcp
    def test_sse_without_api_key(self, mcp_client, context):
        response = mcp_client.get("/sse")

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid API key"

    @pytest.mark.mcp
    def test_messages_without_api_key(self, mcp_client, context):
        response = mcp_client.post("/messages/", json={})

        assert response.status_code == 401

    @pytest.mark.mcp
    def test_messages_invalid_api_key(self, mcp_client, context):
        response = mcp_client.post(
            "/messages/",
            headers={"X-API-Key": "wrong_api_key"},
            json={}
        )

        assert response.status_code == 401
        assert "Invalid API key" in response.json()["error"]

    @pytest.mark.mcp
    def test_messages_valid_api_key_reaches_transport(self, mcp_client, context, test_config):
        """With a valid key the request reaches the transport, which wants a session."""
        response = mcp_client.post(
            "/messages/",
            headers={"X-API-Key": test_config["mcp_api_key"]},
            json={}
        )

        assert response.status_code == 400


class TestApiKeyValidator:
    """Tests for ApiKeyValidator."""

    @pytest.mark.unit
    def test_disabled_allows_all(self):
        validator = ApiKeyValidator(None)

        assert validator.enabled is False
        assert validator.validate_api_key(None) is True
        assert validator.validate_api_key("anything") is True

    @pytest.mark.unit
    def test_enabled(self):
        validator = ApiKeyValidator("secret")

        assert validator.enabled is True
        assert validator.validate_api_key("secret") is True
        assert validator.validate_api_key("Secret") is False
        assert validator.validate_api_key("") is False
        assert validator.validate_api_key(None) is False
