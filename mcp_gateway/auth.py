"""
MCP Authentication module.

Clients of the MCP server authenticate as applications with an API key
(X-API-Key header). End users then authenticate through the tools, which
return the same tokens the HTTP API does.
"""

import secrets
import logging
from typing import Optional

from .context import get_services

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


class ApiKeyValidator:
    """Validates the application API key sent by MCP clients."""

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def validate_api_key(self, api_key: Optional[str]) -> bool:
        """
        Validate the API key from a client.

        Args:
            api_key: The API key to validate

        Returns:
            True if valid, False otherwise
        """
        # If no API key configured, allow all (development mode)
        if not self._api_key:
            return True

        if not api_key:
            return False

        # Constant-time comparison to prevent timing attacks
        return secrets.compare_digest(api_key.encode(), self._api_key.encode())


def get_api_key_validator() -> ApiKeyValidator:
    """Build a validator from the shared context's server configuration."""
    return ApiKeyValidator(get_services().config.server.mcp_api_key)
