"""
MCP Context management.

Provides MCP tools with the same service context the HTTP API uses.
"""

import logging

from identity.services import AuthGateway, ServiceContext, get_context

logger = logging.getLogger(__name__)


def get_services() -> ServiceContext:
    """Get the process-wide service context."""
    return get_context()


def get_gateway() -> AuthGateway:
    """Get the shared AuthGateway."""
    return get_context().gateway
