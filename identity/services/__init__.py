"""
Services layer for the identity gateway.

This module provides the authentication core as reusable services
consumed by the HTTP API, the MCP server and the admin scripts.
"""

from .base import ServiceContext, get_context, set_context, close_context
from .credential_store import CredentialStore
from .verification_service import VerificationCodeManager
from .token_service import TokenService, TokenReuseEvent
from .auth_gateway import AuthGateway, AuthResult, PendingVerification
from .delivery_service import DeliveryService

__all__ = [
    # Context
    "ServiceContext",
    "get_context",
    "set_context",
    "close_context",
    # Services
    "CredentialStore",
    "VerificationCodeManager",
    "TokenService",
    "AuthGateway",
    "DeliveryService",
    # Data classes
    "AuthResult",
    "PendingVerification",
    "TokenReuseEvent",
]
