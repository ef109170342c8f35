"""
Authentication tools for MCP.

Every tool calls the shared AuthGateway off the event loop and returns a
JSON document: {"success": true, ...} or
{"success": false, "error": {"kind", "message", "retryable"}}.

The flow for an agent is:
1. register(...) or login(email, password)
2. If the result is pending, ask the user for the code that was sent
3. submit_verification(user_id, channel, code) to obtain tokens
4. refresh(refresh_token) before the access token expires
5. logout(refresh_token) when done, or logout_all(access_token) to end
   every session of the user
"""

import json
import asyncio
import logging
from typing import Optional

from identity.services import AuthResult
from ..context import get_services, get_gateway

logger = logging.getLogger(__name__)


def _render(result: AuthResult, delivery: Optional[dict] = None) -> str:
    data = result.to_dict()
    if delivery is not None and "pending" in data:
        data["pending"]["delivered"] = delivery["delivered"]
        data["pending"]["destination"] = delivery["destination"]
    return json.dumps(data)


def _run_and_deliver(operation: str, **kwargs) -> str:
    """Run a gateway call and send any pending code out of band."""
    services = get_services()
    result = getattr(services.gateway, operation)(**kwargs)

    delivery = None
    if result.success and result.pending and result.pending.handle:
        delivery = services.delivery.deliver(result.pending.handle)

    return _render(result, delivery)


async def register(
    email: str,
    password: str,
    phone: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None
) -> str:
    """
    Register a new user.

    Returns tokens, or a pending verification when codes are required.
    """
    return await asyncio.to_thread(
        _run_and_deliver,
        "register",
        email=email,
        password=password,
        phone=phone,
        first_name=first_name,
        last_name=last_name
    )


async def login(email: str, password: str) -> str:
    """
    Login with email and password.

    Returns tokens, or a pending verification after a code was sent.
    """
    return await asyncio.to_thread(
        _run_and_deliver,
        "login",
        email=email,
        password=password
    )


async def request_verification(user_id: str, channel: str = "email") -> str:
    """Send a new verification code for a channel."""
    return await asyncio.to_thread(
        _run_and_deliver,
        "request_verification",
        user_id=user_id,
        channel=channel
    )


async def submit_verification(user_id: str, code: str, channel: str = "email") -> str:
    """Submit a verification code and obtain tokens."""
    result = await asyncio.to_thread(
        get_gateway().submit_verification, user_id, channel, code
    )
    return _render(result)


async def refresh(refresh_token: str) -> str:
    """Rotate a refresh token into a new token pair."""
    result = await asyncio.to_thread(get_gateway().refresh, refresh_token)
    return _render(result)


async def logout(refresh_token: str) -> str:
    """Revoke a refresh token."""
    result = await asyncio.to_thread(get_gateway().logout, refresh_token)
    return _render(result)


def _logout_everywhere(access_token: str) -> AuthResult:
    gateway = get_gateway()
    auth = gateway.authenticate(access_token)
    if not auth.success:
        return auth
    return gateway.logout(user_id=auth.user.user_id)


async def logout_all(access_token: str) -> str:
    """Revoke every refresh token of the user behind an access token."""
    result = await asyncio.to_thread(_logout_everywhere, access_token)
    return _render(result)


async def validate_token(access_token: str) -> str:
    """
    Validate an access token.

    Returns the verified claims and the (active) user they belong to.
    """
    result = await asyncio.to_thread(get_gateway().authenticate, access_token)
    data = result.to_dict()
    data["valid"] = result.success
    return json.dumps(data)
