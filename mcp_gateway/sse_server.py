"""
MCP Server implementation.

Exposes the authentication operations as MCP tools so agents and other
JSON-RPC clients can register, log in, verify codes and manage tokens.

Uses SSE (Server-Sent Events) transport for remote access.

Authentication:
- Clients authenticate with an API key (X-API-Key header) when
  MCP_API_KEY is configured
- End users authenticate through the tools themselves
"""

import json
import inspect
import logging
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.routing import Route, Mount
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware

from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.types import Tool, TextContent

from identity import __version__
from identity.errors import InvalidRequest
from .tools import auth as auth_tools
from .auth import API_KEY_HEADER, get_api_key_validator
from .context import get_services

logger = logging.getLogger(__name__)

# Create server instance
server = Server("identity-gateway")

TOOL_HANDLERS = {
    "register": auth_tools.register,
    "login": auth_tools.login,
    "submit_verification": auth_tools.submit_verification,
    "request_verification": auth_tools.request_verification,
    "refresh": auth_tools.refresh,
    "logout": auth_tools.logout,
    "logout_all": auth_tools.logout_all,
    "validate_token": auth_tools.validate_token,
}

_CHANNEL_SCHEMA = {
    "type": "string",
    "enum": ["email", "sms", "chat"],
    "description": "Delivery channel of the code",
    "default": "email"
}


# === Tool Registration ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="register",
            description="Create a user account. Returns tokens, or a pending verification when a code must be submitted first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {
                        "type": "string",
                        "description": "Password (8 to 72 bytes with upper-case, lower-case and a digit)"
                    },
                    "phone": {"type": "string", "description": "Phone number (e.g., '+5511999999999')"},
                    "first_name": {"type": "string"},
                    "last_name": {"type": "string"}
                },
                "required": ["email", "password"]
            }
        ),
        Tool(
            name="login",
            description="Login with email and password. If the result is pending, a code was sent and must be submitted with submit_verification.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Email address"},
                    "password": {"type": "string", "description": "Password"}
                },
                "required": ["email", "password"]
            }
        ),
        Tool(
            name="submit_verification",
            description="Submit the one-time code received by the user. Returns tokens on success.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": {"type": "string", "description": "User ID from the pending result"},
                    "code": {"type": "string", "description": "Code received by the user"},
                    "channel": _CHANNEL_SCHEMA
                },
                "required": ["user_id", "code"]
            }
        ),
        Tool(
            name="request_verification",
            description="Send a new verification code, e.g. after the previous one expired.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_id": {"type": "string", "description": "User ID"},
                    "channel": _CHANNEL_SCHEMA
                },
                "required": ["user_id"]
            }
        ),
        Tool(
            name="refresh",
            description="Exchange a refresh token for a new token pair. Each refresh token can be used once.",
            inputSchema={
                "type": "object",
                "properties": {
                    "refresh_token": {"type": "string", "description": "Current refresh token"}
                },
                "required": ["refresh_token"]
            }
        ),
        Tool(
            name="logout",
            description="Revoke a refresh token.",
            inputSchema={
                "type": "object",
                "properties": {
                    "refresh_token": {"type": "string", "description": "Refresh token to revoke"}
                },
                "required": ["refresh_token"]
            }
        ),
        Tool(
            name="logout_all",
            description="Revoke every refresh token of the user who owns the access token, ending all of their sessions.",
            inputSchema={
                "type": "object",
                "properties": {
                    "access_token": {"type": "string", "description": "Access token (JWT) of the user"}
                },
                "required": ["access_token"]
            }
        ),
        Tool(
            name="validate_token",
            description="Validate an access token and return its claims and user.",
            inputSchema={
                "type": "object",
                "properties": {
                    "access_token": {"type": "string", "description": "Access token (JWT)"}
                },
                "required": ["access_token"]
            }
        ),
    ]


async def dispatch_tool(name: str, arguments: dict[str, Any]) -> str:
    """Run a tool by name and return its JSON result."""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        error = InvalidRequest(f"Unknown tool: {name}")
        return json.dumps({"success": False, "error": error.to_dict()})

    arguments = arguments or {}
    try:
        inspect.signature(handler).bind(**arguments)
    except TypeError as e:
        logger.warning(f"Tool {name} called with bad arguments: {e}")
        error = InvalidRequest(f"Invalid arguments for {name}")
        return json.dumps({"success": False, "error": error.to_dict()})

    return await handler(**arguments)


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    try:
        result = await dispatch_tool(name, arguments)
    except Exception as e:
        logger.error(f"Tool {name} failed: {e}", exc_info=True)
        result = json.dumps({
            "success": False,
            "error": {"kind": "internal_error", "message": "Internal server error", "retryable": False}
        })

    return [TextContent(type="text", text=result)]


sse = SseServerTransport("/messages/")


# === Health Check ===

async def handle_health(request: Request) -> Response:
    """Health check endpoint."""
    return JSONResponse({
        "status": "healthy",
        "service": "mcp-server",
        "version": __version__
    })


# === SSE ===

async def handle_sse(request: Request) -> Response:
    """
    Handle SSE connection from clients.

    GET /sse
    Headers:
        X-API-Key: <api key>  (required when MCP_API_KEY is set)
    """
    logger.info(f"SSE connection from {request.client}")

    async with sse.connect_sse(
        request.scope, request.receive, request._send
    ) as streams:
        await server.run(
            streams[0], streams[1],
            server.create_initialization_options()
        )

    return Response()


# === API Key Check ===

class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Middleware to check the API key for /sse and /messages/."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not (path.startswith("/sse") or path.startswith("/messages/")):
            return await call_next(request)

        validator = get_api_key_validator()
        if not validator.validate_api_key(request.headers.get(API_KEY_HEADER)):
            logger.warning(f"Rejected MCP request to {path}: invalid API key")
            return JSONResponse(
                {"error": "Invalid API key"},
                status_code=401
            )

        return await call_next(request)


# Starlette app with routes and middleware
app = Starlette(
    debug=False,
    routes=[
        # Health check
        Route("/health", endpoint=handle_health, methods=["GET"]),

        # MCP SSE endpoints
        Route("/sse", endpoint=handle_sse),
        Mount("/messages/", app=sse.handle_post_message),
    ],
    middleware=[
        Middleware(ApiKeyMiddleware),
    ]
)


def main():
    """Run the MCP server on its own with SSE transport."""
    services = get_services()
    server_config = services.config.server

    logging.basicConfig(
        level=server_config.log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    )

    logger.info(f"Starting Identity Gateway MCP Server (SSE) on {server_config.mcp_host}:{server_config.mcp_port}...")
    logger.info("SSE endpoint: GET /sse")
    logger.info("Messages endpoint: POST /messages/")
    logger.info("Health endpoint: GET /health")

    if get_api_key_validator().enabled:
        logger.info("API Key authentication: ENABLED")
    else:
        logger.warning("API Key authentication: DISABLED (dev mode)")

    uvicorn.run(app, host=server_config.mcp_host, port=server_config.mcp_port)


if __name__ == "__main__":
    main()
