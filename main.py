#!/usr/bin/env python3
"""
Identity Gateway - process entry point.

Runs the HTTP API and the MCP server concurrently in one process, sharing
a single service context (and therefore one AuthGateway and storage).
"""

import argparse
import asyncio
import logging
import sys

import uvicorn

from identity import __version__
from identity.config import load_config, Config
from identity.services import ServiceContext, set_context, close_context

logger = logging.getLogger("identity.main")


def configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def build_server(app, host: str, port: int, log_level: str) -> uvicorn.Server:
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level.lower())
    server = uvicorn.Server(config)
    # Signal handling is left to asyncio.run
    server.install_signal_handlers = lambda: None
    return server


async def serve(config: Config, run_api: bool = True, run_mcp: bool = True):
    """Run the selected listeners until one of them stops."""
    # Imported here so the apps pick up the context installed by main()
    from api.main import app as api_app
    from mcp_gateway.sse_server import app as mcp_app

    server_config = config.server
    servers = []

    if run_api:
        logger.info(f"HTTP API on {server_config.api_host}:{server_config.api_port}")
        servers.append(build_server(
            api_app, server_config.api_host, server_config.api_port, server_config.log_level
        ))

    if run_mcp:
        logger.info(f"MCP server on {server_config.mcp_host}:{server_config.mcp_port}")
        if not server_config.mcp_api_key:
            logger.warning("MCP_API_KEY not set! MCP endpoints are unprotected (dev mode)")
        servers.append(build_server(
            mcp_app, server_config.mcp_host, server_config.mcp_port, server_config.log_level
        ))

    await asyncio.gather(*(server.serve() for server in servers))


def main():
    parser = argparse.ArgumentParser(description="Identity Gateway")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--api-only", action="store_true", help="Run only the HTTP API")
    group.add_argument("--mcp-only", action="store_true", help="Run only the MCP server")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args()

    try:
        config = load_config()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.server.log_level)
    logger.info(f"Starting Identity Gateway {__version__}")

    set_context(ServiceContext.create(config=config))

    try:
        asyncio.run(serve(config, run_api=not args.mcp_only, run_mcp=not args.api_only))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        close_context()


if __name__ == "__main__":
    main()
