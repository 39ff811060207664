"""
StreamGate FastAPI Application.

This module provides the main entry point for the gateway server.

Responsibilities:
    - Tunnel WebSocket endpoint on the configured path
    - Upgrade gatekeeping for every other WebSocket path
    - Decoy status page, health check and optional subscription link
    - Optional one-shot keep-alive ping at startup
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket

from streamgate import __version__
from streamgate.gateway.background.keepalive import ping_keepalive
from streamgate.gateway.config import ConfigError, GatewayConfig, load_config
from streamgate.gateway.endpoints import decoy, health, subscription
from streamgate.gateway.gatekeeper import UpgradeGatekeeper
from streamgate.models.enums import LogLevel
from streamgate.tunnel.identity import mask_credential
from streamgate.tunnel.session import OpenConnection, handle_tunnel
from streamgate.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


# =============================================================================
# WebSocket Endpoint
# =============================================================================


async def tunnel_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for tunnel sessions.

    Each connection becomes one independent TunnelSession.
    """
    state = websocket.app.state
    await handle_tunnel(websocket, state.config, state.open_connection)


# =============================================================================
# Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start background tasks on startup and cancel them on shutdown."""
    config: GatewayConfig = app.state.config
    background_tasks: set[asyncio.Task] = set()

    logger.info(f"Gateway starting on port {config.PORT}")
    logger.info(f"Protected path: {config.WS_PATH}")
    logger.info(f"Credential: {mask_credential(config.get_credential())}")
    if config.PROXY_IP:
        logger.info(f"Destination override: {config.PROXY_IP}")

    if config.KEEPALIVE_URL:
        task = asyncio.create_task(
            ping_keepalive(config.KEEPALIVE_URL), name="keepalive"
        )
        background_tasks.add(task)
        task.add_done_callback(background_tasks.discard)

    yield

    for task in background_tasks:
        task.cancel()
    if background_tasks:
        await asyncio.gather(*background_tasks, return_exceptions=True)
    logger.info("Gateway shut down complete")


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    config: GatewayConfig,
    open_connection: OpenConnection = asyncio.open_connection,
) -> FastAPI:
    """
    Create and configure the gateway application.

    Args:
        config: Immutable process configuration.
        open_connection: Coroutine function used by sessions to dial
            destinations.
    """
    app = FastAPI(
        title="StreamGate",
        description="WebSocket tunnel gateway",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config
    app.state.open_connection = open_connection

    app.add_middleware(UpgradeGatekeeper, ws_path=config.WS_PATH)
    app.add_exception_handler(404, decoy.not_found_handler)
    app.add_exception_handler(405, decoy.not_found_handler)

    app.include_router(health.router, tags=["Health"])
    if config.SUB_PATH:
        app.add_api_route(
            config.SUB_PATH,
            subscription.get_subscription,
            methods=["GET"],
            tags=["Subscription"],
        )
    app.include_router(decoy.router, tags=["Decoy"])

    app.add_api_websocket_route(config.WS_PATH, tunnel_endpoint)

    return app


# =============================================================================
# Server Entry Points
# =============================================================================


def run(config: GatewayConfig | None = None):
    """Run the gateway using uvicorn."""
    import uvicorn

    if config is None:
        config = load_config()

    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    uvicorn_level_map = {
        LogLevel.FULL: "debug",
        LogLevel.DEBUG: "debug",
        LogLevel.INFO: "info",
        LogLevel.WARNING: "warning",
    }
    uvicorn_level = uvicorn_level_map.get(config.LOG_LEVEL, "info")

    logger.info(f"Starting gateway on {config.BIND_IP}:{config.PORT}")

    uvicorn.run(
        create_app(config),
        host=config.BIND_IP,
        port=config.PORT,
        log_level=uvicorn_level,
        log_config=None,  # Logging goes through loguru
    )


def main():
    """Entry point for the gateway server."""
    try:
        config = load_config()
    except ConfigError as e:
        logger.critical(f"Invalid configuration: {e}")
        raise SystemExit(1)
    run(config)


if __name__ == "__main__":
    main()
