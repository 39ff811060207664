"""
Subscription link endpoint.

Serves a base64-encoded share link describing how a client reaches the
tunnel: the credential, the public host, TLS on 443, WebSocket
transport on the configured path.
"""

import base64
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import PlainTextResponse

from streamgate.gateway.config import GatewayConfig
from streamgate.utils.logger import get_logger

logger = get_logger(__name__)

# Clients are expected to reach the gateway through a TLS front on 443
PUBLIC_PORT = 443
SECURITY = "tls"


def build_share_link(config: GatewayConfig, host: str) -> str:
    """
    Build the share link for a public host.

    Args:
        config: Gateway configuration (credential and tunnel path).
        host: Public host name clients connect to.

    Returns:
        vless:// URL string.
    """
    path = quote(config.WS_PATH, safe="")
    return (
        f"vless://{config.UUID}@{host}:{PUBLIC_PORT}"
        f"?encryption=none&security={SECURITY}&type=ws"
        f"&host={host}&path={path}#{quote(host)}"
    )


def encode_subscription(link: str) -> str:
    """Base64-encode a share link the way subscription clients expect."""
    return base64.b64encode(link.encode("utf-8")).decode("ascii")


def resolve_public_host(config: GatewayConfig, request: Request) -> str:
    """Configured public host, else the request Host header without port."""
    if config.PUBLIC_HOST:
        return config.PUBLIC_HOST
    host = request.headers.get("host", "localhost")
    if host.startswith("["):
        return host.split("]")[0] + "]"
    return host.split(":")[0]


async def get_subscription(request: Request):
    """Return the base64 subscription document."""
    config: GatewayConfig = request.app.state.config
    host = resolve_public_host(config, request)
    logger.info(f"[Subscription] Link requested for host {host}")
    return PlainTextResponse(encode_subscription(build_share_link(config, host)))
