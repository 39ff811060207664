"""
Upgrade gatekeeper.

Only WebSocket handshakes whose request target equals the configured
tunnel path are let through to the application. Everything else is
closed before the handshake completes, so no protocol bytes are ever
read from it. Plain HTTP requests pass untouched.
"""

from streamgate.utils.logger import get_logger

logger = get_logger(__name__)

# Close code sent instead of accepting; servers answer the handshake with 403
REJECT_CLOSE_CODE = 1008


def request_target(scope: dict) -> str:
    """Rebuild the raw request target (path plus query) of an ASGI scope."""
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


def is_upgrade_allowed(target: str, ws_path: str) -> bool:
    """Exact match only: no prefixes, wildcards or extra query strings."""
    return target == ws_path


class UpgradeGatekeeper:
    """ASGI middleware rejecting WebSocket upgrades on any other path."""

    def __init__(self, app, ws_path: str):
        self.app = app
        self.ws_path = ws_path

    async def __call__(self, scope, receive, send):
        if scope["type"] == "websocket":
            target = request_target(scope)
            if not is_upgrade_allowed(target, self.ws_path):
                client = scope.get("client")
                logger.info(f"[Gatekeeper] Rejected upgrade on {target!r} from {client}")
                await send({"type": "websocket.close", "code": REJECT_CLOSE_CODE})
                return
        await self.app(scope, receive, send)
