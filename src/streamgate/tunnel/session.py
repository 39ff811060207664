"""
Tunnel session state machine.

One TunnelSession exists per accepted WebSocket upgrade:

    AWAITING_HEADER -> CONNECTING -> RELAYING -> CLOSED

Only the first frame is read as a header. A bad frame, a wrong
credential or a failed dial goes straight to CLOSED and the WebSocket is
closed without any diagnostic payload.
"""

import asyncio
import secrets
from collections.abc import Awaitable, Callable

from fastapi import WebSocket

from streamgate.gateway.config import GatewayConfig
from streamgate.models.enums import SessionState
from streamgate.tunnel.errors import (
    CredentialMismatch,
    DialFailure,
    HeaderError,
    PeerError,
)
from streamgate.tunnel.identity import mask_credential, validate
from streamgate.tunnel.peers import DestinationPeer, TransportPeer
from streamgate.tunnel.protocol import (
    ParsedHeader,
    encode_ack,
    parse_header,
    read_credential,
)
from streamgate.tunnel.relay import relay
from streamgate.utils.logger import get_logger

logger = get_logger(__name__)

OpenConnection = Callable[
    [str, int], Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]]
]

# Allowed forward transitions
_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.AWAITING_HEADER: {SessionState.CONNECTING, SessionState.CLOSED},
    SessionState.CONNECTING: {SessionState.RELAYING, SessionState.CLOSED},
    SessionState.RELAYING: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


# =============================================================================
# Tunnel Session
# =============================================================================


class TunnelSession:
    """
    Couples one upgraded WebSocket with one destination TCP connection.

    The session owns its destination exclusively and closes both sides
    together, whichever one ends first.
    """

    def __init__(
        self,
        websocket: WebSocket,
        config: GatewayConfig,
        open_connection: OpenConnection = asyncio.open_connection,
    ):
        """
        Initialize a session.

        Args:
            websocket: Upgraded (accepted) WebSocket connection.
            config: Process configuration.
            open_connection: Coroutine function used to dial destinations.
        """
        self.config = config
        self.transport = TransportPeer(websocket)
        self.destination: DestinationPeer | None = None
        self.state = SessionState.AWAITING_HEADER
        self.header: ParsedHeader | None = None

        self._secret = config.get_credential()
        self._open_connection = open_connection

        client = websocket.client
        peer = f"{client.host}:{client.port}" if client else "unknown"
        self.session_id = secrets.token_hex(4)
        self.log_prefix = f"[Session {self.session_id} {peer}]"

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def expects_header(self) -> bool:
        return self.state == SessionState.AWAITING_HEADER

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def _advance(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal session transition {self.state.value} -> {new_state.value}"
            )
        logger.trace(f"{self.log_prefix} {self.state.value} -> {new_state.value}")
        self.state = new_state

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Drive the session from the first frame to teardown."""
        try:
            first_frame = await self.transport.receive()
            if first_frame is None:
                logger.debug(f"{self.log_prefix} Peer left before sending a header")
                return

            self.header = self.accept_header(first_frame)
            await self.connect(self.header, first_frame)

            self._advance(SessionState.RELAYING)
            ended_by = await relay(
                self.transport, self.destination, self.config.RELAY_CHUNK_SIZE
            )
            logger.debug(f"{self.log_prefix} Relay ended by {ended_by}")

        except CredentialMismatch as e:
            logger.warning(f"{self.log_prefix} Auth failed: {e}")
        except HeaderError as e:
            logger.warning(f"{self.log_prefix} Bad header: {e}")
        except DialFailure as e:
            logger.warning(f"{self.log_prefix} {e}")
        except PeerError as e:
            logger.info(f"{self.log_prefix} Peer error: {e}")
        except Exception as e:
            logger.exception(f"{self.log_prefix} Unexpected error: {e}")
        finally:
            await self.close()

    def accept_header(self, frame: bytes) -> ParsedHeader:
        """
        Validate the credential and parse the header of the first frame.

        Raises:
            TooShort, UnsupportedCommand, UnsupportedAddressKind: Bad header.
            CredentialMismatch: Credential differs from the configured secret.
        """
        if not self.expects_header:
            raise RuntimeError(f"Header already handled (state={self.state.value})")

        credential = read_credential(frame)
        if not validate(credential, self._secret):
            raise CredentialMismatch(
                f"Invalid credential {mask_credential(credential)}"
            )
        return parse_header(frame)

    async def connect(self, header: ParsedHeader, first_frame: bytes) -> None:
        """
        Dial the destination, acknowledge, and flush the first-frame payload.

        Raises:
            DialFailure: Connection refused, unreachable, timed out, or a
                host name that cannot be encoded.
        """
        self._advance(SessionState.CONNECTING)

        host = self.config.get_dial_host(header.address)
        port = header.port
        logger.info(f"{self.log_prefix} Connecting to {host}:{port}")

        try:
            reader, writer = await asyncio.wait_for(
                self._open_connection(host, port),
                timeout=self.config.DIAL_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            raise DialFailure(f"Timeout connecting to {host}:{port}") from e
        except (OSError, UnicodeError) as e:
            raise DialFailure(f"Failed to connect to {host}:{port}: {e}") from e

        self.destination = DestinationPeer(reader, writer)

        await self.transport.send(encode_ack(header.version))
        await self.destination.write(first_frame[header.payload_offset :])

    async def close(self) -> None:
        """Close both peers. Safe to call repeatedly."""
        if self.is_closed:
            return
        self._advance(SessionState.CLOSED)

        if self.destination is not None:
            await self.destination.close()
        await self.transport.close()
        logger.debug(f"{self.log_prefix} Closed")


# =============================================================================
# WebSocket Handler
# =============================================================================


async def handle_tunnel(
    websocket: WebSocket,
    config: GatewayConfig,
    open_connection: OpenConnection = asyncio.open_connection,
) -> None:
    """
    Handle one tunnel WebSocket from upgrade to teardown.

    Args:
        websocket: WebSocket on the configured tunnel path.
        config: Process configuration.
        open_connection: Coroutine function used to dial destinations.
    """
    await websocket.accept()
    session = TunnelSession(websocket, config, open_connection)
    logger.debug(f"{session.log_prefix} Upgrade accepted")
    await session.run()
