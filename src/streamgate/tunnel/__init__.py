"""
Tunnel core: header codec, identity check, session state machine and relay.

A client opens a WebSocket on the gateway path, sends one header-bearing
frame naming a destination, and from then on the gateway copies bytes
between that WebSocket and a TCP connection to the destination.
"""

from streamgate.tunnel.errors import (
    CredentialMismatch,
    DialFailure,
    HeaderError,
    PeerError,
    TooShort,
    TunnelError,
    UnsupportedAddressKind,
    UnsupportedCommand,
)
from streamgate.tunnel.identity import parse_credential, validate
from streamgate.tunnel.protocol import (
    ACK_SIZE,
    MIN_HEADER_SIZE,
    ParsedHeader,
    build_header,
    encode_ack,
    parse_header,
    read_credential,
)

__all__ = [
    "ACK_SIZE",
    "MIN_HEADER_SIZE",
    "ParsedHeader",
    "build_header",
    "encode_ack",
    "parse_header",
    "read_credential",
    "parse_credential",
    "validate",
    "TunnelError",
    "HeaderError",
    "TooShort",
    "UnsupportedCommand",
    "UnsupportedAddressKind",
    "CredentialMismatch",
    "DialFailure",
    "PeerError",
]
