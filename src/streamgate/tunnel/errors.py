"""
Tunnel error taxonomy.

Every failure a session can hit is one of these. They are raised by the
codec, the validator and the dial step, and handled in TunnelSession.run
by closing that session. None of them is ever reported to the peer.
"""


class TunnelError(Exception):
    """Base class for all tunnel session failures."""


class HeaderError(TunnelError):
    """The first frame could not be parsed as a request header."""


class TooShort(HeaderError):
    """Frame is shorter than the header it claims to carry."""


class UnsupportedCommand(HeaderError):
    """Command byte is not the stream command."""

    def __init__(self, command: int):
        super().__init__(f"Unsupported command: {command} (TCP only)")
        self.command = command


class UnsupportedAddressKind(HeaderError):
    """Address kind byte is not IPv4, domain or IPv6."""

    def __init__(self, kind: int):
        super().__init__(f"Unknown address type: {kind}")
        self.kind = kind


class CredentialMismatch(TunnelError):
    """Credential in the first frame does not match the configured secret."""


class DialFailure(TunnelError):
    """Destination connection could not be established in time."""


class PeerError(TunnelError):
    """One side of an established relay failed."""
