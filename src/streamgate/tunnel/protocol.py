"""
Tunnel request header codec.

Wire format of the first inbound frame (binary, big-endian):
┌─────────┬────────────┬─────────┬─────────┬─────────┬──────────┬──────────┬───────────┬─────────┐
│ Ver (1B)│ Cred (16B) │ N (1B)  │Addon(NB)│ Cmd (1B)│ Port (2B)│ Kind (1B)│ Addr (var)│ Payload │
└─────────┴────────────┴─────────┴─────────┴─────────┴──────────┴──────────┴───────────┴─────────┘

Address encoding by kind:
    0x01 IPv4    4 raw bytes
    0x02 Domain  1 length byte + UTF-8 name
    0x03 IPv6    16 raw bytes

Acknowledgement sent back once the destination is connected: [version, 0x00].
"""

import ipaddress
import struct
from dataclasses import dataclass

from streamgate.models.enums import AddressKind, Command
from streamgate.tunnel.errors import (
    TooShort,
    UnsupportedAddressKind,
    UnsupportedCommand,
)
from streamgate.tunnel.identity import CREDENTIAL_SIZE

# =============================================================================
# Layout
# =============================================================================

VERSION_OFFSET = 0
CREDENTIAL_OFFSET = 1
ADDON_LENGTH_OFFSET = CREDENTIAL_OFFSET + CREDENTIAL_SIZE  # 17

# Smallest frame that can possibly hold a complete header
MIN_HEADER_SIZE = 24

# Fixed part after the addons: command(1) + port(2) + address kind(1)
REQUEST_FORMAT = ">BHB"
REQUEST_SIZE = struct.calcsize(REQUEST_FORMAT)  # 4 bytes

IPV4_SIZE = 4
IPV6_SIZE = 16

ACK_SIZE = 2


@dataclass(frozen=True)
class ParsedHeader:
    """Parsed tunnel request header."""

    version: int
    command: Command
    port: int
    address_kind: AddressKind
    address: str
    payload_offset: int


# =============================================================================
# Decoding
# =============================================================================


def _take(data: bytes, offset: int, size: int) -> tuple[bytes, int]:
    """Slice `size` bytes at `offset`, returning them and the advanced cursor."""
    end = offset + size
    if end > len(data):
        raise TooShort(
            f"Header truncated: need {end} bytes, frame has {len(data)}"
        )
    return data[offset:end], end


def _check_length(data: bytes) -> None:
    if len(data) < MIN_HEADER_SIZE:
        raise TooShort(f"Data too short: {len(data)} < {MIN_HEADER_SIZE} bytes")


def read_credential(data: bytes) -> bytes:
    """
    Extract the 16-byte credential from a first frame.

    Raises:
        TooShort: If the frame is below the minimum header size.
    """
    _check_length(data)
    return bytes(data[CREDENTIAL_OFFSET : CREDENTIAL_OFFSET + CREDENTIAL_SIZE])


def _decode_address(data: bytes, kind: int, offset: int) -> tuple[str, int]:
    if kind == AddressKind.IPV4:
        raw, offset = _take(data, offset, IPV4_SIZE)
        return ".".join(str(b) for b in raw), offset

    if kind == AddressKind.DOMAIN:
        length, offset = _take(data, offset, 1)
        raw, offset = _take(data, offset, length[0])
        return raw.decode("utf-8", errors="replace"), offset

    if kind == AddressKind.IPV6:
        raw, offset = _take(data, offset, IPV6_SIZE)
        hextets = struct.unpack(">8H", raw)
        return ":".join(f"{h:x}" for h in hextets), offset

    raise UnsupportedAddressKind(kind)


def parse_header(data: bytes) -> ParsedHeader:
    """
    Parse the request header from the first inbound frame.

    The whole header must be present in this one frame; nothing is
    buffered across frames.

    Args:
        data: Raw bytes of the first frame.

    Returns:
        ParsedHeader whose payload_offset marks where application data
        starts in `data`.

    Raises:
        TooShort: Frame shorter than MIN_HEADER_SIZE or than the header it
            describes.
        UnsupportedCommand: Command byte other than STREAM.
        UnsupportedAddressKind: Address kind byte not IPv4/domain/IPv6.
    """
    _check_length(data)

    version = data[VERSION_OFFSET]
    addon_length = data[ADDON_LENGTH_OFFSET]
    # Addons are skipped, never interpreted
    _, cursor = _take(data, ADDON_LENGTH_OFFSET + 1, addon_length)

    fixed, cursor = _take(data, cursor, REQUEST_SIZE)
    command, port, kind = struct.unpack(REQUEST_FORMAT, fixed)

    if command != Command.STREAM:
        raise UnsupportedCommand(command)

    address, cursor = _decode_address(data, kind, cursor)

    return ParsedHeader(
        version=version,
        command=Command(command),
        port=port,
        address_kind=AddressKind(kind),
        address=address,
        payload_offset=cursor,
    )


# =============================================================================
# Encoding
# =============================================================================


def encode_ack(version: int) -> bytes:
    """Build the acknowledgement frame: the request version and zero addons."""
    return bytes((version & 0xFF, 0x00))


def _encode_address(kind: AddressKind, address: str) -> bytes:
    if kind == AddressKind.IPV4:
        return ipaddress.IPv4Address(address).packed
    if kind == AddressKind.IPV6:
        return ipaddress.IPv6Address(address).packed
    encoded = address.encode("utf-8")
    if len(encoded) > 255:
        raise ValueError(f"Domain name too long: {len(encoded)} bytes")
    return bytes((len(encoded),)) + encoded


def build_header(
    credential: bytes,
    port: int,
    address: str,
    address_kind: AddressKind | None = None,
    command: int = Command.STREAM,
    version: int = 0,
    addons: bytes = b"",
    payload: bytes = b"",
) -> bytes:
    """
    Build a first frame as a client would send it.

    Args:
        credential: 16-byte identity credential.
        port: Destination port.
        address: Destination IPv4/IPv6 literal or domain name.
        address_kind: Encoding to use; guessed from `address` when None.
        command: Command byte.
        version: Protocol version byte.
        addons: Opaque addon bytes.
        payload: Application bytes appended after the header.

    Returns:
        Complete frame as bytes.
    """
    if len(credential) != CREDENTIAL_SIZE:
        raise ValueError(f"Credential must be {CREDENTIAL_SIZE} bytes")
    if address_kind is None:
        address_kind = guess_address_kind(address)

    return (
        bytes((version,))
        + credential
        + bytes((len(addons),))
        + addons
        + struct.pack(REQUEST_FORMAT, command, port, address_kind)
        + _encode_address(address_kind, address)
        + payload
    )


def guess_address_kind(address: str) -> AddressKind:
    """Pick the address kind for a host string."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return AddressKind.DOMAIN
    return AddressKind.IPV4 if ip.version == 4 else AddressKind.IPV6
