"""
Enumeration types for StreamGate.

This module defines the enumeration types shared by the tunnel core and
the gateway application.
"""

from enum import Enum, IntEnum


# =============================================================================
# Session-Related Enums
# =============================================================================


class SessionState(str, Enum):
    """
    Tunnel session lifecycle state.

    State transitions (strictly forward):
        AWAITING_HEADER -> CONNECTING -> RELAYING -> CLOSED
        AWAITING_HEADER -> CLOSED (bad frame / credential)
        CONNECTING -> CLOSED (dial failure / timeout)
    """

    AWAITING_HEADER = "awaiting_header"  # Waiting for the first frame
    CONNECTING = "connecting"  # Dialing the destination
    RELAYING = "relaying"  # Copying bytes both ways
    CLOSED = "closed"  # Terminal


# =============================================================================
# Wire Enums
# =============================================================================


class Command(IntEnum):
    """Command byte carried in the request header."""

    STREAM = 0x01
    DATAGRAM = 0x02  # Recognised, never served


class AddressKind(IntEnum):
    """Address kind byte carried in the request header."""

    IPV4 = 0x01
    DOMAIN = 0x02
    IPV6 = 0x03


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels for StreamGate components.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
