"""
Gateway configuration for StreamGate.

This module defines the configuration dataclass for the gateway. The
configuration is loaded once at process start from the environment and
is read-only afterwards; it is handed explicitly to the application
factory and to every tunnel session.

Usage:
    from streamgate.gateway.config import load_config

    config = load_config()
    app = create_app(config)
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

from streamgate.models.enums import LogLevel
from streamgate.tunnel.identity import parse_credential


class ConfigError(ValueError):
    """Raised when an environment value cannot be used."""


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass(frozen=True)
class GatewayConfig:
    """
    Gateway configuration.

    Attributes:
        BIND_IP: IP address to bind the server to.
        PORT: HTTP/WebSocket listen port.
        UUID: Identity credential in its human-readable form.
        PROXY_IP: Destination host override; empty disables it.
        WS_PATH: The only path on which WebSocket upgrades are accepted.
        LOG_LEVEL: Logging verbosity level.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    BIND_IP: str = "0.0.0.0"
    PORT: int = 7860

    # -------------------------------------------------------------------------
    # Tunnel Configuration
    # -------------------------------------------------------------------------

    UUID: str = "00000000-0000-0000-0000-000000000000"
    PROXY_IP: str = ""
    WS_PATH: str = "/api/v1/stream"

    # Upper bound for the destination dial
    DIAL_TIMEOUT_SECONDS: float = 10.0

    # Max bytes read from the destination per relayed frame
    RELAY_CHUNK_SIZE: int = 65536

    # -------------------------------------------------------------------------
    # Collaborator Endpoints
    # -------------------------------------------------------------------------

    # Host name advertised in the subscription link (Host header if empty)
    PUBLIC_HOST: str = ""
    # Subscription endpoint path; empty disables the endpoint
    SUB_PATH: str = ""
    # One-shot keep-alive URL called at startup; empty disables it
    KEEPALIVE_URL: str = ""

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    def __post_init__(self):
        try:
            parse_credential(self.UUID)
        except ValueError as e:
            raise ConfigError(f"UUID: {e}") from e
        if not self.WS_PATH.startswith("/"):
            raise ConfigError(f"WS_PATH must start with '/': {self.WS_PATH!r}")
        if self.SUB_PATH and not self.SUB_PATH.startswith("/"):
            raise ConfigError(f"SUB_PATH must start with '/': {self.SUB_PATH!r}")
        if self.SUB_PATH and self.SUB_PATH == self.WS_PATH:
            raise ConfigError("SUB_PATH must differ from WS_PATH")
        if not 0 < self.PORT < 65536:
            raise ConfigError(f"PORT out of range: {self.PORT}")
        if self.DIAL_TIMEOUT_SECONDS <= 0:
            raise ConfigError("DIAL_TIMEOUT_SECONDS must be positive")
        if self.RELAY_CHUNK_SIZE <= 0:
            raise ConfigError("RELAY_CHUNK_SIZE must be positive")

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_credential(self) -> bytes:
        """
        Get the 16-byte identity secret.

        Returns:
            UUID with separators stripped, lower-cased and hex-decoded.
        """
        return parse_credential(self.UUID)

    def get_dial_host(self, requested_host: str) -> str:
        """
        Get the host to dial for a request.

        The override replaces only the host; the requested port is kept
        by the caller.
        """
        return self.PROXY_IP or requested_host

    def with_overrides(self, **overrides) -> "GatewayConfig":
        """Copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


# =============================================================================
# Environment Loading
# =============================================================================

# Environment variable -> field name
ENV_VARS: dict[str, str] = {
    "BIND_IP": "BIND_IP",
    "PORT": "PORT",
    "UUID": "UUID",
    "PROXYIP": "PROXY_IP",
    "WS_PATH": "WS_PATH",
    "DIAL_TIMEOUT": "DIAL_TIMEOUT_SECONDS",
    "RELAY_CHUNK_SIZE": "RELAY_CHUNK_SIZE",
    "PUBLIC_HOST": "PUBLIC_HOST",
    "SUB_PATH": "SUB_PATH",
    "KEEPALIVE_URL": "KEEPALIVE_URL",
    "LOG_LEVEL": "LOG_LEVEL",
    "LOG_FILE": "LOG_FILE",
}


def _convert(field_type, name: str, raw: str):
    try:
        if field_type in (int, "int"):
            return int(raw)
        if field_type in (float, "float"):
            return float(raw)
        if field_type in (LogLevel, "LogLevel"):
            return LogLevel(raw.lower())
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from e
    return raw


def load_config(environ: Mapping[str, str] | None = None) -> GatewayConfig:
    """
    Build the gateway configuration from environment variables.

    Args:
        environ: Mapping to read; defaults to os.environ.

    Returns:
        Validated, immutable GatewayConfig.

    Raises:
        ConfigError: If any value is malformed.
    """
    if environ is None:
        environ = os.environ

    types = {f.name: f.type for f in fields(GatewayConfig)}
    values = {}
    for env_name, field_name in ENV_VARS.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        values[field_name] = _convert(types[field_name], env_name, raw)

    return GatewayConfig(**values)


def env_source(field_name: str, environ: Mapping[str, str] | None = None) -> str:
    """Report whether a field comes from the environment or its default."""
    if environ is None:
        environ = os.environ
    for env_name, name in ENV_VARS.items():
        if name == field_name and environ.get(env_name):
            return "env"
    return "default"
