"""Identity credential handling."""

import hmac

CREDENTIAL_SIZE = 16


def parse_credential(text: str) -> bytes:
    """
    Derive the 16-byte credential from its human-readable form.

    Separators are stripped and case is normalised, so
    "0C1F...-...-..." and "0c1f......" give the same bytes.

    Raises:
        ValueError: If the text is not 32 hex digits once cleaned.
    """
    cleaned = text.replace("-", "").strip().lower()
    try:
        raw = bytes.fromhex(cleaned)
    except ValueError as e:
        raise ValueError(f"Credential is not hexadecimal: {text!r}") from e
    if len(raw) != CREDENTIAL_SIZE:
        raise ValueError(
            f"Credential must decode to {CREDENTIAL_SIZE} bytes, got {len(raw)}"
        )
    return raw


def validate(credential: bytes, secret: bytes) -> bool:
    """Compare a presented credential against the configured secret."""
    return hmac.compare_digest(bytes(credential), secret)


def mask_credential(credential: bytes) -> str:
    """Short printable form for logs."""
    return f"{credential[:2].hex()}…{credential[-2:].hex()}"
