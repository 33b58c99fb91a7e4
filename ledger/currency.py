"""
Currency code encoding for trust lines and offers
"""


def to_currency_code(text: str) -> str:
    """
    Encode a currency name as a ledger currency code

    Three-character codes are used as-is. Longer names (up to 8 UTF-8 bytes)
    are written into a 20-byte value starting at byte 12 and returned as
    40 upper-case hex characters.

    Raises:
        ValueError: Empty name or name longer than 8 bytes
    """
    trimmed = text.strip()
    if not trimmed:
        raise ValueError("Currency cannot be empty")

    if len(trimmed) == 3:
        return trimmed

    encoded = trimmed.encode("utf-8")
    if len(encoded) > 8:
        raise ValueError("Currency text too long; must be <= 8 bytes")

    buffer = bytearray(20)
    buffer[12:12 + len(encoded)] = encoded
    return buffer.hex().upper()
