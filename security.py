"""
Validation and masking of account addresses and secrets.

Secrets must never reach the logs in clear; use mask_secret() whenever one
has to be mentioned.
"""

import re
from typing import Optional


# Base58 alphabet used by ledger addresses and seeds
_BASE58 = "1-9A-HJ-NP-Za-km-z"

CLASSIC_ADDRESS_PATTERN = re.compile(rf"^r[{_BASE58}]{{24,34}}$")
SEED_PATTERN = re.compile(rf"^s[{_BASE58}]{{20,40}}$")

# Seed-shaped tokens inside free text
SEED_TOKEN_PATTERN = re.compile(rf"(?<![{_BASE58}])s[{_BASE58}]{{20,40}}(?![{_BASE58}])")


class SecurityError(Exception):
    """Raised when security validation fails"""
    pass


class InputValidationError(SecurityError):
    """Raised when input validation fails"""
    pass


class AccountValidator:
    """Format checks for ledger account identifiers"""

    @staticmethod
    def is_classic_address(address: Optional[str]) -> bool:
        """
        Check classic address format.

        Args:
            address: Address to check

        Returns:
            True if it looks like a classic address; the checksum is not verified
        """
        return isinstance(address, str) and bool(CLASSIC_ADDRESS_PATTERN.match(address))

    @staticmethod
    def is_seed(secret: Optional[str]) -> bool:
        """Check family seed format"""
        return isinstance(secret, str) and bool(SEED_PATTERN.match(secret))

    @classmethod
    def validate_address(cls, address: Optional[str]) -> str:
        """
        Validate an address and return it stripped.

        Raises:
            InputValidationError: If the address is malformed
        """
        cleaned = address.strip() if isinstance(address, str) else address
        if not cls.is_classic_address(cleaned):
            raise InputValidationError(f"Invalid account address: {cleaned!r}")
        return cleaned


def mask_secret(secret: Optional[str]) -> str:
    """
    Mask a secret for safe logging.

    Args:
        secret: Secret to mask

    Returns:
        Masked version showing only the first and last two characters
    """
    if not secret or len(secret) < 8:
        return "***"

    return f"{secret[:2]}...{secret[-2:]}"


def redact_secrets(text: str) -> str:
    """Mask every seed-shaped token in a piece of text"""
    return SEED_TOKEN_PATTERN.sub(lambda match: mask_secret(match.group(0)), text)
