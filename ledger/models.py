"""
Typed views of ledger entries and session identities
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


# Credential ledger entry flag set once the subject accepts it
LSF_ACCEPTED = 0x00010000


class IdentityScope(Enum):
    """Where an identity is stored"""
    TAB = "tab"
    SHARED = "shared"


@dataclass(frozen=True)
class Identity:
    """A funded ledger account usable by one browsing context"""
    address: str
    secret: str = field(repr=False)
    scope: IdentityScope = IdentityScope.TAB

    def with_scope(self, scope: IdentityScope) -> "Identity":
        return Identity(self.address, self.secret, scope)

    def to_json(self) -> str:
        return json.dumps({"address": self.address, "secret": self.secret})

    @classmethod
    def from_json(cls, raw: Optional[str], scope: IdentityScope = IdentityScope.TAB) -> Optional["Identity"]:
        """Parse a stored identity, returning None for anything malformed"""
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None

        address = data.get("address")
        secret = data.get("secret")
        if not isinstance(address, str) or not address:
            return None
        if not isinstance(secret, str) or not secret:
            return None
        return cls(address, secret, scope)


@dataclass(frozen=True)
class CredentialObject:
    """A Credential ledger entry"""
    id: str
    issuer_address: str
    subject_address: str
    credential_type: str
    accepted: bool
    expiration: Optional[int] = None  # seconds since the ledger epoch


@dataclass(frozen=True)
class TrustLine:
    """One side of a trust line as reported by account_lines"""
    owner_address: str
    peer_address: str
    asset_code: str
    counterparty_authorized: bool
    balance: str = "0"


@dataclass(frozen=True)
class AccountInfo:
    """Account root summary from account_info"""
    address: str
    balance_drops: str
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_credential_accepted(flags: Any) -> bool:
    """Check the accepted bit on a raw Flags value"""
    return isinstance(flags, int) and not isinstance(flags, bool) and (flags & LSF_ACCEPTED) != 0


def parse_credential_object(raw: Any) -> Optional[CredentialObject]:
    """
    Build a CredentialObject from a raw ledger entry

    Args:
        raw: One element of account_objects

    Returns:
        CredentialObject, or None if the entry is not a well-formed credential
    """
    if not isinstance(raw, dict):
        return None
    if raw.get("LedgerEntryType") != "Credential":
        return None

    index = raw.get("index")
    subject = raw.get("Subject")
    issuer = raw.get("Issuer")
    credential_type = raw.get("CredentialType")

    if not all(isinstance(value, str) for value in (index, subject, issuer, credential_type)):
        return None

    expiration = raw.get("Expiration")
    if not isinstance(expiration, int) or isinstance(expiration, bool):
        expiration = None

    return CredentialObject(
        id=index,
        issuer_address=issuer,
        subject_address=subject,
        credential_type=credential_type,
        accepted=is_credential_accepted(raw.get("Flags")),
        expiration=expiration,
    )


def parse_trust_line(raw: Any, owner_address: str) -> Optional[TrustLine]:
    """Build a TrustLine from one element of account_lines"""
    if not isinstance(raw, dict):
        return None

    peer = raw.get("account")
    currency = raw.get("currency")
    if not isinstance(peer, str) or not isinstance(currency, str):
        return None

    balance = raw.get("balance", "0")
    return TrustLine(
        owner_address=owner_address,
        peer_address=peer,
        asset_code=currency,
        counterparty_authorized=raw.get("peer_authorized") is True,
        balance=balance if isinstance(balance, str) else str(balance),
    )
