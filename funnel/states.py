"""
Compliance funnel statuses and their derivation from ledger facts
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ledger.models import CredentialObject, TrustLine


class FunnelStatus(Enum):
    """Funnel statuses, in the order an identity moves through them"""
    DISCONNECTED = "disconnected"
    LOADING = "loading"
    CONNECTED_NO_CREDENTIAL = "connected_no_credential"
    CREDENTIAL_UNACCEPTED = "credential_unaccepted"
    CREDENTIAL_ACCEPTED_NO_TRUSTLINE = "credential_accepted_no_trustline"
    TRUSTLINE_PENDING = "trustline_pending"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class FunnelState:
    """A funnel status with the payload that goes with it"""
    status: FunnelStatus
    issuer_address: Optional[str] = None
    credential_id: Optional[str] = None

    @classmethod
    def disconnected(cls) -> "FunnelState":
        return cls(FunnelStatus.DISCONNECTED)

    @classmethod
    def loading(cls) -> "FunnelState":
        return cls(FunnelStatus.LOADING)

    @property
    def kind(self) -> str:
        return self.status.value

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind}
        if self.issuer_address is not None:
            data["issuer_address"] = self.issuer_address
        if self.credential_id is not None:
            data["credential_id"] = self.credential_id
        return data

    def __str__(self):
        return self.kind


def derive_funnel_state(address: Optional[str],
                        issuer_address: Optional[str],
                        credential: Optional[CredentialObject],
                        trust_line: Optional[TrustLine]) -> FunnelState:
    """
    Derive the funnel state from scratch

    Pure function: the same inputs always give the same state.

    Args:
        address: Active identity address, None when there is none
        issuer_address: Credential and asset issuer
        credential: Resolved credential, None if not found
        trust_line: Trust line to the issuer for the gated asset, None if absent
            (only consulted once the credential is accepted)

    Returns:
        FunnelState
    """
    if not address:
        return FunnelState.disconnected()

    if credential is None:
        return FunnelState(FunnelStatus.CONNECTED_NO_CREDENTIAL, issuer_address)

    if not credential.accepted:
        return FunnelState(FunnelStatus.CREDENTIAL_UNACCEPTED, issuer_address, credential.id)

    if trust_line is None:
        return FunnelState(FunnelStatus.CREDENTIAL_ACCEPTED_NO_TRUSTLINE, issuer_address, credential.id)

    if trust_line.counterparty_authorized:
        return FunnelState(FunnelStatus.AUTHORIZED, issuer_address, credential.id)

    return FunnelState(FunnelStatus.TRUSTLINE_PENDING, issuer_address, credential.id)
