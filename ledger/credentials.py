"""
Credential lookup across the issuer-held and subject-held locations
"""

import time
from typing import List, Optional, Tuple

from core.exceptions import FinalityFailure
from core.logging_config import get_logger
from events import EventTypes
from .models import CredentialObject
from .transactions import submit_and_wait

logger = get_logger(__name__)

# Ledger time counts seconds from 2000-01-01T00:00:00Z
LEDGER_EPOCH_UNIX_SECONDS = 946684800


def unix_to_ledger_time(unix_seconds: float) -> int:
    return int(unix_seconds) - LEDGER_EPOCH_UNIX_SECONDS


def current_ledger_time() -> int:
    return unix_to_ledger_time(time.time())


def credential_type_hex(credential_type: str) -> str:
    """Encode a credential type name the way it is stored on ledger"""
    return credential_type.encode("utf-8").hex().upper()


def is_non_expired(credential: CredentialObject, now: Optional[int] = None) -> bool:
    """
    Check whether a credential is still valid

    Args:
        credential: Credential to check
        now: Reference time in ledger-epoch seconds, defaults to the current time

    Returns:
        True if there is no expiration or now is strictly before it
    """
    if credential.expiration is None:
        return True
    if now is None:
        now = current_ledger_time()
    return now < credential.expiration


def _first_match(credentials: List[CredentialObject],
                 owner_address: str,
                 issuer_address: str,
                 credential_type: str,
                 now: Optional[int]) -> Optional[CredentialObject]:
    for credential in credentials:
        if (credential.issuer_address == issuer_address
                and credential.subject_address == owner_address
                and credential.credential_type == credential_type
                and is_non_expired(credential, now)):
            return credential
    return None


class CredentialResolver:
    """
    Finds the credential an issuer granted to a subject.

    Until the subject accepts it, the Credential entry is owned by the issuer;
    acceptance moves it to the subject. Both owners are queried, subject
    first, on every call. Results are never cached.
    """

    def __init__(self, client):
        self.client = client

    async def resolve(self,
                      owner_address: str,
                      issuer_address: str,
                      credential_type: str,
                      now: Optional[int] = None) -> Optional[CredentialObject]:
        """
        Args:
            owner_address: Subject whose status is being checked
            issuer_address: Account that issued the credential
            credential_type: Hex-encoded credential type
            now: Reference time in ledger-epoch seconds for expiry checks

        Returns:
            The first matching non-expired credential, or None
        """
        subject_held = await self.client.credential_objects(owner_address)
        found = _first_match(subject_held, owner_address, issuer_address, credential_type, now)
        if found is not None:
            return found

        issuer_held = await self.client.credential_objects(issuer_address)
        return _first_match(issuer_held, owner_address, issuer_address, credential_type, now)


async def accept_credential(client,
                            tx_blob: str,
                            owner_address: str,
                            issuer_address: str,
                            credential_type: str,
                            bus=None,
                            poll_interval: float = 1.0,
                            timeout: float = 30.0) -> Tuple[str, str]:
    """
    Submit a signed CredentialAccept and confirm the credential moved

    Args:
        client: LedgerClient
        tx_blob: Signed CredentialAccept transaction
        owner_address: Subject accepting the credential
        issuer_address: Issuer of the credential
        credential_type: Hex-encoded credential type
        bus: EventBus to notify with a refresh request on success

    Returns:
        Tuple of (transaction hash, credential id)

    Raises:
        FinalityFailure: Not validated with success, or the credential is not
            found accepted afterwards
    """
    submission = await submit_and_wait(
        client, tx_blob,
        operation="CredentialAccept",
        poll_interval=poll_interval,
        timeout=timeout,
    )

    accepted = await CredentialResolver(client).resolve(owner_address, issuer_address, credential_type)
    if accepted is None:
        raise FinalityFailure("CredentialAccept", True, "credential not found", submission.tx_hash)
    if not accepted.accepted:
        raise FinalityFailure("CredentialAccept", True, "credential not marked accepted", submission.tx_hash)

    logger.info(f"Credential {accepted.id} accepted by {owner_address}")

    if bus is not None:
        bus.emit(EventTypes.LEDGER_REFRESH_REQUESTED, {
            "reason": "credential_accepted",
            "tx_hash": submission.tx_hash,
        }, source="credentials")

    return submission.tx_hash, accepted.id
