"""
Ledger access: transport, typed queries, credentials and submission
"""

from .connection import LedgerConnection
from .client import LedgerClient
from .credentials import CredentialResolver, accept_credential, credential_type_hex
from .currency import to_currency_code
from .faucet import FaucetClient
from .issuer import StaticIssuerProvider, HttpIssuerProvider, issuer_provider_from_config
from .models import Identity, IdentityScope, CredentialObject, TrustLine, AccountInfo
from .transactions import SubmissionResult, submit_and_wait, ensure_finalized

__all__ = [
    "LedgerConnection",
    "LedgerClient",
    "CredentialResolver",
    "accept_credential",
    "credential_type_hex",
    "to_currency_code",
    "FaucetClient",
    "StaticIssuerProvider",
    "HttpIssuerProvider",
    "issuer_provider_from_config",
    "Identity",
    "IdentityScope",
    "CredentialObject",
    "TrustLine",
    "AccountInfo",
    "SubmissionResult",
    "submit_and_wait",
    "ensure_finalized",
]
