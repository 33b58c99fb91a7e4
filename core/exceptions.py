"""
Exceptions raised by the ledger funnel engine
"""

from typing import Optional, Dict, Any


class FunnelException(Exception):
    """Base exception for all funnel engine errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class LedgerConnectionError(FunnelException):
    """Raised when the shared ledger connection cannot be established or is lost"""
    pass


class QueryError(FunnelException):
    """Raised when a ledger response is an error or does not have the expected shape"""
    def __init__(self, command: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.command = command
        super().__init__(f"{command}: {message}", details)


class RequestTimeoutError(QueryError):
    """Raised when a remote call does not answer within its timeout"""
    def __init__(self, command: str, timeout: float):
        self.timeout = timeout
        super().__init__(command, f"timed out after {timeout}s", {"timeout": timeout})


class IssuerLookupError(QueryError):
    """Raised when the issuer address cannot be obtained"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("issuer_lookup", message, details)


class FinalityFailure(FunnelException):
    """Raised when a submitted transaction did not reach finality with success"""
    def __init__(self, operation: str, validated: Any, result: Optional[str],
                 tx_hash: Optional[str] = None):
        self.operation = operation
        self.validated = validated
        self.result = result
        self.tx_hash = tx_hash
        super().__init__(
            f"{operation} failed (validated={validated} result={result})",
            {"tx_hash": tx_hash}
        )


class FundingError(FunnelException):
    """Raised when the funding service cannot produce a new identity"""
    pass


class StorageUnavailable(FunnelException):
    """Raised when a persistence backend cannot be read or written"""
    pass


class ConfigValidationError(FunnelException):
    """Raised when configuration validation fails"""
    pass
