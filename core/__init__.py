"""
Core system components: connection management, errors and logging
"""

from .connection_manager import ConnectionManager, ConnectionState
from .exceptions import (
    FunnelException,
    LedgerConnectionError,
    QueryError,
    RequestTimeoutError,
    IssuerLookupError,
    FinalityFailure,
    FundingError,
    StorageUnavailable,
    ConfigValidationError,
)

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "FunnelException",
    "LedgerConnectionError",
    "QueryError",
    "RequestTimeoutError",
    "IssuerLookupError",
    "FinalityFailure",
    "FundingError",
    "StorageUnavailable",
    "ConfigValidationError",
]
