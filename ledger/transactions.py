"""
Submission of signed transactions and finality checks
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.exceptions import FinalityFailure, QueryError
from core.logging_config import get_logger

logger = get_logger(__name__)

SUCCESS_RESULT = "tesSUCCESS"

# Engine results that mean the transaction will never be included
REJECTED_PREFIXES = ("tem", "tef", "tel")


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a finalized transaction"""
    tx_hash: Optional[str]
    validated: bool
    transaction_result: Optional[str]


def extract_transaction_result(meta: Any) -> Optional[str]:
    """Read TransactionResult from transaction metadata, if present"""
    if not isinstance(meta, dict):
        return None
    result = meta.get("TransactionResult")
    return result if isinstance(result, str) else None


def ensure_finalized(operation: str, response: Dict[str, Any]) -> SubmissionResult:
    """
    Require a validated, successful transaction

    Both the validated flag and a tesSUCCESS result are needed; a response
    missing either is a failure even when the request itself succeeded.

    Raises:
        FinalityFailure: Otherwise
    """
    validated = response.get("validated")
    tx_result = extract_transaction_result(response.get("meta"))
    tx_hash = response.get("hash")

    if validated is not True or tx_result != SUCCESS_RESULT:
        raise FinalityFailure(operation, validated, tx_result, tx_hash)

    return SubmissionResult(tx_hash=tx_hash, validated=True, transaction_result=tx_result)


async def submit_and_wait(client,
                          tx_blob: str,
                          operation: str = "Transaction",
                          poll_interval: float = 1.0,
                          timeout: float = 30.0) -> SubmissionResult:
    """
    Submit a signed blob and wait until it is in a validated ledger

    Args:
        client: LedgerClient
        tx_blob: Signed transaction, hex encoded
        operation: Name used in errors and logs
        poll_interval: Seconds between tx lookups
        timeout: Seconds to wait for validation

    Returns:
        SubmissionResult of the validated transaction

    Raises:
        FinalityFailure: Rejected, failed, or not validated in time
    """
    submitted = await client.submit(tx_blob)

    engine_result = submitted.get("engine_result")
    tx_json = submitted.get("tx_json")
    tx_hash = tx_json.get("hash") if isinstance(tx_json, dict) else None

    if not isinstance(tx_hash, str):
        raise QueryError("submit", "response has no transaction hash")

    if isinstance(engine_result, str) and engine_result.startswith(REJECTED_PREFIXES):
        raise FinalityFailure(operation, False, engine_result, tx_hash)

    logger.info(f"{operation} submitted ({tx_hash}), preliminary result {engine_result}")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        response = await client.transaction(tx_hash)
        if response is not None and response.get("validated") is True:
            result = ensure_finalized(operation, {**response, "hash": response.get("hash", tx_hash)})
            logger.info(f"{operation} validated ({tx_hash})")
            return result

        if loop.time() + poll_interval > deadline:
            raise FinalityFailure(operation, False, None, tx_hash)

        await asyncio.sleep(poll_interval)
