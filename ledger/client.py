"""
Typed ledger queries against the validated ledger
"""

from typing import Any, Dict, List, Optional

from core.exceptions import QueryError
from core.logging_config import get_logger
from .models import AccountInfo, CredentialObject, TrustLine, parse_credential_object, parse_trust_line

logger = get_logger(__name__)

# Error codes that mean "nothing there" rather than a failed query
NOT_FOUND_ERRORS = {"actNotFound", "entryNotFound", "txnNotFound"}


def _is_not_found(error: QueryError) -> bool:
    return error.details.get("error") in NOT_FOUND_ERRORS


class LedgerClient:
    """
    Read-only ledger queries plus raw submission.

    Every read targets ledger_index "validated" so results only reflect
    finalized state. Responses are checked for the expected shape before
    any field is used.
    """

    def __init__(self, connection, max_pages: int = 10):
        """
        Args:
            connection: LedgerConnection (or anything with an async request())
            max_pages: Upper bound on marker-paginated requests per query
        """
        self.connection = connection
        self.max_pages = max_pages

    async def _paginated(self, payload: Dict[str, Any], list_key: str) -> List[Any]:
        command = payload["command"]
        entries: List[Any] = []
        marker = None

        for _ in range(self.max_pages):
            request = dict(payload)
            if marker is not None:
                request["marker"] = marker

            try:
                result = await self.connection.request(request)
            except QueryError as e:
                if _is_not_found(e):
                    return []
                raise

            page = result.get(list_key)
            if not isinstance(page, list):
                raise QueryError(command, f"response has no {list_key} list")
            entries.extend(page)

            marker = result.get("marker")
            if marker is None:
                return entries

        logger.warning(f"{command} stopped after {self.max_pages} pages")
        return entries

    async def account_objects(self, account: str, object_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """List raw ledger objects owned by an account"""
        payload = {
            "command": "account_objects",
            "account": account,
            "ledger_index": "validated",
        }
        if object_type:
            payload["type"] = object_type
        return await self._paginated(payload, "account_objects")

    async def credential_objects(self, account: str) -> List[CredentialObject]:
        """List well-formed Credential entries owned by an account"""
        raw_objects = await self.account_objects(account, object_type="credential")
        credentials = []
        for raw in raw_objects:
            credential = parse_credential_object(raw)
            if credential is not None:
                credentials.append(credential)
        return credentials

    async def trust_lines(self, account: str, peer: Optional[str] = None) -> List[TrustLine]:
        """List trust lines of an account, optionally only those with one peer"""
        payload = {
            "command": "account_lines",
            "account": account,
            "ledger_index": "validated",
        }
        if peer:
            payload["peer"] = peer

        lines = []
        for raw in await self._paginated(payload, "lines"):
            line = parse_trust_line(raw, account)
            if line is not None:
                lines.append(line)
        return lines

    async def find_trust_line(self, account: str, peer: str, asset_code: str) -> Optional[TrustLine]:
        """Find the trust line from account to peer for one asset"""
        for line in await self.trust_lines(account, peer=peer):
            if line.peer_address == peer and line.asset_code == asset_code:
                return line
        return None

    async def account_info(self, account: str) -> Optional[AccountInfo]:
        """Get balance and sequence of an account, None if it does not exist"""
        try:
            result = await self.connection.request({
                "command": "account_info",
                "account": account,
                "ledger_index": "validated",
            })
        except QueryError as e:
            if _is_not_found(e):
                return None
            raise

        account_data = result.get("account_data")
        if not isinstance(account_data, dict):
            raise QueryError("account_info", "response has no account_data object")

        balance = account_data.get("Balance")
        sequence = account_data.get("Sequence")
        if not isinstance(balance, str) or not isinstance(sequence, int):
            raise QueryError("account_info", "account_data is missing Balance or Sequence")

        return AccountInfo(address=account, balance_drops=balance, sequence=sequence)

    async def server_info(self) -> Dict[str, Any]:
        """Health check: server state summary"""
        result = await self.connection.request({"command": "server_info"})
        info = result.get("info")
        if not isinstance(info, dict):
            raise QueryError("server_info", "response has no info object")
        return info

    async def submit(self, tx_blob: str) -> Dict[str, Any]:
        """Submit a signed transaction blob"""
        return await self.connection.request({"command": "submit", "tx_blob": tx_blob})

    async def transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Look up a transaction by hash, None if the server has not seen it"""
        try:
            return await self.connection.request({"command": "tx", "transaction": tx_hash})
        except QueryError as e:
            if _is_not_found(e):
                return None
            raise
