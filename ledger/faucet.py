"""
Test network faucet client for creating funded identities
"""

import asyncio
import logging
from typing import Any, Dict

import aiohttp

from core.exceptions import FundingError
from core.logging_config import get_logger, log_with_context
from .models import Identity, IdentityScope

logger = get_logger(__name__)


class FaucetClient:
    """Asks the faucet to generate and fund a new account"""

    def __init__(self, url: str, timeout: float = 60.0):
        """
        Args:
            url: Faucet accounts endpoint
            timeout: Request timeout in seconds
        """
        self.url = url
        self.timeout = timeout

    async def fund(self) -> Identity:
        """
        Create a new funded identity

        Returns:
            Identity with address and secret, in tab scope

        Raises:
            FundingError: Faucet unreachable, failing, or returning an unexpected body
        """
        timeout_config = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.post(
                    self.url,
                    json={},
                    headers={"Content-Type": "application/json"}
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise FundingError(
                            f"Faucet returned HTTP {response.status}",
                            {"body": error_text[:200]}
                        )
                    data = await response.json(content_type=None)

        except aiohttp.ClientConnectorError as e:
            raise FundingError(f"Faucet not reachable at {self.url}") from e

        except asyncio.TimeoutError as e:
            raise FundingError(f"Faucet timed out after {self.timeout}s") from e

        except aiohttp.ClientError as e:
            raise FundingError(f"Faucet request failed: {e}") from e

        except ValueError as e:
            raise FundingError("Faucet returned invalid JSON") from e

        identity = self.parse_response(data)
        log_with_context(logger, logging.INFO, "Funded new account",
                         address=identity.address, balance=data.get("balance"))
        return identity

    @staticmethod
    def parse_response(data: Any) -> Identity:
        """Extract the new identity from a faucet response body"""
        if not isinstance(data, dict):
            raise FundingError("Faucet response is not an object")

        account: Dict[str, Any] = data.get("account") if isinstance(data.get("account"), dict) else {}
        address = account.get("classicAddress") or account.get("address")
        secret = data.get("seed") or account.get("secret")

        if not isinstance(address, str) or not address:
            raise FundingError("Faucet response has no account address")
        if not isinstance(secret, str) or not secret:
            raise FundingError("Faucet response has no seed")

        return Identity(address=address, secret=secret, scope=IdentityScope.TAB)
