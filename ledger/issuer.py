"""
Issuer address providers
"""

import asyncio
from typing import Any, Dict

import aiohttp

from core.exceptions import IssuerLookupError


def get_error_message(data: Any, fallback: str) -> str:
    """Build "error: detail" from an error body, using fallback when absent"""
    if not isinstance(data, dict):
        return fallback
    error = data.get("error")
    detail = data.get("detail")
    message = error if isinstance(error, str) else fallback
    return f"{message}: {detail}" if isinstance(detail, str) and detail else message


class StaticIssuerProvider:
    """Issuer address fixed by configuration"""

    def __init__(self, address: str):
        if not address:
            raise ValueError("Issuer address cannot be empty")
        self.address = address

    async def get_issuer_address(self) -> str:
        return self.address


class HttpIssuerProvider:
    """Fetches the issuer address from the admin issuer endpoint"""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def get_issuer_address(self) -> str:
        """
        Returns:
            Issuer classic address

        Raises:
            IssuerLookupError: Endpoint failed or returned no address
        """
        timeout_config = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.get(self.url, headers={"Cache-Control": "no-store"}) as response:
                    try:
                        data: Dict[str, Any] = await response.json(content_type=None)
                    except ValueError:
                        data = {}

                    if response.status != 200:
                        raise IssuerLookupError(
                            get_error_message(data, "Failed to fetch issuer address"),
                            {"status": response.status}
                        )

        except asyncio.TimeoutError as e:
            raise IssuerLookupError(f"Issuer endpoint timed out after {self.timeout}s") from e

        except aiohttp.ClientError as e:
            raise IssuerLookupError(f"Issuer endpoint not reachable: {e}") from e

        address = data.get("address") if isinstance(data, dict) else None
        if not isinstance(address, str) or not address:
            raise IssuerLookupError("Issuer address missing from response")
        return address


def issuer_provider_from_config(ledger_config: Dict[str, Any]):
    """Pick the static provider when an address is configured, else the HTTP one"""
    address = ledger_config.get("issuer_address")
    if address:
        return StaticIssuerProvider(address)
    return HttpIssuerProvider(
        ledger_config["issuer_endpoint"],
        timeout=ledger_config.get("request_timeout", 10.0),
    )
