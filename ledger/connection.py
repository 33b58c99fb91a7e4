"""
WebSocket transport for ledger JSON requests
"""

import asyncio
import json
from typing import Any, Dict, Optional

import websockets

from core.exceptions import LedgerConnectionError, QueryError, RequestTimeoutError
from core.logging_config import get_logger

logger = get_logger(__name__)


class LedgerConnection:
    """
    One WebSocket connection to a ledger server.

    Requests carry an integer id and are matched to responses by a background
    reader task. Messages without an id (stream notifications) are dropped.
    This class does not deduplicate connect() calls; callers go through
    ConnectionManager for that.
    """

    def __init__(self,
                 url: str,
                 request_timeout: float = 10.0,
                 connect_timeout: float = 15.0):
        """
        Args:
            url: ws:// or wss:// endpoint
            request_timeout: Default seconds to wait for a response
            connect_timeout: Seconds allowed for the opening handshake
        """
        self.url = url
        self.request_timeout = request_timeout
        self.connect_timeout = connect_timeout

        self._websocket = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._next_id = 1

        # Stats
        self.requests_sent = 0
        self.responses_received = 0

    @property
    def is_connected(self) -> bool:
        return self._websocket is not None and self._reader_task is not None and not self._reader_task.done()

    async def connect(self) -> None:
        """Open the WebSocket and start the response reader"""
        if self.is_connected:
            return

        if self._websocket is not None or self._reader_task is not None:
            # The reader stopped without close(); release the stale socket first
            await self.close()

        try:
            self._websocket = await asyncio.wait_for(
                websockets.connect(self.url, open_timeout=None),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise LedgerConnectionError(
                f"Connecting to {self.url} timed out after {self.connect_timeout}s"
            ) from e
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise LedgerConnectionError(f"Could not connect to {self.url}: {e}") from e

        self._reader_task = asyncio.create_task(self._read_responses(self._websocket))
        logger.info(f"Connected to ledger at {self.url}")

    async def close(self) -> None:
        """Close the WebSocket and fail any outstanding requests"""
        websocket, self._websocket = self._websocket, None
        reader, self._reader_task = self._reader_task, None

        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Ledger reader ended with error: {e!r}")

        if websocket is not None:
            try:
                await websocket.close()
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.debug(f"Error closing ledger websocket: {e}")

        self._fail_pending(LedgerConnectionError("Connection closed"))

    async def request(self, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Send one request and wait for its response

        Args:
            payload: Request body; must contain "command"
            timeout: Seconds to wait, defaults to request_timeout

        Returns:
            The "result" object of a successful response

        Raises:
            LedgerConnectionError: Not connected, or the connection dropped
            RequestTimeoutError: No response within the timeout
            QueryError: Error response or malformed response
        """
        command = str(payload.get("command", "unknown"))
        timeout = self.request_timeout if timeout is None else timeout

        if not self.is_connected:
            raise LedgerConnectionError(f"Cannot send {command}: not connected")

        request_id = self._next_id
        self._next_id += 1

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            try:
                await self._websocket.send(json.dumps({**payload, "id": request_id}))
            except (OSError, websockets.exceptions.WebSocketException) as e:
                raise LedgerConnectionError(f"Failed to send {command}: {e}") from e

            self.requests_sent += 1

            try:
                message = await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                raise RequestTimeoutError(command, timeout) from None
        finally:
            self._pending.pop(request_id, None)

        return self._unwrap_response(command, message)

    async def _read_responses(self, websocket) -> None:
        try:
            async for raw in websocket:
                try:
                    message = json.loads(raw)
                except (TypeError, ValueError):
                    logger.warning("Dropping non-JSON message from ledger")
                    continue

                if not isinstance(message, dict):
                    continue

                future = self._pending.get(message.get("id"))
                if future is None or future.done():
                    continue

                self.responses_received += 1
                future.set_result(message)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning(f"Ledger connection closed: {e}")
        finally:
            self._fail_pending(LedgerConnectionError("Connection lost while waiting for response"))

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    @staticmethod
    def _unwrap_response(command: str, message: Any) -> Dict[str, Any]:
        if not isinstance(message, dict):
            raise QueryError(command, "response is not an object")

        if message.get("status") == "error" or "error" in message:
            error = message.get("error")
            error_message = message.get("error_message") or error or "unknown error"
            raise QueryError(command, str(error_message), {"error": error})

        result = message.get("result")
        if not isinstance(result, dict):
            raise QueryError(command, "response has no result object")

        return result

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics"""
        return {
            "url": self.url,
            "connected": self.is_connected,
            "requests_sent": self.requests_sent,
            "responses_received": self.responses_received,
            "pending": len(self._pending),
        }
