"""
Connection manager for the shared ledger connection
"""

import asyncio
from enum import Enum
from typing import Optional, Callable, Dict, Any

from events import EventTypes
from .exceptions import LedgerConnectionError
from .logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(Enum):
    """Connection states"""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager:
    """
    Owns the connect/disconnect lifecycle of one shared connection handle.

    Concurrent ensure_connected() calls while disconnected share a single
    connect attempt: every caller awaits the same task and sees the same
    outcome. A failed attempt is forgotten so the next call retries.
    """

    def __init__(self,
                 connection,
                 connect_timeout: Optional[float] = None,
                 bus=None,
                 on_state_change: Optional[Callable[[ConnectionState], None]] = None):
        """
        Initialize connection manager

        Args:
            connection: Handle with async connect(), async close() and is_connected
            connect_timeout: Seconds allowed per connect attempt, None for no bound
            bus: EventBus notified of state changes
            on_state_change: Callback when connection state changes
        """
        self.connection = connection
        self.connect_timeout = connect_timeout
        self.bus = bus
        self.on_state_change = on_state_change

        self._state = ConnectionState.IDLE
        self._attempt: Optional[asyncio.Task] = None

        # Stats
        self.connect_attempts = 0
        self.connect_failures = 0
        self.last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self.connection.is_connected

    def _notice_dropped(self) -> None:
        if self._state == ConnectionState.CONNECTED and not self.connection.is_connected:
            logger.info("Ledger connection dropped")
            self._set_state(ConnectionState.IDLE)

    async def ensure_connected(self) -> None:
        """
        Make sure the shared connection is established

        Raises:
            LedgerConnectionError: The shared attempt failed
        """
        if self.connection.is_connected:
            self._set_state(ConnectionState.CONNECTED)
            return

        self._notice_dropped()
        if self._attempt is None:
            self._attempt = asyncio.ensure_future(self._connect_once())
            self._attempt.add_done_callback(self._collect_attempt)

        # A cancelled waiter must not cancel the attempt other callers share
        await asyncio.shield(self._attempt)

    async def _connect_once(self) -> None:
        # disconnect() may orphan this attempt; a successor then owns the marker and the state
        this_attempt = asyncio.current_task()
        self.connect_attempts += 1
        self._set_state(ConnectionState.CONNECTING)

        try:
            if self.connect_timeout is not None:
                try:
                    await asyncio.wait_for(self.connection.connect(), timeout=self.connect_timeout)
                except asyncio.TimeoutError as e:
                    raise LedgerConnectionError(
                        f"Connect attempt timed out after {self.connect_timeout}s"
                    ) from e
            else:
                await self.connection.connect()

        except BaseException as e:
            self.connect_failures += 1
            self.last_error = str(e) or type(e).__name__
            if self._attempt is this_attempt:
                self._set_state(ConnectionState.IDLE)
            logger.warning(f"Ledger connect attempt failed: {self.last_error}")
            raise

        finally:
            if self._attempt is this_attempt:
                self._attempt = None

        self.last_error = None
        self._set_state(ConnectionState.CONNECTED)

    @staticmethod
    def _collect_attempt(task: asyncio.Future) -> None:
        # Retrieve the outcome so an attempt whose waiters all went away is not reported as unhandled
        if not task.cancelled():
            task.exception()

    async def disconnect(self) -> None:
        """Cancel any attempt in flight and close the connection"""
        attempt, self._attempt = self._attempt, None
        if attempt is not None and not attempt.done():
            attempt.cancel()
            try:
                await attempt
            except (asyncio.CancelledError, Exception):
                pass

        await self.connection.close()
        if self._attempt is None:
            self._set_state(ConnectionState.IDLE)

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return

        old_state = self._state
        self._state = new_state
        logger.debug(f"Connection state: {old_state.value} → {new_state.value}")

        if self.bus is not None:
            self.bus.emit(EventTypes.CONNECTION_STATE_CHANGED, {
                "from_state": old_state.value,
                "to_state": new_state.value,
            }, source="connection_manager")

        if self.on_state_change:
            try:
                self.on_state_change(new_state)
            except Exception:
                logger.exception("Error in connection state callback")

    def get_stats(self) -> Dict[str, Any]:
        """Get connection manager statistics"""
        self._notice_dropped()
        return {
            "state": self.state.value,
            "connect_attempts": self.connect_attempts,
            "connect_failures": self.connect_failures,
            "attempt_in_flight": self._attempt is not None,
            "last_error": self.last_error,
        }
