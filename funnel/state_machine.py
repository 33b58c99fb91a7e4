"""
Funnel state machine: polls the ledger and derives the identity's funnel state
"""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.exceptions import FunnelException, RequestTimeoutError
from core.logging_config import get_logger, log_error_with_context, log_performance
from events import EventTypes, SystemEvent
from ledger.credentials import CredentialResolver
from .states import FunnelState, FunnelStatus, derive_funnel_state

logger = get_logger(__name__)


class StateTransition:
    """Represents a state transition"""
    def __init__(self, from_state: FunnelState, to_state: FunnelState, reason: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        self.timestamp = time.time()
        self.datetime = datetime.now()

    def __str__(self):
        return f"{self.from_state.kind} → {self.to_state.kind} ({self.reason})"


class FunnelStateMachine:
    """
    Derives one FunnelState for the active identity and keeps it fresh.

    Each refresh re-derives the state from the ledger; nothing is patched
    incrementally. At most one refresh runs at a time: requests arriving
    while one is running join it. A generation counter, bumped whenever the
    identity changes or the machine stops, keeps results of older refreshes
    from landing. Refresh failures keep the last good state and record the
    error in last_error.

    Methods that start tasks (set_identity, start, request_refresh) must be
    called from inside a running event loop.
    """

    def __init__(self,
                 connection_manager,
                 client,
                 issuer_provider,
                 credential_type: str,
                 asset_code: str,
                 poll_interval_ms: int = 4000,
                 request_timeout: Optional[float] = None,
                 bus=None,
                 on_address_resolved: Optional[Callable[[str], None]] = None,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            connection_manager: ConnectionManager guarding the shared connection
            client: LedgerClient used for credential and trust line queries
            issuer_provider: Object with async get_issuer_address()
            credential_type: Hex-encoded credential type
            asset_code: Ledger currency code of the gated asset
            poll_interval_ms: Milliseconds between scheduled refreshes
            request_timeout: Seconds allowed per lookup step, None for no bound
            bus: EventBus for refresh requests and state notifications
            on_address_resolved: Called with the address after its first successful refresh
            clock: Source of last_updated_at timestamps
        """
        self.connection_manager = connection_manager
        self.client = client
        self.issuer_provider = issuer_provider
        self.resolver = CredentialResolver(client)
        self.credential_type = credential_type
        self.asset_code = asset_code
        self.poll_interval_ms = poll_interval_ms
        self.request_timeout = request_timeout
        self.bus = bus
        self.on_address_resolved = on_address_resolved
        self.clock = clock

        self._address: Optional[str] = None
        self._resolved_address: Optional[str] = None
        self._state = FunnelState.disconnected()
        self._generation = 0
        self._refresh_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._started = False

        # Observable fields
        self.issuer_address: Optional[str] = None
        self.is_refreshing = False
        self.last_updated_at: Optional[float] = None
        self.last_error: Optional[Exception] = None

        # State listeners
        self.state_listeners: List[Callable[[FunnelState, FunnelState], None]] = []

        # History and stats
        self.transitions = deque(maxlen=100)
        self.refresh_count = 0
        self.refresh_failures = 0
        self.coalesced_requests = 0
        self.discarded_results = 0

    @property
    def state(self) -> FunnelState:
        return self._state

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def error(self) -> Optional[str]:
        return str(self.last_error) if self.last_error is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Listen for refresh requests and begin polling if an identity is set"""
        if self._started:
            return
        self._started = True

        if self.bus is not None:
            self._unsubscribe = self.bus.on(EventTypes.LEDGER_REFRESH_REQUESTED, self._on_refresh_requested)

        if self._address is not None:
            self._start_polling()

    async def stop(self) -> None:
        """Cancel polling and any refresh in flight; no state changes happen afterwards"""
        self._started = False
        self._generation += 1

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = [task for task in (self._poll_task, self._refresh_task) if task is not None]
        self._poll_task = None
        self._refresh_task = None
        self.is_refreshing = False

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass

    def set_identity(self, address: Optional[str]) -> None:
        """
        Switch the identity being tracked

        Clearing the identity cancels polling and goes to DISCONNECTED.
        A new identity shows LOADING until its first refresh completes.
        """
        if address == self._address:
            return

        self._generation += 1
        self._cancel_tasks()
        self._address = address
        self._resolved_address = None
        self.last_error = None
        self.is_refreshing = False

        if address is None:
            self.issuer_address = None
            self._transition(FunnelState.disconnected(), "identity cleared")
            return

        # LOADING only on the disconnected → connected edge
        self._transition(FunnelState.loading(), "identity connected")

        if self._started:
            self._start_polling()

    def _cancel_tasks(self) -> None:
        for task in (self._poll_task, self._refresh_task):
            if task is not None and not task.done():
                task.cancel()
        self._poll_task = None
        self._refresh_task = None

    def _start_polling(self) -> None:
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(self._generation))

    async def _poll_loop(self, generation: int) -> None:
        interval = self.poll_interval_ms / 1000.0
        while generation == self._generation:
            await self.refresh()
            if generation != self._generation:
                break
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _on_refresh_requested(self, event: SystemEvent) -> None:
        logger.debug(f"Refresh requested by {event.source}: {event.data.get('reason', '')}")
        self.request_refresh()

    def request_refresh(self) -> Optional[asyncio.Task]:
        """Start a refresh unless one is already running; returns the running refresh"""
        if self._address is None:
            return None
        return self._ensure_refresh_task()

    def _ensure_refresh_task(self) -> asyncio.Task:
        if self._refresh_task is not None and not self._refresh_task.done():
            self.coalesced_requests += 1
            return self._refresh_task

        self._refresh_task = asyncio.get_running_loop().create_task(
            self._run_refresh(self._generation, self._address)
        )
        return self._refresh_task

    async def refresh(self) -> FunnelState:
        """
        Re-derive the funnel state now, joining a refresh already in flight

        Returns:
            The state after the refresh; on failure the previous state
        """
        if self._address is None:
            self._transition(FunnelState.disconnected(), "no identity")
            return self._state

        task = self._ensure_refresh_task()
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # The shared refresh was cancelled by an identity change, not this caller
            if not task.cancelled():
                raise
        return self._state

    async def _bounded(self, awaitable: Awaitable[Any], step: str) -> Any:
        if self.request_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.request_timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(step, self.request_timeout) from None

    async def _run_refresh(self, generation: int, address: str) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.is_refreshing = True
        self.refresh_count += 1

        try:
            await self.connection_manager.ensure_connected()

            issuer = await self._bounded(self.issuer_provider.get_issuer_address(), "issuer_lookup")
            if generation != self._generation:
                self.discarded_results += 1
                return
            self.issuer_address = issuer

            credential = await self._bounded(
                self.resolver.resolve(address, issuer, self.credential_type),
                "credential_lookup",
            )

            trust_line = None
            if credential is not None and credential.accepted:
                trust_line = await self._bounded(
                    self.client.find_trust_line(address, issuer, self.asset_code),
                    "account_lines",
                )

            new_state = derive_funnel_state(address, issuer, credential, trust_line)

            if generation != self._generation:
                self.discarded_results += 1
                return

            self.last_error = None
            self.last_updated_at = self.clock()
            self._transition(new_state, "refresh")
            log_performance(logger, "funnel_refresh", (loop.time() - started) * 1000,
                            status=new_state.kind)

            if self.on_address_resolved and self._resolved_address != address:
                self._resolved_address = address
                try:
                    self.on_address_resolved(address)
                except Exception:
                    logger.exception("Error in address resolved callback")

        except Exception as e:
            if generation != self._generation:
                self.discarded_results += 1
                return

            # Keep the last good state; only the error changes
            self.refresh_failures += 1
            self.last_error = e

            if isinstance(e, FunnelException):
                log_error_with_context(logger, e, "funnel_refresh", level=logging.WARNING, address=address)
            else:
                logger.error(f"Unexpected error refreshing funnel state for {address}", exc_info=True)

            if self.bus is not None:
                self.bus.emit(EventTypes.FUNNEL_REFRESH_ERROR, {
                    "address": address,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "state": self._state.kind,
                }, source="funnel_state_machine")

        finally:
            if generation == self._generation:
                self.is_refreshing = False

    # ------------------------------------------------------------------
    # Transitions and listeners
    # ------------------------------------------------------------------

    def _transition(self, new_state: FunnelState, reason: str) -> None:
        if new_state == self._state:
            return

        old_state = self._state
        self._state = new_state

        transition = StateTransition(old_state, new_state, reason)
        self.transitions.append(transition)
        logger.info(f"Funnel state: {transition}")

        if self.bus is not None:
            self.bus.emit(EventTypes.FUNNEL_STATE_CHANGED, {
                "address": self._address,
                "from_state": old_state.kind,
                "to_state": new_state.kind,
                "state": new_state.to_dict(),
                "reason": reason,
            }, source="funnel_state_machine")

        self._notify_listeners(old_state, new_state)

    def add_listener(self, listener: Callable[[FunnelState, FunnelState], None]):
        """Add state change listener"""
        self.state_listeners.append(listener)

    def remove_listener(self, listener: Callable[[FunnelState, FunnelState], None]):
        """Remove state change listener"""
        if listener in self.state_listeners:
            self.state_listeners.remove(listener)

    def _notify_listeners(self, old_state: FunnelState, new_state: FunnelState):
        for listener in list(self.state_listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("Error in funnel state listener")

    def is_authorized(self) -> bool:
        return self._state.status == FunnelStatus.AUTHORIZED

    def get_snapshot(self) -> Dict[str, Any]:
        """Observable state for display"""
        return {
            "state": self._state.to_dict(),
            "address": self._address,
            "issuer_address": self.issuer_address,
            "is_refreshing": self.is_refreshing,
            "last_updated_at": self.last_updated_at,
            "error": self.error,
        }

    def get_transition_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent state transitions"""
        recent = list(self.transitions)[-limit:]
        return [
            {
                "from": t.from_state.kind,
                "to": t.to_state.kind,
                "reason": t.reason,
                "timestamp": t.timestamp,
                "datetime": t.datetime.isoformat()
            }
            for t in recent
        ]

    def get_stats(self) -> Dict[str, Any]:
        """Get state machine statistics"""
        return {
            "current_state": self._state.kind,
            "refresh_count": self.refresh_count,
            "refresh_failures": self.refresh_failures,
            "coalesced_requests": self.coalesced_requests,
            "discarded_results": self.discarded_results,
            "transition_count": len(self.transitions),
            "polling": self._poll_task is not None and not self._poll_task.done(),
        }
