"""
Origins and browsing contexts: the wiring between storage scopes, the
identity store and the funnel state machine
"""

import itertools
from typing import Any, Dict, Optional

from core.logging_config import get_logger
from events import EventBus, EventTypes, SystemEvent, event_bus
from funnel.state_machine import FunnelStateMachine
from ledger.models import IdentityScope
from .identity_store import SessionIdentityStore
from .storage import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    NotifyingStore,
    ResilientStore,
    StorageNotifier,
)

logger = get_logger(__name__)


class Origin:
    """Shared scope seen by every browsing context of one origin"""

    def __init__(self, shared_backend: Optional[KeyValueStore] = None, name: str = "default"):
        """
        Args:
            shared_backend: Persistent store for shared scope, in memory when omitted
            name: Label used in context ids and logs
        """
        self.name = name
        self.notifier = StorageNotifier()
        self.shared_store = ResilientStore(
            shared_backend or MemoryStore(IdentityScope.SHARED),
            on_degraded=self._on_degraded,
        )
        self._context_ids = itertools.count(1)

    @classmethod
    def from_config(cls, session_config: Dict[str, Any], name: str = "default") -> "Origin":
        """Build an origin from SESSION_CONFIG, falling back to memory if the file store fails"""
        path = session_config.get("shared_store_path")
        backend: Optional[KeyValueStore] = None
        if path:
            try:
                backend = JsonFileStore(path)
            except Exception as e:
                logger.warning(f"Shared store at {path} unavailable, using memory: {e}")
        return cls(backend, name=name)

    def _on_degraded(self, error: Exception) -> None:
        event_bus.emit(EventTypes.STORAGE_DEGRADED, {
            "origin": self.name,
            "error": str(error),
        }, source="origin")

    @property
    def degraded(self) -> bool:
        return self.shared_store.degraded

    def next_context_id(self) -> str:
        return f"{self.name}-ctx-{next(self._context_ids)}"

    def shared_view(self, writer: str) -> NotifyingStore:
        """Shared store as seen by one context; its writes are announced"""
        return NotifyingStore(self.shared_store, self.notifier, writer=writer)


class BrowserContext:
    """
    One browsing context ("tab").

    Owns its tab store, its own bus, a SessionIdentityStore and a
    FunnelStateMachine. Identity changes on the bus retarget the funnel;
    shared-store changes from any context of the origin arrive through the
    origin's notifier.
    """

    def __init__(self,
                 origin: Origin,
                 connection_manager,
                 client,
                 funder,
                 issuer_provider,
                 credential_type: str,
                 asset_code: str,
                 poll_interval_ms: int = 4000,
                 request_timeout: Optional[float] = None,
                 keys: Optional[Dict[str, str]] = None,
                 recent_limit: int = 5,
                 shared_fallback: bool = False):
        self.origin = origin
        self.id = origin.next_context_id()
        self.bus = EventBus(name=self.id)
        self.tab_store = MemoryStore(IdentityScope.TAB)

        self.identity_store = SessionIdentityStore(
            tab_store=self.tab_store,
            shared_store=origin.shared_view(self.id),
            funder=funder,
            bus=self.bus,
            keys=keys,
            recent_limit=recent_limit,
            shared_fallback=shared_fallback,
        )

        self.funnel = FunnelStateMachine(
            connection_manager=connection_manager,
            client=client,
            issuer_provider=issuer_provider,
            credential_type=credential_type,
            asset_code=asset_code,
            poll_interval_ms=poll_interval_ms,
            request_timeout=request_timeout,
            bus=self.bus,
            on_address_resolved=self.identity_store.remember_address,
        )

        self._unsubscribe_storage = origin.notifier.subscribe(self.identity_store.handle_shared_change)
        self._unsubscribe_identity = self.bus.on(EventTypes.IDENTITY_CHANGED, self._on_identity_changed)
        self.closed = False

    def start(self) -> None:
        """Start the funnel for whatever identity this context already has; needs a running loop"""
        self.funnel.start()
        active = self.identity_store.active_identity()
        self.funnel.set_identity(active.address if active else None)

    def _on_identity_changed(self, event: SystemEvent) -> None:
        if self.closed:
            return
        active = self.identity_store.active_identity()
        self.funnel.set_identity(active.address if active else None)

    def request_refresh(self, reason: str = "manual") -> None:
        """Raise the refresh-requested signal, as action components do after submitting"""
        self.bus.emit(EventTypes.LEDGER_REFRESH_REQUESTED, {"reason": reason}, source=self.id)

    async def close(self) -> None:
        """Tear the context down; the tab store goes with it"""
        if self.closed:
            return
        self.closed = True

        self._unsubscribe_storage()
        self._unsubscribe_identity()
        await self.funnel.stop()
        self.bus.clear()
        logger.debug(f"Closed browsing context {self.id}")
