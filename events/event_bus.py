"""
Signal bus for broadcasting named events between engine components
"""

import logging
import time
from typing import Dict, Any, List, Callable, Optional
from collections import defaultdict, deque
from datetime import datetime
import uuid

logger = logging.getLogger(__name__)


class SystemEvent:
    """Represents a broadcast event"""

    def __init__(self, event_type: str, data: Dict[str, Any], source: str = None):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.data = data
        self.source = source or "system"
        self.timestamp = time.time()
        self.datetime = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp,
            "datetime": self.datetime
        }


class EventBus:
    """
    Named broadcast events with synchronous delivery.

    emit() runs every listener before returning, so a component that writes
    state and emits a signal can rely on its own listeners having seen it.
    A failing listener is logged and does not stop delivery to the others.
    """

    def __init__(self, name: str = "default", max_history: int = 200):
        self.name = name
        self.listeners: Dict[str, List[Callable[[SystemEvent], None]]] = defaultdict(list)
        self.event_history = deque(maxlen=max_history)
        self.event_counts = defaultdict(int)
        self.listener_errors = 0

    def emit(self, event_type: str, data: Optional[Dict[str, Any]] = None, source: str = None) -> SystemEvent:
        """Emit an event and deliver it to listeners"""
        event = SystemEvent(event_type, data or {}, source)

        self.event_counts[event.type] += 1
        self.event_history.append(event)

        # Copy so listeners may unsubscribe while being notified
        for listener in list(self.listeners.get(event.type, [])):
            self._deliver(listener, event)

        for listener in list(self.listeners.get("*", [])):
            self._deliver(listener, event)

        return event

    def on(self, event_type: str, callback: Callable[[SystemEvent], None]) -> Callable[[], None]:
        """
        Register a listener for specific event type

        Returns:
            Function that removes the listener again
        """
        self.listeners[event_type].append(callback)
        return lambda: self.off(event_type, callback)

    def on_all(self, callback: Callable[[SystemEvent], None]) -> Callable[[], None]:
        """Register a listener for all events"""
        return self.on("*", callback)

    def off(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Remove a listener"""
        if callback in self.listeners[event_type]:
            self.listeners[event_type].remove(callback)

    def _deliver(self, listener: Callable[[SystemEvent], None], event: SystemEvent):
        try:
            listener(event)
        except Exception:
            self.listener_errors += 1
            logger.exception(f"Error in event listener for {event.type}")

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics"""
        return {
            "name": self.name,
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "history_size": len(self.event_history),
            "listener_errors": self.listener_errors,
            "listener_counts": {
                event_type: len(listeners)
                for event_type, listeners in self.listeners.items()
                if listeners
            }
        }

    def get_recent_events(self, count: int = 50, event_type: str = None) -> List[Dict[str, Any]]:
        """Get recent events from history"""
        events = list(self.event_history)

        if event_type:
            events = [e for e in events if e.type == event_type]

        return [e.to_dict() for e in events[-count:]]

    def clear(self):
        """Drop all listeners and history"""
        self.listeners.clear()
        self.event_history.clear()


# Process-wide bus; browsing contexts create their own
event_bus = EventBus(name="global")


# Event type constants
class EventTypes:
    # Session identity events
    IDENTITY_CHANGED = "identity.changed"
    RECENT_ADDRESSES_CHANGED = "session.recent_addresses_changed"
    DEMO_USERS_CHANGED = "session.demo_users_changed"
    STORAGE_DEGRADED = "session.storage_degraded"

    # Ledger events
    LEDGER_REFRESH_REQUESTED = "ledger.refresh_requested"
    CONNECTION_STATE_CHANGED = "connection.state_changed"

    # Funnel events
    FUNNEL_STATE_CHANGED = "funnel.state_changed"
    FUNNEL_REFRESH_ERROR = "funnel.refresh_error"
