"""
Signal bus shared by the session, ledger and funnel components
"""

from .event_bus import event_bus, EventBus, EventTypes, SystemEvent

__all__ = ['event_bus', 'EventBus', 'EventTypes', 'SystemEvent']
