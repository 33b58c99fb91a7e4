"""
Compliance funnel status derivation and polling
"""

from .states import FunnelStatus, FunnelState, derive_funnel_state
from .state_machine import FunnelStateMachine

__all__ = ["FunnelStatus", "FunnelState", "derive_funnel_state", "FunnelStateMachine"]
