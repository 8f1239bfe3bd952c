"""
State persistence infrastructure.
"""

from relay.infrastructure.persistence.state_store import StateStore

__all__ = ["StateStore"]
