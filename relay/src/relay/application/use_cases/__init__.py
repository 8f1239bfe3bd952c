"""
Application use cases for Relay.
"""

from relay.application.use_cases.manage_connection import ManageConnectionUseCase
from relay.application.use_cases.relay_event import RelayEventUseCase
from relay.application.use_cases.sync_directory import SyncDirectoryUseCase

__all__ = ["ManageConnectionUseCase", "RelayEventUseCase", "SyncDirectoryUseCase"]
