"""
Abuse protection infrastructure.
"""

from relay.infrastructure.abuse.abuse_guard import (
    AbuseGuard,
    BlockEntry,
    ViolationRecord,
)

__all__ = ["AbuseGuard", "BlockEntry", "ViolationRecord"]
