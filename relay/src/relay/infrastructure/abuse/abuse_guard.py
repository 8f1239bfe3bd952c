"""
Abuse guard: per-IP connection admission and per-connection message rate.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji
from shared.resilience import RateWindowConfig, RateWindowRegistry

HEARTBEAT_EVENTS = frozenset({"ping", "heartbeat"})


@dataclass
class BlockEntry:
    """Blocked IP with expiry."""

    ip: str
    reason: str
    blocked_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def remaining(self, now: float) -> float:
        return max(0.0, self.expires_at - now)


@dataclass
class ViolationRecord:
    """Block history for an IP."""

    violations: int = 0
    last_violation: float = 0.0


class AbuseGuard:
    """
    Rejects abusive IPs and connections.

    Two fixed windows are tracked:
        - connection attempts per IP (exceeding blocks the IP)
        - messages per connection (exceeding drops the message only)

    Bookkeeping is plain dictionary work and never awaits, so every call
    completes atomically on the event loop.

    Attributes:
        block_duration: Seconds a blocked IP stays rejected
        exempt_heartbeat: Skip ping/heartbeat in the message window
        stats: Guard counters
    """

    def __init__(
        self,
        connection_window: float = 300,
        max_connections: int = 10,
        message_window: float = 60,
        max_messages: int = 60,
        block_duration: float = 1800,
        exempt_heartbeat: bool = False,
        reporter: Optional[SystemReporter] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.block_duration = block_duration
        self.exempt_heartbeat = exempt_heartbeat
        self.reporter = reporter
        self._clock = clock

        self._connection_windows = RateWindowRegistry(
            RateWindowConfig(max_events=max_connections, window_seconds=connection_window),
            clock=clock,
        )
        self._message_windows = RateWindowRegistry(
            RateWindowConfig(max_events=max_messages, window_seconds=message_window),
            clock=clock,
        )
        self._blocks: Dict[str, BlockEntry] = {}
        self._violations: Dict[str, ViolationRecord] = {}

        self.stats = {
            "connections_admitted": 0,
            "connections_rejected": 0,
            "messages_rejected": 0,
            "ips_blocked": 0,
        }

        if self.reporter:
            self.reporter.info(
                f"AbuseGuard initialized (connections={max_connections}/"
                f"{connection_window}s, messages={max_messages}/{message_window}s, "
                f"block={block_duration}s, exempt_heartbeat={exempt_heartbeat})",
                context="AbuseGuard",
                verbose_level=2,
            )

    # ================================================================
    # Admission
    # ================================================================

    def admit_connection(self, ip: str) -> bool:
        """
        Decide whether a new connection from ip is accepted.

        Returns:
            True if admitted, False if blocked or over the attempt limit
        """
        if self.is_blocked(ip):
            self.stats["connections_rejected"] += 1
            return False

        if not self._connection_windows.hit(ip):
            self.block_ip(ip, "Too many connection attempts")
            self.stats["connections_rejected"] += 1
            return False

        self.stats["connections_admitted"] += 1
        return True

    def admit_message(self, connection_id: str, event: Optional[str] = None) -> bool:
        """
        Count one inbound message for a connection.

        Returns:
            True if allowed, False if the connection exceeded its rate
        """
        if self.exempt_heartbeat and event in HEARTBEAT_EVENTS:
            return True

        if self._message_windows.hit(connection_id):
            return True

        self.stats["messages_rejected"] += 1
        if self.reporter:
            self.reporter.warning(
                f"{Emoji.SECURITY.RATE_LIMIT} Message rate exceeded "
                f"[conn={connection_id}] [event={event}]",
                context="AbuseGuard",
                verbose_level=2,
            )
        return False

    # ================================================================
    # Blocking
    # ================================================================

    def block_ip(self, ip: str, reason: str = "Rate limit exceeded") -> BlockEntry:
        """Block ip for the configured duration."""
        now = self._clock()
        entry = BlockEntry(
            ip=ip,
            reason=reason,
            blocked_at=now,
            expires_at=now + self.block_duration,
        )
        self._blocks[ip] = entry

        record = self._violations.setdefault(ip, ViolationRecord())
        record.violations += 1
        record.last_violation = now

        self.stats["ips_blocked"] += 1

        if self.reporter:
            self.reporter.warning(
                f"{Emoji.SECURITY.BLOCKED} Blocking IP {ip}: {reason} "
                f"(violations={record.violations}, duration={self.block_duration}s)",
                context="AbuseGuard",
            )
        return entry

    def unblock_ip(self, ip: str) -> bool:
        """Remove a block early. Returns True if ip was blocked."""
        entry = self._blocks.pop(ip, None)
        if entry and self.reporter:
            self.reporter.info(
                f"{Emoji.SECURITY.UNBLOCKED} IP {ip} unblocked",
                context="AbuseGuard",
            )
        return entry is not None

    def is_blocked(self, ip: str) -> bool:
        """Check if ip is blocked; expired blocks are lifted here."""
        entry = self._blocks.get(ip)
        if entry is None:
            return False

        if entry.is_expired(self._clock()):
            del self._blocks[ip]
            if self.reporter:
                self.reporter.info(
                    f"{Emoji.SECURITY.UNBLOCKED} IP {ip} unblocked after timeout",
                    context="AbuseGuard",
                )
            return False

        return True

    def get_blocked_ips(self) -> List[str]:
        now = self._clock()
        return [ip for ip, entry in self._blocks.items() if not entry.is_expired(now)]

    def get_violations(self, ip: str) -> int:
        record = self._violations.get(ip)
        return record.violations if record else 0

    # ================================================================
    # Housekeeping
    # ================================================================

    def forget_connection(self, connection_id: str) -> None:
        """Drop the message window of a closed connection."""
        self._message_windows.remove(connection_id)

    def retry_after_seconds(
        self, connection_id: Optional[str] = None, ip: Optional[str] = None
    ) -> int:
        """
        Seconds until a rejected caller may retry.

        Args:
            connection_id: Connection whose message window was exceeded
            ip: IP whose connection was rejected

        Returns:
            Whole seconds (rounded up)
        """
        if ip is not None:
            entry = self._blocks.get(ip)
            if entry is not None:
                return math.ceil(entry.remaining(self._clock()))
            return math.ceil(self._connection_windows.retry_after(ip))

        if connection_id is not None:
            return math.ceil(self._message_windows.retry_after(connection_id))

        return 0

    def sweep(self) -> Dict[str, int]:
        """
        Evict stale windows, expired blocks and old violation records.

        Returns:
            Count of removed entries per kind
        """
        now = self._clock()

        expired_connections = self._connection_windows.sweep_expired()
        expired_messages = self._message_windows.sweep_expired()

        expired_blocks = [ip for ip, e in self._blocks.items() if e.is_expired(now)]
        for ip in expired_blocks:
            del self._blocks[ip]

        violation_ttl = self.block_duration * 2
        stale_violations = [
            ip
            for ip, record in self._violations.items()
            if now - record.last_violation > violation_ttl
        ]
        for ip in stale_violations:
            del self._violations[ip]

        removed = {
            "connection_windows": len(expired_connections),
            "message_windows": len(expired_messages),
            "blocks": len(expired_blocks),
            "violations": len(stale_violations),
        }

        if self.reporter and any(removed.values()):
            self.reporter.info(
                f"{Emoji.SYSTEM.CLEANUP} Guard sweep: {removed}",
                context="AbuseGuard",
                verbose_level=2,
            )

        return removed

    def get_stats(self) -> Dict[str, object]:
        """Guard counters for the stats endpoint."""
        return {
            **self.stats,
            "blocked_ips": len(self.get_blocked_ips()),
            "tracked_ips": len(self._connection_windows),
            "tracked_connections": len(self._message_windows),
            "suspicious_ips": len(self._violations),
            "exempt_heartbeat": self.exempt_heartbeat,
        }
