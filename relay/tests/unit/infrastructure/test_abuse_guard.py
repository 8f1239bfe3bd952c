"""
Unit tests for AbuseGuard.

Usage:
    pytest relay/tests/unit/infrastructure/test_abuse_guard.py
"""

import pytest

from relay.infrastructure.abuse import AbuseGuard


@pytest.fixture
def guard(clock):
    """Provide a guard with default limits and a fake clock."""
    return AbuseGuard(clock=clock)


class TestConnectionAdmission:
    """Unit tests for per-IP connection admission."""

    def test_eleventh_attempt_blocks_ip(self, guard):
        """Test ten attempts pass and the eleventh blocks the IP."""
        results = [guard.admit_connection("10.0.0.5") for _ in range(11)]

        assert results == [True] * 10 + [False]
        assert guard.is_blocked("10.0.0.5") is True
        assert guard.get_violations("10.0.0.5") == 1
        assert guard.stats["connections_admitted"] == 10
        assert guard.stats["connections_rejected"] == 1

    def test_blocked_ip_rejected_until_block_expires(self, guard, clock):
        """Test a block lasts the configured duration."""
        for _ in range(11):
            guard.admit_connection("10.0.0.5")

        assert guard.retry_after_seconds(ip="10.0.0.5") == 1800

        clock.advance(1799)
        assert guard.admit_connection("10.0.0.5") is False

        clock.advance(1)
        assert guard.is_blocked("10.0.0.5") is False
        assert guard.admit_connection("10.0.0.5") is True

    def test_other_ips_unaffected(self, guard):
        """Test blocking one IP leaves others alone."""
        for _ in range(11):
            guard.admit_connection("10.0.0.5")

        assert guard.admit_connection("10.0.0.6") is True
        assert guard.get_blocked_ips() == ["10.0.0.5"]

    def test_window_resets_after_expiry(self, guard, clock):
        """Test attempts spread over two windows do not block."""
        for _ in range(10):
            assert guard.admit_connection("10.0.0.5") is True

        clock.advance(301)

        assert guard.admit_connection("10.0.0.5") is True
        assert guard.is_blocked("10.0.0.5") is False

    def test_window_boundary_is_inclusive(self, guard, clock):
        """Test the window has not elapsed at exactly its length."""
        for _ in range(10):
            guard.admit_connection("10.0.0.5")

        clock.advance(300)

        assert guard.admit_connection("10.0.0.5") is False

    def test_unblock_ip(self, guard):
        """Test manual unblock."""
        guard.block_ip("10.0.0.5", "manual")

        assert guard.unblock_ip("10.0.0.5") is True
        assert guard.unblock_ip("10.0.0.5") is False
        assert guard.is_blocked("10.0.0.5") is False


class TestMessageRate:
    """Unit tests for per-connection message rate."""

    def test_sixty_first_message_rejected(self, guard):
        """Test sixty messages pass and the next is rejected."""
        results = [guard.admit_message("conn_1", "schedule:update") for _ in range(61)]

        assert results == [True] * 60 + [False]
        assert guard.stats["messages_rejected"] == 1

    def test_message_limit_does_not_block_ip(self, guard):
        """Test exceeding the message rate only drops messages."""
        for _ in range(70):
            guard.admit_message("conn_1", "ping")

        assert guard.get_blocked_ips() == []

    def test_retry_after_for_connection(self, guard, clock):
        """Test retry_after reports the remaining window."""
        guard.admit_message("conn_1", "ping")
        clock.advance(20)

        assert guard.retry_after_seconds(connection_id="conn_1") == 40
        assert guard.retry_after_seconds() == 0

    def test_heartbeat_counts_by_default(self, guard):
        """Test ping and heartbeat count against the window by default."""
        for _ in range(60):
            guard.admit_message("conn_1", "heartbeat")

        assert guard.admit_message("conn_1", "ping") is False

    def test_heartbeat_exemption(self, clock):
        """Test exempt_heartbeat skips ping and heartbeat."""
        guard = AbuseGuard(exempt_heartbeat=True, clock=clock)

        for _ in range(100):
            assert guard.admit_message("conn_1", "ping") is True

        for _ in range(60):
            guard.admit_message("conn_1", "schedule:update")
        assert guard.admit_message("conn_1", "schedule:update") is False
        assert guard.admit_message("conn_1", "heartbeat") is True

    def test_forget_connection(self, guard):
        """Test a closed connection's window is discarded."""
        for _ in range(61):
            guard.admit_message("conn_1", "ping")

        guard.forget_connection("conn_1")

        assert guard.admit_message("conn_1", "ping") is True


class TestSweep:
    """Unit tests for AbuseGuard.sweep."""

    def test_sweep_removes_expired_state(self, guard, clock):
        """Test windows, blocks and old violations are evicted."""
        for _ in range(11):
            guard.admit_connection("10.0.0.5")
        guard.admit_message("conn_1", "ping")

        clock.advance(1800)
        removed = guard.sweep()

        assert removed["connection_windows"] == 1
        assert removed["message_windows"] == 1
        assert removed["blocks"] == 1
        assert removed["violations"] == 0

        clock.advance(1801)
        assert guard.sweep()["violations"] == 1
        assert guard.get_violations("10.0.0.5") == 0

    def test_stats(self, guard):
        """Test get_stats exposes counters and tracked sizes."""
        guard.admit_connection("10.0.0.5")
        guard.admit_message("conn_1", "ping")

        stats = guard.get_stats()

        assert stats["connections_admitted"] == 1
        assert stats["tracked_ips"] == 1
        assert stats["tracked_connections"] == 1
        assert stats["blocked_ips"] == 0
        assert stats["exempt_heartbeat"] is False
