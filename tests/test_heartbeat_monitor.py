"""Tests for the heartbeat watchdog."""

import asyncio

from pulseclient.connection.heartbeat_monitor import HeartbeatMonitor


class ExpiryCounter:
    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1


class TestHeartbeatMonitor:
    async def test_expires_once_after_window(self):
        expired = ExpiryCounter()
        monitor = HeartbeatMonitor(expired, window=0.05)

        monitor.arm()
        await asyncio.sleep(0.2)

        assert expired.count == 1
        assert monitor.expired_count == 1
        assert not monitor.is_armed()
        assert monitor.deadline is None

    async def test_refresh_keeps_monitor_alive(self):
        expired = ExpiryCounter()
        monitor = HeartbeatMonitor(expired, window=0.1)

        monitor.arm()
        for _ in range(6):
            await asyncio.sleep(0.04)
            assert monitor.refresh() is True

        assert expired.count == 0
        monitor.cancel()

    async def test_refresh_moves_deadline_forward(self):
        monitor = HeartbeatMonitor(ExpiryCounter(), window=1.0)
        monitor.arm()
        first = monitor.deadline

        await asyncio.sleep(0.02)
        monitor.refresh()

        assert monitor.deadline > first
        monitor.cancel()

    async def test_refresh_when_disarmed_is_ignored(self):
        expired = ExpiryCounter()
        monitor = HeartbeatMonitor(expired, window=0.05)

        assert monitor.refresh() is False
        await asyncio.sleep(0.1)

        assert expired.count == 0
        assert not monitor.is_armed()

    async def test_rearming_never_accumulates_deadlines(self):
        expired = ExpiryCounter()
        monitor = HeartbeatMonitor(expired, window=0.05)

        monitor.arm()
        monitor.arm()
        monitor.arm()
        await asyncio.sleep(0.2)

        assert expired.count == 1

    async def test_cancel_prevents_expiry(self):
        expired = ExpiryCounter()
        monitor = HeartbeatMonitor(expired, window=0.05)

        monitor.arm()
        monitor.cancel()
        await asyncio.sleep(0.1)

        assert expired.count == 0
