# Heartbeat Monitor - Server Liveness Watchdog
# Deadline refreshed by every inbound heartbeat; expiry triggers a reset

"""
Heartbeat Monitor Module

Responsibilities:
- Hold a single liveness deadline per connection generation
- Re-arm the deadline on every server heartbeat
- Call the expiry callback exactly once when a deadline lapses

arm() always cancels the previous deadline before scheduling a new one, and
each deadline carries its generation number, so a deadline from an earlier
generation can never fire after re-arming.
"""

import asyncio
from typing import Callable, Optional

from ..utils.logger import setup_logger


class HeartbeatMonitor:
    """
    Watchdog timer for server heartbeats
    """

    def __init__(
        self,
        on_expired: Callable[[], None],
        window: float = 2.0,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        """
        Initialize heartbeat monitor

        Args:
            on_expired: Called (synchronously, on the loop) when a deadline lapses
            window: Seconds allowed between heartbeats
            loop: Event loop to schedule on (defaults to the running loop)
        """
        self.on_expired = on_expired
        self.window = window
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._deadline: Optional[float] = None
        self._generation = 0
        self._expired_count = 0
        self.logger = setup_logger("HeartbeatMonitor", "INFO")

    @property
    def deadline(self) -> Optional[float]:
        """Loop time at which liveness is considered lost (None if disarmed)"""
        return self._deadline

    @property
    def expired_count(self) -> int:
        return self._expired_count

    def is_armed(self) -> bool:
        return self._handle is not None

    def arm(self):
        """Set a fresh deadline one window from now"""
        self.cancel()
        loop = self._get_loop()
        self._deadline = loop.time() + self.window
        self._handle = loop.call_at(self._deadline, self._expire, self._generation)

    def refresh(self) -> bool:
        """
        Re-arm after a heartbeat

        Returns:
            False if the monitor was not armed (heartbeat ignored)
        """
        if self._handle is None:
            return False
        self.arm()
        return True

    def cancel(self):
        """Disarm the current deadline"""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._deadline = None
        self._generation += 1

    def _expire(self, generation: int):
        if generation != self._generation or self._handle is None:
            return
        self._handle = None
        self._deadline = None
        self._generation += 1
        self._expired_count += 1
        self.logger.warning(f"No heartbeat within {self.window}s")
        self.on_expired()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop
