# Pending Request Table - Response Correlation
# Maps correlation keys to in-flight requests awaiting a server response

"""
Pending Request Table Module

Responsibilities:
- Track in-flight requests by correlation key
- Complete a request's future exactly once (response, timeout, reset)
- Sweep timed out requests
- Drain non-login requests when the connection resets

The empty key is reserved for the login request; at most one login entry
exists at a time. Every removal goes through _pop(), so an entry can never
be completed twice.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ConnectionReset, RequestError, RequestTimeout
from ..utils.logger import setup_logger

LOGIN_KEY = ""


class RequestKind(Enum):
    """Request types understood by the server"""
    LOGIN = "login"
    COUNT = "count"
    TIME = "time"

    @property
    def response_field(self) -> Optional[str]:
        """Inner response field that identifies a response of this kind"""
        return None if self is RequestKind.LOGIN else self.value


@dataclass
class PendingRequest:
    """One in-flight request"""
    key: str
    kind: RequestKind
    future: asyncio.Future
    submitted_at: float

    def age(self, now: float) -> float:
        return now - self.submitted_at


class PendingRequestTable:
    """
    Correlation table for outstanding requests

    All methods are synchronous and must be called from the event loop that
    owns the futures.
    """

    def __init__(self, timeout: float = 5.0):
        """
        Initialize request table

        Args:
            timeout: Seconds after which sweep() fails a request
        """
        self.timeout = timeout
        self.logger = setup_logger("PendingRequests", "INFO")
        self._entries: Dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return list(self._entries)

    def get(self, key: str) -> Optional[PendingRequest]:
        return self._entries.get(key)

    def login_entry(self) -> Optional[PendingRequest]:
        """Return the pending login request, if any"""
        return self._entries.get(LOGIN_KEY)

    def insert(
        self,
        key: str,
        kind: RequestKind,
        future: asyncio.Future,
        submitted_at: float
    ) -> PendingRequest:
        """
        Record a new in-flight request

        Raises:
            ValueError: key already pending (including a second login)
        """
        if key in self._entries:
            if key == LOGIN_KEY:
                raise ValueError("A login request is already pending")
            raise ValueError(f"Duplicate correlation key: {key}")

        entry = PendingRequest(
            key=key,
            kind=kind,
            future=future,
            submitted_at=submitted_at
        )
        self._entries[key] = entry
        self.logger.debug(f"Pending request added - key: {key!r}, type: {kind.value}")
        return entry

    def resolve(self, key: str, message: Any) -> bool:
        """
        Complete the request matching key with the server message

        Returns:
            True if a pending request matched
        """
        entry = self._pop(key)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(message)
        return True

    def fail(self, key: str, error: BaseException) -> bool:
        """Complete the request matching key with an error"""
        entry = self._pop(key)
        if entry is None:
            return False
        self._set_error(entry, error)
        return True

    def discard(self, key: str) -> bool:
        """Remove the request matching key without completing it"""
        return self._pop(key) is not None

    def sweep(self, now: float) -> List[PendingRequest]:
        """
        Fail every request older than the timeout

        Args:
            now: Current event loop time

        Returns:
            The removed entries
        """
        expired = [
            key for key, entry in self._entries.items()
            if entry.age(now) > self.timeout
        ]
        removed = []
        for key in expired:
            entry = self._pop(key)
            self._set_error(entry, RequestTimeout(
                "Request timeout error",
                kind=entry.kind.value,
                submitted_at=entry.submitted_at
            ))
            removed.append(entry)

        if removed:
            self.logger.warning(f"Timed out {len(removed)} pending request(s)")
        return removed

    def drain(self, reason: str) -> List[PendingRequest]:
        """
        Fail every non-login request with ConnectionReset

        The login entry is kept so the reconnect can complete it.

        Returns:
            The removed entries
        """
        keys = [
            key for key, entry in self._entries.items()
            if entry.kind is not RequestKind.LOGIN
        ]
        removed = []
        for key in keys:
            entry = self._pop(key)
            self._set_error(entry, ConnectionReset(
                reason,
                kind=entry.kind.value,
                submitted_at=entry.submitted_at
            ))
            removed.append(entry)
        return removed

    def clear(self) -> int:
        """Drop every entry without completing any future"""
        count = len(self._entries)
        self._entries.clear()
        return count

    def _pop(self, key: str) -> Optional[PendingRequest]:
        return self._entries.pop(key, None)

    def _set_error(self, entry: PendingRequest, error: BaseException):
        if entry.future.done():
            return
        if isinstance(error, RequestError) and error.kind is None:
            error.kind = entry.kind.value
            error.submitted_at = entry.submitted_at
        entry.future.set_exception(error)
