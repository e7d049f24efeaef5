# Connection Manager - Socket Lifecycle and Request Correlation
# Login, heartbeat watchdog, pending requests and automatic reset

"""
Connection Manager Module

Responsibilities:
- Open the TCP stream and log in with a single named identity
- Route inbound records: login ack, heartbeat, request responses
- Correlate responses to requests by key (never by arrival order)
- Detect heartbeat loss and reset the connection automatically
- Fail requests orphaned by a timeout or a reset, never hang them

States:
    DISCONNECTED -> CONNECTING -> LOGGING_IN -> READY
    READY --(heartbeat lost)--> RESETTING -> CONNECTING -> LOGGING_IN -> READY
    any --(logout or reset attempts exhausted)--> DISCONNECTED

All state (pending table, heartbeat deadline, logged_in flag) is mutated on
the event loop only. Inbound handling completes futures and never waits on
a caller.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import (
    ConnectionReset,
    LoginError,
    NotReady,
    ProtocolViolation,
    RequestError,
)
from .heartbeat_monitor import HeartbeatMonitor
from .pending_requests import LOGIN_KEY, PendingRequestTable, RequestKind
from ..processors.frame_decoder import FrameDecoder, MessageType, ParsedMessage
from ..utils.logger import SessionLog, setup_logger


class ConnectionState(Enum):
    """Connection states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    LOGGING_IN = "logging_in"
    READY = "ready"
    RESETTING = "resetting"


@dataclass
class ConnectionInfo:
    """Connection summary returned by login() and logout()"""
    host: str
    port: int
    logged_in: bool
    login_name: str


@dataclass
class Response:
    """Server response matched to a request"""
    kind: RequestKind
    key: str
    data: Dict[str, Any]
    elapsed: float


@dataclass
class ServerTime:
    """Result of a time request"""
    time: Any
    random: Any


class ConnectionManager:
    """
    Stateful client for the heartbeat request/response protocol

    Features:
    - Single named login per connection
    - Heartbeat watchdog with automatic reset and re-login
    - Key-based response correlation with timeout sweep
    - Requests issued during a reset wait briefly for the reconnect
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3001,
        login_name: str = "coder1",
        id_tag: str = "pulse",
        heartbeat_window: float = 2.0,
        request_timeout: float = 5.0,
        ready_retry_interval: float = 1.0,
        ready_retry_attempts: int = 5,
        reconnect_delay: float = 0.5,
        max_reconnect_delay: float = 8.0,
        max_reconnect_attempts: int = 5,
        connect_timeout: float = 5.0,
        session_log: Optional[SessionLog] = None
    ):
        """
        Initialize connection manager

        Args:
            host: Server address
            port: Server port
            login_name: Identity used when login() is called without one
            id_tag: Prefix of every correlation key sent by this client
            heartbeat_window: Seconds allowed between server heartbeats
            request_timeout: Seconds before a pending request times out
            ready_retry_interval: Seconds between logged-in checks during a reset
            ready_retry_attempts: Logged-in checks before a request gives up
            reconnect_delay: Initial delay between reconnect attempts
            max_reconnect_delay: Upper bound for the reconnect delay
            max_reconnect_attempts: Reconnect attempts per reset
            connect_timeout: Seconds allowed for the TCP connect
            session_log: Protocol traffic log (a private one is built if None)
        """
        self.host = host
        self.port = port
        self.default_login_name = login_name
        self.id_tag = id_tag
        self.heartbeat_window = heartbeat_window
        self.request_timeout = request_timeout
        self.ready_retry_interval = ready_retry_interval
        self.ready_retry_attempts = ready_retry_attempts
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.connect_timeout = connect_timeout

        # Connection state
        self.state = ConnectionState.DISCONNECTED
        self.logged_in = False
        self.resetting = False
        self.login_name = ""
        self.last_error: Optional[Exception] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

        # Tasks
        self._receive_task: Optional[asyncio.Task] = None
        self._reset_task: Optional[asyncio.Task] = None

        self._decoder = FrameDecoder()
        self._pending = PendingRequestTable(timeout=request_timeout)
        self._heartbeat = HeartbeatMonitor(self._on_heartbeat_lost, window=heartbeat_window)
        self._last_key_ns = 0

        self._stats = {
            "messages_received": 0,
            "heartbeats": 0,
            "requests_sent": 0,
            "responses_matched": 0,
            "responses_unmatched": 0,
            "timeouts": 0,
            "resets": 0,
            "errors": 0
        }

        self.logger = setup_logger("ConnectionManager", "INFO")
        self.session_log = session_log or SessionLog()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def login(self, identity: Optional[str] = None) -> ConnectionInfo:
        """
        Connect and log in to the server

        Returns only when the login has been acknowledged. If the server
        stops sending heartbeats while the login is pending, the connection
        is reset and the login retried; the caller keeps waiting.

        Precondition: no other login() is in progress.

        Args:
            identity: Login name (defaults to the configured login_name)

        Returns:
            ConnectionInfo for the logged-in connection

        Raises:
            LoginError: socket failure or the login was never acknowledged
            ProtocolViolation: acknowledgment arrived with an unexpected pending table
        """
        identity = identity or self.default_login_name

        try:
            await self._establish(identity)
        except LoginError as e:
            self.last_error = e
            self.session_log.error(f"Login failed: {e}")
            if not self._is_resetting_task_running():
                self._heartbeat.cancel()
                self._pending.discard(LOGIN_KEY)
                await self._close_stream()
                self.state = ConnectionState.DISCONNECTED
            raise

        return self.connection_info()

    async def logout(self) -> ConnectionInfo:
        """
        Tear down the connection

        Idempotent. Pending requests are discarded without being completed;
        the caller of logout() owns the shutdown.

        Returns:
            ConnectionInfo after teardown
        """
        reset_task, self._reset_task = self._reset_task, None
        if reset_task is not None and not reset_task.done():
            reset_task.cancel()
            await asyncio.wait({reset_task})

        self._heartbeat.cancel()
        await self._close_stream()
        discarded = self._pending.clear()

        self.logged_in = False
        self.resetting = False
        self.state = ConnectionState.DISCONNECTED

        if discarded:
            self.session_log.msg(f"Discarded {discarded} pending request(s) on logout")
        self.session_log.msg(f"Logged out from server at IP: {self.host}, Port: {self.port}")

        info = self.connection_info()
        self.login_name = ""
        return info

    async def request(
        self,
        kind: Union[RequestKind, str],
        payload: Optional[Dict[str, Any]] = None
    ) -> Response:
        """
        Send a request and wait for the matching response

        Args:
            kind: Request type
            payload: Extra kind-specific fields for the request frame

        Returns:
            Response matched by correlation key

        Raises:
            NotReady: not logged in and no reset in progress
            RequestTimeout: no response within request_timeout
            ConnectionReset: the connection was reset before a response arrived
        """
        kind = RequestKind(kind)
        if kind is RequestKind.LOGIN:
            raise ValueError("Use login() to log in")

        await self._ensure_ready(kind)

        loop = asyncio.get_running_loop()
        key = self._next_msg_id()
        frame = dict(payload or {})
        frame.update(request=kind.value, id=key)

        entry = self._pending.insert(key, kind, loop.create_future(), loop.time())
        self.logger.debug(f"Pending request added - msgId: {key}, type: {kind.value}")

        try:
            await self._write(frame)
            self._stats["requests_sent"] += 1
        except (ConnectionError, OSError) as e:
            self._stats["errors"] += 1
            self._pending.fail(key, ConnectionReset(f"Failed to send request: {e}"))

        try:
            data = await entry.future
        finally:
            self._pending.discard(key)

        return Response(
            kind=kind,
            key=key,
            data=data,
            elapsed=loop.time() - entry.submitted_at
        )

    async def get_request_count(self) -> int:
        """Get the cumulative request count from the server"""
        response = await self.request(RequestKind.COUNT)
        self.session_log.msg(f"Count response received: {json.dumps(response.data)}")
        return response.data["count"]

    async def get_time(self) -> ServerTime:
        """Get the current server time and random number"""
        response = await self.request(RequestKind.TIME)
        self.session_log.msg(f"Time response received: {json.dumps(response.data)}")
        return ServerTime(time=response.data["time"], random=response.data.get("random"))

    def connection_info(self) -> ConnectionInfo:
        return ConnectionInfo(
            host=self.host,
            port=self.port,
            logged_in=self.logged_in,
            login_name=self.login_name
        )

    def is_logged_in(self) -> bool:
        return self.logged_in

    def is_resetting(self) -> bool:
        return self.resetting

    def get_state(self) -> ConnectionState:
        return self.state

    def pending_count(self) -> int:
        return len(self._pending)

    def get_stats(self) -> dict:
        """Get connection statistics"""
        stats = dict(self._stats)
        stats["pending_requests"] = len(self._pending)
        stats["decoder"] = self._decoder.get_stats()
        return stats

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def _establish(self, identity: str, timeout: Optional[float] = None):
        """
        Open the stream, send the login frame and wait for the acknowledgment

        The pending login entry is reused when one survives a reset, so the
        original login() caller is completed by the reconnect.

        Args:
            identity: Login name
            timeout: Seconds to wait for the ack (None waits until the entry
                is completed by an ack, the sweep, or a failed reset)
        """
        loop = asyncio.get_running_loop()
        self.state = ConnectionState.CONNECTING
        self.logger.info(f"Connecting to {self.host}:{self.port}...")

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise LoginError(
                f"Could not connect to {self.host}:{self.port}: {e or 'timeout'}"
            ) from e

        self._reader, self._writer = reader, writer
        self._decoder.reset()
        self._receive_task = loop.create_task(self._receive_loop(reader))
        self.session_log.msg(f"Connected to server at IP: {self.host}, Port: {self.port}")

        self.state = ConnectionState.LOGGING_IN
        self.login_name = identity

        entry = self._pending.login_entry()
        if entry is None:
            entry = self._pending.insert(LOGIN_KEY, RequestKind.LOGIN, loop.create_future(), loop.time())
            self.session_log.msg(f"Pending login request info pushed - user: {identity}")

        # Liveness is watched from the start of the first login; a reset
        # bounds each attempt with its own timeout instead.
        if not self.resetting:
            self._heartbeat.arm()

        try:
            await self._write({"name": identity})
        except (ConnectionError, OSError) as e:
            raise LoginError(f"Failed to send login request: {e}") from e

        try:
            if timeout is None:
                await asyncio.shield(entry.future)
            else:
                done, _ = await asyncio.wait({entry.future}, timeout=timeout)
                if not done:
                    raise LoginError(f"Login not acknowledged within {timeout}s")
                entry.future.result()
        except RequestError as e:
            raise LoginError(f"Login failed: {e}") from e

    async def _reset_connection(self):
        """
        Reset the connection after a heartbeat lapse

        Fails every pending non-login request, drops the socket, then
        reconnects with exponential backoff. When every attempt fails the
        manager is left DISCONNECTED with last_error set; a login() caller
        still waiting gets LoginError, otherwise the reset's own login entry
        is dropped.
        """
        self.session_log.msg("Resetting Server Connection")
        self.logged_in = False
        self.resetting = True
        self.state = ConnectionState.RESETTING
        self._stats["resets"] += 1

        for entry in self._pending.drain("Server reset error"):
            self.session_log.error(
                f"Server reset error - request type: {entry.kind.value}, "
                f"request time: {entry.submitted_at:.3f}"
            )

        await self._close_stream()
        login_waiting = self._pending.login_entry() is not None

        attempts = 0
        while True:
            attempts += 1
            try:
                await self._establish(
                    self.login_name or self.default_login_name,
                    timeout=self.heartbeat_window
                )
                self.session_log.msg("Server Reset Complete")
                return
            except LoginError as e:
                self.last_error = e
                self.session_log.error(f"Server Reset Error: {e}")
                await self._close_stream()

            if attempts >= self.max_reconnect_attempts:
                break

            delay = min(
                self.reconnect_delay * (2 ** (attempts - 1)),
                self.max_reconnect_delay
            )
            self.state = ConnectionState.RESETTING
            self.logger.info(f"Reconnecting in {delay}s (attempt {attempts + 1})...")
            await asyncio.sleep(delay)

        self.resetting = False
        self.state = ConnectionState.DISCONNECTED
        self.logger.error(f"Server reset failed after {attempts} attempts")
        if login_waiting:
            self._pending.fail(
                LOGIN_KEY,
                LoginError(f"Server reset failed after {attempts} attempts: {self.last_error}")
            )
        else:
            # The entry was created by this reset and has no caller
            self._pending.discard(LOGIN_KEY)

    def _on_heartbeat_lost(self):
        """Heartbeat deadline lapsed: start exactly one reset"""
        if self._is_resetting_task_running():
            return
        self._reset_task = asyncio.get_running_loop().create_task(self._reset_connection())

    def _is_resetting_task_running(self) -> bool:
        return self._reset_task is not None and not self._reset_task.done()

    async def _close_stream(self):
        """Stop the receive task and close the socket (idempotent)"""
        task, self._receive_task = self._receive_task, None
        writer, self._writer = self._writer, None
        self._reader = None

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            # wait() propagates only a cancel aimed at the caller
            await asyncio.wait({task})

        if writer is not None:
            writer.close()
            try:
                await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
            except (OSError, asyncio.TimeoutError) as e:
                self.logger.debug(f"Error closing socket: {e}")

    async def _ensure_ready(self, kind: RequestKind):
        """
        Make sure a logged-in connection is available

        During a reset the logged-in flag is polled every
        ready_retry_interval, up to ready_retry_attempts times, so requests
        issued while reconnecting are not rejected outright.
        """
        if self.logged_in:
            return

        if self.resetting:
            for _ in range(self.ready_retry_attempts):
                await asyncio.sleep(self.ready_retry_interval)
                if self.logged_in:
                    return
                if not self.resetting:
                    break
            raise ConnectionReset("Server reset error", kind=kind.value)

        message = "Not logged into server"
        if self.last_error is not None:
            message += f" (last error: {self.last_error})"
        raise NotReady(message, kind=kind.value)

    async def _write(self, frame: Dict[str, Any]):
        if self._writer is None:
            raise ConnectionResetError("Not connected")
        text = json.dumps(frame, separators=(",", ":"))
        self._writer.write((text + "\n").encode())
        self.session_log.sent(text)
        await self._writer.drain()

    def _next_msg_id(self) -> str:
        """
        Generate a correlation key from the login name and a monotonic clock

        The clock component is forced strictly increasing so two keys made
        in the same tick stay unique.
        """
        now = time.monotonic_ns()
        if now <= self._last_key_ns:
            now = self._last_key_ns + 1
        self._last_key_ns = now
        return f"{self.id_tag}{self.login_name}{now}"

    # ------------------------------------------------------------------
    # Inbound handling
    # ------------------------------------------------------------------

    async def _receive_loop(self, reader: asyncio.StreamReader):
        """Background task reading the socket for one connection generation"""
        try:
            while True:
                chunk = await reader.read(4096)
                if not chunk:
                    self.session_log.error("Connection closed by server")
                    break
                self.session_log.received(chunk)
                if not self._handle_chunk(chunk):
                    break

        except asyncio.CancelledError:
            self.logger.debug("Receive loop cancelled")
            raise

        except (ConnectionError, OSError) as e:
            self._stats["errors"] += 1
            self.session_log.error(f"socket error encountered {e}")

    def _handle_chunk(self, chunk: bytes) -> bool:
        """
        Decode a chunk and route every message in it

        Returns:
            False when the connection attempt must stop reading
        """
        loop = asyncio.get_running_loop()

        for message in self._decoder.decode(chunk):
            self._stats["messages_received"] += 1

            if message.message_type is MessageType.LOGIN:
                if not self._handle_login_ack(message):
                    return False
            elif message.message_type is MessageType.HEARTBEAT:
                self._handle_heartbeat(loop.time())
            elif message.message_type is MessageType.MSG:
                self._handle_response(message, loop.time())
            elif not isinstance(message.data.get("type"), str):
                self.session_log.error(f"Message received with invalid or no message type: {message.raw}")
            else:
                self.session_log.error(f"Unrecognized message encountered: {message.raw}")

        return True

    def _handle_login_ack(self, message: ParsedMessage) -> bool:
        entry = self._pending.login_entry()
        if entry is None:
            self.session_log.error(f"Login response received with no pending login: {message.raw}")
            return True

        if len(self._pending) != 1:
            error = ProtocolViolation(
                f"Invalid pending request table on login: {self._pending.keys()}"
            )
            self.session_log.error(str(error))
            self._pending.fail(LOGIN_KEY, error)
            return False

        self.logged_in = True
        self.resetting = False
        self.last_error = None
        self.state = ConnectionState.READY
        self._heartbeat.arm()
        self._pending.resolve(LOGIN_KEY, message.data)
        self.session_log.msg(f"Logged in to server at IP: {self.host}, Port: {self.port}")
        return True

    def _handle_heartbeat(self, now: float):
        # Heartbeats only count while the watchdog is armed
        if not self._heartbeat.refresh():
            return
        self._stats["heartbeats"] += 1

        for entry in self._pending.sweep(now):
            self._stats["timeouts"] += 1
            self.session_log.error(
                f"Request timeout error - request type: {entry.kind.value}, "
                f"request time: {entry.submitted_at:.3f}"
            )

    def _handle_response(self, message: ParsedMessage, now: float):
        response = message.data.get("msg")
        if not isinstance(response, dict):
            self.session_log.error(f"Unrecognized message encountered: {message.raw}")
            return

        kind = self._response_kind(response)
        if kind is None:
            self.session_log.error(f"Unrecognized message encountered: {message.raw}")
            return

        msg_id = self._get_msg_id(response)
        if msg_id is None:
            self._stats["responses_unmatched"] += 1
            self.session_log.error(
                f"{kind.value.capitalize()} message received with invalid or no message id: {message.raw}"
            )
            return

        entry = self._pending.get(msg_id)
        if entry is None:
            self._stats["responses_unmatched"] += 1
            self.session_log.error(
                f"No matching {kind.value} request found for response with msgId: {msg_id}"
            )
            return

        if entry.kind is not kind:
            self._stats["responses_unmatched"] += 1
            self.session_log.error(
                f"{kind.value.capitalize()} response for {entry.kind.value} request with msgId: {msg_id}"
            )
            return

        self._pending.resolve(msg_id, response)
        self._stats["responses_matched"] += 1
        self.logger.debug(
            f"Pending request found for {kind.value} response with msgId: {msg_id} "
            f"({now - entry.submitted_at:.3f}s)"
        )

    def _response_kind(self, response: Dict[str, Any]) -> Optional[RequestKind]:
        for kind in RequestKind:
            if kind.response_field is not None and kind.response_field in response:
                return kind
        return None

    def _get_msg_id(self, response: Dict[str, Any]) -> Optional[str]:
        """Return the reply key if it is a key issued by this client"""
        reply = response.get("reply")
        if not isinstance(reply, str) or not reply.startswith(self.id_tag):
            return None
        return reply
