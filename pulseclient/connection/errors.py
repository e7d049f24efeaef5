# Client Errors
# Exception taxonomy for the connection layer

"""
Errors Module

LoginError           socket failure or login never acknowledged
ProtocolViolation    login ack with an unexpected pending table
RequestError         base for per-request failures
  NotReady           no login active and no reset in progress
  RequestTimeout     removed by the timeout sweep
  ConnectionReset    removed by a reset (or the write failed)
DecodeError          one inbound record could not be parsed (never raised
                     to application callers)
"""

from typing import Optional


class ClientError(Exception):
    """Base class for all pulseclient errors."""

    code = "client_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LoginError(ClientError):
    code = "login_failed"


class ProtocolViolation(LoginError):
    code = "protocol_violation"


class RequestError(ClientError):
    """Failure of one application request, with enough context to retry it."""

    code = "request_failed"

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        submitted_at: Optional[float] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.submitted_at = submitted_at

    def __str__(self) -> str:
        parts = [self.message]
        if self.kind is not None:
            parts.append(f"request type: {self.kind}")
        if self.submitted_at is not None:
            parts.append(f"request time: {self.submitted_at:.3f}")
        return " - ".join(parts)


class NotReady(RequestError):
    code = "not_ready"


class RequestTimeout(RequestError):
    code = "timeout"


class ConnectionReset(RequestError):
    code = "connection_reset"


class DecodeError(ClientError):
    code = "decode_error"
