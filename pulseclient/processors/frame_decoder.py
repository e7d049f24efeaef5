# Frame Decoder - Line-delimited JSON
# Turns raw socket chunks into parsed protocol messages

"""
Frame Decoder Module

Responsibilities:
- Split incoming byte chunks into newline-delimited records
- Parse each record as a JSON object
- Classify records by their "type" discriminator
- Drop malformed records with a diagnostic, keep going with the rest

Record boundaries:
A trailing record without a terminator is emitted when it already parses as
JSON (servers are not required to end every record with a newline). A
trailing record that does not parse is held back and joined with the start
of the next chunk. If the joined record still fails, the held fragment is
dropped when the new record ends with a terminator or parses on its own;
otherwise the two stay held together as one partial record.
"""

import codecs
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from ..connection.errors import DecodeError
from ..utils.logger import setup_logger


class MessageType(Enum):
    """Server message types"""
    LOGIN = "login"
    HEARTBEAT = "heartbeat"
    MSG = "msg"
    UNKNOWN = "unknown"


@dataclass
class ParsedMessage:
    """One decoded server record"""
    message_type: MessageType
    data: Dict[str, Any]
    raw: str


class FrameDecoder:
    """
    Incremental decoder for the line-delimited JSON stream

    decode() is a generator: records are parsed lazily as the caller
    iterates, and each call consumes exactly one chunk.
    """

    def __init__(self, max_pending_bytes: int = 65536):
        """
        Initialize frame decoder

        Args:
            max_pending_bytes: Upper bound for a held-back partial record
        """
        self.max_pending_bytes = max_pending_bytes
        self.logger = setup_logger("FrameDecoder", "INFO")
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._parse_count = 0
        self._error_count = 0

    def decode(self, chunk: bytes) -> Iterator[ParsedMessage]:
        """
        Decode one chunk of bytes

        Args:
            chunk: Raw bytes read from the socket

        Yields:
            ParsedMessage for every record that parsed
        """
        text = self._decoder.decode(chunk)
        carried = self._pending
        self._pending = ""

        records = text.split("\n")
        tail = records.pop()

        for record in records:
            if carried:
                message = self._parse_joined(carried, record)
                carried = ""
            else:
                message = self._parse_logged(record)
            if message is not None:
                yield message

        message = None
        if carried and tail.strip():
            message = self._try_parse(carried + tail)
            if message is None:
                # A tail that stands on its own means the fragment was garbage
                message = self._try_parse(tail)
                if message is not None:
                    self._drop_fragment(carried)
                else:
                    tail = carried + tail
        elif carried:
            tail = carried
        elif tail.strip():
            message = self._try_parse(tail)

        if message is not None:
            yield message
        elif tail.strip():
            self._hold(tail)

    def reset(self):
        """Forget any held-back partial record (new connection)"""
        if self._pending:
            self.logger.debug(f"Discarding partial record: {self._pending[:100]}")
        self._pending = ""
        self._decoder.reset()

    def has_pending(self) -> bool:
        """True while a partial record is held back"""
        return bool(self._pending)

    def _parse_joined(self, carried: str, record: str) -> Optional[ParsedMessage]:
        """Parse a held-back fragment joined with the next record"""
        message = self._try_parse(carried + record)
        if message is not None:
            return message
        self._drop_fragment(carried)
        return self._parse_logged(record)

    def _drop_fragment(self, fragment: str):
        self._error_count += 1
        self.logger.error(f"Invalid non-JSON message format: {fragment[:100]}")

    def _hold(self, tail: str):
        """Keep an unparsed tail for the next chunk, unless it is oversized"""
        if len(tail.encode("utf-8")) > self.max_pending_bytes:
            self._error_count += 1
            self.logger.error(f"Dropping oversized partial record ({len(tail)} chars)")
        else:
            self._pending = tail

    def _try_parse(self, record: str) -> Optional[ParsedMessage]:
        try:
            return self._parse_record(record)
        except DecodeError:
            return None

    def _parse_logged(self, record: str) -> Optional[ParsedMessage]:
        """Parse a record, logging and dropping it on failure"""
        if not record.strip():
            return None
        try:
            return self._parse_record(record)
        except DecodeError as e:
            self._error_count += 1
            self.logger.error(f"{e}: {record[:100]}")
            return None

    def _parse_record(self, record: str) -> ParsedMessage:
        """
        Parse a single record

        Raises:
            DecodeError: record is not a JSON object
        """
        record = record.strip()
        try:
            data = json.loads(record)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid non-JSON message format ({e.msg})") from e

        if not isinstance(data, dict):
            raise DecodeError("Message must be a JSON object")

        self._parse_count += 1
        return ParsedMessage(
            message_type=self._determine_message_type(data.get("type")),
            data=data,
            raw=record
        )

    def _determine_message_type(self, message_type: Any) -> MessageType:
        """Determine message type from the type discriminator"""
        if not isinstance(message_type, str):
            return MessageType.UNKNOWN
        try:
            return MessageType(message_type)
        except ValueError:
            return MessageType.UNKNOWN

    def get_stats(self) -> dict:
        """Get decoder statistics"""
        total = self._parse_count + self._error_count
        return {
            "total_parsed": self._parse_count,
            "total_errors": self._error_count,
            "success_rate": self._parse_count / max(total, 1) * 100
        }
