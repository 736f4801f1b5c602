"""
Message framing over a byte stream.

Inbound messages are either ``Content-Length: <N>\\r\\n\\r\\n`` followed by
exactly N bytes of UTF-8 JSON, or a single line of JSON terminated by
``\\n``. Outbound messages always use the header form.
"""

import json
import logging
from typing import Any, BinaryIO, Dict, Optional

from context_server.core.exceptions import FramingError

logger = logging.getLogger(__name__)

CONTENT_LENGTH_HEADER = b"content-length:"
HEADER_TERMINATOR = b"\r\n\r\n"

# Upper bound on a single body; larger declared lengths are treated as corrupt
MAX_MESSAGE_BYTES = 64 * 1024 * 1024


class MessageReader:
    """Reads framed message bodies from a binary stream."""

    def __init__(self, stream: BinaryIO, max_message_bytes: int = MAX_MESSAGE_BYTES):
        """
        Args:
            stream: Binary input stream (stdin buffer, socket file, BytesIO)
            max_message_bytes: Largest accepted Content-Length
        """
        self.stream = stream
        self.max_message_bytes = max_message_bytes

    def read_message(self) -> Optional[bytes]:
        """
        Read the next message body.

        Blank lines between messages are skipped.

        Returns:
            The raw body bytes, or None at end of stream

        Raises:
            FramingError: On a malformed length header or a truncated body
        """
        while True:
            line = self.stream.readline()
            if not line:
                return None

            stripped = line.strip()
            if not stripped:
                continue

            if stripped[:len(CONTENT_LENGTH_HEADER)].lower() == CONTENT_LENGTH_HEADER:
                length = self._parse_content_length(stripped)
                self._skip_remaining_headers()
                return self._read_body(length)

            # Newline-delimited JSON
            return stripped

    def _parse_content_length(self, header_line: bytes) -> int:
        value = header_line[len(CONTENT_LENGTH_HEADER):].strip()
        try:
            length = int(value)
        except ValueError:
            raise FramingError(
                f"Invalid Content-Length value: {value[:50]!r}",
                "Send 'Content-Length: <bytes>' followed by a blank line",
            )

        if length < 0:
            raise FramingError(f"Negative Content-Length: {length}")
        if length > self.max_message_bytes:
            raise FramingError(
                f"Content-Length {length} exceeds limit of {self.max_message_bytes} bytes"
            )
        return length

    def _skip_remaining_headers(self) -> None:
        """Consume header lines up to and including the blank separator line."""
        while True:
            line = self.stream.readline()
            if not line:
                raise FramingError("End of stream inside message headers")
            if not line.strip():
                return
            logger.debug(f"Ignoring header: {line.strip()[:80]!r}")

    def _read_body(self, length: int) -> bytes:
        chunks = []
        remaining = length
        while remaining > 0:
            chunk = self.stream.read(remaining)
            if not chunk:
                raise FramingError(
                    f"Truncated message body: expected {length} bytes, got {length - remaining}"
                )
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)


def encode_message(payload: Dict[str, Any]) -> bytes:
    """Serialize a JSON-RPC envelope with a Content-Length header."""
    body = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


def write_message(stream: BinaryIO, payload: Dict[str, Any]) -> None:
    """Write one framed message and flush it."""
    stream.write(encode_message(payload))
    stream.flush()
