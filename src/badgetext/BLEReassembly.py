"""
Write reassembly for the badge text characteristic.

A central may split one logical JSON write across several ATT writes. There
is no framing header; a payload is complete when the accumulated bytes parse
as JSON. The buffer is bounded: crossing the limit discards everything and
starts over.

Malformed input is never rejected early. It simply stays Incomplete until it
either parses or overflows.
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

MAX_BUFFER_SIZE = 512


class OutcomeKind(Enum):
    INCOMPLETE = "incomplete"
    READY = "ready"
    OVERFLOW = "overflow"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    data: bytes = b""

    @property
    def is_ready(self) -> bool:
        return self.kind is OutcomeKind.READY


INCOMPLETE = Outcome(OutcomeKind.INCOMPLETE)
OVERFLOW = Outcome(OutcomeKind.OVERFLOW)


class ReassemblyBuffer:
    """
    Accumulates write fragments until they form a complete JSON document.

    The caller owns clearing: after a READY outcome the bytes stay buffered
    until clear() is called.
    """

    def __init__(self, max_size=MAX_BUFFER_SIZE):
        """
        Args:
            max_size: Largest reassembled payload accepted, in bytes
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")

        self.max_size = max_size
        self._buffer = bytearray()
        self.started_at = None

        # Statistics
        self.fragments_received = 0
        self.bytes_received = 0
        self.payloads_completed = 0
        self.overflows = 0
        self.resets = 0

    def __len__(self):
        return len(self._buffer)

    @property
    def contents(self) -> bytes:
        return bytes(self._buffer)

    def append(self, fragment: bytes) -> Outcome:
        """
        Append a fragment and report whether a full payload is available.

        Args:
            fragment: Raw bytes from one write event

        Returns:
            INCOMPLETE, OVERFLOW, or a READY outcome carrying the buffer

        Raises:
            TypeError: if fragment is not bytes-like
        """
        if not isinstance(fragment, (bytes, bytearray, memoryview)):
            raise TypeError(f"fragment must be bytes, got {type(fragment).__name__}")

        if not self._buffer:
            self.started_at = time.time()

        self._buffer.extend(fragment)
        self.fragments_received += 1
        self.bytes_received += len(fragment)

        if len(self._buffer) > self.max_size:
            logger.debug(f"reassembly overflow at {len(self._buffer)} bytes (limit {self.max_size})")
            self.overflows += 1
            self._reset()
            return OVERFLOW

        if not self._parses():
            return INCOMPLETE

        self.payloads_completed += 1
        return Outcome(OutcomeKind.READY, bytes(self._buffer))

    def clear(self):
        """Drop buffered bytes after a payload was consumed."""
        self._buffer.clear()
        self.started_at = None

    def discard(self):
        """Drop buffered bytes because the session ended."""
        if self._buffer:
            logger.debug(f"discarding {len(self._buffer)} buffered bytes")
            self.resets += 1
        self._reset()

    def get_statistics(self):
        """
        Get reassembly statistics.

        Returns:
            dict with counters, the current buffer length and how long the
            buffered bytes have been waiting for completion
        """
        pending = time.time() - self.started_at if self.started_at is not None else 0.0
        return {
            "fragments_received": self.fragments_received,
            "bytes_received": self.bytes_received,
            "payloads_completed": self.payloads_completed,
            "overflows": self.overflows,
            "resets": self.resets,
            "buffered_bytes": len(self._buffer),
            "pending_seconds": pending,
        }

    def _reset(self):
        self._buffer.clear()
        self.started_at = None

    def _parses(self):
        # A fragment boundary can split a multi-byte character, so a decode
        # failure counts as not-yet-complete.
        try:
            json.loads(self._buffer.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return False
        return True
