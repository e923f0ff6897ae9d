"""
Transport adapter contract for the badge text service.

The service core never talks to a BLE stack directly. It drives an object
implementing BLEDriverInterface, which exposes exactly the primitives a
single-characteristic peripheral needs:

- advertise under a fixed device name
- block until one central connects
- wait (bounded) for the next write fragment
- answer reads of the characteristic via the on_read callback

Listening never raises for transport problems; it returns a ListenResult so
the caller can drive a plain polling loop.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class DriverState(Enum):
    IDLE = "idle"
    ADVERTISING = "advertising"
    CONNECTED = "connected"


class TransportError(Exception):
    """Raised when advertising or accepting a connection fails."""


class ListenKind(Enum):
    FRAGMENT = "fragment"
    TIMEOUT = "timeout"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True)
class ListenResult:
    """Outcome of one bounded wait for a write event."""

    kind: ListenKind
    data: bytes = b""
    error: Optional[Exception] = None

    @classmethod
    def fragment(cls, data: bytes) -> "ListenResult":
        return cls(ListenKind.FRAGMENT, data=bytes(data))

    @classmethod
    def timeout(cls) -> "ListenResult":
        return cls(ListenKind.TIMEOUT)

    @classmethod
    def disconnected(cls) -> "ListenResult":
        return cls(ListenKind.DISCONNECTED)

    @classmethod
    def failed(cls, error: Exception) -> "ListenResult":
        return cls(ListenKind.ERROR, error=error)


class BLEDriverInterface(ABC):
    """
    Single-peer peripheral transport.

    Implementations must refuse or ignore a second central while one is
    connected; the service assumes single-peer semantics.

    The on_read callback is assigned by the consumer and returns the bytes
    served for a read of the characteristic.
    """

    on_read: Optional[Callable[[], bytes]] = None

    @property
    @abstractmethod
    def state(self) -> DriverState:
        """Current transport state."""

    @abstractmethod
    async def start_advertising(self, device_name: str, service_uuid: str, char_uuid: str):
        """
        Publish the service and begin advertising.

        Raises:
            TransportError: if the adapter cannot advertise
        """

    @abstractmethod
    async def wait_for_connection(self) -> str:
        """
        Block until a central connects.

        Returns:
            Address (or other identifier) of the connected central

        Raises:
            TransportError: if the adapter fails while waiting
        """

    @abstractmethod
    async def listen(self, timeout: float) -> ListenResult:
        """Wait up to timeout seconds for the next write fragment."""

    @abstractmethod
    async def stop(self):
        """Stop advertising and release the adapter."""

    def read_value(self) -> bytes:
        """Bytes served to a central reading the characteristic."""
        if self.on_read is None:
            return b""
        return self.on_read()
