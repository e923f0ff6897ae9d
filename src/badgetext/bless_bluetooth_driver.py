"""
bless-backed transport for the badge text service.

Runs a GATT server with one service and one read/write characteristic.

bless has no connection callbacks, and BlessServer.is_connected() only counts
notification subscriptions, which a write-only central never makes. Centrals
are tracked from events instead:

- on Linux, BlueZConnectionMonitor reports Device1.Connected changes
- a write arriving while no central is known counts as that central connecting
- without the monitor, a session idle for idle_disconnect_timeout is ended

Connect, write and disconnect events share one queue, so they are seen in the
order they happened. Writes that land before wait_for_connection() returns
belong to the central that just connected and are kept.

The characteristic never holds written bytes: reads are answered from the
on_read callback, so a write payload (which contains the password) is never
echoed back.
"""

import asyncio
import logging
import sys
import time
from enum import Enum
from typing import Optional

from .bluetooth_driver import BLEDriverInterface, DriverState, ListenResult, TransportError
from .bluez_connection_monitor import BLUEZ_MONITOR_AVAILABLE, BlueZConnectionMonitor

try:
    from bless import BlessServer, GATTAttributePermissions, GATTCharacteristicProperties
    BLESS_AVAILABLE = True
except ImportError:
    BLESS_AVAILABLE = False

logger = logging.getLogger(__name__)

# Address reported when a central is only known from its writes
UNKNOWN_CENTRAL = "central"


class _EventKind(Enum):
    CONNECTED = "connected"
    WRITE = "write"
    DISCONNECTED = "disconnected"


class BlessBluetoothDriver(BLEDriverInterface):
    """Single-characteristic peripheral on top of bless.BlessServer."""

    def __init__(self, idle_disconnect_timeout=30.0, monitor_connections=True):
        """
        Args:
            idle_disconnect_timeout: Seconds without writes after which a
                session is ended when no connection monitor is running
                (0 disables)
            monitor_connections: Watch BlueZ for connect/disconnect events
                on Linux
        """
        self.idle_disconnect_timeout = idle_disconnect_timeout
        self.monitor_connections = monitor_connections

        self.server = None
        self.monitor = None
        self.service_uuid: Optional[str] = None
        self.char_uuid: Optional[str] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None

        self._state = DriverState.IDLE
        self._queue: Optional[asyncio.Queue] = None
        self._central: Optional[str] = None
        self._last_activity = 0.0

        self.on_read = None

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def central(self) -> Optional[str]:
        return self._central

    async def start_advertising(self, device_name, service_uuid, char_uuid):
        if not BLESS_AVAILABLE:
            raise TransportError("bless library not available (pip install bless)")

        if self.server is not None:
            # GATT server survives disconnects; keep advertising on it
            self._state = DriverState.ADVERTISING
            return

        self.loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._central = None
        self.service_uuid = service_uuid
        self.char_uuid = char_uuid

        try:
            server = BlessServer(name=device_name, loop=self.loop)
            server.read_request_func = self._handle_read
            server.write_request_func = self._handle_write

            await server.add_new_service(service_uuid)
            await server.add_new_characteristic(
                service_uuid,
                char_uuid,
                GATTCharacteristicProperties.read | GATTCharacteristicProperties.write,
                None,
                GATTAttributePermissions.readable | GATTAttributePermissions.writeable,
            )
            await server.start()
        except Exception as e:
            logger.error(f"{self} failed to start GATT server: {type(e).__name__}: {e}")
            raise TransportError(f"cannot advertise: {e}") from e

        self.server = server
        self._state = DriverState.ADVERTISING
        logger.info(f"{self} GATT server started as {device_name}")

        await self._start_monitor()

    async def _start_monitor(self):
        if not self.monitor_connections or not BLUEZ_MONITOR_AVAILABLE:
            return
        if not sys.platform.startswith("linux"):
            return

        monitor = BlueZConnectionMonitor(self._handle_central_connected, self._handle_central_disconnected)
        try:
            await monitor.start()
        except Exception as e:
            logger.warning(f"{self} connection monitor unavailable, using write activity: {e}")
            return
        self.monitor = monitor

    async def wait_for_connection(self):
        if self.server is None or self._queue is None:
            raise TransportError("not advertising")

        while True:
            kind, value = await self._queue.get()
            if kind is _EventKind.CONNECTED:
                self._state = DriverState.CONNECTED
                return value
            # A disconnect for a session that already ended
            logger.debug(f"{self} ignoring {kind.value} event while advertising")

    async def listen(self, timeout):
        if self.server is None or self._queue is None:
            return ListenResult.failed(TransportError("not started"))

        try:
            kind, value = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            if self._idle_expired():
                logger.info(f"{self} no writes for {self.idle_disconnect_timeout}s, ending session")
                self._central = None
                self._state = DriverState.ADVERTISING
                return ListenResult.disconnected()
            return ListenResult.timeout()

        if kind is _EventKind.WRITE:
            return ListenResult.fragment(value)

        self._state = DriverState.ADVERTISING
        return ListenResult.disconnected()

    async def stop(self):
        if self.monitor is not None:
            try:
                self.monitor.stop()
            except Exception as e:
                logger.warning(f"{self} error stopping connection monitor: {e}")
            self.monitor = None

        self._central = None

        if self.server is None:
            self._state = DriverState.IDLE
            return

        try:
            await self.server.stop()
        except Exception as e:
            logger.warning(f"{self} error stopping GATT server: {type(e).__name__}: {e}")
        finally:
            self.server = None
            self._state = DriverState.IDLE
        logger.debug(f"{self} stopped")

    # ------------------------------------------------------------------
    # Connection tracking (event loop thread)

    def _handle_central_connected(self, address):
        if self._central is not None:
            if self._central == UNKNOWN_CENTRAL and address != UNKNOWN_CENTRAL:
                logger.debug(f"{self} central identified as {address}")
                self._central = address
            elif self._central != address:
                logger.warning(f"{self} {address} connected while {self._central} is active")
            return

        self._central = address
        self._last_activity = time.monotonic()
        self._queue.put_nowait((_EventKind.CONNECTED, address))

    def _handle_central_disconnected(self, address):
        if self._central is None:
            return
        if self._central not in (address, UNKNOWN_CENTRAL):
            logger.debug(f"{self} ignoring disconnect of {address}")
            return

        self._central = None
        self._queue.put_nowait((_EventKind.DISCONNECTED, address))

    def _on_write(self, data):
        if self._central is None:
            self._handle_central_connected(UNKNOWN_CENTRAL)
        self._last_activity = time.monotonic()
        self._queue.put_nowait((_EventKind.WRITE, data))

    def _idle_expired(self):
        if self.monitor is not None or not self.idle_disconnect_timeout:
            return False
        return time.monotonic() - self._last_activity >= self.idle_disconnect_timeout

    # ------------------------------------------------------------------
    # bless callbacks

    def _handle_read(self, characteristic, **kwargs):
        value = bytearray(self.read_value())
        characteristic.value = value
        return value

    def _handle_write(self, characteristic, value, **kwargs):
        if str(characteristic.uuid).lower() != str(self.char_uuid).lower():
            logger.debug(f"{self} ignoring write to {characteristic.uuid}")
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self.loop:
            self._on_write(bytes(value))
        else:
            # Backend thread
            self.loop.call_soon_threadsafe(self._on_write, bytes(value))

    def __str__(self):
        return "BlessBluetoothDriver"
