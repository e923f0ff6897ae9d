"""
Unit tests for BlessBluetoothDriver

Tests the bless-backed transport without requiring actual BLE hardware by
patching BlessServer with a mock. The mock server's is_connected() follows
bless: it reports subscriptions only, so it stays False for a central that
just writes.
"""

import asyncio
import pytest
import sys
import os
from unittest.mock import Mock, AsyncMock, patch

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from badgetext.bless_bluetooth_driver import BLESS_AVAILABLE, UNKNOWN_CENTRAL, BlessBluetoothDriver
from badgetext.bluetooth_driver import DriverState, ListenKind, TransportError
from badgetext.config import CHAR_UUID, SERVICE_UUID

CENTRAL_A = "AA:BB:CC:DD:EE:FF"
CENTRAL_B = "11:22:33:44:55:66"


def characteristic(uuid=CHAR_UUID):
    char = Mock()
    char.uuid = uuid
    char.value = None
    return char


@pytest.mark.skipif(not BLESS_AVAILABLE, reason="bless library not available")
class TestBlessBluetoothDriver:
    """Test suite for BlessBluetoothDriver"""

    @pytest.fixture
    def driver(self):
        return BlessBluetoothDriver(monitor_connections=False)

    async def start(self, driver, server):
        with patch('badgetext.bless_bluetooth_driver.BlessServer', return_value=server) as cls:
            await driver.start_advertising("badge2-text", SERVICE_UUID, CHAR_UUID)
        return cls

    def write(self, driver, data):
        driver._handle_write(characteristic(), bytearray(data))

    def test_initial_state(self, driver):
        assert driver.state is DriverState.IDLE
        assert driver.server is None

    @pytest.mark.asyncio
    async def test_start_advertising_registers_service(self, driver, mock_bless_server):
        cls = await self.start(driver, mock_bless_server)

        assert cls.call_args.kwargs['name'] == "badge2-text"
        mock_bless_server.add_new_service.assert_awaited_once_with(SERVICE_UUID)
        args = mock_bless_server.add_new_characteristic.await_args.args
        assert args[0] == SERVICE_UUID
        assert args[1] == CHAR_UUID
        mock_bless_server.start.assert_awaited_once()
        assert driver.state is DriverState.ADVERTISING

    @pytest.mark.asyncio
    async def test_start_failure_raises_transport_error(self, driver, mock_bless_server):
        mock_bless_server.start = AsyncMock(side_effect=OSError("no adapter"))

        with pytest.raises(TransportError):
            await self.start(driver, mock_bless_server)

        assert driver.server is None

    @pytest.mark.asyncio
    async def test_restart_reuses_server(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        await self.start(driver, mock_bless_server)

        mock_bless_server.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wait_without_server(self, driver):
        with pytest.raises(TransportError):
            await driver.wait_for_connection()

    # ------------------------------------------------------------------
    # Connection detection

    @pytest.mark.asyncio
    async def test_first_write_counts_as_connection(self, driver, mock_bless_server):
        """A write-only central never subscribes, so its write is the connection"""
        payload = b'{"password":"A7K2","text":"Hi"}'
        await self.start(driver, mock_bless_server)

        self.write(driver, payload)
        address = await asyncio.wait_for(driver.wait_for_connection(), 1.0)

        assert address == UNKNOWN_CENTRAL
        assert driver.state is DriverState.CONNECTED
        result = await driver.listen(0.05)
        assert result.kind is ListenKind.FRAGMENT
        assert result.data == payload

    @pytest.mark.asyncio
    async def test_monitor_event_connects(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)

        driver._handle_central_connected(CENTRAL_A)

        assert await asyncio.wait_for(driver.wait_for_connection(), 1.0) == CENTRAL_A
        assert driver.central == CENTRAL_A

    @pytest.mark.asyncio
    async def test_write_before_wait_returns_is_kept(self, driver, mock_bless_server):
        """Fragments landing before the connection is picked up belong to that central"""
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        self.write(driver, b'{"pass')
        self.write(driver, b'word"')

        await driver.wait_for_connection()
        first = await driver.listen(0.05)
        second = await driver.listen(0.05)

        assert first.kind is ListenKind.FRAGMENT and first.data == b'{"pass'
        assert second.kind is ListenKind.FRAGMENT and second.data == b'word"'

    @pytest.mark.asyncio
    async def test_write_then_monitor_event_single_connection(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)

        self.write(driver, b'{"pass')
        driver._handle_central_connected(CENTRAL_A)

        await driver.wait_for_connection()
        assert driver.central == CENTRAL_A
        assert (await driver.listen(0.05)).data == b'{"pass'
        assert (await driver.listen(0.01)).kind is ListenKind.TIMEOUT

    # ------------------------------------------------------------------
    # Listening

    @pytest.mark.asyncio
    async def test_write_does_not_store_value(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        char = characteristic()

        driver._handle_write(char, bytearray(b'{"password":"A7K2","text":"Hi"}'))

        assert char.value is None

    @pytest.mark.asyncio
    async def test_write_to_other_characteristic_ignored(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        await driver.wait_for_connection()

        driver._handle_write(characteristic("0000aaaa-0000-1000-8000-00805f9b34fb"), b'x')

        result = await driver.listen(0.01)
        assert result.kind is ListenKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_timeout_while_connected(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        await driver.wait_for_connection()

        result = await driver.listen(0.01)

        assert result.kind is ListenKind.TIMEOUT
        assert driver.state is DriverState.CONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_event_ends_listen(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        await driver.wait_for_connection()

        driver._handle_central_disconnected(CENTRAL_A)
        result = await driver.listen(1.0)

        assert result.kind is ListenKind.DISCONNECTED
        assert driver.state is DriverState.ADVERTISING
        assert driver.central is None

    @pytest.mark.asyncio
    async def test_disconnect_of_other_device_ignored(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        await driver.wait_for_connection()

        driver._handle_central_disconnected(CENTRAL_B)

        assert (await driver.listen(0.01)).kind is ListenKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_reconnect_between_listens_reports_disconnect(self, driver, mock_bless_server):
        """Central A leaves mid-payload and B connects before the next listen"""
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        await driver.wait_for_connection()

        self.write(driver, b'{"password":"A7')
        driver._handle_central_disconnected(CENTRAL_A)
        driver._handle_central_connected(CENTRAL_B)
        self.write(driver, b'{"password":"A7K2","text":"B"}')

        assert (await driver.listen(0.05)).data == b'{"password":"A7'
        assert (await driver.listen(0.05)).kind is ListenKind.DISCONNECTED
        assert await driver.wait_for_connection() == CENTRAL_B
        result = await driver.listen(0.05)
        assert result.data == b'{"password":"A7K2","text":"B"}'

    @pytest.mark.asyncio
    async def test_queued_connections_replayed_in_order(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        driver._handle_central_disconnected(CENTRAL_A)
        driver._handle_central_connected(CENTRAL_B)

        assert await driver.wait_for_connection() == CENTRAL_A
        assert (await driver.listen(0.05)).kind is ListenKind.DISCONNECTED
        assert await driver.wait_for_connection() == CENTRAL_B

    @pytest.mark.asyncio
    async def test_listen_before_start_reports_error(self, driver):
        result = await driver.listen(0.01)

        assert result.kind is ListenKind.ERROR
        assert isinstance(result.error, TransportError)

    # ------------------------------------------------------------------
    # Idle sessions without a connection monitor

    @pytest.mark.asyncio
    async def test_idle_session_ended_without_monitor(self, mock_bless_server):
        driver = BlessBluetoothDriver(idle_disconnect_timeout=0.05, monitor_connections=False)
        await self.start(driver, mock_bless_server)
        self.write(driver, b'{"pass')
        await driver.wait_for_connection()
        await driver.listen(0.01)

        await asyncio.sleep(0.06)
        result = await driver.listen(0.01)

        assert result.kind is ListenKind.DISCONNECTED
        assert driver.central is None

        self.write(driver, b'{"password":"A7K2","text":"Hi"}')
        assert await asyncio.wait_for(driver.wait_for_connection(), 1.0) == UNKNOWN_CENTRAL

    @pytest.mark.asyncio
    async def test_idle_timeout_disabled(self, mock_bless_server):
        driver = BlessBluetoothDriver(idle_disconnect_timeout=0, monitor_connections=False)
        await self.start(driver, mock_bless_server)
        driver._handle_central_connected(CENTRAL_A)
        await driver.wait_for_connection()

        await asyncio.sleep(0.02)

        assert (await driver.listen(0.01)).kind is ListenKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_idle_timeout_not_applied_with_monitor(self, mock_bless_server):
        driver = BlessBluetoothDriver(idle_disconnect_timeout=0.01, monitor_connections=False)
        await self.start(driver, mock_bless_server)
        driver.monitor = Mock()
        driver._handle_central_connected(CENTRAL_A)
        await driver.wait_for_connection()

        await asyncio.sleep(0.02)

        assert (await driver.listen(0.01)).kind is ListenKind.TIMEOUT

    # ------------------------------------------------------------------
    # Connection monitor lifecycle

    @pytest.mark.asyncio
    async def test_monitor_started_on_linux(self, mock_bless_server):
        driver = BlessBluetoothDriver()
        monitor = Mock()
        monitor.start = AsyncMock()

        with patch('badgetext.bless_bluetooth_driver.BLUEZ_MONITOR_AVAILABLE', True), \
                patch('badgetext.bless_bluetooth_driver.BlueZConnectionMonitor', return_value=monitor) as cls, \
                patch.object(sys, 'platform', 'linux'):
            await self.start(driver, mock_bless_server)

        cls.assert_called_once_with(driver._handle_central_connected, driver._handle_central_disconnected)
        monitor.start.assert_awaited_once()
        assert driver.monitor is monitor

        await driver.stop()

        monitor.stop.assert_called_once()
        assert driver.monitor is None

    @pytest.mark.asyncio
    async def test_monitor_failure_falls_back_to_writes(self, mock_bless_server):
        driver = BlessBluetoothDriver()
        monitor = Mock()
        monitor.start = AsyncMock(side_effect=RuntimeError("no system bus"))

        with patch('badgetext.bless_bluetooth_driver.BLUEZ_MONITOR_AVAILABLE', True), \
                patch('badgetext.bless_bluetooth_driver.BlueZConnectionMonitor', return_value=monitor), \
                patch.object(sys, 'platform', 'linux'):
            await self.start(driver, mock_bless_server)

        assert driver.monitor is None
        assert driver.state is DriverState.ADVERTISING

        self.write(driver, b'{')
        assert await asyncio.wait_for(driver.wait_for_connection(), 1.0) == UNKNOWN_CENTRAL

    @pytest.mark.asyncio
    async def test_monitor_not_started_when_disabled(self, driver, mock_bless_server):
        with patch('badgetext.bless_bluetooth_driver.BlueZConnectionMonitor') as cls:
            await self.start(driver, mock_bless_server)

        cls.assert_not_called()

    # ------------------------------------------------------------------
    # Reads and shutdown

    @pytest.mark.asyncio
    async def test_read_served_from_callback(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)
        driver.on_read = lambda: "Hi".encode("utf-8")
        char = characteristic()

        value = driver._handle_read(char)

        assert value == bytearray(b"Hi")
        assert char.value == bytearray(b"Hi")

    @pytest.mark.asyncio
    async def test_stop(self, driver, mock_bless_server):
        await self.start(driver, mock_bless_server)

        await driver.stop()

        mock_bless_server.stop.assert_awaited_once()
        assert driver.server is None
        assert driver.state is DriverState.IDLE

    @pytest.mark.asyncio
    async def test_stop_tolerates_errors(self, driver, mock_bless_server):
        mock_bless_server.stop = AsyncMock(side_effect=RuntimeError("already stopped"))
        await self.start(driver, mock_bless_server)

        await driver.stop()

        assert driver.server is None
