"""
BlueZ connection monitor.

bless has no connect or disconnect callbacks, and its is_connected() only
counts notification subscriptions. On Linux the real link state is the
Connected property of org.bluez.Device1, so this monitor subscribes to
PropertiesChanged signals on the system bus and reports each change by MAC
address.

Linux only, requires dbus-fast (installed with bleak on Linux).
"""

import logging

try:
    from dbus_fast import BusType, Message, MessageType
    from dbus_fast.aio import MessageBus
    BLUEZ_MONITOR_AVAILABLE = True
except ImportError:
    BLUEZ_MONITOR_AVAILABLE = False

logger = logging.getLogger(__name__)

DEVICE_INTERFACE = "org.bluez.Device1"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

MATCH_RULE = (
    "type='signal',sender='org.bluez',"
    f"interface='{PROPERTIES_INTERFACE}',member='PropertiesChanged',"
    f"arg0='{DEVICE_INTERFACE}'"
)


def device_address(device_path) -> str:
    """/org/bluez/hci0/dev_AA_BB_CC_DD_EE_FF -> AA:BB:CC:DD:EE:FF"""
    path = str(device_path)
    if "dev_" not in path:
        return path
    return path.split("dev_")[-1].replace("_", ":")


class BlueZConnectionMonitor:
    """Reports central connect and disconnect events from BlueZ."""

    def __init__(self, on_connected, on_disconnected):
        """
        Args:
            on_connected: Called with the MAC address of a connected device
            on_disconnected: Called with the MAC address of a disconnected device
        """
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.bus = None

    async def start(self):
        """
        Connect to the system bus and subscribe to Device1 property changes.

        Raises:
            RuntimeError: if dbus-fast is missing or BlueZ rejects the match rule
        """
        if not BLUEZ_MONITOR_AVAILABLE:
            raise RuntimeError("dbus-fast not available")

        bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
        try:
            reply = await bus.call(Message(
                destination="org.freedesktop.DBus",
                path="/org/freedesktop/DBus",
                interface="org.freedesktop.DBus",
                member="AddMatch",
                signature="s",
                body=[MATCH_RULE],
            ))
            if reply.message_type == MessageType.ERROR:
                raise RuntimeError(f"AddMatch failed: {reply.error_name}")
        except Exception:
            bus.disconnect()
            raise

        bus.add_message_handler(self._handle_message)
        self.bus = bus
        logger.info(f"{self} watching {DEVICE_INTERFACE} connections")

    def stop(self):
        if self.bus is None:
            return
        self.bus.remove_message_handler(self._handle_message)
        self.bus.disconnect()
        self.bus = None
        logger.debug(f"{self} stopped")

    def _handle_message(self, message):
        if message.message_type != MessageType.SIGNAL or message.member != "PropertiesChanged":
            return None
        if message.interface != PROPERTIES_INTERFACE or len(message.body) < 2:
            return None

        interface_name, changed_properties = message.body[0], message.body[1]
        self.handle_properties_changed(interface_name, changed_properties, message.path)
        return None

    def handle_properties_changed(self, interface_name, changed_properties, device_path):
        if interface_name != DEVICE_INTERFACE or "Connected" not in changed_properties:
            return
        if "/dev_" not in str(device_path):
            return

        address = device_address(device_path)
        if changed_properties["Connected"].value:
            logger.debug(f"{self} {address} connected")
            self.on_connected(address)
        else:
            logger.debug(f"{self} {address} disconnected")
            self.on_disconnected(address)

    def __str__(self):
        return "BlueZConnectionMonitor"
