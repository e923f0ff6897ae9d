"""
BlueZ pairing agent for the badge text service.

Phones connecting to a BlueZ GATT server can trigger pairing even though the
characteristic needs no security. Without a registered agent that pairing
fails and the phone drops the connection. This agent answers every request
with "Just Works" acceptance.

The write password is the only access control on text updates; link-layer
pairing adds nothing to it.

Linux only, requires dbus-python.
"""

import logging
from typing import Optional

import dbus
import dbus.service
from dbus.mainloop.glib import DBusGMainLoop

from .bluez_connection_monitor import device_address

logger = logging.getLogger(__name__)

AGENT_INTERFACE = "org.bluez.Agent1"
AGENT_MANAGER_INTERFACE = "org.bluez.AgentManager1"
AGENT_PATH = "/org/bluez/badgetext_agent"


class BLEAgent(dbus.service.Object):
    """org.bluez.Agent1 implementation that accepts all pairing requests."""

    AGENT_PATH = AGENT_PATH

    def __init__(self, bus, capability="NoInputNoOutput"):
        super().__init__(bus, AGENT_PATH)
        self.capability = capability
        logger.info(f"{self} initialized")

    @dbus.service.method(AGENT_INTERFACE, in_signature="", out_signature="")
    def Release(self):
        logger.debug(f"{self} released by BlueZ")

    @dbus.service.method(AGENT_INTERFACE, in_signature="os", out_signature="")
    def AuthorizeService(self, device, uuid):
        logger.debug(f"{self} authorizing service {uuid} for {device_address(device)}")

    @dbus.service.method(AGENT_INTERFACE, in_signature="o", out_signature="")
    def RequestAuthorization(self, device):
        logger.debug(f"{self} authorizing {device_address(device)}")

    @dbus.service.method(AGENT_INTERFACE, in_signature="ou", out_signature="")
    def RequestConfirmation(self, device, passkey):
        logger.info(f"{self} confirming pairing with {device_address(device)}")

    @dbus.service.method(AGENT_INTERFACE, in_signature="o", out_signature="u")
    def RequestPasskey(self, device):
        logger.debug(f"{self} passkey requested by {device_address(device)}")
        return dbus.UInt32(0)

    @dbus.service.method(AGENT_INTERFACE, in_signature="", out_signature="")
    def Cancel(self):
        logger.warning(f"{self} pairing cancelled")

    def __str__(self):
        return f"BLEAgent[{self.capability}]"


def _agent_manager(bus):
    return dbus.Interface(bus.get_object("org.bluez", "/org/bluez"), AGENT_MANAGER_INTERFACE)


def register_agent(capability="NoInputNoOutput") -> BLEAgent:
    """
    Register the agent as BlueZ's default agent.

    Raises:
        dbus.exceptions.DBusException: if BlueZ rejects the registration
    """
    DBusGMainLoop(set_as_default=True)
    bus = dbus.SystemBus()

    agent = BLEAgent(bus, capability)
    manager = _agent_manager(bus)
    manager.RegisterAgent(AGENT_PATH, capability)
    manager.RequestDefaultAgent(AGENT_PATH)

    logger.info(f"{agent} registered as default agent")
    return agent


def unregister_agent(agent: Optional[BLEAgent] = None):
    try:
        _agent_manager(dbus.SystemBus()).UnregisterAgent(AGENT_PATH)
        logger.info("Pairing agent unregistered")
    except dbus.exceptions.DBusException as e:
        # Not registered, or BlueZ already gone
        logger.debug(f"Agent unregister: {e}")
