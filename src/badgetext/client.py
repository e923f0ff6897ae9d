"""
Central-side sender for the badge text service.

Builds the JSON update payload, splits it into ATT-sized writes and sends
them to the badge with bleak. The badge reassembles the writes; no framing
is added here.
"""

import json
import logging
from typing import List

from bleak import BleakClient, BleakScanner

from .config import CHAR_UUID, DEVICE_NAME

logger = logging.getLogger(__name__)

# ATT default MTU (23) minus the 3-byte write header
DEFAULT_FRAGMENT_SIZE = 20


def build_write_payload(password: str, text: str) -> bytes:
    """Encode an update as the two-field JSON object the badge expects."""
    return json.dumps({"password": password, "text": text}, ensure_ascii=False).encode("utf-8")


def split_fragments(data: bytes, size=DEFAULT_FRAGMENT_SIZE) -> List[bytes]:
    """
    Split data into consecutive chunks of at most size bytes.

    Raises:
        TypeError: if data is not bytes
        ValueError: if data is empty or size is not positive
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data).__name__}")
    if not data:
        raise ValueError("cannot fragment empty data")
    if size <= 0:
        raise ValueError(f"fragment size must be positive, got {size}")

    return [bytes(data[i:i + size]) for i in range(0, len(data), size)]


class BadgeTextClient:
    """Finds a badge by name and reads or replaces its text."""

    def __init__(self, device_name=DEVICE_NAME, char_uuid=CHAR_UUID,
                 fragment_size=DEFAULT_FRAGMENT_SIZE, scan_timeout=10.0):
        self.device_name = device_name
        self.char_uuid = char_uuid
        self.fragment_size = fragment_size
        self.scan_timeout = scan_timeout

    async def find_device(self):
        device = await BleakScanner.find_device_by_name(self.device_name, timeout=self.scan_timeout)
        if device is None:
            raise LookupError(f"no device advertising '{self.device_name}' found")
        logger.info(f"{self} found {self.device_name} at {device.address}")
        return device

    async def send_text(self, password: str, text: str) -> int:
        """
        Write an update to the badge.

        Returns:
            Number of fragments written
        """
        fragments = split_fragments(build_write_payload(password, text), self.fragment_size)
        device = await self.find_device()

        async with BleakClient(device) as client:
            for i, fragment in enumerate(fragments):
                await client.write_gatt_char(self.char_uuid, fragment, response=True)
                logger.debug(f"{self} wrote fragment {i + 1}/{len(fragments)} ({len(fragment)} bytes)")

        logger.info(f"{self} sent {len(fragments)} fragment(s)")
        return len(fragments)

    async def read_text(self) -> str:
        device = await self.find_device()
        async with BleakClient(device) as client:
            value = await client.read_gatt_char(self.char_uuid)
        return bytes(value).decode("utf-8")

    def __str__(self):
        return f"BadgeTextClient[{self.device_name}]"
