#!/usr/bin/env python3
"""
Badge text peripheral

Runs the badge text service on this machine's Bluetooth adapter using the
bless GATT server. The device password and QR URL are printed to the log,
which stands in for the badge display.

Usage:
    python badge_text_server.py [config.json] [--verbose]

Config keys (all optional): device_name, listen_timeout, store_path,
default_text, qr_base_url, wrap_width, retry_delay, idle_disconnect_timeout,
enable_pairing_agent.
"""

import asyncio
import logging
import os
import signal
import sys

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from badgetext.BLETextService import BLETextService
from badgetext.bless_bluetooth_driver import BLESS_AVAILABLE, BlessBluetoothDriver
from badgetext.config import ConfigError, load_config
from badgetext.text_store import TextStore

logger = logging.getLogger("badge_text_server")


async def serve(config):
    agent = None
    if config.enable_pairing_agent:
        try:
            from badgetext.BLEAgent import register_agent
            agent = register_agent()
        except ImportError:
            logger.warning("dbus-python not installed, pairing agent disabled")
        except Exception as e:
            logger.warning(f"Pairing agent registration failed (continuing without): {e}")

    service = BLETextService(
        driver=BlessBluetoothDriver(idle_disconnect_timeout=config.idle_disconnect_timeout),
        store=TextStore(config.store_path, config.default_text),
        config=config,
    )

    task = asyncio.ensure_future(service.run())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except NotImplementedError:
            pass  # Windows

    try:
        await task
    except asyncio.CancelledError:
        logger.info("Shutting down")
    finally:
        if agent is not None:
            from badgetext.BLEAgent import unregister_agent
            unregister_agent(agent)


def main():
    args = [a for a in sys.argv[1:] if not a.startswith("-")]
    verbose = "--verbose" in sys.argv or "-v" in sys.argv

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not BLESS_AVAILABLE:
        print("ERROR: bless library not installed")
        print("Install with: pip install bless")
        sys.exit(1)

    try:
        config = load_config(args[0] if args else None)
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
