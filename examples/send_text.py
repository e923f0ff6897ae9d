#!/usr/bin/env python3
"""
Send text to a badge

Usage:
    python send_text.py read
    python send_text.py write <password> <text...>

The password is the 4-character code shown on the badge display.
"""

import asyncio
import logging
import os
import sys

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from badgetext.client import BadgeTextClient


async def read_text(client):
    text = await client.read_text()
    print(f"Badge shows: {text}")


async def write_text(client, password, text):
    count = await client.send_text(password, text)
    print(f"Sent {count} fragment(s)")
    print("Check the badge display: a wrong password is not reported back.")


def show_help():
    print(__doc__)


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if len(sys.argv) < 2:
        show_help()
        sys.exit(1)

    command = sys.argv[1].lower()
    client = BadgeTextClient()

    try:
        if command == "read":
            asyncio.run(read_text(client))
        elif command == "write" and len(sys.argv) >= 4:
            asyncio.run(write_text(client, sys.argv[2], " ".join(sys.argv[3:])))
        elif command == "help":
            show_help()
        else:
            print(f"Unknown command: {command}")
            show_help()
            sys.exit(1)
    except LookupError as e:
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
