"""
pytest configuration for badge text service tests.

Sets up the Python path so tests import from src/ without an installed
package, and provides shared fixtures.
"""

import sys
import os

# Calculate paths relative to this file's location
tests_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(tests_dir)
src_dir = os.path.join(project_root, 'src')

if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

if tests_dir not in sys.path:
    sys.path.insert(0, tests_dir)

import pytest
from unittest.mock import Mock, AsyncMock

from badgetext.config import BadgeTextConfig
from badgetext.display import DisplaySink
from badgetext.text_store import TextStore


# ============================================================================
# Mock BLE Components
# ============================================================================

@pytest.fixture
def mock_bless_server():
    """Create a mock BlessServer for testing GATT server operations."""
    server = AsyncMock()
    server.add_new_service = AsyncMock(return_value=None)
    server.add_new_characteristic = AsyncMock(return_value=None)
    server.start = AsyncMock(return_value=True)
    server.stop = AsyncMock(return_value=True)
    # bless counts notification subscriptions here, never plain writes
    server.is_connected = AsyncMock(return_value=False)
    return server


@pytest.fixture
def mock_driver():
    """Scripted transport driver with no sessions queued."""
    from mock_ble_driver import MockBLEDriver
    return MockBLEDriver()


@pytest.fixture
def mock_display():
    """DisplaySink mock recording every call."""
    return Mock(spec=DisplaySink)


# ============================================================================
# Configuration & Storage
# ============================================================================

@pytest.fixture
def sample_configuration(tmp_path):
    """Sample configuration mapping, as read from a JSON config file."""
    return {
        'device_name': 'badge2-text',
        'listen_timeout': 2.0,
        'max_buffer_size': 512,
        'store_path': str(tmp_path / 'text.json'),
        'default_text': 'The quick brown fox jumps',
        'qr_base_url': 'https://badge2.local/update',
        'wrap_width': 24,
        'retry_delay': 0,
        'enable_pairing_agent': 'no',
    }


@pytest.fixture
def config(sample_configuration):
    return BadgeTextConfig.from_dict(sample_configuration)


@pytest.fixture
def text_store(tmp_path):
    """TextStore backed by a temporary file."""
    return TextStore(tmp_path / 'badge' / 'text.json')


@pytest.fixture
def service(mock_driver, text_store, config, mock_display):
    """BLETextService wired to the mock driver with password A7K2."""
    from badgetext.BLETextService import BLETextService
    return BLETextService(mock_driver, text_store, config=config,
                          display=mock_display, password="A7K2")


# ============================================================================
# Common Test Data
# ============================================================================

@pytest.fixture
def sample_payloads():
    """Sample write payloads for password A7K2."""
    return {
        'valid': b'{"password":"A7K2","text":"Hi"}',
        'wrong_password': b'{"password":"WRONG","text":"Hi"}',
        'lowercase_password': b'{"password":"a7k2","text":"x"}',
        'missing_text': b'{"password":"A7K2"}',
        'unicode': '{"password":"A7K2","text":"Grüße ✓"}'.encode('utf-8'),
        'garbage_600': b'\xde\xad' * 300,
    }
