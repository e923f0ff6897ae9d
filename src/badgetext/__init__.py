"""
badgetext - password-gated text updates for a BLE name badge.
"""

from .BLEReassembly import MAX_BUFFER_SIZE, Outcome, OutcomeKind, ReassemblyBuffer
from .BLETextService import BLETextService, PhaseEvent, transition
from .BLEWriteValidator import Decision, DecisionKind, validate
from .bluetooth_driver import BLEDriverInterface, DriverState, ListenKind, ListenResult, TransportError
from .config import CHAR_UUID, DEVICE_NAME, SERVICE_UUID, BadgeTextConfig, ConfigError, load_config
from .device_password import generate_password, qr_url
from .display import DisplaySink, LoggingDisplay, wrap_text
from .status import ConnectionPhase, StatusEvent, project_status
from .text_store import DEFAULT_TEXT, TextStore

__version__ = "0.1.0"
