"""Status labels shown on the local display."""

from enum import Enum

from .BLEReassembly import Outcome, OutcomeKind
from .BLEWriteValidator import Decision, DecisionKind

READY = "Ready"
STARTING = "Starting..."
ADVERTISING = "Advertising..."
WAITING = "Waiting for conn..."
CONNECTED = "Connected!"
LISTENING = "Listening..."
BUFFERING = "Buffering ({}b)..."
UPDATED = "Updated!"
AUTH_FAILED = "Auth failed"
BAD_FORMAT = "Bad format"
BAD_PAYLOAD = "Bad payload"
OVERFLOW = "Buffer overflow"
DISCONNECTED = "Disconnected"
WRITE_ERROR = "Write error"
BT_ERROR = "BT Error"


class ConnectionPhase(Enum):
    IDLE = "idle"
    ADVERTISING = "advertising"
    CONNECTED = "connected"


class StatusEvent(Enum):
    """Lifecycle events that are not a buffer Outcome or a validator Decision."""

    STARTING = "starting"
    WAITING = "waiting"
    CONNECTED = "connected"
    LISTENING = "listening"
    DISCONNECTED = "disconnected"
    WRITE_ERROR = "write_error"
    BT_ERROR = "bt_error"


_PHASE_LABELS = {
    ConnectionPhase.IDLE: READY,
    ConnectionPhase.ADVERTISING: ADVERTISING,
    ConnectionPhase.CONNECTED: LISTENING,
}

_EVENT_LABELS = {
    StatusEvent.STARTING: STARTING,
    StatusEvent.WAITING: WAITING,
    StatusEvent.CONNECTED: CONNECTED,
    StatusEvent.LISTENING: LISTENING,
    StatusEvent.DISCONNECTED: DISCONNECTED,
    StatusEvent.WRITE_ERROR: WRITE_ERROR,
    StatusEvent.BT_ERROR: BT_ERROR,
}

_DECISION_LABELS = {
    DecisionKind.ACCEPTED: UPDATED,
    DecisionKind.AUTH_FAILED: AUTH_FAILED,
    DecisionKind.BAD_FORMAT: BAD_FORMAT,
    DecisionKind.BAD_PAYLOAD: BAD_PAYLOAD,
}


def project_status(phase, last=None, buffer_length=0) -> str:
    """
    Map the service state to a display label.

    Args:
        phase: Current ConnectionPhase
        last: Most recent StatusEvent, Outcome or Decision (None for phase default)
        buffer_length: Bytes currently buffered, used by the Buffering label

    Returns:
        Human-readable status label
    """
    if isinstance(last, Decision):
        return _DECISION_LABELS[last.kind]

    if isinstance(last, Outcome):
        if last.kind is OutcomeKind.INCOMPLETE:
            return BUFFERING.format(buffer_length)
        if last.kind is OutcomeKind.OVERFLOW:
            return OVERFLOW
        return _PHASE_LABELS[phase]

    if isinstance(last, StatusEvent):
        return _EVENT_LABELS[last]

    return _PHASE_LABELS[phase]
