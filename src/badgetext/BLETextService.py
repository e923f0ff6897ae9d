# MIT License
#
# Copyright (c) 2025 badgetext contributors
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""
BLETextService - password-gated text updates over Bluetooth Low Energy

The service advertises one GATT service with one read/write characteristic.
A central writes a JSON object {"password": ..., "text": ...}, possibly split
across several writes; once the fragments reassemble into valid JSON and the
password matches, the displayed text is replaced and persisted.

Lifecycle:
- idle -> advertising: start of every cycle
- advertising -> connected: a central connects
- advertising -> idle: transport error, retried after a delay
- connected -> connected: fragment received or listen timeout
- connected -> idle: central disconnects, listen error, or shutdown

Rejections (bad JSON, wrong shape, wrong password, overflow) never
disconnect the central. They only change the local status label.
"""

import asyncio
import logging
import time
from enum import Enum

from .BLEReassembly import OutcomeKind, ReassemblyBuffer
from .BLEWriteValidator import DecisionKind, validate
from .bluetooth_driver import ListenKind, TransportError
from .config import BadgeTextConfig
from .device_password import generate_password, qr_url
from .display import LoggingDisplay, wrap_text
from .status import ConnectionPhase, StatusEvent, project_status

logger = logging.getLogger(__name__)


class PhaseEvent(Enum):
    START = "start"
    PEER_CONNECTED = "peer_connected"
    TRANSPORT_ERROR = "transport_error"
    FRAGMENT = "fragment"
    TIMEOUT = "timeout"
    DISCONNECTED = "disconnected"
    STOP = "stop"


class InvalidTransition(ValueError):
    pass


_TRANSITIONS = {
    (ConnectionPhase.IDLE, PhaseEvent.START): ConnectionPhase.ADVERTISING,
    (ConnectionPhase.IDLE, PhaseEvent.STOP): ConnectionPhase.IDLE,
    (ConnectionPhase.ADVERTISING, PhaseEvent.PEER_CONNECTED): ConnectionPhase.CONNECTED,
    (ConnectionPhase.ADVERTISING, PhaseEvent.TRANSPORT_ERROR): ConnectionPhase.IDLE,
    (ConnectionPhase.ADVERTISING, PhaseEvent.STOP): ConnectionPhase.IDLE,
    (ConnectionPhase.CONNECTED, PhaseEvent.FRAGMENT): ConnectionPhase.CONNECTED,
    (ConnectionPhase.CONNECTED, PhaseEvent.TIMEOUT): ConnectionPhase.CONNECTED,
    (ConnectionPhase.CONNECTED, PhaseEvent.DISCONNECTED): ConnectionPhase.IDLE,
    (ConnectionPhase.CONNECTED, PhaseEvent.TRANSPORT_ERROR): ConnectionPhase.IDLE,
    (ConnectionPhase.CONNECTED, PhaseEvent.STOP): ConnectionPhase.IDLE,
}


def transition(phase, event):
    """
    Next phase for an event.

    Raises:
        InvalidTransition: if the event is not valid in the given phase
    """
    try:
        return _TRANSITIONS[(phase, event)]
    except KeyError:
        raise InvalidTransition(f"{event.value} not valid in phase {phase.value}") from None


class Session:
    """State for one connected central, from accept to disconnect."""

    def __init__(self, address, max_buffer_size):
        self.address = address
        self.buffer = ReassemblyBuffer(max_size=max_buffer_size)
        self.connected_at = time.time()
        self.deadline = None
        self.updates_accepted = 0

    def begin_listen(self, timeout):
        self.deadline = time.monotonic() + timeout
        return timeout

    def get_statistics(self):
        """
        Get session statistics.

        Returns:
            dict with connection age, accepted updates, time left in the
            current listen and the reassembly counters
        """
        remaining = None
        if self.deadline is not None:
            remaining = max(0.0, self.deadline - time.monotonic())

        stats = {
            "address": self.address,
            "connected_seconds": time.time() - self.connected_at,
            "updates_accepted": self.updates_accepted,
            "listen_remaining": remaining,
        }
        stats.update(self.buffer.get_statistics())
        return stats

    def close(self):
        self.buffer.discard()

    def __repr__(self):
        return f"<Session {self.address} buffered={len(self.buffer)}>"


class BLETextService:
    """
    Connection state machine driving a single-peer BLE transport.

    One flow of control runs the whole service; the only suspension points
    are waiting for a central and the bounded wait for the next write.
    """

    def __init__(self, driver, store, config=None, display=None, password=None):
        """
        Args:
            driver: BLEDriverInterface implementation
            store: TextStore used to load and persist the displayed text
            config: BadgeTextConfig (defaults if None)
            display: DisplaySink (LoggingDisplay if None)
            password: Device password; generated if None
        """
        self.config = config or BadgeTextConfig()
        self.driver = driver
        self.store = store
        self.display = display or LoggingDisplay(self.config.device_name)

        self.password = password or generate_password()

        self.phase = ConnectionPhase.IDLE
        self.session = None
        self.last_event = None
        self._stopping = False

        self.displayed_text = self.store.load()

        self.driver.on_read = self.read_displayed_text

        logger.info(f"{self} initialized, service {self.config.service_uuid}")

        self.display.show_password(self.password, qr_url(self.config.qr_base_url, self.password))
        self.display.show_text(wrap_text(self.displayed_text, self.config.wrap_width))
        self._publish_status()

    # ------------------------------------------------------------------
    # State

    @property
    def status(self):
        buffered = len(self.session.buffer) if self.session else 0
        return project_status(self.phase, self.last_event, buffered)

    def read_displayed_text(self) -> bytes:
        return self.displayed_text.encode("utf-8")

    def _apply(self, event):
        previous = self.phase
        self.phase = transition(self.phase, event)
        if previous is not self.phase:
            logger.debug(f"{self} {previous.value} -> {self.phase.value}")

    def _set_status(self, last):
        self.last_event = last
        self._publish_status()

    def _publish_status(self):
        self.display.show_status(self.status)

    def get_statistics(self):
        """Statistics for the current session, or None while no central is connected."""
        return self.session.get_statistics() if self.session else None

    def _end_session(self, event):
        if self.session is not None:
            stats = self.session.get_statistics()
            logger.info(
                f"{self} session with {stats['address']} ended after {stats['connected_seconds']:.1f}s, "
                f"{stats['updates_accepted']} update(s) accepted"
            )
            self.session.close()
            self.session = None
        self._apply(event)

    # ------------------------------------------------------------------
    # Write handling

    def handle_fragment(self, fragment):
        """
        Feed one write fragment into the current session.

        Returns:
            Decision if a complete payload was validated, otherwise None
        """
        if self.session is None:
            raise RuntimeError(f"{self} fragment received without a session")

        self._apply(PhaseEvent.FRAGMENT)
        buffer = self.session.buffer
        logger.debug(f"{self} fragment of {len(fragment)} bytes from {self.session.address}")

        outcome = buffer.append(fragment)

        if outcome.kind is OutcomeKind.OVERFLOW:
            logger.warning(f"{self} write exceeded {buffer.max_size} bytes, buffer reset")
            self._set_status(outcome)
            return None

        if outcome.kind is OutcomeKind.INCOMPLETE:
            self._set_status(outcome)
            return None

        decision = validate(outcome.data, self.password)
        buffer.clear()

        if decision.kind is DecisionKind.ACCEPTED:
            self._commit(decision)
        else:
            # Central gets no reply and stays connected
            logger.warning(f"{self} rejected write from {self.session.address}: {decision.kind.value}")
            self._set_status(decision)

        return decision

    def _commit(self, decision):
        text = decision.text
        self.displayed_text = text
        self.session.updates_accepted += 1
        self.display.show_text(wrap_text(text, self.config.wrap_width))
        logger.info(f"{self} display text updated ({len(text)} characters)")

        try:
            self.store.save(text)
        except OSError as e:
            logger.error(f"{self} failed to persist text: {type(e).__name__}: {e}")
            self._set_status(StatusEvent.WRITE_ERROR)
            return

        self._set_status(decision)

    # ------------------------------------------------------------------
    # Orchestration

    async def run_cycle(self):
        """
        Run one advertise/connect/listen cycle.

        Returns:
            True if the cycle ended normally, False after a transport error
        """
        self._apply(PhaseEvent.START)
        self._set_status(StatusEvent.STARTING)

        try:
            await self.driver.start_advertising(
                self.config.device_name, self.config.service_uuid, self.config.char_uuid
            )
            logger.info(f"{self} advertising as {self.config.device_name}")
            self._set_status(None)
            self.display.refresh()
            self._set_status(StatusEvent.WAITING)
            # Shown for the whole unbounded wait
            self.display.refresh()
            address = await self.driver.wait_for_connection()
        except TransportError as e:
            logger.error(f"{self} transport error while advertising: {e}")
            self._apply(PhaseEvent.TRANSPORT_ERROR)
            self._set_status(StatusEvent.BT_ERROR)
            return False

        self._apply(PhaseEvent.PEER_CONNECTED)
        self.session = Session(address, self.config.max_buffer_size)
        logger.info(f"{self} central {address} connected")
        self._set_status(StatusEvent.CONNECTED)

        while not self._stopping:
            result = await self.driver.listen(self.session.begin_listen(self.config.listen_timeout))

            if result.kind is ListenKind.FRAGMENT:
                self.handle_fragment(result.data)

            elif result.kind is ListenKind.TIMEOUT:
                self._apply(PhaseEvent.TIMEOUT)
                if self.last_event is StatusEvent.CONNECTED:
                    self._set_status(StatusEvent.LISTENING)

            elif result.kind is ListenKind.DISCONNECTED:
                logger.info(f"{self} central {self.session.address} disconnected")
                self._end_session(PhaseEvent.DISCONNECTED)
                self._set_status(StatusEvent.DISCONNECTED)
                self.display.refresh()
                return True

            else:
                logger.error(f"{self} listen failed: {type(result.error).__name__}: {result.error}")
                self._end_session(PhaseEvent.TRANSPORT_ERROR)
                self._set_status(StatusEvent.WRITE_ERROR)
                self.display.refresh()
                return True

            self.display.refresh()

        self._end_session(PhaseEvent.STOP)
        return True

    async def run(self):
        """Run cycles until stop() is called."""
        self._stopping = False
        try:
            while not self._stopping:
                ok = await self.run_cycle()
                if not ok and not self._stopping:
                    await asyncio.sleep(self.config.retry_delay)
        finally:
            if self.session is not None:
                self._end_session(PhaseEvent.STOP)
            elif self.phase is not ConnectionPhase.IDLE:
                self._apply(PhaseEvent.STOP)
            await self.driver.stop()
            self._set_status(None)
            logger.info(f"{self} stopped")

    def stop(self):
        """Ask the running loop to finish after the current wait."""
        self._stopping = True

    def __str__(self):
        return f"BLETextService[{self.config.device_name}]"
