"""Line protocol driver for the dial-up modem attached to the door buzzer.

This module provides the ModemLine class which turns the modem's raw serial
text into a small state machine: it puts the modem into a known state when
the port opens, reports incoming calls, and answers a call by dialing the
digits that trigger the buzzer relay.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from door_dialer.async_signal import AsyncSignal
from door_dialer.modem.serial_port import DeviceError, ModemError, SerialPort

logger = logging.getLogger(__name__)
tty_logger = logging.getLogger("door_dialer.modem.tty")

# Hayes AT commands
ESCAPE_COMMAND = "+++"  # Escape to command mode
ON_HOOK_COMMAND = "ATH0"  # Go on-hook if we were off-hook before
DISABLE_DIAL_TONE_COMMAND = "ATX0"  # Don't wait for a dial tone before "dialing"
DIAL_COMMAND = "ATDT{sequence};"  # D(ial) T(one), ";" keeps us in command mode
HANGUP_COMMAND = "ATH"

# Modem result codes
RING_RESPONSE = "RING"
OK_RESPONSE = "OK"


class ModemState(Enum):
    """Modem line states."""

    CLOSED = "closed"  # Port not open yet, or closed gracefully
    IDLE = "idle"  # On-hook, waiting for a ring
    TRIGGERING = "triggering"  # Answered and dialing the buzzer digits
    FAILED = "failed"  # Device error, terminal


class ModemLine:
    """Drives the modem over a serial port.

    Incoming "RING" lines are reported through the on_ring callback and "OK"
    lines fire the ``acknowledged`` signal, which lets a task wait for the
    modem to finish a command.
    """

    def __init__(
        self,
        port: SerialPort,
        on_ring: Optional[Callable[[], object]] = None,
    ) -> None:
        """Initialize the modem line.

        Args:
            port: Serial port the modem is attached to
            on_ring: Callback invoked for every incoming ring
        """
        self._port = port
        self._on_ring = on_ring
        self._state = ModemState.CLOSED
        self.acknowledged = AsyncSignal()

    @property
    def state(self) -> ModemState:
        """Current modem state."""
        return self._state

    def set_on_ring(self, callback: Callable[[], object]) -> None:
        """Set the callback invoked when the modem reports a ring.

        Args:
            callback: Called with no arguments for every RING line
        """
        self._on_ring = callback

    def _transition_to(self, new_state: ModemState) -> None:
        old_state = self._state
        self._state = new_state
        logger.info("Modem state: %s -> %s", old_state.value, new_state.value)

    def _send(self, command: str) -> None:
        tty_logger.debug(">> %s", command)
        try:
            self._port.write_line(command)
        except DeviceError:
            self._transition_to(ModemState.FAILED)
            raise

    async def open(self) -> None:
        """Open the port and put the modem into command mode, on-hook.

        Raises:
            DeviceError: If the port cannot be opened or written
        """
        if self._state != ModemState.CLOSED:
            logger.warning("Modem already opened (state: %s)", self._state.value)
            return

        try:
            self._port.open()
        except DeviceError:
            self._transition_to(ModemState.FAILED)
            raise

        logger.debug("Sending modem init sequence")
        self._send(ESCAPE_COMMAND)
        self._send(ON_HOOK_COMMAND)
        self._send(DISABLE_DIAL_TONE_COMMAND)
        self._transition_to(ModemState.IDLE)
        logger.info("Modem ready")

    def handle_line(self, raw: str) -> None:
        """Classify one line received from the modem.

        Args:
            raw: Line as read from the port, including any line terminator
        """
        line = raw.strip()
        if not line:
            return

        tty_logger.debug("<< %s", line)

        if line == RING_RESPONSE:
            logger.debug("Ring received")
            if self._on_ring is not None:
                self._on_ring()
        elif line == OK_RESPONSE:
            logger.debug("Got 'OK' from modem")
            self.acknowledged.trigger()
        else:
            logger.debug("Ignoring modem output: %s", line)

    def trigger_dial(self, sequence: str) -> None:
        """Answer the ringing call and dial the buzzer sequence.

        Commas in the sequence make the modem pause before the next digit.

        Args:
            sequence: Validated dial sequence (digits and commas)

        Raises:
            ModemError: If the modem is not idle
        """
        if self._state != ModemState.IDLE:
            raise ModemError(f"Cannot dial in state: {self._state.value}")

        logger.debug("Dialing %s to trigger door", sequence)
        self._send(DIAL_COMMAND.format(sequence=sequence))
        self._transition_to(ModemState.TRIGGERING)

    def hangup(self) -> None:
        """Go back on-hook after the dial command was acknowledged.

        Raises:
            ModemError: If no dial is in progress
        """
        if self._state != ModemState.TRIGGERING:
            raise ModemError(f"Cannot hang up in state: {self._state.value}")

        logger.debug("Hanging up")
        self._send(HANGUP_COMMAND)
        self._transition_to(ModemState.IDLE)

    async def run(self) -> None:
        """Read and classify lines until the port closes.

        Returns normally when the port is closed gracefully.

        Raises:
            DeviceError: If the device fails
        """
        logger.info("Listening for modem output")
        while True:
            try:
                raw = await self._port.readline()
            except DeviceError as e:
                logger.error("Modem device error: %s", e)
                self._transition_to(ModemState.FAILED)
                raise

            if raw is None:
                logger.info("Modem port closed")
                self._transition_to(ModemState.CLOSED)
                return

            self.handle_line(raw)

    def close(self) -> None:
        """Close the underlying port."""
        self._port.close()
