"""Serial port abstraction supporting both a real modem TTY and mocking."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Union

import serial

logger = logging.getLogger(__name__)

DEFAULT_BAUD_RATE = 115200  # The USB modems we use talk 115200 8N1
LINE_TERMINATOR = "\r\n"


class ModemError(Exception):
    """Base class for modem failures."""


class DeviceError(ModemError):
    """Raised when the serial device cannot be opened or fails while in use."""


class SerialPort(ABC):
    """Abstract line-oriented serial port."""

    @abstractmethod
    def open(self) -> None:
        """Open the port.

        Raises:
            DeviceError: If the device cannot be opened
        """

    @abstractmethod
    def write_line(self, text: str) -> None:
        """Write one CRLF-terminated line to the device."""

    @abstractmethod
    async def readline(self) -> Optional[str]:
        """Read the next line from the device.

        Returns:
            The raw line, or None once the port has been closed

        Raises:
            DeviceError: If the device fails while reading
        """

    @abstractmethod
    def close(self) -> None:
        """Close the port."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the port is currently open."""


class MockSerialPort(SerialPort):
    """In-memory serial port for testing and running without a modem."""

    def __init__(self, *, fail_open: bool = False, auto_ack: bool = False) -> None:
        """Initialize mock serial port.

        Args:
            fail_open: If True, open() raises DeviceError
            auto_ack: If True, every dial command is answered with an "OK" line
        """
        self.written: List[str] = []
        self._fail_open = fail_open
        self._auto_ack = auto_ack
        self._is_open = False
        self._incoming: "asyncio.Queue[Union[str, Exception, None]]" = asyncio.Queue()
        logger.info("MockSerialPort initialized - no modem required")

    def open(self) -> None:
        """Open the mock port."""
        if self._fail_open:
            raise DeviceError("Simulated failure opening mock serial port")
        self._is_open = True
        logger.debug("Mock serial port opened")

    def write_line(self, text: str) -> None:
        """Record a line written to the device."""
        if not self._is_open:
            raise DeviceError("Mock serial port is not open")
        self.written.append(text)
        logger.debug("Mock serial write: %s", text)

        if self._auto_ack and text.startswith("ATDT"):
            self.feed_line("OK")

    async def readline(self) -> Optional[str]:
        """Return the next injected line."""
        item = await self._incoming.get()
        if item is None:
            return None
        if isinstance(item, Exception):
            self._is_open = False
            raise item
        return item

    def close(self) -> None:
        """Close the mock port, ending the read stream."""
        if not self._is_open:
            return
        self._is_open = False
        self._incoming.put_nowait(None)
        logger.debug("Mock serial port closed")

    @property
    def is_open(self) -> bool:
        """Whether the mock port is open."""
        return self._is_open

    # Mock-specific methods for testing

    def feed_line(self, text: str) -> None:
        """Inject a line as if the modem had sent it (for testing)."""
        self._incoming.put_nowait(text + LINE_TERMINATOR)

    def fail(self, error: Optional[Exception] = None) -> None:
        """Make the pending/next read fail with a device error (for testing)."""
        self._incoming.put_nowait(error or DeviceError("Simulated serial device failure"))


class PySerialPort(SerialPort):
    """Real serial port using pyserial."""

    def __init__(
        self,
        path: str,
        baud_rate: int = DEFAULT_BAUD_RATE,
        read_timeout: float = 0.25,
    ) -> None:
        """Initialize the serial port (does not open it).

        Args:
            path: Device path (e.g. /dev/ttyUSB0)
            baud_rate: Line speed
            read_timeout: Seconds each blocking read waits before checking for close
        """
        self._path = path
        self._baud_rate = baud_rate
        self._read_timeout = read_timeout
        self._serial: Optional[serial.Serial] = None
        self._closing = False

    def open(self) -> None:
        """Open the TTY with 8N1 framing and no flow control."""
        try:
            self._serial = serial.Serial(
                port=self._path,
                baudrate=self._baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._read_timeout,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
            )
        except (serial.SerialException, OSError) as e:
            raise DeviceError(f"Failed to open {self._path}: {e}") from e

        self._closing = False
        logger.info("Opened serial port %s at %d baud", self._path, self._baud_rate)

    def write_line(self, text: str) -> None:
        """Write one CRLF-terminated ASCII line."""
        if self._serial is None:
            raise DeviceError("Serial port is not open")
        try:
            self._serial.write((text + LINE_TERMINATOR).encode("ascii"))
            self._serial.flush()
        except (serial.SerialException, OSError) as e:
            raise DeviceError(f"Failed to write to {self._path}: {e}") from e

    async def readline(self) -> Optional[str]:
        """Read the next non-empty line, polling so a close is noticed."""
        while True:
            if self._closing or self._serial is None or not self._serial.is_open:
                return None

            try:
                raw: bytes = await asyncio.to_thread(self._serial.readline)
            except (serial.SerialException, OSError) as e:
                if self._closing:
                    return None
                raise DeviceError(f"Failed to read from {self._path}: {e}") from e

            if not raw:
                # read timeout tick
                continue

            return raw.decode("ascii", errors="replace")

    def close(self) -> None:
        """Close the TTY."""
        self._closing = True
        if self._serial is not None and self._serial.is_open:
            self._serial.close()
            logger.info("Closed serial port %s", self._path)

    @property
    def is_open(self) -> bool:
        """Whether the TTY is open."""
        return self._serial is not None and self._serial.is_open and not self._closing


def get_serial_port(
    mock: bool, path: Optional[str] = None, baud_rate: int = DEFAULT_BAUD_RATE
) -> SerialPort:
    """Get the appropriate serial port implementation.

    Args:
        mock: If True, use a mock port. If False, use the real TTY.
        path: Device path (required unless mock)
        baud_rate: Line speed for the real TTY

    Returns:
        SerialPort implementation (MockSerialPort or PySerialPort)

    Raises:
        DeviceError: If a real port is requested without a device path
    """
    if mock:
        return MockSerialPort()
    if not path:
        raise DeviceError("No serial port configured (set serial.port)")
    return PySerialPort(path, baud_rate=baud_rate)
