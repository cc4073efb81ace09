"""Modem serial line driver."""

from door_dialer.modem.modem_line import ModemLine, ModemState
from door_dialer.modem.serial_port import (
    DeviceError,
    MockSerialPort,
    ModemError,
    PySerialPort,
    SerialPort,
    get_serial_port,
)

__all__ = [
    "DeviceError",
    "MockSerialPort",
    "ModemError",
    "ModemLine",
    "ModemState",
    "PySerialPort",
    "SerialPort",
    "get_serial_port",
]
