"""
Byte-Stream Transport
======================
The physical link between the terminal PC and the weight
indicator. Production uses pyserial; development and tests use
the ScaleSimulator, which implements the same protocol.

pyserial's serial_for_url() accepts plain device names
(COM3, /dev/ttyUSB0) as well as serial-over-TCP bridges
(socket://10.0.0.5:4001) and loop:// for bench testing.
"""

import logging
from typing import Protocol

import serial

from weighbridge.config.scale_models import Parity, ScaleModelConfig
from weighbridge.core.errors import OpenFailedError, UnsupportedError

logger = logging.getLogger(__name__)

FRAME_TERMINATOR = b"\n"

_PARITY = {
    Parity.NONE: serial.PARITY_NONE,
    Parity.ODD: serial.PARITY_ODD,
    Parity.EVEN: serial.PARITY_EVEN,
}
_BYTESIZE = {7: serial.SEVENBITS, 8: serial.EIGHTBITS}
_STOPBITS = {1: serial.STOPBITS_ONE, 2: serial.STOPBITS_TWO}


class Transport(Protocol):
    """Protocol for byte-stream transport implementations."""

    def write(self, data: bytes) -> None: ...
    def read_chunk(self) -> bytes: ...
    def cancel_read(self) -> None: ...
    def close(self) -> None: ...


class SerialTransport:
    """
    pyserial-backed transport.

    Reads block without a timeout: an indicator that stops talking
    stalls the reader until cancel_read() or close() is called.
    """

    def __init__(self, port: str, config: ScaleModelConfig):
        self.port = port
        try:
            self._serial = serial.serial_for_url(
                port,
                baudrate=config.baud_rate,
                bytesize=_BYTESIZE[config.data_bits],
                parity=_PARITY[config.parity],
                stopbits=_STOPBITS[config.stop_bits],
                timeout=None,
            )
        except (KeyError, ValueError) as exc:
            raise UnsupportedError(
                f"Unsupported line parameters for {port}: {exc}"
            ) from exc
        except serial.SerialException as exc:
            raise OpenFailedError(f"Cannot open {port}: {exc}") from exc
        logger.info(
            "Opened %s (%d baud, %d%s%d)",
            port, config.baud_rate, config.data_bits,
            _PARITY[config.parity], config.stop_bits,
        )

    def write(self, data: bytes) -> None:
        self._serial.write(data)
        self._serial.flush()

    def read_chunk(self) -> bytes:
        """Read up to and including the next line terminator."""
        return self._serial.read_until(FRAME_TERMINATOR)

    def cancel_read(self) -> None:
        cancel = getattr(self._serial, "cancel_read", None)
        if cancel is not None:
            cancel()

    def close(self) -> None:
        if self._serial.is_open:
            self._serial.close()
            logger.info("Closed %s", self.port)


def open_serial_transport(port: str, config: ScaleModelConfig) -> SerialTransport:
    """Default transport factory used by DeviceLink."""
    return SerialTransport(port, config)
