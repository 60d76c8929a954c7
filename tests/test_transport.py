"""
Tests for the pyserial transport (loop:// bench port, no hardware).
"""

from dataclasses import replace

import pytest

from weighbridge.core.errors import OpenFailedError, UnsupportedError
from weighbridge.drivers.device_link import DeviceLink
from weighbridge.drivers.transport import SerialTransport, open_serial_transport


class TestSerialTransport:

    def test_loopback_frame(self, cas_model):
        transport = SerialTransport("loop://", cas_model)
        try:
            transport.write(b"ST,+012000.00,kg\r\n")
            assert transport.read_chunk() == b"ST,+012000.00,kg\r\n"
        finally:
            transport.close()

    def test_seven_bit_even_parity(self):
        from weighbridge.config.scale_models import PRESET_SCALE_MODELS

        transport = open_serial_transport("loop://", PRESET_SCALE_MODELS["sartorius-ql6201"])
        transport.close()

    def test_close_twice(self, cas_model):
        transport = SerialTransport("loop://", cas_model)
        transport.close()
        transport.close()

    def test_unsupported_data_bits(self, cas_model):
        with pytest.raises(UnsupportedError):
            SerialTransport("loop://", replace(cas_model, data_bits=6))

    def test_missing_device(self, cas_model, tmp_path):
        with pytest.raises(OpenFailedError):
            SerialTransport(str(tmp_path / "ttyMISSING"), cas_model)

    def test_device_link_over_loopback(self, cas_model, wait_until):
        link = DeviceLink()
        readings = []
        link.subscribe_readings(readings.append)
        link.open("loop://", cas_model)
        link.start_read_loop()
        try:
            # loop:// echoes the written bytes back as indicator output
            link.send("ST,+008000.00,kg\r\n")
            assert wait_until(lambda: readings)
            assert readings[0].weight == 8000.0
        finally:
            link.close()
