"""
Weight Indicator Simulator
===========================
Simulates a truck-scale indicator for development and testing
without real hardware. Models the behaviour a DeviceLink sees:

  - Answering weight requests with a frame in the model's format
  - Tare and zero offsets
  - Vehicles driving on and off the platform
  - Motion (unstable readings) while a load settles
  - Line noise and unparsable frames
  - Write failures and dropped links

Use this transport in place of SerialTransport for offline work.
"""

import logging
import queue
import random
import threading
from typing import Optional

from weighbridge.config.scale_models import ScaleModelConfig
from weighbridge.core.errors import OpenFailedError
from weighbridge.core.models import Reading
from weighbridge.drivers.frame_parser import FrameFormat, FrameParser

logger = logging.getLogger(__name__)

_CANCELLED = object()


class ScaleSimulator:
    """
    Simulated weight indicator implementing the Transport protocol.

    Commands written to the simulator are matched against the
    configured model's command set; responses are queued and
    handed out by read_chunk() one frame at a time.
    """

    def __init__(
        self,
        frame_format: FrameFormat = FrameFormat.ST_CSV,
        unit: str = "kg",
        noise_kg: float = 0.0,
    ):
        self.frame_format = frame_format
        self.unit = unit
        self.noise_kg = noise_kg
        self.model: Optional[ScaleModelConfig] = None

        # Platform state
        self._load_kg = 0.0
        self._tare_offset = 0.0
        self._zero_offset = 0.0
        self._stable = True

        # Link state
        self._inbox: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._open = False
        self.fail_writes = False
        self.fail_open = False

        # Command log (inspected by tests)
        self.commands_received: list = []
        self.write_attempts = 0
        self.open_attempts = 0
        self.open_count = 0

    # ── Transport Protocol Implementation ────────────────────

    def write(self, data: bytes) -> None:
        self.write_attempts += 1
        if not self._open:
            raise OSError("simulated port is closed")
        if self.fail_writes:
            raise OSError("simulated write failure")
        command = data.decode("ascii")
        with self._lock:
            self.commands_received.append(command)
        self._process_command(command)

    def read_chunk(self) -> bytes:
        """Block until a frame is available (no timeout)."""
        item = self._inbox.get()
        if item is _CANCELLED:
            return b""
        if isinstance(item, Exception):
            raise item
        return item

    def cancel_read(self) -> None:
        self._inbox.put(_CANCELLED)

    def close(self) -> None:
        self._open = False

    # ── Factory ──────────────────────────────────────────────

    def factory(self, port: str, config: ScaleModelConfig) -> "ScaleSimulator":
        """Transport factory for DeviceLink: 'opens' this simulator."""
        self.open_attempts += 1
        if self.fail_open:
            raise OpenFailedError(f"Simulated open failure on {port}")
        self.model = config
        self._open = True
        self.open_count += 1
        # Drop anything left over from a previous session
        self._inbox = queue.Queue()
        logger.info("Simulator opened on %s as %s", port, config.model_id)
        return self

    # ── Simulation Controls ──────────────────────────────────

    def drive_on(self, load_kg: float, stable: bool = True):
        """A vehicle drives onto the platform."""
        self._load_kg = load_kg
        self._stable = stable

    def drive_off(self):
        """Platform cleared."""
        self._load_kg = 0.0
        self._stable = True

    def settle(self):
        """Load has stopped moving."""
        self._stable = True

    def push_frame(self, text: str):
        """Queue raw indicator output (e.g. noise or a custom frame)."""
        self._inbox.put(text.encode("ascii"))

    def emit_weight(self):
        """Send the current display value as if polled."""
        self._inbox.put(self._render_current().encode("ascii"))

    def drop_link(self, reason: str = "device disconnected"):
        """Make the next read fail as if the cable was pulled."""
        self._inbox.put(OSError(reason))

    @property
    def displayed_weight(self) -> float:
        return self._load_kg - self._tare_offset - self._zero_offset

    @property
    def is_open(self) -> bool:
        return self._open

    # ── Internal Simulation ──────────────────────────────────

    def _process_command(self, command: str):
        """React to a command from the terminal."""
        commands = self.model.commands if self.model else None
        if commands is None:
            return

        if command == commands.get_weight:
            self.emit_weight()
        elif command == commands.tare:
            self._tare_offset = self._load_kg - self._zero_offset
            logger.debug("Simulator tare at %.2f", self._tare_offset)
        elif command == commands.zero:
            self._zero_offset = self._load_kg
            self._tare_offset = 0.0
            logger.debug("Simulator zero at %.2f", self._zero_offset)
        elif command == commands.status:
            self.push_frame("OK\r\n")
        elif command == commands.reset:
            self._tare_offset = 0.0
            self._zero_offset = 0.0
        elif command == commands.calibration:
            self.push_frame("CAL OK\r\n")

    def _render_current(self) -> str:
        weight = self.displayed_weight
        if self.noise_kg:
            weight += random.gauss(0, self.noise_kg)
        reading = Reading(weight=weight, unit=self.unit, stable=self._stable)
        if not self._stable and self.frame_format in (
            FrameFormat.ST_CSV, FrameFormat.ST_SPACE
        ):
            # Indicators tag motion with US instead of ST
            return FrameParser.render(reading, self.frame_format).replace("ST", "US", 1)
        return FrameParser.render(reading, self.frame_format)
