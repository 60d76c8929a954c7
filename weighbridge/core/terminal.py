"""
Weighbridge Terminal
=====================
Wires one indicator connection and one weighing workflow into
the unit an operator works with at the gatehouse:

    1. AutoPolicyEngine keeps the indicator link alive
    2. Readings are tracked as they arrive (latest wins)
    3. Operator commands capture that reading into the workflow

Operator commands return a short message for the console and
keep hardware faults ("Scale error") distinct from data faults
("Weighing error").
"""

import logging
import threading
from typing import Optional

from weighbridge.config.scale_models import ScaleModelConfig
from weighbridge.config.settings import TerminalSettings
from weighbridge.core.draft_store import DraftStore
from weighbridge.core.errors import WeighingError
from weighbridge.core.models import (
    ConnectionStatus,
    DepartureDetails,
    Reading,
    format_weight,
)
from weighbridge.core.workflow import Operator, WeighingWorkflow
from weighbridge.drivers.auto_policy import AutoPolicyEngine
from weighbridge.drivers.device_link import DeviceLink, TransportFactory
from weighbridge.drivers.simulator import ScaleSimulator
from weighbridge.drivers.transport import open_serial_transport

logger = logging.getLogger(__name__)


class WeighbridgeTerminal:
    """
    One weighbridge terminal: indicator link + weighing workflow.
    """

    def __init__(
        self,
        model: ScaleModelConfig,
        settings: Optional[TerminalSettings] = None,
        store: Optional[DraftStore] = None,
        transport_factory: TransportFactory = open_serial_transport,
        simulator: Optional[ScaleSimulator] = None,
    ):
        self.settings = settings or TerminalSettings()
        self.model = model
        self.simulator = simulator
        if simulator is not None:
            transport_factory = simulator.factory

        self.link = DeviceLink(transport_factory=transport_factory)
        self.engine = AutoPolicyEngine(
            self.link,
            model,
            retry_delay_sec=self.settings.retry_delay_sec,
            settle_delay_sec=self.settings.settle_delay_sec,
            reconnect_delay_sec=self.settings.reconnect_delay_sec,
        )
        self.store = store or DraftStore(
            directory=self.settings.drafts_dir or None,
            name=self.settings.store_name,
        )
        self.workflow = WeighingWorkflow(
            self.store,
            operator=Operator(self.settings.operator_id, self.settings.operator_name),
            require_stable=self.settings.require_stable_arrival,
        )

        self._lock = threading.Lock()
        self._latest: Optional[Reading] = None
        self._reading_count = 0
        self.link.subscribe_readings(self._on_reading)
        self.link.subscribe_status(self._on_status)

    # ── Lifecycle ────────────────────────────────────────────

    def start(self) -> bool:
        """Connect if the model asks for it; returns connection state."""
        if self.model.auto.auto_connect:
            return self.engine.open(self.settings.port)
        logger.info("Auto-connect disabled for %s; waiting for operator",
                    self.model.model_id)
        return False

    def stop(self):
        self.engine.close()
        self._clear_latest()
        logger.info("Terminal stopped. Readings received: %d", self._reading_count)

    @property
    def latest_reading(self) -> Optional[Reading]:
        with self._lock:
            return self._latest

    @property
    def reading_count(self) -> int:
        return self._reading_count

    def _on_reading(self, reading: Reading):
        with self._lock:
            self._latest = reading
            self._reading_count += 1

    def _on_status(self, status: ConnectionStatus):
        if status.connected:
            return
        # A reading from before the link went down is not the platform now
        self._clear_latest()
        if status.error:
            logger.warning("Scale link down: %s", status.error)

    def _clear_latest(self):
        with self._lock:
            self._latest = None

    # ── Operator Commands: Indicator ─────────────────────────

    def cmd_connect(self, port: str = None) -> str:
        port = port or self.settings.port
        if self.engine.open(port):
            return f"Connected to {self.model.name or self.model.model_id} on {port}"
        return f"Scale error: {self.link.status.error or 'connection failed'}"

    def cmd_disconnect(self) -> str:
        self.engine.close()
        self._clear_latest()
        return "Disconnected"

    def cmd_weigh(self) -> str:
        """Request a fresh weight and show the latest reading."""
        if not self.link.is_open:
            return "Scale error: not connected"
        reading = self.engine.get_current_weight()
        if reading is None:
            return "No reading received yet"
        flag = "stable" if reading.stable else "MOTION"
        return f"Weight: {format_weight(reading.weight, reading.unit)} ({flag})"

    def cmd_tare(self) -> str:
        return self._device_command("Tare", self.engine.tare)

    def cmd_zero(self) -> str:
        return self._device_command("Zero", self.engine.zero)

    def cmd_calibrate(self) -> str:
        return self._device_command("Calibration", self.engine.calibrate)

    def cmd_device_status(self) -> str:
        return self._device_command("Status request", self.engine.check_device_status)

    def cmd_device_reset(self) -> str:
        return self._device_command("Reset", self.engine.reset)

    def _device_command(self, label: str, action) -> str:
        if action():
            return f"{label} command sent"
        return f"Scale error: {label.lower()} command failed or not supported"

    # ── Operator Commands: Weighing ──────────────────────────

    def cmd_arrive(self, plate: str) -> str:
        """Capture the gross weight for an arriving vehicle."""
        if not self.link.is_open:
            return "Scale error: not connected"
        try:
            draft = self.workflow.record_arrival(plate, self.latest_reading)
        except (WeighingError, ValueError) as exc:
            return f"Weighing error: {exc}"
        return (f"Arrival recorded: {draft.vehicle_number} "
                f"gross {format_weight(draft.gross_weight)}")

    def cmd_depart(self, plate: str, details: Optional[DepartureDetails] = None) -> str:
        """Capture the tare weight and complete the trip."""
        if not self.link.is_open:
            return "Scale error: not connected"
        try:
            draft = self.workflow.record_departure(plate, self.latest_reading, details)
        except (WeighingError, ValueError) as exc:
            return f"Weighing error: {exc}"
        return (f"Departure recorded: {draft.vehicle_number} "
                f"tare {format_weight(draft.tare_weight)}, "
                f"net {format_weight(draft.net_weight)}")

    def get_status(self) -> dict:
        """Return a status snapshot for the console."""
        status = self.link.status
        stats = self.workflow.stats()
        latest = self.latest_reading
        return {
            "connected": status.connected,
            "port": status.port,
            "model": self.model.model_id,
            "current_weight": status.current_weight,
            "stable": latest.stable if latest else False,
            "last_update": status.last_update,
            "error": status.error,
            "polling": self.engine.is_polling,
            "reconnect_attempts": self.engine.reconnect_attempts,
            "readings": self._reading_count,
            "store": self.store.name,
            "pending_drafts": stats.pending,
            "completed_drafts": stats.completed,
        }
