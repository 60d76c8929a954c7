"""
Automatic Link Policy
======================
Wraps a DeviceLink with the model-driven behaviour configured in
ScaleModelConfig.auto:

  - Connection delay before the first command
  - Auto-tare / auto-zero after connecting (1 s settle each)
  - Periodic weight polling
  - Bounded command retry (1 s between attempts)
  - Bounded auto-reconnect (5 s between attempts)

Every wait is cancellable: close() wakes all of them, stops the
polling thread and releases the link.
"""

import logging
import threading
from typing import Optional

from weighbridge.config.scale_models import ScaleModelConfig
from weighbridge.core.errors import (
    CommandError,
    ScaleConnectionError,
)
from weighbridge.core.models import ConnectionStatus, Reading
from weighbridge.drivers.device_link import DeviceLink

logger = logging.getLogger(__name__)

RETRY_DELAY_SEC = 1.0
SETTLE_DELAY_SEC = 1.0
RECONNECT_DELAY_SEC = 5.0


class AutoPolicyEngine:
    """
    Model-driven connection manager for one indicator.

    The model is fixed for the lifetime of the engine; select a
    different model by building a new engine.
    """

    def __init__(
        self,
        link: DeviceLink,
        model: ScaleModelConfig,
        retry_delay_sec: float = RETRY_DELAY_SEC,
        settle_delay_sec: float = SETTLE_DELAY_SEC,
        reconnect_delay_sec: float = RECONNECT_DELAY_SEC,
    ):
        self.link = link
        self.model = model
        self.retry_delay_sec = retry_delay_sec
        self.settle_delay_sec = settle_delay_sec
        self.reconnect_delay_sec = reconnect_delay_sec

        self._port: Optional[str] = None
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._poll_stop = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._reconnect_timer: Optional[threading.Thread] = None
        self._reconnect_attempts = 0
        self._session = 0

        self.link.subscribe_errors(self._on_link_error)

    # ── State ────────────────────────────────────────────────

    @property
    def status(self) -> ConnectionStatus:
        return self.link.status

    @property
    def is_connected(self) -> bool:
        return self.link.status.connected

    @property
    def is_polling(self) -> bool:
        return self._poll_thread is not None and self._poll_thread.is_alive()

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # ── Lifecycle ────────────────────────────────────────────

    def open(self, port: str) -> bool:
        """
        Connect to the indicator and start the automatic behaviour.
        Returns False (and may schedule a reconnect) on failure.
        """
        with self._lock:
            # Invalidates any reconnect still pending from an earlier session
            self._session += 1
            self._port = port
            self._cancel.clear()
            session = self._session
        return self._connect(port, session)

    def close(self):
        """Stop polling, cancel pending waits and close the link. Idempotent."""
        with self._lock:
            self._cancel.set()
            self._session += 1
            self._reconnect_attempts = 0
            timer = self._reconnect_timer
            self._reconnect_timer = None
        self._stop_polling()
        if timer is not None and timer is not threading.current_thread():
            timer.join(timeout=2.0)
        self.link.close()

    def _connect(self, port: str, session: int) -> bool:
        auto = self.model.auto
        try:
            self.link.open(port, self.model)
        except ScaleConnectionError as exc:
            logger.error("Connection to %s failed: %s", port, exc)
            self._schedule_reconnect(port, session)
            return False

        with self._lock:
            stale = self._cancel.is_set() or session != self._session
            if not stale:
                self._reconnect_attempts = 0
        if stale:
            # close() ran while the port was opening
            logger.info("Dropping connection to %s opened after close()", port)
            self.link.close()
            return False

        if auto.connection_delay_ms > 0:
            if self._sleep(auto.connection_delay_ms / 1000.0):
                return False

        self._run_auto_commands()
        if self._cancel.is_set():
            return False

        try:
            self.link.start_read_loop()
        except ScaleConnectionError as exc:
            logger.warning("Read loop not started: %s", exc)
            return False
        if self.model.commands.get_weight:
            try:
                self.link.send(self.model.commands.get_weight)
            except CommandError as exc:
                logger.warning("Initial weight request failed: %s", exc)

        if auto.polling_interval_ms > 0:
            self._start_polling()
        logger.info("Connected to %s on %s", self.model.name or self.model.model_id, port)
        return True

    def _run_auto_commands(self):
        """Auto-tare / auto-zero on connect; failures are not fatal."""
        auto = self.model.auto
        commands = self.model.commands
        steps = [
            (auto.auto_tare, commands.tare, "auto-tare"),
            (auto.auto_zero, commands.zero, "auto-zero"),
        ]
        for enabled, command, label in steps:
            if not enabled or not command:
                continue
            try:
                self.link.send(command)
                logger.info("%s sent", label)
            except CommandError as exc:
                logger.warning("%s failed: %s", label, exc)
            if self._sleep(self.settle_delay_sec):
                return

    # ── Polling ──────────────────────────────────────────────

    def _start_polling(self):
        if self.is_polling:
            return
        self._poll_stop.clear()
        interval = self.model.auto.polling_interval_ms / 1000.0
        self._poll_thread = threading.Thread(
            target=self._poll_loop, args=(interval,),
            name="weight-poll", daemon=True,
        )
        self._poll_thread.start()

    def _poll_loop(self, interval: float):
        command = self.model.commands.get_weight
        while not self._poll_stop.wait(interval):
            if self._cancel.is_set():
                break
            if not command:
                continue
            try:
                self.link.send(command)
            except CommandError as exc:
                logger.warning("Polling request failed: %s", exc)

    def _stop_polling(self):
        self._poll_stop.set()
        thread = self._poll_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._poll_thread = None

    # ── Retry / Reconnect ────────────────────────────────────

    def send_with_retry(self, command: Optional[str]) -> bool:
        """
        Send a command up to retry_attempts times, waiting between
        attempts. True on the first accepted write; no device
        acknowledgement is awaited.
        """
        if not command:
            return False
        attempts = self.model.auto.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                self.link.send(command)
                return True
            except CommandError as exc:
                logger.warning(
                    "Attempt %d/%d for %r failed: %s", attempt, attempts, command, exc
                )
            if attempt < attempts:
                if self._sleep(self.retry_delay_sec):
                    break
        logger.error("Command %r failed after %d attempts", command, attempts)
        return False

    def _on_link_error(self, error: ScaleConnectionError):
        """Read loop died: stop polling and try to come back."""
        logger.warning("Link failure: %s", error)
        self._stop_polling()
        with self._lock:
            if self._cancel.is_set() or self._port is None:
                return
            port, session = self._port, self._session
        self._schedule_reconnect(port, session)

    def _schedule_reconnect(self, port: str, session: int) -> bool:
        auto = self.model.auto
        with self._lock:
            if self._cancel.is_set() or session != self._session:
                return False
            if not auto.auto_reconnect or self._reconnect_attempts >= auto.retry_attempts:
                logger.warning("Auto-reconnect to %s not attempted (attempts: %d)",
                               port, self._reconnect_attempts)
                return False
            self._reconnect_attempts += 1
            attempt = self._reconnect_attempts
            timer = threading.Thread(
                target=self._reconnect_after_delay, args=(port, session),
                name="reconnect", daemon=True,
            )
            self._reconnect_timer = timer
        logger.info(
            "Reconnecting to %s in %.1f s (attempt %d/%d)",
            port, self.reconnect_delay_sec, attempt, auto.retry_attempts,
        )
        timer.start()
        return True

    def _reconnect_after_delay(self, port: str, session: int):
        if self._sleep(self.reconnect_delay_sec):
            return
        with self._lock:
            if session != self._session:
                return
        self._connect(port, session)

    def _sleep(self, seconds: float) -> bool:
        """Wait, returning True if close() interrupted the wait."""
        return self._cancel.wait(seconds)

    # ── Device Commands ──────────────────────────────────────

    def get_current_weight(self) -> Optional[Reading]:
        """Request a fresh weight and return the latest parsed reading."""
        if not self.link.is_open or not self.model.commands.get_weight:
            return None
        self.send_with_retry(self.model.commands.get_weight)
        return self.link.last_reading

    def tare(self) -> bool:
        return self.send_with_retry(self.model.commands.tare)

    def zero(self) -> bool:
        return self.send_with_retry(self.model.commands.zero)

    def calibrate(self) -> bool:
        return self.send_with_retry(self.model.commands.calibration)

    def check_device_status(self) -> bool:
        return self.send_with_retry(self.model.commands.status)

    def reset(self) -> bool:
        return self.send_with_retry(self.model.commands.reset)
