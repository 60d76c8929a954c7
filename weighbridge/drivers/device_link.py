"""
Device Link
============
Owns the byte-stream connection to one weight indicator:

  - open/close of the underlying transport
  - raw command writes
  - the continuous read loop (FrameParser → Reading)
  - publication of readings, status changes and link failures
    to any number of subscribers

Readings are delivered from the single read thread, so every
subscriber sees them in the order the indicator sent them.
There is no per-read timeout: a silent indicator stalls the
loop until close() is called.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Optional

from weighbridge.config.scale_models import ScaleModelConfig
from weighbridge.core.errors import (
    OpenFailedError,
    ReadFailedError,
    ScaleConnectionError,
    SendFailedError,
    UnsupportedError,
)
from weighbridge.core.models import ConnectionStatus, Reading
from weighbridge.drivers.frame_parser import FrameParser
from weighbridge.drivers.transport import Transport, open_serial_transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, ScaleModelConfig], Transport]


class DeviceLink:
    """
    Connection to a single indicator.

    The transport handle is exclusive to this link. Status is
    mutated only here (and through AutoPolicyEngine); readers get
    a copy via the `status` property.
    """

    def __init__(
        self,
        transport_factory: TransportFactory = open_serial_transport,
        parser: Optional[FrameParser] = None,
    ):
        self._factory = transport_factory
        self.parser = parser or FrameParser()
        self._transport: Optional[Transport] = None
        self._status = ConnectionStatus()
        self._last_reading: Optional[Reading] = None
        self._lock = threading.RLock()
        self._closing = threading.Event()
        self._reader: Optional[threading.Thread] = None
        self._reader_generation = 0
        self._generation = 0

        self._reading_subscribers: list = []
        self._status_subscribers: list = []
        self._error_subscribers: list = []

    # ── State ────────────────────────────────────────────────

    @property
    def status(self) -> ConnectionStatus:
        with self._lock:
            return replace(self._status)

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    @property
    def last_reading(self) -> Optional[Reading]:
        return self._last_reading

    @property
    def is_reading(self) -> bool:
        return self._reader is not None and self._reader.is_alive()

    # ── Subscriptions ────────────────────────────────────────

    def subscribe_readings(self, callback: Callable[[Reading], None]) -> Callable[[], None]:
        """Receive every parsed Reading. Returns an unsubscribe function."""
        return self._subscribe(self._reading_subscribers, callback)

    def subscribe_status(self, callback: Callable[[ConnectionStatus], None]) -> Callable[[], None]:
        """Receive a status snapshot on every change."""
        return self._subscribe(self._status_subscribers, callback)

    def subscribe_errors(self, callback: Callable[[ScaleConnectionError], None]) -> Callable[[], None]:
        """Receive read-loop failures (ReadFailedError)."""
        return self._subscribe(self._error_subscribers, callback)

    def _subscribe(self, subscribers: list, callback) -> Callable[[], None]:
        with self._lock:
            subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in subscribers:
                    subscribers.remove(callback)

        return unsubscribe

    def _publish(self, subscribers: list, payload):
        with self._lock:
            targets = list(subscribers)
        for callback in targets:
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber %r failed", callback)

    # ── Lifecycle ────────────────────────────────────────────

    def open(self, port: str, config: ScaleModelConfig):
        """
        Open the transport with the model's line parameters.

        Raises UnsupportedError for invalid line parameters and
        OpenFailedError for hardware/permission problems.
        """
        if self.is_open:
            logger.info("Link already open on %s; reopening", self._status.port)
            self.close()

        issues = config.validate()
        if issues:
            error = UnsupportedError("; ".join(issues))
            self._record_failure(error, port=None, model=config)
            raise error

        try:
            transport = self._factory(port, config)
        except ScaleConnectionError as exc:
            self._record_failure(exc, port=None, model=config)
            raise
        except Exception as exc:
            error = OpenFailedError(f"Cannot open {port}: {exc}")
            self._record_failure(error, port=None, model=config)
            raise error from exc

        with self._lock:
            self._transport = transport
            self._generation += 1
            self._closing.clear()
            self._status.connected = True
            self._status.port = port
            self._status.model = config
            self._status.error = None
        logger.info("Link open on %s (%s)", port, config.model_id)
        self._publish(self._status_subscribers, self.status)

    def start_read_loop(self):
        """Start the background read loop (no-op if already running)."""
        with self._lock:
            transport = self._transport
            if transport is None:
                raise ReadFailedError("Cannot read: link is not open")
            # A reader left over from a failed session exits on its own
            if self.is_reading and self._reader_generation == self._generation:
                return
            self._reader_generation = self._generation
            self._reader = threading.Thread(
                target=self._read_loop,
                args=(transport,),
                name=f"device-link-{self._status.port}",
                daemon=True,
            )
            self._reader.start()

    def close(self):
        """Cancel the read loop and release the port. Idempotent."""
        with self._lock:
            transport = self._transport
            self._transport = None
            self._closing.set()
            was_connected = self._status.connected
            self._status.connected = False
            self._status.port = None

        if transport is not None:
            try:
                transport.cancel_read()
                transport.close()
            except Exception:
                logger.exception("Error while closing link")

        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=2.0)
        self._reader = None

        if transport is not None or was_connected:
            logger.info("Link closed")
            self._publish(self._status_subscribers, self.status)

    # ── Commands ─────────────────────────────────────────────

    def send(self, command: str):
        """Write a raw ASCII command. Raises SendFailedError."""
        transport = self._transport
        if transport is None:
            raise SendFailedError("Cannot send: link is not open")
        try:
            transport.write(command.encode("ascii"))
        except Exception as exc:
            with self._lock:
                self._status.error = f"Send failed: {exc}"
            logger.warning("Send %r failed: %s", command, exc)
            raise SendFailedError(f"Send failed: {exc}") from exc
        logger.debug("Sent %r", command)

    # ── Read Loop ────────────────────────────────────────────

    def _read_loop(self, transport: Transport):
        logger.debug("Read loop started")
        while not self._closing.is_set():
            try:
                chunk = transport.read_chunk()
            except Exception as exc:
                if self._closing.is_set():
                    break
                self._handle_read_failure(transport, exc)
                return

            if not chunk:
                continue

            text = chunk.decode("ascii", errors="replace")
            reading = self.parser.parse(text)
            if reading is None:
                logger.debug("Dropped unparsable frame: %r", text)
                continue
            self._accept(reading)
        logger.debug("Read loop stopped")

    def _accept(self, reading: Reading):
        with self._lock:
            self._last_reading = reading
            self._status.current_weight = reading.weight
            self._status.last_update = reading.timestamp
        self._publish(self._reading_subscribers, reading)
        self._publish(self._status_subscribers, self.status)

    def _handle_read_failure(self, transport: Transport, exc: Exception):
        error = ReadFailedError(f"Read failed: {exc}")
        logger.error("%s", error)
        with self._lock:
            if self._transport is transport:
                self._transport = None
        try:
            transport.close()
        except Exception:
            logger.exception("Error releasing failed transport")
        self._record_failure(error, port=None, model=self._status.model)
        self._publish(self._error_subscribers, error)

    def _record_failure(self, error: Exception, port, model):
        with self._lock:
            self._status.connected = False
            self._status.port = port
            self._status.model = model
            self._status.error = str(error)
        self._publish(self._status_subscribers, self.status)
