"""
Weighbridge Error Hierarchy
============================
Two families the operator must be able to tell apart:

  - ScaleConnectionError / CommandError: hardware or link problems
  - WeighingError: data problems in the draft workflow

An unparsable frame is not an error; FrameParser returns None.
"""


class WeighbridgeError(Exception):
    """Base class for all weighbridge errors."""


# ── Hardware / Link ──────────────────────────────────────────

class ScaleConnectionError(WeighbridgeError):
    """The byte-stream link to the indicator is unusable."""


class OpenFailedError(ScaleConnectionError):
    """Port could not be opened (permissions, missing device, busy)."""


class ReadFailedError(ScaleConnectionError):
    """The read loop hit an I/O error and terminated."""


class UnsupportedError(ScaleConnectionError):
    """Line parameters or transport not supported."""


class CommandError(WeighbridgeError):
    """A command could not be delivered to the indicator."""


class SendFailedError(CommandError):
    """Writing a command to the link failed."""


# ── Weighing Data ────────────────────────────────────────────

class WeighingError(WeighbridgeError):
    """A weighing workflow rule was violated."""


class DuplicateDraftError(WeighingError):
    """The plate already has an open (draft) trip."""

    def __init__(self, plate: str):
        super().__init__(
            f"Vehicle {plate} already has an open trip"
        )
        self.plate = plate


class DraftNotFoundError(WeighingError):
    """No draft matches the given id or plate."""

    def __init__(self, key: str):
        super().__init__(f"Weighing draft not found: {key}")
        self.key = key


class DraftStateError(WeighingError):
    """Illegal status change (a completed draft is never reopened)."""


class InvalidReadingError(WeighingError, ValueError):
    """Reading missing, non-positive or unstable where one is required."""
