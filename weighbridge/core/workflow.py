"""
Weighing Workflow
==================
Two-phase weighing keyed by vehicle plate.

State Diagram (per plate):

    NO_OPEN_DRAFT ──arrival──► DRAFT ──departure──► COMPLETED
          ▲                                             │
          └─────────────── next trip ───────────────────┘

  - Arrival captures the gross (loaded) weight and opens a draft.
  - Departure captures the tare weight, derives
    net = max(0, gross - tare) and completes the draft.

A completed draft is never touched again by this workflow. Rule
violations are raised to the caller, never retried or guessed.
"""

from dataclasses import dataclass
from enum import Enum
import logging
import math
import time
from typing import Optional, Union

from weighbridge.core.draft_store import DraftStore
from weighbridge.core.errors import (
    DraftNotFoundError,
    DuplicateDraftError,
    InvalidReadingError,
)
from weighbridge.core.models import (
    DepartureDetails,
    DraftStatus,
    Reading,
    WeighingDraft,
    calculate_net_weight,
    normalize_plate,
)

logger = logging.getLogger(__name__)


class PlateState(Enum):
    NO_OPEN_DRAFT = "NO_OPEN_DRAFT"
    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class Operator:
    """Who performed a weighing."""
    operator_id: str
    operator_name: str


@dataclass(frozen=True)
class WeighingStats:
    total_drafts: int = 0
    completed: int = 0
    pending: int = 0
    total_net_weight: float = 0.0
    average_net_weight: float = 0.0


class WeighingWorkflow:
    """
    Orchestrates arrival and departure weighings over a DraftStore.

    All check-then-act sequences run under the store's per-plate
    lock, so concurrent terminals sharing a store cannot open two
    trips for the same vehicle.
    """

    def __init__(
        self,
        store: DraftStore,
        operator: Optional[Operator] = None,
        require_stable: bool = True,
    ):
        self.store = store
        self.operator = operator or Operator("operator", "Operator")
        self.require_stable = require_stable

    # ── Transitions ──────────────────────────────────────────

    def record_arrival(
        self,
        plate: str,
        reading: Optional[Reading],
        operator: Optional[Operator] = None,
    ) -> WeighingDraft:
        """Open a draft with the gross weight for an arriving vehicle."""
        key = self._require_plate(plate)
        self._require_reading(reading, positive=True)
        if self.require_stable and not reading.stable:
            raise InvalidReadingError(
                "Gross weight must be captured from a stable reading"
            )
        who = operator or self.operator

        with self.store.plate_lock(key):
            if self.store.find_open_by_plate(key) is not None:
                raise DuplicateDraftError(key)
            now = time.time()
            draft = WeighingDraft(
                vehicle_number=key,
                gross_weight=reading.weight,
                gross_timestamp=now,
                operator_id=who.operator_id,
                operator_name=who.operator_name,
                created_at=now,
                updated_at=now,
            )
            draft = self.store.insert(draft)

        logger.info("Arrival %s: gross %.2f %s (draft %s)",
                    key, reading.weight, reading.unit, draft.id)
        return draft

    def record_departure(
        self,
        plate: str,
        reading: Optional[Reading],
        details: Union[DepartureDetails, dict, None] = None,
    ) -> WeighingDraft:
        """Attach the tare weight, derive net and complete the draft."""
        key = self._require_plate(plate)
        self._require_reading(reading, positive=False)
        if isinstance(details, dict):
            details = DepartureDetails(**details)
        details = details or DepartureDetails()

        with self.store.plate_lock(key):
            draft = self.store.find_open_by_plate(key)
            if draft is None:
                raise DraftNotFoundError(key)
            net = calculate_net_weight(draft.gross_weight, reading.weight)
            patch = {
                "tare_weight": reading.weight,
                "tare_timestamp": time.time(),
                "net_weight": net,
                "status": DraftStatus.COMPLETED,
            }
            patch.update(details.cleaned())
            completed = self.store.update(draft.id, patch)

        logger.info("Departure %s: tare %.2f, net %.2f (draft %s)",
                    key, reading.weight, net, completed.id)
        return completed

    # ── Queries ──────────────────────────────────────────────

    def state_of(self, plate: str) -> PlateState:
        key = normalize_plate(plate)
        if self.store.find_open_by_plate(key) is not None:
            return PlateState.DRAFT
        if self.store.list(status=DraftStatus.COMPLETED, plate=key):
            return PlateState.COMPLETED
        return PlateState.NO_OPEN_DRAFT

    def resume(self, plate: str) -> WeighingDraft:
        """Continue work on a plate's open draft."""
        key = self._require_plate(plate)
        draft = self.store.find_open_by_plate(key)
        if draft is None:
            raise DraftNotFoundError(key)
        return draft

    def pending_drafts(self) -> list:
        return self.store.list(status=DraftStatus.DRAFT)

    def history(self, max_items: int = 10) -> list:
        """Most recent drafts of any status, newest first."""
        return self.store.list()[:max_items]

    def stats(self) -> WeighingStats:
        drafts = self.store.list()
        completed = [d for d in drafts if d.status == DraftStatus.COMPLETED]
        total_net = sum(d.net_weight or 0.0 for d in completed)
        return WeighingStats(
            total_drafts=len(drafts),
            completed=len(completed),
            pending=len(drafts) - len(completed),
            total_net_weight=total_net,
            average_net_weight=total_net / len(completed) if completed else 0.0,
        )

    # ── Preconditions ────────────────────────────────────────

    @staticmethod
    def _require_plate(plate: str) -> str:
        key = normalize_plate(plate)
        if not key:
            raise ValueError("Vehicle plate is required")
        return key

    @staticmethod
    def _require_reading(reading: Optional[Reading], positive: bool):
        if reading is None:
            raise InvalidReadingError("No weight reading available")
        if math.isnan(reading.weight):
            raise InvalidReadingError("Weight reading is not a number")
        if positive and reading.weight <= 0:
            raise InvalidReadingError(
                f"Gross weight must be positive (got {reading.weight})"
            )
        if not positive and reading.weight < 0:
            raise InvalidReadingError(
                f"Tare weight must not be negative (got {reading.weight})"
            )
