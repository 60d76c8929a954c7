"""
Weighbridge Data Model
=======================
Runtime and persisted records shared by the driver layer and
the weighing workflow:

  - Reading:          one parsed weight frame from the indicator
  - ConnectionStatus: live state of the link to the indicator
  - WeighingDraft:    one vehicle trip (gross → tare → net)

Weights are kilograms unless the indicator reports another unit.
Timestamps are epoch seconds (time.time()).
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional
import re
import time
import uuid

_PLATE_SEPARATORS = re.compile(r"[\s\-]+")


class DraftStatus(Enum):
    DRAFT = "draft"
    COMPLETED = "completed"


def normalize_plate(plate: str) -> str:
    """Canonical plate key: no spaces or hyphens, uppercase."""
    if plate is None:
        return ""
    return _PLATE_SEPARATORS.sub("", plate.strip()).upper()


def calculate_net_weight(gross_weight: float, tare_weight: float) -> float:
    """Net (cargo) weight, never negative."""
    return max(0.0, gross_weight - tare_weight)


def format_weight(weight: float, unit: str = "kg") -> str:
    return f"{weight:.2f} {unit}"


@dataclass(frozen=True)
class Reading:
    """A single weight value reported by the indicator."""
    weight: float
    unit: str = "kg"
    timestamp: float = field(default_factory=time.time)
    stable: bool = False


@dataclass
class ConnectionStatus:
    """Live state of the indicator link."""
    connected: bool = False
    port: Optional[str] = None
    model: Optional[object] = None      # ScaleModelConfig
    current_weight: float = 0.0
    last_update: float = 0.0
    error: Optional[str] = None


@dataclass
class DepartureDetails:
    """Cargo information captured when the vehicle leaves."""
    supplier: Optional[str] = None
    recipient: Optional[str] = None
    cargo_type: Optional[str] = None
    notes: Optional[str] = None

    def cleaned(self) -> dict:
        """Trimmed values; blank strings become None."""
        result = {}
        for key, value in asdict(self).items():
            if isinstance(value, str):
                value = value.strip() or None
            result[key] = value
        return result


@dataclass
class WeighingDraft:
    """
    One vehicle trip across the weighbridge.

    Created on arrival with the gross weight, completed once on
    departure with the tare weight. net_weight is derived and is
    present only on completed drafts.
    """
    vehicle_number: str = ""
    gross_weight: float = 0.0
    gross_timestamp: float = 0.0
    operator_id: str = ""
    operator_name: str = ""
    id: str = field(default_factory=lambda: f"draft_{uuid.uuid4().hex[:12]}")
    tare_weight: Optional[float] = None
    tare_timestamp: Optional[float] = None
    net_weight: Optional[float] = None
    supplier: Optional[str] = None
    recipient: Optional[str] = None
    cargo_type: Optional[str] = None
    notes: Optional[str] = None
    status: DraftStatus = DraftStatus.DRAFT
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self):
        self.vehicle_number = normalize_plate(self.vehicle_number)

    @property
    def is_open(self) -> bool:
        return self.status == DraftStatus.DRAFT

    def validate(self) -> list:
        """
        Check the record against the weighing invariants plus the
        data-quality checks. Returns a list of problems (empty when
        consistent).
        """
        issues = self.invariant_issues()
        if (self.status == DraftStatus.COMPLETED
                and self.tare_timestamp is not None
                and self.tare_timestamp < self.gross_timestamp):
            issues.append("tare captured before gross")
        return issues

    def invariant_issues(self) -> list:
        """Problems that make the record unfit to store."""
        issues = []
        if not self.vehicle_number:
            issues.append("vehicle_number is required")
        if self.gross_weight <= 0:
            issues.append("gross_weight must be positive")

        if self.status == DraftStatus.COMPLETED:
            if self.tare_weight is None or self.net_weight is None:
                issues.append("completed draft without tare/net weight")
            else:
                expected = calculate_net_weight(self.gross_weight, self.tare_weight)
                if abs(self.net_weight - expected) > 1e-6:
                    issues.append(
                        f"net_weight {self.net_weight} != max(0, gross - tare) {expected}"
                    )
        elif self.net_weight is not None:
            issues.append("net_weight set on an open draft")
        return issues

    def _to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def _from_dict(cls, data: dict) -> "WeighingDraft":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "status" in known:
            known["status"] = DraftStatus(known["status"])
        return cls(**known)
