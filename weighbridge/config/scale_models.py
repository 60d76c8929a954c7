"""
Scale Indicator Model Catalog
==============================
Static per-indicator configuration: serial line parameters,
the ASCII command set, and the automatic behaviour applied
when a terminal connects.

Presets cover the indicators found at our plants. Custom
models can be added through a JSON catalog (see load_models).

Serial line parameters supported by every indicator:
  - Baud:      2400 … 115200
  - Data bits: 7 or 8
  - Stop bits: 1 or 2
  - Parity:    none / odd / even
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

BAUD_RATES = (2400, 4800, 9600, 19200, 38400, 57600, 115200)
DATA_BITS = (7, 8)
STOP_BITS = (1, 2)

# JSON catalog keys use the indicator manuals' naming
_COMMAND_ALIASES = {
    "getWeight": "get_weight",
}
_AUTO_ALIASES = {
    "autoConnect": "auto_connect",
    "autoTare": "auto_tare",
    "autoZero": "auto_zero",
    "pollingInterval": "polling_interval_ms",
    "pollingIntervalMs": "polling_interval_ms",
    "timeout": "timeout_ms",
    "timeoutMs": "timeout_ms",
    "retryAttempts": "retry_attempts",
    "autoReconnect": "auto_reconnect",
    "connectionDelay": "connection_delay_ms",
    "connectionDelayMs": "connection_delay_ms",
}
_MODEL_ALIASES = {
    "id": "model_id",
    "baudRate": "baud_rate",
    "dataBits": "data_bits",
    "stopBits": "stop_bits",
    "autoSettings": "auto",
}


class Parity(Enum):
    NONE = "none"
    ODD = "odd"
    EVEN = "even"


@dataclass(frozen=True)
class ScaleCommands:
    """ASCII commands understood by the indicator (None = unsupported)."""
    get_weight: Optional[str] = None
    tare: Optional[str] = None
    zero: Optional[str] = None
    calibration: Optional[str] = None
    status: Optional[str] = None
    reset: Optional[str] = None


@dataclass(frozen=True)
class AutoSettings:
    """Behaviour applied by AutoPolicyEngine for this model."""
    auto_connect: bool = False
    auto_tare: bool = False
    auto_zero: bool = False
    polling_interval_ms: int = 0        # 0 = no polling
    timeout_ms: int = 3000              # catalogued only; reads never time out
    retry_attempts: int = 3
    auto_reconnect: bool = False
    connection_delay_ms: int = 0


@dataclass(frozen=True)
class ScaleModelConfig:
    """Complete configuration for one indicator model."""
    model_id: str
    name: str = ""
    manufacturer: str = ""
    model: str = ""
    baud_rate: int = 9600
    data_bits: int = 8
    stop_bits: int = 1
    parity: Parity = Parity.NONE
    commands: ScaleCommands = field(default_factory=ScaleCommands)
    auto: AutoSettings = field(default_factory=AutoSettings)

    def validate(self) -> list:
        """Return the problems that prevent using this model on a link."""
        issues = []
        if self.baud_rate not in BAUD_RATES:
            issues.append(f"Unsupported baud rate: {self.baud_rate}")
        if self.data_bits not in DATA_BITS:
            issues.append(f"Unsupported data bits: {self.data_bits}")
        if self.stop_bits not in STOP_BITS:
            issues.append(f"Unsupported stop bits: {self.stop_bits}")
        if not isinstance(self.parity, Parity):
            issues.append(f"Unsupported parity: {self.parity}")
        if self.auto.retry_attempts < 1:
            issues.append("retry_attempts must be at least 1")
        for name in ("polling_interval_ms", "timeout_ms", "connection_delay_ms"):
            if getattr(self.auto, name) < 0:
                issues.append(f"{name} must not be negative")
        return issues

    def to_dict(self) -> dict:
        data = asdict(self)
        data["parity"] = self.parity.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ScaleModelConfig":
        """Build a model from a catalog entry (snake_case or camelCase keys)."""
        data = {_MODEL_ALIASES.get(k, k): v for k, v in data.items()}

        commands = {
            _COMMAND_ALIASES.get(k, k): (v or None)
            for k, v in (data.pop("commands", None) or {}).items()
        }
        auto = {
            _AUTO_ALIASES.get(k, k): v
            for k, v in (data.pop("auto", None) or {}).items()
        }
        if "parity" in data:
            data["parity"] = Parity(data["parity"])

        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(
            commands=ScaleCommands(**{
                k: v for k, v in commands.items()
                if k in ScaleCommands.__dataclass_fields__
            }),
            auto=AutoSettings(**{
                k: v for k, v in auto.items()
                if k in AutoSettings.__dataclass_fields__
            }),
            **known,
        )


# ── Presets ──────────────────────────────────────────────────

PRESET_SCALE_MODELS = {
    "cas-cs-200": ScaleModelConfig(
        model_id="cas-cs-200",
        name="CAS CS-200",
        manufacturer="CAS",
        model="CS-200",
        baud_rate=9600, data_bits=8, stop_bits=1, parity=Parity.NONE,
        commands=ScaleCommands(
            get_weight="W\r\n", tare="T\r\n", zero="Z\r\n",
            calibration="C\r\n", status="S\r\n", reset="R\r\n",
        ),
        auto=AutoSettings(
            auto_connect=True, auto_tare=True, auto_zero=False,
            polling_interval_ms=1000, timeout_ms=3000, retry_attempts=3,
            auto_reconnect=True, connection_delay_ms=1000,
        ),
    ),
    "mettler-toledo-ind780": ScaleModelConfig(
        model_id="mettler-toledo-ind780",
        name="Mettler Toledo IND780",
        manufacturer="Mettler Toledo",
        model="IND780",
        baud_rate=19200, data_bits=8, stop_bits=1, parity=Parity.NONE,
        commands=ScaleCommands(
            get_weight="S\r\n", tare="T\r\n", zero="Z\r\n",
            calibration="CAL\r\n", status="ST\r\n", reset="RESET\r\n",
        ),
        auto=AutoSettings(
            auto_connect=True, auto_tare=True, auto_zero=True,
            polling_interval_ms=500, timeout_ms=2000, retry_attempts=5,
            auto_reconnect=True, connection_delay_ms=500,
        ),
    ),
    "sartorius-ql6201": ScaleModelConfig(
        model_id="sartorius-ql6201",
        name="Sartorius QL6201",
        manufacturer="Sartorius",
        model="QL6201",
        baud_rate=9600, data_bits=7, stop_bits=1, parity=Parity.EVEN,
        commands=ScaleCommands(
            get_weight="P\r\n", tare="T\r\n", zero="Z\r\n",
            calibration="CAL\r\n", status="STAT\r\n", reset="RESET\r\n",
        ),
        auto=AutoSettings(
            auto_connect=True, auto_tare=False, auto_zero=True,
            polling_interval_ms=2000, timeout_ms=5000, retry_attempts=2,
            auto_reconnect=False, connection_delay_ms=2000,
        ),
    ),
    "ohaus-adventurer": ScaleModelConfig(
        model_id="ohaus-adventurer",
        name="Ohaus Adventurer",
        manufacturer="Ohaus",
        model="Adventurer",
        baud_rate=9600, data_bits=8, stop_bits=1, parity=Parity.NONE,
        commands=ScaleCommands(
            get_weight="W\r\n", tare="T\r\n", zero="Z\r\n",
            calibration="C\r\n", status="S\r\n", reset="R\r\n",
        ),
        auto=AutoSettings(
            auto_connect=False, auto_tare=True, auto_zero=True,
            polling_interval_ms=1500, timeout_ms=4000, retry_attempts=3,
            auto_reconnect=True, connection_delay_ms=1500,
        ),
    ),
    "shimadzu-uw620h": ScaleModelConfig(
        model_id="shimadzu-uw620h",
        name="Shimadzu UW620H",
        manufacturer="Shimadzu",
        model="UW620H",
        baud_rate=2400, data_bits=7, stop_bits=2, parity=Parity.EVEN,
        commands=ScaleCommands(
            get_weight="P\r\n", tare="T\r\n", zero="Z\r\n",
            calibration="CAL\r\n", status="STAT\r\n", reset="RESET\r\n",
        ),
        auto=AutoSettings(
            auto_connect=True, auto_tare=False, auto_zero=False,
            polling_interval_ms=3000, timeout_ms=6000, retry_attempts=2,
            auto_reconnect=False, connection_delay_ms=3000,
        ),
    ),
}

DEFAULT_MODEL_ID = "cas-cs-200"


def get_model(model_id: str, catalog: Optional[dict] = None) -> Optional[ScaleModelConfig]:
    """Look up a model by id in the given catalog (presets by default)."""
    return (catalog or PRESET_SCALE_MODELS).get(model_id)


def load_models(path: Optional[str] = None) -> dict:
    """
    Load the model catalog: presets plus any custom models
    from a JSON list at `path` (custom entries override presets).
    """
    catalog = dict(PRESET_SCALE_MODELS)
    if path is None:
        return catalog
    filepath = Path(path)
    if not filepath.exists():
        return catalog
    for entry in json.loads(filepath.read_text()):
        try:
            model = ScaleModelConfig.from_dict(entry)
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping invalid scale model entry: %r", entry)
            continue
        issues = model.validate()
        if issues:
            logger.warning(
                "Skipping scale model %s: %s", model.model_id, "; ".join(issues)
            )
            continue
        catalog[model.model_id] = model
    return catalog


def save_models(models: list, path: str):
    """Write a JSON catalog of custom models."""
    filepath = Path(path)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    filepath.write_text(json.dumps([m.to_dict() for m in models], indent=2))
