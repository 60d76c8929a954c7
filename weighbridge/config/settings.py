"""
Terminal Settings
==================
Per-terminal parameters for a weighbridge gatehouse PC. These
can be adjusted from the console at runtime and are persisted
to disk.
"""

from dataclasses import dataclass, field
import json
from pathlib import Path


@dataclass
class TerminalSettings:
    """Tunable settings for one weighbridge terminal."""

    # ── Indicator Link ───────────────────────────────────────
    port: str = "/dev/ttyUSB0"          # COM3, /dev/ttyUSB0, socket://host:port
    model_id: str = "cas-cs-200"        # Key into the scale model catalog
    models_path: str = ""               # Optional JSON catalog of custom models

    # ── Policy Timing ────────────────────────────────────────
    retry_delay_sec: float = 1.0        # Wait between command retries
    settle_delay_sec: float = 1.0       # Wait after auto-tare / auto-zero
    reconnect_delay_sec: float = 5.0    # Wait before an automatic reconnect

    # ── Weighing ─────────────────────────────────────────────
    drafts_dir: str = "data"            # Directory holding draft collections
    store_name: str = "weighing_drafts" # Collection for this terminal
    require_stable_arrival: bool = True # Reject unstable gross readings
    operator_id: str = "operator"
    operator_name: str = "Operator"

    # ── Persistence ──────────────────────────────────────────
    _config_path: str = field(
        default="config/terminal.json", repr=False
    )

    def save(self, path: str = None):
        """Persist current settings to JSON."""
        filepath = Path(path or self._config_path)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_text(json.dumps(self.as_dict(), indent=2))

    @classmethod
    def load(cls, path: str = None) -> "TerminalSettings":
        """Load settings from JSON, falling back to defaults."""
        filepath = Path(path or "config/terminal.json")
        settings = cls()
        if filepath.exists():
            data = json.loads(filepath.read_text())
            for key, value in data.items():
                if hasattr(settings, key) and not key.startswith("_"):
                    settings.update(key, value)
        return settings

    def update(self, key: str, value) -> bool:
        """Update a single setting, returning True on success."""
        if not hasattr(self, key) or key.startswith("_"):
            return False
        expected_type = type(getattr(self, key))
        try:
            if expected_type is bool and isinstance(value, str):
                value = value.strip().lower() in ("1", "true", "yes", "on")
            setattr(self, key, expected_type(value))
            return True
        except (ValueError, TypeError):
            return False

    def as_dict(self) -> dict:
        """Return all settings as a flat dictionary."""
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith("_")
        }
