"""
Indicator Response Frame Parser
================================
Turns one inbound chunk of indicator output into a Reading.

Accepted frame forms (most specific first, first match wins):

    ST,+012000.00,kg     stable-tagged CSV
    ST +012000.00 kg     stable-tagged, space delimited
    +012000.00kg         compact, no separator
    012000.00            bare number (unit defaults to kg)

A chunk that matches none of these yields None. Whether that is
worth logging is the caller's decision.
"""

from enum import Enum
from typing import Optional
import re
import time

from weighbridge.core.models import Reading

DEFAULT_UNIT = "kg"
STABILITY_MARKERS = ("ST", "STABLE")

_NUM = r"([+-]?\d+\.?\d*)"
_UNIT = r"([A-Za-z]+)"


class FrameFormat(Enum):
    ST_CSV = "st_csv"
    ST_SPACE = "st_space"
    COMPACT = "compact"
    BARE = "bare"


_PATTERNS = [
    (FrameFormat.ST_CSV, re.compile(r"ST," + _NUM + r"," + _UNIT)),
    (FrameFormat.ST_SPACE, re.compile(r"ST\s+" + _NUM + r"\s+" + _UNIT)),
    (FrameFormat.COMPACT, re.compile(_NUM + _UNIT)),
    (FrameFormat.BARE, re.compile(_NUM)),
]


class FrameParser:
    """Stateless parser for indicator weight frames."""

    def parse(self, raw: str, now: Optional[float] = None) -> Optional[Reading]:
        """Parse a raw chunk, returning None when no pattern matches."""
        if not raw:
            return None
        text = raw.strip()
        for _, pattern in _PATTERNS:
            match = pattern.search(text)
            if match is None:
                continue
            unit = match.group(2) if pattern.groups > 1 else DEFAULT_UNIT
            return Reading(
                weight=float(match.group(1)),
                unit=unit,
                timestamp=time.time() if now is None else now,
                stable=any(marker in text for marker in STABILITY_MARKERS),
            )
        return None

    @staticmethod
    def match_format(raw: str) -> Optional[FrameFormat]:
        """Which grammar form a chunk matches, if any."""
        text = (raw or "").strip()
        for frame_format, pattern in _PATTERNS:
            if pattern.search(text):
                return frame_format
        return None

    @staticmethod
    def render(reading: Reading, frame_format: FrameFormat = FrameFormat.ST_CSV) -> str:
        """Render a reading the way an indicator would send it."""
        number = f"{reading.weight:+.2f}"
        if frame_format == FrameFormat.ST_CSV:
            return f"ST,{number},{reading.unit}\r\n"
        if frame_format == FrameFormat.ST_SPACE:
            return f"ST {number} {reading.unit}\r\n"
        if frame_format == FrameFormat.COMPACT:
            return f"{number}{reading.unit}\r\n"
        return f"{number}\r\n"
