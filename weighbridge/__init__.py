"""
Weighbridge Terminal
=====================
Device and weighing engine for a concrete-plant weighbridge.
Talks to truck-scale weight indicators over a serial link and
runs the two-phase (gross on arrival, tare on departure)
weighing workflow keyed by vehicle plate.

Target Hardware: Windows/Linux PC at the weighbridge gatehouse
I/O Interface:  RS-232/RS-485 indicator or serial-over-TCP bridge
"""

__version__ = "1.0.0"
