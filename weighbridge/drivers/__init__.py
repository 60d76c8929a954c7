from weighbridge.drivers.frame_parser import FrameParser, FrameFormat
from weighbridge.drivers.device_link import DeviceLink
from weighbridge.drivers.auto_policy import AutoPolicyEngine
from weighbridge.drivers.simulator import ScaleSimulator

__all__ = [
    "FrameParser",
    "FrameFormat",
    "DeviceLink",
    "AutoPolicyEngine",
    "ScaleSimulator",
]
